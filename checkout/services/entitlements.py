from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import logging

from checkout.constants import DEFAULT_DURATION_DAYS
from checkout.db.repositories.catalog import CatalogRepository
from checkout.db.repositories.entitlements import EntitlementRepository
from checkout.errors import ValidationError
from checkout.models.entitlement import DurationSpec, EntitlementRecord, GrantResult
from checkout.models.invoice import InvoiceRecord, InvoiceStatus
from checkout.services.notifications import NotificationService
from checkout.utils.duration import resolve_duration

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntitlementGranter:
    """
    Единственная точка выдачи доступа по оплаченному счету

    Вызывается из проверки оплаты клиентом, callback'а шлюза и фоновой
    сверки. Идемпотентность обеспечивает CAS (PENDING, CANCELLED, EXPIRED) -> PAID в той же
    транзакции, что и запись доступа.
    """

    def __init__(
        self,
        entitlements: EntitlementRepository,
        catalog: CatalogRepository,
        notifications: NotificationService,
        *,
        default_duration_days: int = DEFAULT_DURATION_DAYS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.entitlements = entitlements
        self.catalog = catalog
        self.notifications = notifications
        self.default_duration_days = default_duration_days
        self._clock = clock

    async def resolve_duration(self, product_id: str) -> DurationSpec:
        """Срок доступа продукта по настройкам каталога"""
        config = await self.catalog.get_product_duration_config(product_id)
        return resolve_duration(config, self.default_duration_days)

    async def grant(self, invoice: InvoiceRecord, paid_amount: Optional[int] = None) -> GrantResult:
        """
        Выдает доступ по оплаченному счету

        Args:
            invoice: Счет (статус будет перепроверен в БД)
            paid_amount: Сумма, которую шлюз сообщил как оплаченную

        Returns:
            GrantResult(granted=False) если доступ уже выдан этим счетом
        """
        if invoice["status"] == InvoiceStatus.PAID.value:
            return GrantResult(granted=False)

        duration = await self.resolve_duration(invoice["product_id"])
        now = self._clock()
        expires_at = now + timedelta(days=duration.days)

        entitlement: EntitlementRecord = {
            "user_id": invoice["owner_id"],
            "product_id": invoice["product_id"],
            "purchased_at": now,
            "expires_at": expires_at,
            "duration_days": duration.days,
            "duration_label": duration.label,
            "source_invoice_id": invoice["id"],
            "amount": invoice["amount"],
        }

        granted = await self.entitlements.grant_for_invoice(invoice["id"], paid_amount, now, entitlement)
        if not granted:
            logger.info(f"Счет {invoice['id']} уже обработан, повторная выдача пропущена")
            return GrantResult(granted=False)

        logger.info(
            f"✅ Выдан доступ: user_id={invoice['owner_id']}, product_id={invoice['product_id']}, "
            f"invoice={invoice['id']}, expires_at={expires_at}"
        )

        # Уведомление не транзакционно с выдачей
        await self.notifications.notify_purchase(invoice["owner_id"], duration.label, expires_at)
        return GrantResult(granted=True, expires_at=expires_at)

    async def grant_manual(
        self,
        user_id: str,
        product_id: str,
        *,
        duration_days: Optional[int] = None,
        duration_label: Optional[str] = None,
    ) -> EntitlementRecord:
        """Ручная выдача доступа (поддержка/админ), с необязательным переопределением срока"""
        if not user_id or not product_id:
            raise ValidationError("user_id и product_id обязательны")
        if duration_days is not None and duration_days <= 0:
            raise ValidationError("duration_days должен быть > 0")

        duration = await self.resolve_duration(product_id)
        days = duration_days or duration.days
        label = (duration_label or "").strip() or (duration.label if not duration_days else f"{days} хоног")

        now = self._clock()
        entitlement: EntitlementRecord = {
            "user_id": user_id,
            "product_id": product_id,
            "purchased_at": now,
            "expires_at": now + timedelta(days=days),
            "duration_days": days,
            "duration_label": label,
            "source_invoice_id": None,
            "amount": None,
        }
        await self.entitlements.upsert(entitlement)
        logger.info(f"✅ Доступ выдан вручную: user_id={user_id}, product_id={product_id}, days={days}")

        await self.notifications.notify_purchase(user_id, label, entitlement["expires_at"])
        return entitlement

    async def get_active_entitlement(self, user_id: str, product_id: str) -> Optional[EntitlementRecord]:
        """Действующий доступ пользователя к продукту или None"""
        entitlement = await self.entitlements.get(user_id, product_id)
        if not entitlement:
            return None
        expires_at = entitlement["expires_at"]
        if expires_at is not None and expires_at <= self._clock():
            return None
        return entitlement

    async def has_access(self, user_id: str, product_id: str) -> bool:
        return await self.get_active_entitlement(user_id, product_id) is not None
