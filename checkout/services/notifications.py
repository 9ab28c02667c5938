import asyncio
import logging
from datetime import datetime
from typing import Iterable

from checkout.constants import NOTIFICATION_BATCH_SIZE, NOTIFICATION_LIST_LIMIT, PURCHASE_NOTIFICATION_LINK
from checkout.db.repositories.notifications import NotificationRepository
from checkout.errors import PartialDeliveryError
from checkout.models.notification import FanoutResult, NotificationPayload, NotificationRecord

logger = logging.getLogger(__name__)
ops_logger = logging.getLogger("checkout.ops")


class NotificationService:
    """Сервис для отправки уведомлений пользователям"""

    def __init__(self, repository: NotificationRepository, batch_size: int = NOTIFICATION_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size должен быть >= 1")
        self.repository = repository
        self.batch_size = batch_size

    async def notify_one(self, recipient_id: str, payload: NotificationPayload) -> NotificationRecord:
        """Создает уведомление одному получателю (ошибка записи пробрасывается)"""
        return await self.repository.create(recipient_id, payload)

    async def notify_all(self, recipient_ids: Iterable[str], payload: NotificationPayload) -> FanoutResult:
        """
        Рассылает уведомление всем получателям пачками

        Внутри пачки записи идут параллельно, следующая пачка стартует
        только после завершения предыдущей. Ошибки отдельных получателей
        собираются в результат и не прерывают рассылку.
        """
        recipients = list(dict.fromkeys(r for r in recipient_ids if r))
        result = FanoutResult()
        failures: dict[str, BaseException] = {}

        for start in range(0, len(recipients), self.batch_size):
            batch = recipients[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.repository.create(recipient_id, payload) for recipient_id in batch),
                return_exceptions=True,
            )
            result.batches += 1

            for recipient_id, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    failures[recipient_id] = outcome
                    result.failed.append(recipient_id)
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    result.succeeded.append(recipient_id)

        if failures:
            error = PartialDeliveryError(failures, total=len(recipients))
            ops_logger.warning(f"⚠️ {error.message} (type={payload.type})")
            for recipient_id, exc in list(failures.items())[:10]:
                logger.error(f"Не удалось уведомить пользователя {recipient_id}: {exc}")

        logger.info(
            f"📨 Рассылка '{payload.type}': успешно {len(result.succeeded)}, "
            f"ошибок {len(result.failed)}, пачек {result.batches}"
        )
        return result

    async def notify_purchase(self, user_id: str, duration_label: str, expires_at: datetime) -> bool:
        """Уведомляет покупателя об открытии доступа (best-effort)"""
        payload = NotificationPayload(
            title="Төлбөр амжилттай",
            body=(
                f"Таны сургалт нээгдлээ. Хугацаа: {duration_label}, "
                f"дуусах огноо: {expires_at.strftime('%Y-%m-%d')}."
            ),
            type="purchase",
            link=PURCHASE_NOTIFICATION_LINK,
        )
        try:
            await self.notify_one(user_id, payload)
            return True
        except Exception as e:
            logger.error(f"Не удалось уведомить пользователя {user_id} о покупке: {e}")
            return False

    async def list_for_user(self, user_id: str, limit: int = NOTIFICATION_LIST_LIMIT) -> list[NotificationRecord]:
        return await self.repository.list_for_user(user_id, limit)

    async def mark_read(self, user_id: str, ids: list[int]) -> list[int]:
        """Отмечает прочитанными только уведомления самого пользователя"""
        unique_ids = sorted(set(ids))
        if not unique_ids:
            return []
        return await self.repository.mark_read(user_id, unique_ids)

    async def unread_count(self, user_id: str) -> int:
        return await self.repository.unread_count(user_id)
