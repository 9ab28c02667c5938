import logging
from typing import Optional

from checkout.clients.qpay_client import QPayClient
from checkout.db.repositories.invoices import InvoiceRepository
from checkout.errors import NotFoundError, OwnershipError
from checkout.models.invoice import CheckResult, InvoiceRecord, InvoiceStatus
from checkout.services.entitlements import EntitlementGranter

logger = logging.getLogger(__name__)


class PaymentService:
    """Проверка оплаты счетов"""

    def __init__(self, invoices: InvoiceRepository, gateway: QPayClient, granter: EntitlementGranter):
        self.invoices = invoices
        self.gateway = gateway
        self.granter = granter

    async def _load(self, invoice_id: str, owner_id: Optional[str]) -> InvoiceRecord:
        invoice = await self.invoices.get_invoice(invoice_id) if invoice_id else None
        if not invoice:
            raise NotFoundError("Счет не найден")
        if owner_id is not None and invoice["owner_id"] != owner_id:
            raise OwnershipError("Нет доступа к этому счету")
        return invoice

    async def check_paid(self, invoice_id: str, owner_id: Optional[str] = None) -> CheckResult:
        """
        Проверяет оплату счета и выдает доступ при первой оплате

        Можно вызывать сколько угодно раз: после локальной отметки PAID
        шлюз больше не опрашивается. CANCELLED и EXPIRED счета тоже
        проверяются в шлюзе: их QR мог быть оплачен позже.
        При paid=True доступ уже записан.

        Args:
            invoice_id: ID счета
            owner_id: ID вызывающего пользователя (None для системных вызовов)
        """
        invoice = await self._load(invoice_id, owner_id)
        status = InvoiceStatus(invoice["status"])

        if status is InvoiceStatus.PAID:
            return CheckResult(paid=True, status=status)

        payment = await self.gateway.check_payment(invoice["gateway_invoice_id"])

        if not payment.paid:
            if status is InvoiceStatus.PENDING:
                await self.invoices.touch_checked(invoice["id"])
            return CheckResult(paid=False, status=status)

        if status is not InvoiceStatus.PENDING:
            logger.warning(f"⚠️ Оплачен счет {invoice['id']} в статусе {status.value}, выдаем доступ")

        if 0 < payment.paid_amount < invoice["amount"]:
            logger.warning(
                f"⚠️ Счет {invoice['id']}: оплачено {payment.paid_amount} из {invoice['amount']}"
            )

        await self.granter.grant(invoice, payment.paid_amount or None)

        # Статус мог измениться конкурентно, отвечаем по БД
        current = await self._load(invoice["id"], None)
        status = InvoiceStatus(current["status"])
        return CheckResult(paid=status is InvoiceStatus.PAID, status=status)

    async def handle_gateway_callback(self, reference: str) -> Optional[CheckResult]:
        """
        Callback от шлюза: та же проверка, что и у клиента

        Доступ выдается только после подтверждения оплаты запросом
        к шлюзу, содержимому callback'а не доверяем.
        """
        invoice = await self.invoices.get_by_sender_invoice_no(reference) if reference else None
        if not invoice:
            logger.warning(f"Callback для неизвестного счета: ref={reference}")
            return None

        result = await self.check_paid(invoice["id"])
        logger.info(f"💰 Callback по счету {invoice['id']}: paid={result.paid}, status={result.status.value}")
        return result
