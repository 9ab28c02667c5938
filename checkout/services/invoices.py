import logging
from typing import Optional
from urllib.parse import urlencode
from uuid import uuid4

from checkout.clients.qpay_client import QPayClient
from checkout.constants import DEFAULT_INVOICE_DESCRIPTION, MAX_INVOICE_AMOUNT
from checkout.db.repositories.invoices import InvoiceRepository
from checkout.errors import ValidationError
from checkout.models.gateway import GatewayInvoice
from checkout.models.invoice import InvoiceView
from checkout.utils.qr import png_base64_to_data_url, to_qr_png_data_url

logger = logging.getLogger(__name__)


def build_scan_image(gateway_invoice: GatewayInvoice) -> Optional[str]:
    """
    QR картинка для плательщика

    Картинка от шлюза, иначе QR из qr_text, иначе QR из короткой ссылки.
    """
    if gateway_invoice.qr_image:
        return png_base64_to_data_url(gateway_invoice.qr_image)

    for payload in (gateway_invoice.qr_text, gateway_invoice.short_url):
        if not payload:
            continue
        try:
            return to_qr_png_data_url(payload)
        except Exception as e:
            logger.error(f"Не удалось сгенерировать QR для счета {gateway_invoice.invoice_id}: {e}")
    return None


class InvoiceService:
    """Создание счетов в шлюзе и их сохранение"""

    def __init__(
        self,
        invoices: InvoiceRepository,
        gateway: QPayClient,
        *,
        public_base_url: str,
        callback_secret: Optional[str] = None,
    ):
        self.invoices = invoices
        self.gateway = gateway
        self.public_base_url = public_base_url.rstrip("/")
        self.callback_secret = callback_secret

    def build_callback_url(self, sender_invoice_no: str) -> str:
        params = {"ref": sender_invoice_no}
        if self.callback_secret:
            params["s"] = self.callback_secret
        return f"{self.public_base_url}/checkout/callback?{urlencode(params)}"

    async def create_invoice(
        self,
        owner_id: str,
        product_id: str,
        amount: int,
        description: str = "",
    ) -> InvoiceView:
        """
        Создает счет на покупку продукта

        Args:
            owner_id: ID покупателя (уже проверен identity провайдером)
            product_id: ID курса
            amount: Сумма, целое от 1 до MAX_INVOICE_AMOUNT
            description: Описание для плательщика

        Returns:
            InvoiceView для отрисовки QR и поллинга
        """
        owner_id = (owner_id or "").strip()
        product_id = (product_id or "").strip()
        if not owner_id:
            raise ValidationError("owner_id обязателен")
        if not product_id:
            raise ValidationError("productId обязателен", code="PRODUCT_REQUIRED")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValidationError("amount должен быть > 0", code="INVALID_AMOUNT")
        if amount > MAX_INVOICE_AMOUNT:
            raise ValidationError(f"amount не может превышать {MAX_INVOICE_AMOUNT}", code="INVALID_AMOUNT")

        description = (description or "").strip() or DEFAULT_INVOICE_DESCRIPTION

        reusable = await self.invoices.find_reusable_pending(owner_id, product_id, amount)
        if reusable:
            logger.info(f"♻️ Повторно используем счет {reusable['id']} (user_id={owner_id}, product_id={product_id})")
            return InvoiceView.from_record(reusable, reused=True)

        sender_invoice_no = uuid4().hex
        gateway_invoice = await self.gateway.create_invoice(
            amount=amount,
            description=description,
            callback_url=self.build_callback_url(sender_invoice_no),
            sender_invoice_no=sender_invoice_no,
        )

        invoice = await self.invoices.create_invoice(
            owner_id=owner_id,
            product_id=product_id,
            amount=amount,
            description=description,
            gateway_invoice_id=gateway_invoice.invoice_id,
            sender_invoice_no=sender_invoice_no,
            qr_text=gateway_invoice.qr_text,
            qr_image=build_scan_image(gateway_invoice),
            short_url=gateway_invoice.short_url,
            deep_links=gateway_invoice.deep_links,
        )

        cancelled = await self.invoices.cancel_other_pending(owner_id, product_id, invoice["id"])
        if cancelled:
            logger.info(f"Отменено устаревших счетов: {cancelled} (user_id={owner_id}, product_id={product_id})")

        if not invoice["qr_image"]:
            logger.warning(f"⚠️ Счет {invoice['id']} создан без QR кода")

        logger.info(f"🧾 Создан счет {invoice['id']} на {amount} (user_id={owner_id}, product_id={product_id})")
        return InvoiceView.from_record(invoice)
