"""Клиент для работы с QPay"""
import json
import logging
from typing import Any, Optional

import aiohttp

from checkout.clients.token_cache import GatewayAuthCache
from checkout.config import Config
from checkout.errors import GatewayAuthError, GatewayInvoiceError
from checkout.models.gateway import GatewayInvoice, GatewayPaymentStatus
from checkout.utils.fields import (
    DEEP_LINK_LIST_KEYS,
    INVOICE_ID_KEYS,
    QR_IMAGE_KEYS,
    QR_TEXT_KEYS,
    extract_short_url,
    is_paid_response,
    normalize_deep_links,
    paid_amount_from_response,
    pick_list,
    pick_string,
)

logger = logging.getLogger(__name__)

_ERROR_BODY_LIMIT = 300


def parse_invoice_response(data: Any) -> GatewayInvoice:
    """Приводит ответ создания счета к GatewayInvoice"""
    if not isinstance(data, dict):
        raise GatewayInvoiceError("Некорректный ответ шлюза при создании счета")

    invoice_id = pick_string(data, INVOICE_ID_KEYS)
    if not invoice_id:
        raise GatewayInvoiceError("В ответе шлюза нет invoice_id")

    deep_links = normalize_deep_links(pick_list(data, DEEP_LINK_LIST_KEYS))
    return GatewayInvoice(
        invoice_id=invoice_id,
        qr_text=pick_string(data, QR_TEXT_KEYS),
        qr_image=pick_string(data, QR_IMAGE_KEYS),
        short_url=extract_short_url(data, deep_links),
        deep_links=deep_links,
    )


def parse_payment_response(data: Any) -> GatewayPaymentStatus:
    """Приводит ответ проверки оплаты к GatewayPaymentStatus"""
    if not isinstance(data, dict):
        raise GatewayInvoiceError("Некорректный ответ шлюза при проверке оплаты")
    return GatewayPaymentStatus(
        paid=is_paid_response(data),
        paid_amount=paid_amount_from_response(data),
    )


class QPayClient:
    """Клиент для создания и проверки счетов QPay"""

    def __init__(self, config: Config, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self._session = session
        self._owns_session = session is None
        self.auth = GatewayAuthCache(self._authenticate)

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.gateway_timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Закрывает HTTP сессию, если она создана клиентом"""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    def _url(self, path: str) -> str:
        return f"{self.config.qpay_base_url}/v2/{path.lstrip('/')}"

    async def _authenticate(self) -> tuple[str, Optional[float]]:
        """POST /v2/auth/token c Basic авторизацией"""
        auth = aiohttp.BasicAuth(self.config.qpay_username, self.config.qpay_password)
        try:
            async with self.session.post(self._url("auth/token"), auth=auth) as response:
                text = await response.text()
                if response.status >= 400:
                    raise GatewayAuthError(
                        f"QPay token failed ({response.status}): {text[:_ERROR_BODY_LIMIT]}"
                    )
        except aiohttp.ClientError as e:
            raise GatewayAuthError(f"QPay token request failed: {e}") from e

        try:
            data = json.loads(text) if text else {}
        except json.JSONDecodeError as e:
            raise GatewayAuthError("QPay token: некорректный JSON") from e

        token = str(data.get("access_token") or "").strip() if isinstance(data, dict) else ""
        if not token:
            raise GatewayAuthError("QPay token: нет access_token")
        return token, data.get("expires_in")

    async def _post_json(self, path: str, body: dict[str, Any], *, retry_on_401: bool = True) -> Any:
        token = await self.auth.get_token()
        headers = {"Authorization": f"Bearer {token}"}

        try:
            async with self.session.post(self._url(path), json=body, headers=headers) as response:
                status = response.status
                text = await response.text()
        except aiohttp.ClientError as e:
            raise GatewayInvoiceError(f"QPay {path} request failed: {e}") from e

        if status == 401 and retry_on_401:
            # Токен мог быть отозван шлюзом раньше срока
            logger.warning(f"QPay {path}: 401, обновляем токен")
            self.auth.invalidate()
            return await self._post_json(path, body, retry_on_401=False)

        if status >= 400:
            raise GatewayInvoiceError(f"QPay {path} failed ({status}): {text[:_ERROR_BODY_LIMIT]}")

        try:
            return json.loads(text) if text else {}
        except json.JSONDecodeError as e:
            raise GatewayInvoiceError(f"QPay {path}: некорректный JSON") from e

    async def create_invoice(
        self,
        *,
        amount: int,
        description: str,
        callback_url: str,
        sender_invoice_no: str,
    ) -> GatewayInvoice:
        """
        Создает счет в QPay

        Args:
            amount: Сумма счета
            description: Описание для плательщика
            callback_url: URL, на который шлюз сообщит об оплате
            sender_invoice_no: Correlation id попытки (для дедупликации в шлюзе)

        Returns:
            Нормализованный ответ шлюза
        """
        body = {
            "invoice_code": self.config.qpay_invoice_code,
            "sender_invoice_no": sender_invoice_no,
            "invoice_receiver_code": self.config.qpay_invoice_receiver_code,
            "sender_branch_code": self.config.qpay_branch_code,
            "invoice_description": description,
            "amount": amount,
            "callback_url": callback_url,
            "allow_partial": False,
            "allow_exceed": False,
            "enable_expiry": "false",
        }
        data = await self._post_json("invoice", body)
        return parse_invoice_response(data)

    async def check_payment(self, gateway_invoice_id: str) -> GatewayPaymentStatus:
        """Проверяет оплату счета через POST /v2/payment/check"""
        body = {
            "object_type": "INVOICE",
            "object_id": gateway_invoice_id,
            "offset": {"page_number": 1, "page_limit": 100},
        }
        data = await self._post_json("payment/check", body)
        return parse_payment_response(data)
