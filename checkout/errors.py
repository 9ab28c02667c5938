"""Иерархия ошибок checkout-подсистемы"""
from typing import Any, Optional


class CheckoutError(Exception):
    """
    Базовая ошибка подсистемы оплаты

    Attributes:
        code: Машиночитаемый код причины (уходит клиенту в поле error)
        message: Человекочитаемое описание
        status_code: HTTP статус для ответа
        retryable: Можно ли повторить операцию позже
    """

    code = "CHECKOUT_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        self.message = message
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        """Тело JSON ответа для HTTP клиента"""
        return {"ok": False, "error": self.code, "message": self.message}


class ConfigError(CheckoutError):
    """Не хватает настроек шлюза/БД (фатально, только при старте)"""

    code = "CONFIG_ERROR"


class GatewayAuthError(CheckoutError):
    """Не удалось получить токен шлюза"""

    code = "GATEWAY_AUTH_FAILED"
    status_code = 502
    retryable = True


class GatewayInvoiceError(CheckoutError):
    """Ошибка создания/проверки счета в шлюзе или некорректный ответ"""

    code = "GATEWAY_INVOICE_FAILED"
    status_code = 502
    retryable = True


class ValidationError(CheckoutError):
    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(CheckoutError):
    code = "UNAUTHENTICATED"
    status_code = 401


class OwnershipError(CheckoutError):
    """Счет принадлежит другому пользователю"""

    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(CheckoutError):
    code = "NOT_FOUND"
    status_code = 404


class PartialDeliveryError(CheckoutError):
    """
    Часть уведомлений не доставлена.

    Не выбрасывается: собирается рассылкой и пишется в ops-лог.
    """

    code = "PARTIAL_DELIVERY"

    def __init__(self, failed: dict[str, BaseException], total: int):
        self.failed = failed
        self.total = total
        super().__init__(
            f"Не доставлено {len(failed)} из {total} уведомлений",
            details={"failed_recipients": sorted(failed)},
        )


class ApiResponseError(CheckoutError):
    """Ошибочный ответ checkout API (на стороне клиента-поллера)"""

    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message, code=code)
        self.status_code = status_code
        self.retryable = status_code >= 500
