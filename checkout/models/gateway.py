"""Нормализованные ответы платежного шлюза"""
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class GatewayInvoice(BaseModel):
    """Ответ создания счета после разбора неоднозначных полей"""

    invoice_id: str
    qr_text: Optional[str] = None
    qr_image: Optional[str] = None  # base64 png без data: префикса
    short_url: Optional[str] = None
    deep_links: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class GatewayPaymentStatus(BaseModel):
    """Результат проверки оплаты счета"""

    paid: bool
    paid_amount: int = 0

    model_config = ConfigDict(frozen=True)
