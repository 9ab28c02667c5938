"""Модели для счетов"""
from enum import Enum
from typing import Any, Optional, TypedDict
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class InvoiceStatus(str, Enum):
    """Статус счета. PAID финальный, остальные могут перейти в PAID."""

    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    @property
    def is_payable(self) -> bool:
        return self is not InvoiceStatus.PAID


# Отмененный или истекший локально счет остается оплачиваемым в QPay
PAYABLE_STATUSES = [s.value for s in InvoiceStatus if s.is_payable]


class InvoiceRecord(TypedDict):
    """Запись счета из базы данных"""
    id: str
    owner_id: str
    product_id: str
    amount: int
    description: str
    gateway_invoice_id: str
    sender_invoice_no: str  # correlation id, наружу не отдается
    status: str
    paid_amount: Optional[int]
    qr_text: Optional[str]
    qr_image: Optional[str]
    short_url: Optional[str]
    deep_links: list[dict[str, Any]]
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime]
    last_checked_at: Optional[datetime]


class InvoiceView(BaseModel):
    """Ответ POST /checkout/create"""

    invoice_id: str = Field(serialization_alias="invoiceId")
    gateway_invoice_id: str = Field(serialization_alias="gatewayInvoiceId")
    amount: int
    scan_image: Optional[str] = Field(default=None, serialization_alias="scanImage")
    scan_text: Optional[str] = Field(default=None, serialization_alias="scanText")
    deep_link: Optional[str] = Field(default=None, serialization_alias="deepLink")
    deep_link_list: list[dict[str, Any]] = Field(default_factory=list, serialization_alias="deepLinkList")
    reused: bool = False
    warning: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @classmethod
    def from_record(cls, invoice: InvoiceRecord, *, reused: bool = False) -> "InvoiceView":
        return cls(
            invoice_id=invoice["id"],
            gateway_invoice_id=invoice["gateway_invoice_id"],
            amount=invoice["amount"],
            scan_image=invoice["qr_image"],
            scan_text=invoice["qr_text"],
            deep_link=invoice["short_url"],
            deep_link_list=invoice["deep_links"] or [],
            reused=reused,
            warning=None if invoice["qr_image"] else "NO_SCAN_ARTIFACT",
        )


class CheckResult(BaseModel):
    """Ответ POST /checkout/check"""

    paid: bool
    status: InvoiceStatus

    model_config = ConfigDict(frozen=True)


class CreateInvoiceRequest(BaseModel):
    """Тело POST /checkout/create"""

    product_id: str = Field(alias="productId")
    amount: int
    description: str = ""

    model_config = ConfigDict(populate_by_name=True)


class CheckInvoiceRequest(BaseModel):
    """Тело POST /checkout/check"""

    invoice_id: str = Field(alias="invoiceId")

    model_config = ConfigDict(populate_by_name=True)
