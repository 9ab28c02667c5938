"""Модели для доступов к курсам"""
from typing import Optional, TypedDict
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class EntitlementRecord(TypedDict):
    """Запись доступа пользователя к продукту"""
    user_id: str
    product_id: str
    purchased_at: datetime
    expires_at: Optional[datetime]  # None = бессрочно
    duration_days: Optional[int]
    duration_label: Optional[str]
    source_invoice_id: Optional[str]  # None для ручной выдачи
    amount: Optional[int]


class ProductDurationConfig(TypedDict, total=False):
    """Настройки срока доступа из каталога"""
    duration_days: Optional[int]
    duration_label: Optional[str]
    duration: Optional[str]  # свободный текст курса, запасной источник срока


class DurationSpec(BaseModel):
    """Разобранный срок доступа"""

    days: int
    label: str

    model_config = ConfigDict(frozen=True)


class GrantResult(BaseModel):
    """Результат выдачи доступа"""

    granted: bool
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class AdminGrantRequest(BaseModel):
    """Тело POST /admin/grant"""

    user_id: str = Field(alias="userId", min_length=1)
    product_id: str = Field(alias="productId", min_length=1)
    duration_days: Optional[int] = Field(default=None, alias="durationDays", gt=0)
    duration_label: Optional[str] = Field(default=None, alias="durationLabel")

    model_config = ConfigDict(populate_by_name=True)
