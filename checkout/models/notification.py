"""Модели для уведомлений"""
from typing import Optional, TypedDict
from datetime import datetime
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from checkout.constants import ADMIN_NOTIFICATION_LINK


class NotificationRecord(TypedDict):
    """Запись уведомления из базы данных"""
    id: int
    recipient_id: str
    title: str
    body: str
    type: str  # info, purchase, course, warning
    link: Optional[str]
    read: bool
    created_at: datetime
    read_at: Optional[datetime]


class NotificationPayload(BaseModel):
    """Содержимое уведомления (одинаковое для всех получателей рассылки)"""

    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    type: str = "info"
    link: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class FanoutResult(BaseModel):
    """Итог массовой рассылки"""

    succeeded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    batches: int = 0

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)


class MarkReadRequest(BaseModel):
    """Тело POST /notifications/read"""

    ids: list[int] = Field(min_length=1, validation_alias=AliasChoices("ids", "notificationIds"))


class AdminNotifyRequest(BaseModel):
    """Тело POST /admin/users/{user_id}/notify"""

    title: Optional[str] = None
    body: Optional[str] = None
    link: Optional[str] = None
    type: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)

    def to_payload(self) -> Optional[NotificationPayload]:
        """None, если не заполнены заголовок или текст"""
        if not self.title or not self.body:
            return None
        return NotificationPayload(
            title=self.title,
            body=self.body,
            type=self.type or "info",
            link=self.link or ADMIN_NOTIFICATION_LINK,
        )
