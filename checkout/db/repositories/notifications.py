"""Репозиторий для работы с уведомлениями"""
import asyncpg

from checkout.constants import NOTIFICATION_LIST_LIMIT
from checkout.models.notification import NotificationPayload, NotificationRecord

_NOTIFICATION_COLUMNS = "id, recipient_id, title, body, type, link, read, created_at, read_at"


class NotificationRepository:
    """Репозиторий для работы с уведомлениями"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create(self, recipient_id: str, payload: NotificationPayload) -> NotificationRecord:
        """Создать уведомление для одного получателя"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO notifications (recipient_id, title, body, type, link)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING {_NOTIFICATION_COLUMNS}
                """,
                recipient_id, payload.title, payload.body, payload.type, payload.link
            )
            return dict(row)  # type: ignore

    async def list_for_user(self, recipient_id: str, limit: int = NOTIFICATION_LIST_LIMIT) -> list[NotificationRecord]:
        """Уведомления пользователя, новые первыми"""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_NOTIFICATION_COLUMNS}
                FROM notifications
                WHERE recipient_id = $1
                ORDER BY created_at DESC, id DESC
                LIMIT $2
                """,
                recipient_id, limit
            )
            return [dict(row) for row in rows]  # type: ignore

    async def mark_read(self, recipient_id: str, ids: list[int]) -> list[int]:
        """Отмечает уведомления прочитанными, возвращает ID измененных"""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                UPDATE notifications
                SET read = TRUE, read_at = NOW()
                WHERE recipient_id = $1 AND id = ANY($2::bigint[]) AND read = FALSE
                RETURNING id
                """,
                recipient_id, ids
            )
            return [row["id"] for row in rows]

    async def unread_count(self, recipient_id: str) -> int:
        """Количество непрочитанных уведомлений"""
        async with self.pool.acquire() as conn:
            count = await conn.fetchval(
                "SELECT COUNT(*) FROM notifications WHERE recipient_id = $1 AND read = FALSE",
                recipient_id
            )
            return int(count or 0)
