"""Репозиторий для работы с доступами к курсам"""
import asyncpg
from typing import Optional
from datetime import datetime

from checkout.models.entitlement import EntitlementRecord
from checkout.models.invoice import PAYABLE_STATUSES

_UPSERT_ENTITLEMENT = """
    INSERT INTO entitlements (
        user_id, product_id, purchased_at, expires_at, duration_days,
        duration_label, source_invoice_id, amount
    )
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
    ON CONFLICT (user_id, product_id)
    DO UPDATE SET
        purchased_at = EXCLUDED.purchased_at,
        expires_at = EXCLUDED.expires_at,
        duration_days = EXCLUDED.duration_days,
        duration_label = EXCLUDED.duration_label,
        source_invoice_id = EXCLUDED.source_invoice_id,
        amount = EXCLUDED.amount
"""

_ENTITLEMENT_COLUMNS = """
    user_id, product_id, purchased_at, expires_at, duration_days,
    duration_label, source_invoice_id, amount
"""


def _entitlement_args(entitlement: EntitlementRecord) -> tuple:
    return (
        entitlement["user_id"],
        entitlement["product_id"],
        entitlement["purchased_at"],
        entitlement["expires_at"],
        entitlement["duration_days"],
        entitlement["duration_label"],
        entitlement["source_invoice_id"],
        entitlement["amount"],
    )


class EntitlementRepository:
    """Репозиторий для работы с доступами"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def grant_for_invoice(
        self,
        invoice_id: str,
        paid_amount: Optional[int],
        paid_at: datetime,
        entitlement: EntitlementRecord,
    ) -> bool:
        """
        Отмечает счет оплаченным и записывает доступ в одной транзакции

        Счет переводится в PAID из PENDING, CANCELLED или EXPIRED. Если
        он уже PAID (конкурентный вызов), доступ не пишется.

        Returns:
            True если этот вызов выполнил выдачу
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                updated = await conn.fetchval(
                    """
                    UPDATE invoices
                    SET status = 'PAID', paid_at = $2, paid_amount = $3,
                        updated_at = $2, last_checked_at = $2
                    WHERE id = $1 AND status = ANY($4::text[])
                    RETURNING id
                    """,
                    invoice_id, paid_at, paid_amount, PAYABLE_STATUSES
                )
                if updated is None:
                    return False

                await conn.execute(_UPSERT_ENTITLEMENT, *_entitlement_args(entitlement))
                return True

    async def upsert(self, entitlement: EntitlementRecord) -> None:
        """Создает или перезаписывает доступ (ручная выдача)"""
        async with self.pool.acquire() as conn:
            await conn.execute(_UPSERT_ENTITLEMENT, *_entitlement_args(entitlement))

    async def get(self, user_id: str, product_id: str) -> Optional[EntitlementRecord]:
        """Получает доступ пользователя к продукту"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_ENTITLEMENT_COLUMNS} FROM entitlements WHERE user_id = $1 AND product_id = $2",
                user_id, product_id
            )
            return dict(row) if row else None  # type: ignore

