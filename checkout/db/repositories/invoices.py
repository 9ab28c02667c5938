"""Репозиторий для работы со счетами"""
import json
import asyncpg
from typing import Any, Optional
from datetime import datetime

from checkout.models.invoice import InvoiceRecord, InvoiceStatus

_INVOICE_COLUMNS = """
    id, owner_id, product_id, amount, description, gateway_invoice_id,
    sender_invoice_no, status, paid_amount, qr_text, qr_image, short_url,
    deep_links, created_at, updated_at, paid_at, last_checked_at
"""


def row_to_invoice(row: asyncpg.Record) -> InvoiceRecord:
    """Преобразует строку БД в InvoiceRecord"""
    data = dict(row)
    deep_links = data.get("deep_links")
    if isinstance(deep_links, str):
        deep_links = json.loads(deep_links)
    data["deep_links"] = deep_links or []
    return data  # type: ignore


class InvoiceRepository:
    """Репозиторий для работы со счетами"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create_invoice(
        self,
        *,
        owner_id: str,
        product_id: str,
        amount: int,
        description: str,
        gateway_invoice_id: str,
        sender_invoice_no: str,
        qr_text: Optional[str],
        qr_image: Optional[str],
        short_url: Optional[str],
        deep_links: list[dict[str, Any]],
    ) -> InvoiceRecord:
        """Сохраняет новый счет в статусе PENDING"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO invoices (
                    owner_id, product_id, amount, description, gateway_invoice_id,
                    sender_invoice_no, status, qr_text, qr_image, short_url, deep_links
                )
                VALUES ($1, $2, $3, $4, $5, $6, 'PENDING', $7, $8, $9, $10)
                RETURNING {_INVOICE_COLUMNS}
                """,
                owner_id, product_id, amount, description, gateway_invoice_id,
                sender_invoice_no, qr_text, qr_image, short_url, deep_links
            )
            return row_to_invoice(row)

    async def get_invoice(self, invoice_id: str) -> Optional[InvoiceRecord]:
        """Получить счет по ID"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_INVOICE_COLUMNS} FROM invoices WHERE id = $1",
                invoice_id
            )
            return row_to_invoice(row) if row else None

    async def find_reusable_pending(
        self,
        owner_id: str,
        product_id: str,
        amount: int,
    ) -> Optional[InvoiceRecord]:
        """Последний PENDING счет на тот же продукт и сумму с QR/ссылкой"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_INVOICE_COLUMNS}
                FROM invoices
                WHERE owner_id = $1 AND product_id = $2 AND status = 'PENDING'
                ORDER BY created_at DESC
                LIMIT 1
                """,
                owner_id, product_id
            )
            if not row:
                return None
            invoice = row_to_invoice(row)
            has_artifact = invoice["qr_image"] or invoice["short_url"] or invoice["deep_links"]
            if invoice["amount"] != amount or not has_artifact:
                return None
            return invoice

    async def cancel_other_pending(self, owner_id: str, product_id: str, keep_id: str) -> int:
        """Переводит остальные PENDING счета пользователя на продукт в CANCELLED"""
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE invoices
                SET status = 'CANCELLED', updated_at = NOW()
                WHERE owner_id = $1 AND product_id = $2 AND status = 'PENDING' AND id <> $3
                """,
                owner_id, product_id, keep_id
            )
            return int(result.split()[-1])

    async def touch_checked(self, invoice_id: str) -> None:
        """Обновляет время последней проверки (только для PENDING)"""
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE invoices
                SET updated_at = NOW(), last_checked_at = NOW()
                WHERE id = $1 AND status = 'PENDING'
                """,
                invoice_id
            )

    async def list_pending(
        self,
        *,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        limit: int = 500,
    ) -> list[InvoiceRecord]:
        """PENDING счета в заданном окне времени создания"""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_INVOICE_COLUMNS}
                FROM invoices
                WHERE status = 'PENDING'
                  AND ($1::timestamptz IS NULL OR created_at >= $1)
                  AND ($2::timestamptz IS NULL OR created_at < $2)
                ORDER BY created_at ASC
                LIMIT $3
                """,
                created_after, created_before, limit
            )
            return [row_to_invoice(row) for row in rows]

    async def expire_if_pending(self, invoice_id: str) -> bool:
        """CAS PENDING -> EXPIRED, True если статус изменен"""
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE invoices
                SET status = $2, updated_at = NOW()
                WHERE id = $1 AND status = 'PENDING'
                """,
                invoice_id, InvoiceStatus.EXPIRED.value
            )
            return result != "UPDATE 0"

    async def get_by_sender_invoice_no(self, sender_invoice_no: str) -> Optional[InvoiceRecord]:
        """Найти счет по correlation id (приходит в callback от шлюза)"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_INVOICE_COLUMNS} FROM invoices WHERE sender_invoice_no = $1",
                sender_invoice_no
            )
            return row_to_invoice(row) if row else None
