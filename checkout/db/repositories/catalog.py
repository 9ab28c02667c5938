"""Репозиторий каталога (только то, что нужно подсистеме оплаты)"""
import asyncpg
from typing import Optional

from checkout.models.entitlement import ProductDurationConfig


class CatalogRepository:
    """Чтение настроек продукта и отметка рассылки о публикации"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_product(self, product_id: str) -> Optional[dict]:
        """Получить продукт по ID"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT id, title, duration_days, duration_label, duration, published_notified_at
                FROM products
                WHERE id = $1
                """,
                product_id
            )
            return dict(row) if row else None

    async def get_product_duration_config(self, product_id: str) -> Optional[ProductDurationConfig]:
        """Срок доступа продукта: duration_days, duration_label, duration"""
        product = await self.get_product(product_id)
        if not product:
            return None
        return {
            "duration_days": product["duration_days"],
            "duration_label": product["duration_label"],
            "duration": product["duration"],
        }

    async def mark_published_notified(self, product_id: str) -> bool:
        """Отмечает, что рассылка о публикации выполнена (однократно)"""
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE products
                SET published_notified_at = NOW()
                WHERE id = $1 AND published_notified_at IS NULL
                """,
                product_id
            )
            return result != "UPDATE 0"
