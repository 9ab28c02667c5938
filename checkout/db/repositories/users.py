"""Репозиторий пользователей (регистрация и перечисление для рассылок)"""
import asyncpg


class UserRepository:
    """Учет пользователей, обращавшихся к сервису"""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def ensure_user(self, user_id: str) -> bool:
        """
        Регистрирует пользователя, если его еще нет

        Returns:
            True если пользователь добавлен впервые
        """
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                """
                INSERT INTO users (id)
                VALUES ($1)
                ON CONFLICT (id) DO NOTHING
                """,
                user_id
            )
            return result != "INSERT 0 0"

    async def list_user_ids(self) -> list[str]:
        """Все ID пользователей"""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("SELECT id FROM users ORDER BY created_at")
            return [row["id"] for row in rows]
