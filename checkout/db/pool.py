import json
import logging

import asyncpg

from checkout.db.schema import SCHEMA_SQL

logger = logging.getLogger(__name__)


async def _init_connection(conn: asyncpg.Connection) -> None:
    # deep_links хранится в JSONB, в коде работаем со списками
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


async def init_pool(database_url: str, *, min_size: int = 1, max_size: int = 10) -> asyncpg.Pool:
    """Создает пул соединений с PostgreSQL"""
    pool = await asyncpg.create_pool(
        database_url,
        min_size=min_size,
        max_size=max_size,
        command_timeout=60,
        init=_init_connection,
    )
    logger.info("✅ Подключение к базе данных установлено")
    return pool


async def init_schema(pool: asyncpg.Pool) -> None:
    """Создает таблицы, если их еще нет"""
    async with pool.acquire() as conn:
        await conn.execute(SCHEMA_SQL)
    logger.info("✅ Схема базы данных проверена")


async def close_pool(pool: asyncpg.Pool) -> None:
    """Закрывает пул соединений"""
    await pool.close()
    logger.info("🔒 Соединение с базой данных закрыто")
