"""
Shared asyncpg pool for the usage tables.

The pool is created on first use. Without a database URL every helper
degrades to an empty result, which is what the in-memory deployment
and the health check rely on.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import asyncpg

from src.config import get_settings

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None


def get_database_url() -> Optional[str]:
    # The direct URL wins: a long-lived API process does not need the pooler.
    database = get_settings().database
    return database.database_url_direct or database.database_url


def is_database_configured() -> bool:
    return bool(get_database_url())


async def get_pool() -> Optional[asyncpg.Pool]:
    global _pool
    if _pool is None and is_database_configured():
        database = get_settings().database
        _pool = await asyncpg.create_pool(
            dsn=get_database_url(),
            min_size=database.database_pool_min_size,
            max_size=database.database_pool_max_size,
            # PgBouncer in transaction mode cannot hold prepared statements.
            statement_cache_size=0,
        )
        logger.info(
            "Postgres pool ready (%s-%s connections)",
            database.database_pool_min_size,
            database.database_pool_max_size,
        )
    return _pool


@asynccontextmanager
async def connection() -> AsyncIterator[Optional[asyncpg.Connection]]:
    """Borrow a pooled connection, or yield None when Postgres is not configured."""
    pool = await get_pool()
    if pool is None:
        yield None
        return
    async with pool.acquire() as conn:
        yield conn


async def fetchrow(query: str, *args: Any) -> Optional[asyncpg.Record]:
    async with connection() as conn:
        return await conn.fetchrow(query, *args) if conn else None


async def fetch(query: str, *args: Any) -> list:
    async with connection() as conn:
        return await conn.fetch(query, *args) if conn else []


async def fetchval(query: str, *args: Any) -> Any:
    async with connection() as conn:
        return await conn.fetchval(query, *args) if conn else None


async def execute(query: str, *args: Any) -> Optional[str]:
    """Run a statement and return asyncpg's status tag, e.g. ``UPDATE 3``."""
    async with connection() as conn:
        return await conn.execute(query, *args) if conn else None


async def close_pool() -> None:
    global _pool
    pool, _pool = _pool, None
    if pool is not None:
        await pool.close()
