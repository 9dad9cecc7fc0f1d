"""asyncpg connection pool management."""

from __future__ import annotations

import logging
from urllib.parse import urlparse

import asyncpg

from plansync.config import DatabaseConfig
from plansync.stores import CREDENTIALS_TABLE_DDL

logger = logging.getLogger(__name__)


def _redacted_dsn(dsn: str) -> str:
    parsed = urlparse(dsn)
    host = parsed.hostname or "localhost"
    port = f":{parsed.port}" if parsed.port else ""
    return f"{parsed.scheme}://{host}{port}{parsed.path}"


class Database:
    """Owns the asyncpg pool shared by the record stores."""

    def __init__(self, config: DatabaseConfig) -> None:
        if not config.dsn:
            raise ValueError("Database DSN is not configured (set [database].dsn or DATABASE_URL)")
        self.dsn = config.dsn
        self.min_pool_size = config.min_pool_size
        self.max_pool_size = config.max_pool_size
        self.pool: asyncpg.Pool | None = None

    async def connect(self) -> asyncpg.Pool:
        """Create the pool on first call and return it."""
        if self.pool is None:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
            )
            logger.info("Database pool created: %s", _redacted_dsn(self.dsn))
        return self.pool

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            logger.info("Database pool closed")

    async def ensure_schema(self) -> None:
        """Create the tables this service owns if they do not exist."""
        pool = await self.connect()
        async with pool.acquire() as conn:
            await conn.execute(CREDENTIALS_TABLE_DDL)
        logger.info("Schema ensured: calendar_credentials")
