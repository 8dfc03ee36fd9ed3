"""
Process-wide PostgreSQL pool.

Repositories never hold connections; they borrow one per statement through
haroo.db.helpers, or one per unit of work through db_pool.transaction().
Multi-statement invariants (live-slot claims, counter + insert on trace
writes, report + score update) rely on transaction().
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from haroo.config import settings
from haroo.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 15.0
# Share of checked-out connections above which readiness reports unhealthy
SATURATION_LIMIT = 0.9


class HarooDatabasePool:
    def __init__(self, conninfo: str | None = None):
        self.conninfo = conninfo or settings.DATABASE_URL
        self.pool: AsyncConnectionPool | None = None

    @property
    def ready(self) -> bool:
        return self.pool is not None

    async def initialize(self) -> None:
        if self.pool is not None:
            logger.warning("Database pool already initialized")
            return

        config = settings.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=self.conninfo,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure,
            **config,
        )

        try:
            await pool.open(wait=True)
            async with pool.connection() as conn:
                await conn.execute("SELECT 1")
        except Exception as e:
            logger.error("Database pool failed to open", error=str(e))
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        self.pool = pool
        logger.info(
            "Database pool ready",
            min_size=config["min_size"],
            max_size=config["max_size"],
        )

    async def _configure(self, conn: psycopg.AsyncConnection) -> None:
        # Timestamps are stored and compared in UTC; local days are computed in Python
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        await conn.execute(
            sql.SQL("SET application_name = {}").format(
                sql.Literal(f"haroo-{settings.environment}")
            )
        )
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute(
            sql.SQL("SET statement_timeout = {}").format(
                sql.Literal(settings.DB_STATEMENT_TIMEOUT)
            )
        )

    async def close(self) -> None:
        if self.pool is None:
            return

        pool, self.pool = self.pool, None
        try:
            await asyncio.wait_for(pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
            logger.info("Database pool closed")
        except TimeoutError:
            logger.warning("Database pool close timed out")

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        if self.pool is None:
            raise RuntimeError("Database pool not initialized")
        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """
        Borrow a connection inside a transaction.

        Commits when the block exits normally and rolls back on any exception,
        including the constraint errors repositories translate into domain
        conflicts.
        """
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> dict[str, Any]:
        if self.pool is None:
            return {"healthy": False, "error": "Pool not initialized"}

        try:
            started = time.time()
            async with self.connection() as conn:
                await conn.execute("SELECT 1")
            latency_ms = round((time.time() - started) * 1000, 2)
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {"healthy": False, "error": str(e), "error_type": type(e).__name__}

        stats = self.pool.get_stats()
        size = stats.get("pool_size", 0)
        available = stats.get("pool_available", 0)
        in_use = (size - available) / size if size else 0.0

        return {
            "healthy": in_use < SATURATION_LIMIT,
            "connection_time_ms": latency_ms,
            "pool_stats": {
                "pool_size": size,
                "pool_available": available,
                "requests_waiting": stats.get("requests_waiting", 0),
            },
        }


db_pool = HarooDatabasePool()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
