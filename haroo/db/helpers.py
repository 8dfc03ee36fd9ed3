"""
Query helpers used by every repository.

Each helper runs on the connection it is given (inside db_pool.transaction())
or borrows one from the pool for a single statement. Driver failures surface
as DatabaseError so services and the HTTP layer deal with one type.
"""

import asyncio
import functools
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

import psycopg
from psycopg import errors as pg_errors

from haroo.db.pool import db_pool
from haroo.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    def __init__(
        self,
        message: str,
        operation: str = "unknown",
        recoverable: bool = True,
        original: Exception | None = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable
        self.original = original

    @property
    def is_unique_violation(self) -> bool:
        return isinstance(self.original, pg_errors.UniqueViolation)

    @property
    def constraint(self) -> str | None:
        diag = getattr(self.original, "diag", None)
        return getattr(diag, "constraint_name", None) if diag else None


def wrap_error(e: psycopg.Error, operation: str) -> DatabaseError:
    return DatabaseError(
        f"Query failed: {e}",
        operation=operation,
        recoverable=isinstance(e, psycopg.OperationalError),
        original=e,
    )


def as_uuid(value: str | None) -> UUID | None:
    """Parse an externally supplied id; malformed ids simply match nothing."""
    if value is None:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


@asynccontextmanager
async def _cursor(
    connection: psycopg.AsyncConnection | None, operation: str, query: str
) -> AsyncGenerator[psycopg.AsyncCursor, None]:
    try:
        if connection is not None:
            async with connection.cursor() as cur:
                yield cur
        else:
            async with db_pool.connection() as conn:
                async with conn.cursor() as cur:
                    yield cur
    except psycopg.Error as e:
        logger.error("Database error", operation=operation, query=query[:100], error=str(e))
        raise wrap_error(e, operation) from e


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """
    Run `query` and return the first row, or None.

    Args:
        query: SQL with %s placeholders
        params: Placeholder values
        connection: Connection of an open transaction, if any
    """
    async with _cursor(connection, "fetch_one", query) as cur:
        await cur.execute(query, params)
        return await cur.fetchone()


async def fetch_all(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> list[dict[str, Any]]:
    async with _cursor(connection, "fetch_all", query) as cur:
        await cur.execute(query, params)
        return await cur.fetchall()


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Run a write and return the affected row count."""
    async with _cursor(connection, "execute", query) as cur:
        await cur.execute(query, params)
        return cur.rowcount


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry an idempotent read when the driver reports a transient
    OperationalError, with exponential backoff.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except DatabaseError as e:
                    transient = isinstance(e.original, psycopg.OperationalError)
                    if not transient or attempt >= max_retries:
                        raise
                    delay = base_delay * (2**attempt)
                    logger.warning(
                        "Database read failed, retrying",
                        operation=func.__name__,
                        attempt=attempt + 1,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
