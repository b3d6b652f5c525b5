# signal_hub/db/helpers.py
"""
Query helpers shared by the repositories.

Every driver failure leaves this module as a DatabaseError, so callers in the
realtime layer only ever catch one exception type.
"""

import asyncio
import functools
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg

from signal_hub.db.pool import get_db_connection
from signal_hub.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """A store operation failed. `recoverable` is False once retries are spent."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


@asynccontextmanager
async def _borrowed(
    connection: psycopg.AsyncConnection | None,
) -> AsyncGenerator[psycopg.AsyncConnection, None]:
    if connection is not None:
        yield connection
        return
    async with await get_db_connection() as conn:
        yield conn


async def fetch_one(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> dict[str, Any] | None:
    """
    Run `query` and return the first row as a dict, or None.

    Pass `connection` to run inside an open transaction.
    """
    try:
        async with _borrowed(connection) as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone() or None
    except psycopg.Error as e:
        logger.error("Database fetch_one error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="fetch_one") from e


async def execute_query(
    query: str, params: tuple = (), *, connection: psycopg.AsyncConnection | None = None
) -> int:
    """Run a write and return the affected row count."""
    try:
        async with _borrowed(connection) as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
    except psycopg.Error as e:
        logger.error("Database execute error", query=query[:100], error=str(e))
        raise DatabaseError(f"Query failed: {e}", operation="execute") from e


def _is_transient(error: Exception) -> bool:
    if isinstance(error, psycopg.OperationalError):
        return True
    return isinstance(error, DatabaseError) and isinstance(error.__cause__, psycopg.OperationalError)


def with_db_retry(max_retries: int = 3, base_delay: float = 0.1):
    """
    Retry a repository coroutine on connection-level failures.

    Operational errors (dropped connections, failover) back off exponentially
    from `base_delay`. Integrity and data errors fail at once. Whatever finally
    escapes is a DatabaseError.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            operation = func.__name__
            last_error: Exception | None = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if _is_transient(e):
                        last_error = e
                    elif isinstance(e, DatabaseError):
                        raise
                    elif isinstance(e, psycopg.IntegrityError | psycopg.DataError):
                        logger.error("Permanent database error", operation=operation, error=str(e))
                        raise DatabaseError(
                            f"Permanent database error: {e}", operation=operation, recoverable=False
                        ) from e
                    else:
                        logger.error("Unexpected database error", operation=operation, error=str(e))
                        raise DatabaseError(
                            f"Unknown database error: {e}", operation=operation, recoverable=False
                        ) from e

                if attempt < max_retries:
                    delay = base_delay * (2**attempt)
                    logger.warning(
                        "Database operation failed, retrying",
                        operation=operation,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay=delay,
                        error=str(last_error),
                    )
                    await asyncio.sleep(delay)

            logger.error(
                "Database operation failed after all retries",
                operation=operation,
                attempts=max_retries + 1,
                error=str(last_error),
            )
            raise DatabaseError(
                f"Operation failed after {max_retries} retries: {last_error}",
                operation=operation,
                recoverable=False,
            ) from last_error

        return wrapper

    return decorator
