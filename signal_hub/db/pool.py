# signal_hub/db/pool.py
"""
PostgreSQL connection pool for the identity and message stores.

One pool per process, opened by the app lifespan before the WebSocket
endpoint accepts traffic. Failing to open it is fatal.
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

from signal_hub.config import settings
from signal_hub.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SERVICE = "database_pool"


class DatabasePoolManager:
    """
    Owns the AsyncConnectionPool.

    Usage:
        await db_pool.initialize()
        async with db_pool.transaction() as conn:
            ...
        await db_pool.close()
    """

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._initialized = False
        self._closed = False

    async def initialize(self) -> None:
        """Open the pool and prove it can run a query."""
        if self._initialized:
            logger.warning("Database pool already initialized")
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")

        pool_config = settings.get_db_pool_config()
        logger.info(
            "Opening database pool",
            min_size=pool_config["min_size"],
            max_size=pool_config["max_size"],
            environment=settings.environment,
        )

        try:
            self.pool = AsyncConnectionPool(
                conninfo=settings.DATABASE_URL,
                open=False,
                check=AsyncConnectionPool.check_connection,
                configure=self._configure_connection,
                **pool_config,
            )
            await self.pool.open()
            await self.pool.wait()

            # connection() refuses to hand out connections before this is set
            self._initialized = True
            await self._probe()

        except Exception as e:
            logger.error("Failed to initialize database pool", error=str(e))
            self._initialized = False
            if self.pool:
                try:
                    await self.pool.close()
                except Exception as cleanup_error:
                    logger.debug("Ignoring pool close error", error=str(cleanup_error))
                self.pool = None
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info("Database pool ready")

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        """Per-connection session settings: dict rows, UTC, autocommit."""
        conn.row_factory = dict_row
        # Autocommit so idle connections never sit INTRANS
        await conn.set_autocommit(True)
        await conn.execute(
            sql.SQL("SET application_name = {}").format(
                sql.Literal(f"signal-hub-{settings.environment}")
            )
        )
        await conn.execute("SET timezone = 'UTC'")
        await conn.execute("SET statement_timeout = '30s'")

    async def _probe(self) -> float:
        """Run SELECT 1 and return the round trip in milliseconds."""
        started = time.time()
        async with self.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1 AS ok")
                row = await cur.fetchone()
        value = row["ok"] if isinstance(row, dict) else row[0]
        if value != 1:
            raise RuntimeError(f"Database probe returned {value!r}")
        return (time.time() - started) * 1000

    async def close(self) -> None:
        """Close the pool, waiting at most 30s for connections to return."""
        if not self._initialized or self._closed:
            return

        logger.info("Closing database pool")
        self._initialized = False
        self._closed = True
        try:
            await asyncio.wait_for(self.pool.close(), timeout=30.0)
        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown")
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        if not self._initialized:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")
        if self._closed:
            raise RuntimeError("Database pool is closed")

        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Connection inside a transaction: commit on success, rollback on error."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    async def health_check(self) -> dict[str, Any]:
        """Probe the database and report pool usage."""
        if not self._initialized:
            return {"healthy": False, "error": "Pool not initialized", "service": SERVICE}

        try:
            latency_ms = await self._probe()
        except Exception as e:
            return {
                "healthy": False,
                "error": f"Connection test failed: {e}",
                "error_type": type(e).__name__,
                "service": SERVICE,
            }

        stats = self.pool.get_stats()
        pool_size = stats.get("pool_size", 0)
        pool_available = stats.get("pool_available", 0)
        requests_waiting = stats.get("requests_waiting", 0)
        utilization = (pool_size - pool_available) / pool_size * 100 if pool_size else 0

        health = {
            "healthy": utilization < 90,
            "service": SERVICE,
            "connection_time_ms": round(latency_ms, 2),
            "pool_stats": {
                "pool_size": pool_size,
                "pool_available": pool_available,
                "pool_utilization_percent": round(utilization, 2),
                "requests_waiting": requests_waiting,
            },
        }
        if requests_waiting:
            health["warnings"] = [f"Requests waiting for connections: {requests_waiting}"]
        return health


db_pool = DatabasePoolManager()


async def get_db_connection():
    """Pooled connection context manager, for `async with await get_db_connection()`."""
    return db_pool.connection()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
