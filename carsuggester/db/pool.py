# carsuggester/db/pool.py
"""
psycopg_pool wrapper shared by the API process and the retention worker.

Each process builds one DatabasePoolManager, opens it at startup and
closes it on shutdown. Repositories only ever borrow connections through
`connection()` or `transaction()`.
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

from carsuggester.config import settings
from carsuggester.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 30.0
UTILIZATION_WARNING_PERCENT = 80
UTILIZATION_UNHEALTHY_PERCENT = 90


class DatabasePoolManager:
    """Owns one AsyncConnectionPool for the lifetime of a process."""

    def __init__(self, conninfo: str | None = None):
        self.conninfo = conninfo or settings.SUPABASE_DB_URL
        self.pool: AsyncConnectionPool | None = None
        self._state = "new"

    @property
    def initialized(self) -> bool:
        return self._state == "open"

    async def initialize(self) -> None:
        if self._state == "open":
            logger.warning("Database pool already initialized")
            return
        if self._state == "closed":
            raise RuntimeError("Cannot reinitialize closed pool")
        if not self.conninfo:
            raise RuntimeError("SUPABASE_DB_URL is not configured")

        pool_config = settings.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=self.conninfo,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=_configure_connection,
            **pool_config,
        )

        try:
            await pool.open(wait=True)
            async with pool.connection() as conn:
                await conn.execute("SELECT 1")
        except Exception as e:
            logger.error("Failed to initialize database pool", error=str(e))
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        self.pool = pool
        self._state = "open"
        logger.info(
            "Database pool initialized",
            min_size=pool_config["min_size"],
            max_size=pool_config["max_size"],
        )

    async def close(self) -> None:
        if self._state != "open":
            return

        self._state = "closed"
        try:
            await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
            logger.info("Database pool closed")
        except TimeoutError:
            logger.warning("Database pool close timed out, forcing shutdown")

    def _require_open(self) -> AsyncConnectionPool:
        if self._state == "closed":
            raise RuntimeError("Database pool is closed")
        if self._state != "open":
            raise RuntimeError("Database pool not initialized. Call initialize() first.")
        return self.pool

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Borrow an autocommit connection with dict rows."""
        pool = self._require_open()
        try:
            async with pool.connection() as conn:
                yield conn
        except psycopg.Error as e:
            logger.error("Database connection error", error=str(e), error_type=type(e).__name__)
            raise

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Borrow a connection inside a transaction; commits on success, rolls back on error."""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn

    def _pool_stats(self) -> dict[str, Any]:
        stats = self.pool.get_stats()
        size = stats.get("pool_size", 0)
        available = stats.get("pool_available", 0)
        utilization = (size - available) / size * 100 if size > 0 else 0
        return {
            "pool_size": size,
            "pool_available": available,
            "pool_utilization_percent": round(utilization, 2),
            "requests_waiting": stats.get("requests_waiting", 0),
        }

    async def health_check(self) -> dict[str, Any]:
        """Round-trip a SELECT 1 and report pool saturation."""
        if self._state != "open":
            error = "Pool is closed" if self._state == "closed" else "Pool not initialized"
            return {"healthy": False, "error": error, "service": "database_pool"}

        try:
            started = time.time()
            async with self.connection() as conn:
                await conn.execute("SELECT 1")
            elapsed_ms = (time.time() - started) * 1000
            pool_stats = self._pool_stats()
        except Exception as e:
            logger.error("Database pool health check failed", error=str(e))
            return {
                "healthy": False,
                "service": "database_pool",
                "error": str(e),
                "error_type": type(e).__name__,
            }

        utilization = pool_stats["pool_utilization_percent"]
        health = {
            "healthy": utilization < UTILIZATION_UNHEALTHY_PERCENT,
            "service": "database_pool",
            "connection_time_ms": round(elapsed_ms, 2),
            "pool_stats": pool_stats,
        }

        warnings = []
        if utilization > UTILIZATION_WARNING_PERCENT:
            warnings.append(f"High pool utilization: {utilization:.1f}%")
        if pool_stats["requests_waiting"]:
            warnings.append(f"Requests waiting for connections: {pool_stats['requests_waiting']}")
        if warnings:
            health["warnings"] = warnings

        return health


async def _configure_connection(conn: psycopg.AsyncConnection) -> None:
    """Session defaults applied to every new pooled connection."""
    conn.row_factory = dict_row
    await conn.set_autocommit(True)
    app_name = f"carsuggester-analytics-{settings.environment}"
    # SET does not accept bind parameters
    await conn.execute(sql.SQL("SET application_name = {}").format(sql.Literal(app_name)))
    await conn.execute("SET timezone = 'UTC'")
    await conn.execute(
        sql.SQL("SET statement_timeout = {}").format(sql.Literal(settings.DB_STATEMENT_TIMEOUT))
    )
