# carsuggester/db/helpers.py
"""
Thin query helpers over DatabasePoolManager.

Every helper converts psycopg errors into DatabaseError tagged with the
helper name, so repositories catch one exception type.
"""

from collections.abc import Sequence
from typing import Any

import psycopg

from carsuggester.db.pool import DatabasePoolManager
from carsuggester.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Params = tuple | dict


class DatabaseError(Exception):
    """A query failed; `recoverable` marks errors worth retrying."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


def _wrap(operation: str, query: str, error: psycopg.Error) -> DatabaseError:
    logger.error("Database query failed", operation=operation, query=query[:100], error=str(error))
    # Constraint and syntax errors will fail the same way on retry
    recoverable = not isinstance(error, psycopg.IntegrityError | psycopg.ProgrammingError)
    return DatabaseError(f"Query failed: {error}", operation=operation, recoverable=recoverable)


async def fetch_one(pool: DatabasePoolManager, query: str, params: Params = ()) -> dict[str, Any] | None:
    try:
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()
    except psycopg.Error as e:
        raise _wrap("fetch_one", query, e) from e


async def fetch_all(pool: DatabasePoolManager, query: str, params: Params = ()) -> list[dict[str, Any]]:
    try:
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()
    except psycopg.Error as e:
        raise _wrap("fetch_all", query, e) from e


async def execute_query(pool: DatabasePoolManager, query: str, params: Params = ()) -> int:
    """Run a write statement and return the affected row count."""
    try:
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount
    except psycopg.Error as e:
        raise _wrap("execute", query, e) from e


async def execute_many(pool: DatabasePoolManager, query: str, params_seq: Sequence[Params]) -> int:
    """
    Run one statement per parameter set inside a single transaction.

    All rows are written or none are, so a failed batch can be retried whole.
    """
    if not params_seq:
        return 0

    try:
        async with pool.transaction() as conn:
            async with conn.cursor() as cur:
                await cur.executemany(query, params_seq)
    except psycopg.Error as e:
        raise _wrap("execute_many", query, e) from e

    logger.debug("Batch statement completed", row_count=len(params_seq))
    return len(params_seq)
