"""
Async database connection using asyncpg (NO ORM).

The pool is the only shared mutable resource of the service. Every
correctness guarantee around votes and approvals is enforced by PostgreSQL
(unique constraints, row locks, transactions), never by in-process state.
"""

import asyncpg
from typing import AsyncGenerator

from evote.core.config import Settings
from evote.core.logging_config import get_logger

logger = get_logger(__name__)

# Global connection pool
_pool: asyncpg.Pool | None = None


async def init_db_pool(settings: Settings):
    """
    Initialize database connection pool on startup.

    Call this in the FastAPI lifespan event.
    """
    global _pool
    _pool = await asyncpg.create_pool(
        dsn=settings.DATABASE_URL,
        min_size=settings.DB_POOL_MIN_SIZE,
        max_size=settings.DB_POOL_MAX_SIZE,
        max_inactive_connection_lifetime=300,  # Close idle connections after 5 minutes
        timeout=30,  # Connection timeout in seconds
        command_timeout=settings.DB_COMMAND_TIMEOUT,
    )
    logger.info(
        f"Database pool initialized: {_pool.get_size()} / {_pool.get_max_size()} connections"
    )


async def close_db_pool():
    """
    Close database connection pool on shutdown.

    Call this in the FastAPI lifespan event.
    """
    global _pool
    if _pool:
        await _pool.close()
        _pool = None
        logger.info("Database pool closed")


def get_pool() -> asyncpg.Pool | None:
    return _pool


async def get_db() -> AsyncGenerator[asyncpg.Connection, None]:
    """
    FastAPI dependency for database connections.

    Usage in routes:
        @router.get("/elections")
        async def list_elections(conn: asyncpg.Connection = Depends(get_db)):
            ...
    """
    if not _pool:
        raise RuntimeError("Database pool not initialized. Call init_db_pool() first.")

    async with _pool.acquire() as connection:
        yield connection


async def set_statement_timeout(conn: asyncpg.Connection, timeout_ms: int) -> None:
    """Bound every statement of the current transaction.

    Must be called inside a transaction; a timed-out statement aborts the
    whole transaction so no partial row survives.
    """
    # SET LOCAL does not accept bind parameters
    await conn.execute(f"SET LOCAL statement_timeout = {int(timeout_ms)}")

