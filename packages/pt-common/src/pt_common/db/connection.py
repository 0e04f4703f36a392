"""
Async database connection management for PlanTrust.

Engines are built explicitly by whoever owns their lifetime (the API
lifespan, a Celery task run, the decay CLI) and disposed by the same
owner; nothing here caches a process-wide engine.
"""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from pt_common.config import get_settings


def build_engine(dsn: str | None = None, pool_size: int | None = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine.

    Args:
        dsn: Database connection string.  Falls back to ``Settings.db_uri``.
        pool_size: Connection-pool size.  Falls back to ``Settings.db_pool_size``.
    """
    settings = get_settings()
    return create_async_engine(
        dsn or settings.db_uri,
        pool_size=pool_size or settings.db_pool_size,
        pool_pre_ping=True,
        echo=False,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep attribute values after commit so callers can build
    responses from ORM rows once the transaction has closed."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def check_database_health(engine: AsyncEngine) -> bool:
    """``True`` if ``SELECT 1`` succeeds on *engine*."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        return False
    return True
