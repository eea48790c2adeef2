"""
Database Layer

One AsyncEngine per process, built from ``settings`` the first time
something asks for it. The API, the parse jobs and the reprocess script
all take their sessions from the same factory; ``dispose_engine`` resets
it so a later call starts over with a fresh pool.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from docvault.core.config import settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine  # noqa: PLW0603
    if _engine is None:
        _engine = create_async_engine(
            settings.DATABASE_URL,
            echo=False,
            pool_size=settings.DB_POOL_SIZE,
            pool_pre_ping=True,
        )
        logger.info(
            "Connected engine to %s/%s (pool_size=%d)",
            settings.POSTGRES_HOST,
            settings.POSTGRES_DB,
            settings.DB_POOL_SIZE,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session maker bound to the shared engine; rows stay usable after commit."""
    global _session_factory  # noqa: PLW0603
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request, closed when the response is sent."""
    async with get_session_factory()() as session:
        yield session


async def verify_connection() -> None:
    """Fail fast at startup when PostgreSQL is unreachable."""
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))


async def dispose_engine() -> None:
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Engine disposed")
