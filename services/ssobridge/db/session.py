"""
Async engine for the host's user database.

The bridge only reads and inserts rows in the host's users table, one short
session per SqlUserStore call.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ssobridge.config import settings
from ssobridge.logging_config import get_logger

logger = get_logger(__name__)

_engine = None
_async_session_factory = None


async def init_db() -> None:
    """Create the engine and check that the user database answers."""
    global _engine, _async_session_factory  # noqa: PLW0603
    logger.info("Connecting to user database", pool_size=settings.database_pool_size)

    _engine = create_async_engine(
        str(settings.database_url),
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    _async_session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with _engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("User database ready")


async def close_db() -> None:
    global _engine, _async_session_factory  # noqa: PLW0603
    if _engine is not None:
        logger.info("Disposing user database engine")
        await _engine.dispose()
        _engine = None
        _async_session_factory = None


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """One unit of work: commit on success, roll back and re-raise on error."""
    if _async_session_factory is None:
        raise RuntimeError("Database not initialized, call init_db() first")

    async with _async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db_health() -> bool:
    """SELECT 1 for the readiness probe. Never raises."""
    if _engine is None:
        return False
    try:
        async with _engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("User database health check failed", error=str(e))
        return False
    return True
