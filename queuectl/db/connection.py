"""
Database connection management.
Handles async SQLAlchemy engine and session creation.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from queuectl.config import get_settings
from queuectl.constants import CONFIG_BACKOFF_BASE, CONFIG_MAX_RETRIES
from queuectl.db.models import Base, ConfigEntry

logger = logging.getLogger(__name__)

# Global engine instance
_engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def _configure_sqlite(dbapi_connection: Any, connection_record: Any) -> None:
    """
    Per-connection pragmas.

    WAL lets readers proceed while a writer holds the lock; the busy
    timeout makes concurrent writers queue instead of failing.
    """
    settings = get_settings()
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute(f"PRAGMA busy_timeout={int(settings.database_busy_timeout_seconds * 1000)}")
    cursor.close()


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Get or create the async database engine.

    Args:
        database_url: Overrides the configured URL when the engine is first created.

    Returns:
        AsyncEngine: The SQLAlchemy async engine instance.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        url = database_url or settings.database_url
        _engine = create_async_engine(
            url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            echo=settings.log_level == "DEBUG",
            pool_pre_ping=True,
            connect_args={"timeout": settings.database_busy_timeout_seconds},
        )
        event.listen(_engine.sync_engine, "connect", _configure_sqlite)
    return _engine


async def _create_schema(engine: AsyncEngine) -> None:
    """Create tables and seed default configuration entries."""
    settings = get_settings()
    defaults = {
        CONFIG_MAX_RETRIES: str(settings.default_max_retries),
        CONFIG_BACKOFF_BASE: str(settings.default_backoff_base),
    }

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        for key, value in defaults.items():
            await conn.execute(
                insert(ConfigEntry)
                .values(key=key, value=value)
                .on_conflict_do_nothing(index_elements=["key"])
            )


async def init_db(database_url: str | None = None) -> None:
    """
    Initialize the database connection and session factory.
    Creates the schema on first use. Should be called on application startup.

    Args:
        database_url: Optional URL overriding the configured one.
    """
    global AsyncSessionLocal
    engine = get_engine(database_url)
    await _create_schema(engine)
    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    logger.info("Database connection initialized", extra={"url": str(engine.url)})


async def close_db() -> None:
    """
    Close the database connection.
    Should be called on application shutdown.
    """
    global _engine, AsyncSessionLocal
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        AsyncSessionLocal = None
        logger.info("Database connection closed")


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession]:
    """
    Context manager for getting async database sessions.
    Commits on success and rolls back on error.

    Yields:
        AsyncSession: An async database session.

    Raises:
        RuntimeError: If the database is not initialized.
    """
    if AsyncSessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
