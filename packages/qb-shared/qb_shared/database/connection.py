"""Async engine and sessions for the shared infrastructure tables.

The runtime state store and the control mapping live in the ``shared``
schema of the target database. Connection details come from
:class:`qb_shared.config.Settings` (``QB_DATABASE_URL`` or ``QB_DB_*``).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from ..config import Settings, get_settings
from .models import Base, SHARED_SCHEMA

logger = logging.getLogger(__name__)

_ASYNC_SCHEMES = ("postgres://", "postgresql://", "postgresql+psycopg2://")

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def get_database_url(settings: Optional[Settings] = None) -> str:
    """SQLAlchemy URL for the asyncpg driver.

    Raises:
        ValueError: If a remote host is configured without a password.
    """
    settings = settings or get_settings()
    if settings.database_url:
        url = settings.database_url
        for scheme in _ASYNC_SCHEMES:
            if url.startswith(scheme):
                return "postgresql+asyncpg://" + url[len(scheme):]
        return url

    if not settings.db_password and settings.db_host != "localhost":
        raise ValueError("Database password required. Set QB_DB_PASSWORD.")

    return (
        f"postgresql+asyncpg://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def get_engine() -> AsyncEngine:
    """Get or create the shared engine.

    Short-lived processes (``QB_SERVERLESS``) skip pooling so every session
    opens and closes its own connection.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        options = {"echo": settings.db_echo}
        if settings.serverless:
            options["poolclass"] = NullPool
        else:
            options.update(pool_size=5, max_overflow=10, pool_timeout=30, pool_recycle=1800)
        _engine = create_async_engine(get_database_url(settings), **options)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """One unit of work: commit on success, roll back and re-raise on error."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create the ``shared`` schema and its tables when missing."""
    async with get_engine().begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {SHARED_SCHEMA}"))
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Infrastructure tables ready in schema %s", SHARED_SCHEMA)


async def close_db() -> None:
    """Dispose the engine; the next session recreates it."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
