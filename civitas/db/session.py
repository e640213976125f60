"""
Civitas — Database Session Management
======================================
Async SQLAlchemy session factory with connection pooling.

Usage:
    from civitas.db.session import get_session_factory

    async with get_session_factory()() as session:
        async with session.begin():
            result = await session.execute(...)
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from civitas.core.config import get_settings

# ── Module-level state ──────────────────────────────────────────────────

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_db() -> AsyncEngine:
    """
    Create the async engine and session factory.

    Called once during application startup.
    """
    global _engine, _session_factory
    settings = get_settings()
    url = settings.database_url.get_secret_value()

    engine_kwargs: dict[str, Any] = {"echo": settings.db_echo_sql}
    if not url.startswith("sqlite"):
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_pool_overflow

    _engine = create_async_engine(url, **engine_kwargs)
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    return _engine


async def close_db() -> None:
    """Dispose the engine and its connection pool."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the session factory. Raises if not initialized."""
    if _session_factory is None:
        raise RuntimeError(
            "Database not initialized. Call init_db() during startup."
        )
    return _session_factory


def get_engine() -> AsyncEngine:
    """Return the current engine. Raises if not initialized."""
    if _engine is None:
        raise RuntimeError(
            "Database not initialized. Call init_db() during startup."
        )
    return _engine
