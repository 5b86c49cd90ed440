from __future__ import annotations

"""
StreamVault — Database Engine & Session Dependencies

- One async engine per process, created lazily on first use so importing
  this module never opens a connection.
- `get_async_db` is the FastAPI dependency; routes get an `AsyncSession`.
- Pool sizing only applies to server databases (asyncpg); SQLite URLs used
  for local runs get SQLAlchemy's defaults.
"""

import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from streamvault.core.config import settings

logger = logging.getLogger(__name__)

# Pool knobs
_POOL_PRE_PING = True
_POOL_RECYCLE = 1800
_POOL_TIMEOUT = 30
_POOL_SIZE = 10
_MAX_OVERFLOW = 20

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def build_engine(url: str) -> AsyncEngine:
    """Create an async engine with pool settings suited to the backend."""
    kwargs = {"echo": False, "pool_pre_ping": _POOL_PRE_PING}
    if make_url(url).get_backend_name() != "sqlite":
        kwargs.update(
            pool_recycle=_POOL_RECYCLE,
            pool_size=_POOL_SIZE,
            max_overflow=_MAX_OVERFLOW,
            pool_timeout=_POOL_TIMEOUT,
        )
    return create_async_engine(url, **kwargs)


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = build_engine(settings.DATABASE_URL)
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(bind=get_engine(), class_=AsyncSession, expire_on_commit=False)
    return _session_maker


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async SQLAlchemy session."""
    async with get_session_maker()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def create_all() -> None:
    """Create tables from metadata (local/dev only; production uses Alembic)."""
    from streamvault.db.base import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def dispose_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_maker = None


__all__ = ["build_engine", "get_engine", "get_session_maker", "get_async_db", "create_all", "dispose_engine"]
