"""
Database Connection Module
Handles the PostgreSQL connection using the SQLAlchemy async engine.

The engine is created lazily so that development mode, which runs on the
in-memory tenant store, never needs a database driver or server.
"""

import logging
from functools import lru_cache
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from dineops.core.config import get_settings

logger = logging.getLogger(__name__)


# Base class for all our models
class Base(DeclarativeBase):
    pass


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        echo=echo,
        pool_size=5,  # Connection pool size
        max_overflow=10,  # Extra connections when pool is full
        pool_pre_ping=True,
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Objects remain accessible after commit
    )


@lru_cache()
def get_engine() -> AsyncEngine:
    settings = get_settings()
    return build_engine(settings.database_url, echo=settings.database_echo)


@lru_cache()
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return build_session_maker(get_engine())


async def dispose_engine() -> None:
    """Close pooled connections. Called once at application shutdown."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
        logger.info("Database connections closed")


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    import dineops.models  # noqa: F401  registers the mapped classes

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
