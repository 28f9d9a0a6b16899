"""
Async SQLAlchemy engine and session handling for RateBoard.

The engine is created on first use, so importing the app (and running
the test suite) needs no database.
"""
from typing import AsyncGenerator, Optional

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker, AsyncEngine
from sqlalchemy.orm import declarative_base

from app.config import DATABASE_URL, SQL_ECHO, USE_DATABASE

_engine: Optional[AsyncEngine] = None
_async_session_maker: Optional[async_sessionmaker] = None

# Base class for ORM models
Base = declarative_base()

# JSONB on PostgreSQL, plain JSON on other backends (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            DATABASE_URL,
            echo=SQL_ECHO,
            pool_pre_ping=True,
        )
    return _engine


def _get_session_maker() -> async_sessionmaker:
    global _async_session_maker
    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            _get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _async_session_maker


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    Commits when the request handler returns, rolls back if it raises.
    Anything that must survive a failed request (error scrape events)
    is committed explicitly through the storage gateway.
    """
    async with _get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create any missing tables."""
    # Register every table on Base.metadata before create_all
    import app.models  # noqa: F401

    async with _get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _async_session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_maker = None


def is_database_enabled() -> bool:
    """Whether startup should create tables (USE_DATABASE)."""
    return USE_DATABASE
