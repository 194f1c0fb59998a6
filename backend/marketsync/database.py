"""
MarketSync Backend — Database Engine Management
=================================================

What:  Async SQLAlchemy engine and session factory for the SQL document store.
Why:   Keeps connection logic in one place while letting each store instance
       own its engine (no module-level engine; tests build their own).
Who:   Used by SqlDocumentStore and by Alembic's env.py (for Base metadata).

Connection Pooling Strategy:
    pool_size / max_overflow come from settings for server databases.
    SQLite URLs skip pool sizing because aiosqlite file databases are
    single-writer anyway and in-memory databases use a static pool.
"""

from typing import Tuple

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from marketsync.config import settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (shared metadata for Alembic)."""
    pass


def create_engine_and_sessions(
    database_url: str,
) -> Tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """
    Build an async engine plus a session factory bound to it.

    expire_on_commit=False: documents are read back after commit without a
    second round-trip.
    """
    engine_kwargs = {
        "pool_pre_ping": settings.db_pool_pre_ping,
        "echo": settings.log_level == "DEBUG",
    }
    if not database_url.startswith("sqlite"):
        engine_kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=3600,
        )

    engine = create_async_engine(database_url, **engine_kwargs)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


async def create_schema(engine: AsyncEngine) -> None:
    """
    Create tables that do not exist yet.

    Used for SQLite development databases and tests; server deployments run
    `alembic upgrade head` instead.
    """
    # Registers the Document model on Base.metadata
    from marketsync.models import document  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine(engine: AsyncEngine) -> None:
    """Close all pooled connections (application shutdown)."""
    await engine.dispose()
