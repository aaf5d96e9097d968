"""
Database Engine and Session Management

Async SQLAlchemy engine over the local SQLite file.
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from myiep.config import settings
from myiep.core.models import Base


def create_engine(database_url: str | None = None, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine.

    Args:
        database_url: SQLAlchemy URL (defaults to settings.DATABASE_URL)
        echo: Log SQL statements

    Returns:
        Configured AsyncEngine
    """
    new_engine = create_async_engine(database_url or settings.DATABASE_URL, echo=echo)

    if new_engine.dialect.name == "sqlite":

        @event.listens_for(new_engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory that keeps loaded objects usable after commit."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = create_engine(echo=settings.DEBUG)
AsyncSessionLocal = create_session_factory(engine)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create tables that do not exist yet."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the global engine's connection pool."""
    await engine.dispose()

