"""
Database engine and session management.

Provides async SQLAlchemy engine and session factory for FastAPI.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from questpoints.config import settings
from questpoints.models.db import Base

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)


def enable_sqlite_transactions(target: AsyncEngine, begin: str = "BEGIN IMMEDIATE") -> None:
    """
    Let SQLAlchemy own transaction boundaries on SQLite.

    The sqlite3 driver defers BEGIN until the first write, which breaks
    SAVEPOINT nesting. With BEGIN IMMEDIATE each transaction takes the
    write lock up front, so concurrent writers queue instead of deadlocking.
    """

    @event.listens_for(target.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection: Any, _connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(target.sync_engine, "begin")
    def _emit_begin(conn: Connection) -> None:
        conn.exec_driver_sql(begin)


if engine.dialect.name == "sqlite":
    enable_sqlite_transactions(engine)

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Commits after the endpoint returns and rolls back if anything raises.
    That exit runs after the response is sent, so endpoints whose response
    reports written state (spins, equip) commit themselves first.

    Usage in FastAPI:
        @app.get("/items")
        async def get_items(session: AsyncSession = Depends(get_session)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Initialize database tables.

    Creates all tables defined in the ORM models.
    Should be called once at application startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
