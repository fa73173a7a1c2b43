"""
Database Base Configuration

Sets up the async SQLAlchemy engine and session management.

Usage:
    from studytrack.db.base import async_session_maker, Base

    # In a service
    async with async_session_maker() as session:
        result = await session.execute(...)
"""

from collections.abc import AsyncGenerator
from typing import Any

from fastapi import Depends
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from studytrack.config import settings, yaml_config


def build_engine(url: str, **kwargs: Any) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Pool sizing from config/default.yaml only applies to server databases;
    SQLite pools don't accept these arguments.

    SQLite transactions are opened with BEGIN IMMEDIATE so that concurrent
    writers wait on the busy timeout instead of failing a lock upgrade.
    """
    if url.startswith("sqlite"):
        new_engine = create_async_engine(url, echo=settings.DEBUG, **kwargs)

        @event.listens_for(new_engine.sync_engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(new_engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return new_engine

    db_config: dict[str, Any] = yaml_config.get("database", {})
    kwargs.setdefault("pool_size", db_config.get("pool_size", 5))
    kwargs.setdefault("max_overflow", db_config.get("max_overflow", 10))
    kwargs.setdefault("pool_timeout", db_config.get("pool_timeout", 30))
    return create_async_engine(url, echo=settings.DEBUG, **kwargs)


# Create async engine
engine = build_engine(settings.DATABASE_URL)

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# Import models AFTER Base is defined to avoid circular imports.
# This ensures all models are registered with Base.metadata.
from studytrack.db import models  # noqa: F401, E402


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Dependency returning the session factory.

    Services that need one short-lived session per store operation take the
    factory instead of a single session. Tests override this dependency.
    """
    return async_session_maker


async def get_db(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database sessions in FastAPI routes.

    Overriding get_session_maker also redirects this dependency.

    Usage:
        @app.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db(target: AsyncEngine = engine) -> None:
    """
    Initialize database tables.

    Called on application startup to create tables that don't exist,
    unless CREATE_TABLES_ON_STARTUP is off.
    """
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
