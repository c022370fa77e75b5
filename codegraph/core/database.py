"""
Database Configuration
======================

SQLAlchemy async engine and session factory for the SQL graph store.

PostgreSQL (asyncpg) is the production target; SQLite (aiosqlite) backs
local runs and tests. An in-memory SQLite database only lives as long as
its single connection, so it gets a StaticPool.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool, StaticPool

from codegraph.core.config import Settings, settings as default_settings
from codegraph.models.base import Base


def _is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_settings(config: Settings | None = None, url: str | None = None) -> AsyncEngine:
    """
    Build an async engine for the configured database.

    Args:
        config: Settings to read pool and echo options from
        url: Explicit database URL; defaults to config.DATABASE_URL
    """
    cfg = config or default_settings
    database_url = url or cfg.DATABASE_URL

    engine_kwargs: dict = dict(echo=cfg.DB_ECHO)

    if _is_sqlite(database_url):
        database = make_url(database_url).database
        if not database or database == ":memory:":
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        else:
            engine_kwargs["poolclass"] = NullPool
    elif cfg.APP_ENV == "test":
        engine_kwargs["poolclass"] = NullPool
        engine_kwargs["pool_pre_ping"] = True
    else:
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_size"] = cfg.DB_POOL_SIZE
        engine_kwargs["max_overflow"] = cfg.DB_MAX_OVERFLOW

    engine = create_async_engine(database_url, **engine_kwargs)
    if _is_sqlite(database_url):
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_all(engine: AsyncEngine) -> None:
    """
    Create graph tables if they don't exist.

    Note: In production, use Alembic migrations instead.
    This is primarily for development and tests.
    """
    import codegraph.models  # noqa: F401  (registers every table on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_all(engine: AsyncEngine) -> None:
    import codegraph.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Open a session and run the body in one transaction.

    Commits on success; rolls back and re-raises on any exception.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
