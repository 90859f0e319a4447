"""
EntomoGuide Backend: Database Session Management
=================================================

What:  Async SQLAlchemy engine, session factory, and the FastAPI session dependency.
How:   A `Database` object owns one engine (connection pool) and one session
       factory. The application factory builds it from settings and stores it on
       `app.state.database`; tests build their own against SQLite.
Who:   Route handlers receive sessions through `Depends(get_db_session)`;
       services receive the session as an argument.

Connection Pooling:
    PostgreSQL: pool_size + max_overflow persistent connections, pre-ping,
    hourly recycle. SQLite (tests, local runs): SQLAlchemy's default pool,
    with `PRAGMA foreign_keys=ON` on every new connection so ON DELETE
    CASCADE / SET NULL behave as on PostgreSQL.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from entomoguide.config import Settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (shared metadata for Alembic)."""

    pass


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Owns the async engine and session factory for one database.

    Args:
        url:    SQLAlchemy async URL (postgresql+asyncpg://..., sqlite+aiosqlite://...)
        echo:   Log every SQL statement (DEBUG only)
        **engine_kwargs: Passed to create_async_engine (pool sizing etc.)
    """

    def __init__(self, url: str, echo: bool = False, **engine_kwargs: Any):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, **engine_kwargs)

        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        # expire_on_commit=False: ORM objects stay readable after the
        # services commit mid-request
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        kwargs: dict = {}
        if not settings.database_url.startswith("sqlite"):
            kwargs = {
                "pool_size": settings.db_pool_size,
                "max_overflow": settings.db_max_overflow,
                "pool_pre_ping": settings.db_pool_pre_ping,
                "pool_recycle": 3600,
            }
        return cls(settings.database_url, echo=settings.log_level == "DEBUG", **kwargs)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Unit-of-work scope: commits on success, rolls back on any error,
        always returns the connection to the pool.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """Creates missing tables (tests and DB_CREATE_ALL=true only)."""
        # Import for side effect: registers every model on Base.metadata
        from entomoguide import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        """Closes all pooled connections (application shutdown)."""
        await self.engine.dispose()


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    1. Opens a session from the application's Database
    2. Yields it to the route handler
    3. On success: commits (services may already have committed their own
       unit of work; the final commit is then a no-op)
    4. On error: rolls back and re-raises for the global error handlers
    """
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session
