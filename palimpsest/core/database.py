"""
Async SQLAlchemy engine and session management.

One `Database` handle per process: opened on startup, disposed on shutdown,
and passed explicitly to every store that needs it.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base. All models inherit from this."""
    pass


def _normalize_url(url: str) -> str:
    # Ensure we're using asyncpg driver for PostgreSQL
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Connection pool handle with an explicit open/close lifecycle."""

    def __init__(self, url: str, echo: bool = False):
        self.url = _normalize_url(url)
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.url

    @property
    def dialect_name(self) -> str:
        return "sqlite" if self.is_sqlite else "postgresql"

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    def open(self) -> None:
        if self._engine is not None:
            return

        # SQLite doesn't support pool_size / max_overflow
        kwargs = {"echo": self.echo}
        if not self.is_sqlite:
            kwargs["pool_size"] = 20
            kwargs["max_overflow"] = 10
            kwargs["pool_pre_ping"] = True

        self._engine = create_async_engine(self.url, **kwargs)
        if self.is_sqlite:
            # Cascading deletes on embeddings need FK enforcement
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("Database engine created (%s)", self.dialect_name)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Plain session, no transaction management. Read-only callers."""
        if self._session_factory is None:
            raise RuntimeError("Database is not open")
        async with self._session_factory() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session inside one transaction: commit on success, rollback on any error."""
        if self._session_factory is None:
            raise RuntimeError("Database is not open")
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    async def create_all(self) -> None:
        """Create all tables (and the pgvector extension). Called on startup."""
        # Import all models so they register with Base.metadata
        from ..models import document, resource, suggestion, user  # noqa: F401

        async with self.engine.begin() as conn:
            if not self.is_sqlite:
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created/verified")
