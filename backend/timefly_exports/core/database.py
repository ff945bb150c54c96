"""
Database Configuration
======================

SQLAlchemy async setup for the analytical store that holds both the source
time entries and the export audit trail.

The store is an explicitly constructed object with an owned lifecycle:
open it at process start, hand it to the components that need it and
dispose it at shutdown.
"""

from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import NullPool

from timefly_exports.core.config import Settings, settings as default_settings
from timefly_exports.models import Base


def _engine_kwargs(url: str, settings: Settings) -> dict:
    kwargs: dict = dict(echo=settings.DEBUG)

    # SQLite (tests, local dev) does not take pool sizing arguments.
    if url.startswith("sqlite"):
        return kwargs

    kwargs["pool_pre_ping"] = True
    if settings.APP_ENV == "test":
        kwargs["poolclass"] = NullPool
    else:
        kwargs["pool_size"] = 10
        kwargs["max_overflow"] = 20
    return kwargs


class AnalyticsStore:
    """
    Handle on the analytical store.

    Wraps one pooled AsyncEngine and its session factory. Sessions are
    independent, so concurrent jobs can each open their own.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_url(cls, url: str, settings: Optional[Settings] = None) -> "AnalyticsStore":
        settings = settings or default_settings
        return cls(create_async_engine(url, **_engine_kwargs(url, settings)))

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "AnalyticsStore":
        settings = settings or default_settings
        return cls.from_url(settings.DATABASE_URL, settings)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Open a session and make sure it is closed afterwards.

        Callers own the transaction: use ``session.begin()`` for writes.
        """
        async with self.session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    async def create_tables(self) -> None:
        """
        Create tables if they don't exist.

        Note: In production, use Alembic migrations instead.
        This is primarily for development convenience.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
