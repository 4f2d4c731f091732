"""
Database Session Management - Async SQLAlchemy session factory.

A Database handle owns the write (primary) and read (replica) engines.
It is created by the application lifespan and stored on app.state;
nothing here opens a connection at import time.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.config import Settings


class Database:
    """Engines and session factories with an explicit lifecycle."""

    def __init__(self, write_engine: AsyncEngine, read_engine: AsyncEngine | None = None) -> None:
        self.write_engine = write_engine
        self.read_engine = read_engine or write_engine
        self.write_session_factory = async_sessionmaker(
            self.write_engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self.read_session_factory = async_sessionmaker(
            self.read_engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Create engines from application settings."""

        def _engine(url: str) -> AsyncEngine:
            return create_async_engine(
                url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_timeout=settings.database_pool_timeout,
                pool_recycle=settings.database_pool_recycle,
                echo=settings.log_level == "DEBUG",
            )

        write_engine = _engine(settings.database_url)
        read_engine = (
            _engine(settings.database_read_url) if settings.database_read_url else None
        )
        return cls(write_engine, read_engine)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Get an async database session for write operations.

        Usage:
            async with database.session() as session:
                await session.execute(...)
                await session.commit()
        """
        async with self.write_session_factory() as session:
            yield session

    @asynccontextmanager
    async def read_session(self) -> AsyncIterator[AsyncSession]:
        """Get an async database session for read operations (from replica)."""
        async with self.read_session_factory() as session:
            yield session

    async def close(self) -> None:
        """Dispose all engines (for graceful shutdown)."""
        await self.write_engine.dispose()
        if self.read_engine is not self.write_engine:
            await self.read_engine.dispose()


def get_database(request: Request) -> Database:
    """Database handle created by the application lifespan."""
    database: Database = request.app.state.database
    return database


async def get_write_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for write database session.

    Usage:
        @app.post("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_write_db)):
            ...
    """
    async with get_database(request).session() as session:
        yield session


async def get_read_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for read database session."""
    async with get_database(request).read_session() as session:
        yield session
