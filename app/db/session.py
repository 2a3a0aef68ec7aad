"""Async SQLAlchemy engine and session management.

One ``Database`` is created per application instance and handed to the
components that need it, so tests can run against a throwaway database.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


class Database:
    """Owns an async engine and its session factory."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        engine_kwargs: dict = {"echo": echo}
        if url.startswith("sqlite") and ":memory:" in url:
            # A single shared connection keeps the in-memory database alive
            engine_kwargs.update(
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            yield session

    async def create_all(self) -> None:
        """Create tables for all registered models if they do not exist."""

        # Import models so their tables are registered on Base.metadata.
        from app.models import consumption_window  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
