"""Async database session management."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import sessionmaker

from omis.config import DatabaseSettings
from omis.models.base import Base


class Database:
    """Owns the engine and the session factory for one application instance.

    ``sync_maker`` is the synchronous ``sessionmaker`` backing every
    ``AsyncSession``; session-level ORM events are attached to it.
    """

    def __init__(self, settings: DatabaseSettings) -> None:
        engine_kwargs: dict[str, Any] = {"echo": settings.echo}
        if not settings.url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=settings.pool_size,
                max_overflow=settings.max_overflow,
                pool_pre_ping=True,
                pool_recycle=300,
            )

        self.engine: AsyncEngine = create_async_engine(settings.url, **engine_kwargs)
        self.sync_maker = sessionmaker()
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            sync_session_class=self.sync_maker,
            expire_on_commit=False,
        )

    async def create_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception:
            return False
        return True

    async def dispose(self) -> None:
        await self.engine.dispose()


async def get_db_session(request: Request) -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields an async DB session."""
    database: Database = request.app.state.database
    async with database.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
