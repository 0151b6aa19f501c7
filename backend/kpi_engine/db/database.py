"""Database engine and session utilities."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from kpi_engine.db.base import Base

# Import models so that SQLAlchemy is aware of all tables before create_all runs.
import kpi_engine.models  # noqa: F401  # pylint: disable=unused-import

logger = logging.getLogger(__name__)


class Database:
    """Configure an async SQLAlchemy engine and session factory."""

    def __init__(self, url: str):
        self._url = url
        self._engine: AsyncEngine = create_async_engine(self._url, future=True, echo=False)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False, class_=AsyncSession)

    @property
    def url(self) -> str:
        return self._url

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Ensure all tables exist for the running application."""

        try:
            async with self._engine.begin() as connection:
                await connection.run_sync(Base.metadata.create_all)
        except SQLAlchemyError:
            logger.exception("Failed to initialise database schema")
            raise

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Database ping failed for %s", self._engine.url.render_as_string(hide_password=True))
            return False
        return True

    async def dispose(self) -> None:
        await self._engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session


__all__ = ["Database"]
