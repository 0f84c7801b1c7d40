"""
tasktracker.db.database

Composition root for the data layer.

Responsibilities:
- Configure logging once and own the engine/sessionmaker lifecycle.
- Hand out transactional sessions and units of work.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from tasktracker.db.init_db import init_db
from tasktracker.db.session import create_engine, create_sessionmaker, session_scope
from tasktracker.db.uow import UnitOfWork
from tasktracker.observability.logging import configure_logging, get_logger
from tasktracker.settings import Settings

log = get_logger(__name__)


class Database:
    def __init__(self, *, settings: Settings) -> None:
        self._settings = settings
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database.startup() has not been called")
        return self._engine

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        if self._sessionmaker is None:
            raise RuntimeError("Database.startup() has not been called")
        return self._sessionmaker

    async def startup(self, *, configure_logs: bool = True) -> None:
        if configure_logs:
            configure_logging(
                service_name=self._settings.service_name,
                level=self._settings.log_level,
                json=self._settings.log_json,
            )
        log.info("database_startup", env=self._settings.env)
        self._engine = create_engine(self._settings)
        self._sessionmaker = create_sessionmaker(self._engine)
        if self._settings.auto_create_schema:
            await init_db(self._engine)

    async def shutdown(self) -> None:
        # Dispose the engine to close pools/FDs gracefully.
        if self._engine is not None:
            await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        log.info("database_shutdown")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        async with session_scope(self.sessionmaker) as session:
            yield session

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[UnitOfWork]:
        async with UnitOfWork(self.sessionmaker) as uow:
            yield uow


# --- Module Notes -----------------------------------------------------------
# Mirrors an application startup/shutdown hook pair; services hold one Database.
