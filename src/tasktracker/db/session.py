"""
tasktracker.db.session

Engine, session factory and transaction scope for the data layer.

Responsibilities:
- Build the async engine from settings, with SQLite connection handling.
- Build the sessionmaker every repository session comes from.
- Provide a transactional session scope (commit on success, rollback on error).
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from tasktracker.observability.logging import get_logger
from tasktracker.settings import Settings

log = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(settings: Settings) -> AsyncEngine:
    url = make_url(settings.database_url)
    options: dict[str, Any] = {"echo": settings.sql_echo, "pool_pre_ping": True}

    is_sqlite = url.get_backend_name() == "sqlite"
    if is_sqlite:
        options["connect_args"] = {"check_same_thread": False}
        # An in-memory database lives only as long as its single connection.
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool

    engine = create_async_engine(url, **options)
    if is_sqlite and settings.sqlite_foreign_keys:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    log.debug("engine_created", backend=url.get_backend_name(), driver=url.get_driver_name())
    return engine


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Repositories flush explicitly, and instances stay readable after commit.
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """
    One transaction per scope: repositories flush, the scope commits.
    Any exception rolls the whole scope back and propagates.
    """

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            log.warning("session_rollback")
            await session.rollback()
            raise


# --- Module Notes -----------------------------------------------------------
# SQLite only enforces ON DELETE actions with `sqlite_foreign_keys` enabled;
# other backends always enforce them.
