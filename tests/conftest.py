"""
tests.conftest

Shared fixtures: an in-memory SQLite database per test.

Responsibilities:
- Build a fresh schema for every test so cases never share rows.
- Run every database test twice, with SQLite foreign-key enforcement off and on.
- Hand tests a plain `AsyncSession`; repositories flush, tests never commit.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from tasktracker.db.init_db import init_db
from tasktracker.db.session import create_engine, create_sessionmaker
from tasktracker.settings import Settings

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(params=[False, True], ids=["fk-off", "fk-on"])
async def engine(request: pytest.FixtureRequest) -> AsyncIterator[AsyncEngine]:
    eng = create_engine(
        Settings(env="test", database_url=TEST_DATABASE_URL, sqlite_foreign_keys=request.param)
    )
    await init_db(eng)
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_sessionmaker(engine)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    async with session_factory() as s:
        yield s
        await s.rollback()


# --- Module Notes -----------------------------------------------------------
# Seed helpers live in `tests.factories`; fixtures here only manage lifecycle.
# `create_engine` picks StaticPool for the in-memory URL, so every session in a
# test shares one connection and one database.
