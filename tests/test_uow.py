"""
tests.test_uow

Transaction boundaries of the unit of work.
"""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from tasktracker.db.errors import ConflictError
from tasktracker.db.models import User
from tasktracker.db.repositories.users import UserRepo
from tasktracker.db.uow import UnitOfWork


async def _username_exists(session_factory, username: str) -> bool:
    async with session_factory() as session:
        return await UserRepo(session).get_by_username(username) is not None


@pytest.mark.asyncio
async def test_clean_exit_commits(session_factory) -> None:
    async with UnitOfWork(session_factory) as uow:
        await uow.users.create(User(username="alice", email="alice@example.com"))

    assert await _username_exists(session_factory, "alice") is True


@pytest.mark.asyncio
async def test_exception_rolls_back_and_propagates(session_factory) -> None:
    with pytest.raises(RuntimeError, match="boom"):
        async with UnitOfWork(session_factory) as uow:
            await uow.users.create(User(username="bob", email="bob@example.com"))
            raise RuntimeError("boom")

    assert await _username_exists(session_factory, "bob") is False


@pytest.mark.asyncio
async def test_explicit_rollback_discards_flushed_rows(session_factory) -> None:
    async with UnitOfWork(session_factory) as uow:
        await uow.users.create(User(username="carol", email="carol@example.com"))
        await uow.rollback()

    assert await _username_exists(session_factory, "carol") is False


@pytest.mark.asyncio
async def test_commit_translates_constraint_violations(session_factory) -> None:
    with pytest.raises(ConflictError) as info:
        async with UnitOfWork(session_factory) as uow:
            # Bypass the repository pre-check so the database constraint fires.
            uow.session.add_all(
                [
                    User(username="dup", email="one@example.com"),
                    User(username="dup", email="two@example.com"),
                ]
            )
            await uow.commit()

    assert info.value.details["operation"] == "UnitOfWork.commit"
    assert await _username_exists(session_factory, "dup") is False


def test_session_outside_the_block_is_an_error() -> None:
    uow = UnitOfWork(async_sessionmaker())
    with pytest.raises(RuntimeError):
        _ = uow.session


# --- Module Notes -----------------------------------------------------------
# Each check reads through a fresh session so it observes committed state only.
