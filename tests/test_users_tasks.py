"""
tests.test_users_tasks

User and task repository behavior against a real (in-memory) database.

Responsibilities:
- Audit timestamps on create/update.
- Ownership scoping, filtered paging and tag links on tasks.
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from tasktracker.db.errors import ConflictError, NotFoundError
from tasktracker.db.models import (
    Category,
    FocusSession,
    PointTransaction,
    Reminder,
    Tag,
    TaskItem,
    TaskItemStatus,
    TaskPriority,
    User,
    task_tags,
)
from tasktracker.db.repositories.filters import PageParams, TaskFilter
from tasktracker.db.repositories.tasks import CategoryRepo, TagRepo, TaskItemRepo
from tasktracker.db.repositories.users import UserRepo
from tests.factories import NOW, add_task, add_user


@pytest.mark.asyncio
async def test_create_sets_created_at_and_leaves_updated_at_empty(session) -> None:
    users = UserRepo(session)
    user = await users.create(User(username="ada", email="ada@example.com"))

    assert user.id is not None
    assert user.created_at is not None
    assert user.updated_at is None


@pytest.mark.asyncio
async def test_update_stamps_updated_at(session) -> None:
    users = UserRepo(session)
    user = await users.create(User(username="ada", email="ada@example.com"))

    user.first_name = "Ada"
    updated = await users.update(user)

    assert updated.updated_at is not None
    assert updated.updated_at >= updated.created_at


@pytest.mark.asyncio
async def test_update_of_missing_row_raises_not_found(session) -> None:
    with pytest.raises(NotFoundError):
        await UserRepo(session).update(User(id=999, username="ghost", email="g@example.com"))


@pytest.mark.asyncio
async def test_duplicate_username_or_email_is_a_conflict(session) -> None:
    users = UserRepo(session)
    await users.create(User(username="ada", email="ada@example.com"))

    with pytest.raises(ConflictError):
        await users.create(User(username="ada", email="other@example.com"))
    with pytest.raises(ConflictError):
        await users.create(User(username="other", email="ADA@example.com"))


@pytest.mark.asyncio
async def test_user_lookups(session) -> None:
    users = UserRepo(session)
    ada = await add_user(session, "ada")
    await add_user(session, "bob", is_active=False)

    assert (await users.get_by_email("ADA@example.com")).id == ada.id
    assert (await users.get_by_username_or_email("ada")).id == ada.id
    assert [u.username for u in await users.list_active()] == ["ada"]
    assert await users.count_active() == 1
    assert [u.username for u in await users.search("b")] == ["bob"]
    assert await users.get_many([]) == []


@pytest.mark.asyncio
async def test_delete_missing_returns_false(session) -> None:
    assert await UserRepo(session).delete(12345) is False
    assert await TaskItemRepo(session).delete(12345) is False


@pytest.mark.asyncio
async def test_status_filter_returns_only_matching_tasks(session) -> None:
    owner = await add_user(session, "ada")
    await add_task(session, owner, "write report")
    await add_task(session, owner, "review code")
    done = await add_task(
        session, owner, "ship it", status=TaskItemStatus.completed, is_completed=True
    )

    page = await TaskItemRepo(session).search(
        owner.id, TaskFilter(status=TaskItemStatus.completed)
    )

    assert page.total_count == 1
    assert [t.id for t in page.items] == [done.id]


@pytest.mark.asyncio
async def test_tasks_are_scoped_to_their_owner(session) -> None:
    ada = await add_user(session, "ada")
    bob = await add_user(session, "bob")
    task = await add_task(session, ada, "private")
    tasks = TaskItemRepo(session)

    assert await tasks.get_for_user(task.id, bob.id) is None
    assert await tasks.delete_for_user(task.id, bob.id) is False
    assert await tasks.is_owned_by(task.id, ada.id) is True
    assert await tasks.list_for_user(bob.id) == []


@pytest.mark.asyncio
async def test_search_term_and_paging(session) -> None:
    owner = await add_user(session, "ada")
    for i in range(5):
        await add_task(session, owner, f"report {i}", priority=TaskPriority.high)
    await add_task(session, owner, "100% done")
    tasks = TaskItemRepo(session)

    page = await tasks.search(
        owner.id, TaskFilter(search_term="report"), PageParams(page_number=2, page_size=2)
    )
    assert page.total_count == 5
    assert len(page.items) == 2
    assert page.total_pages == 3
    assert page.has_next and page.has_previous

    # Wildcards in the term match literally.
    literal = await tasks.search(owner.id, TaskFilter(search_term="%"))
    assert [t.title for t in literal.items] == ["100% done"]


@pytest.mark.asyncio
async def test_complete_and_count_by_status(session) -> None:
    owner = await add_user(session, "ada")
    task = await add_task(session, owner, "one")
    await add_task(session, owner, "two")
    tasks = TaskItemRepo(session)

    assert await tasks.complete(task.id, owner.id) is True
    assert task.completed_at is not None
    assert task.progress_percentage == 100

    counts = await tasks.count_by_status(owner.id)
    assert counts == {TaskItemStatus.completed: 1, TaskItemStatus.not_started: 1}


@pytest.mark.asyncio
async def test_tag_links_are_idempotent_and_replaceable(session) -> None:
    owner = await add_user(session, "ada")
    task = await add_task(session, owner, "tagged")
    tags = TagRepo(session)
    work = await tags.create(Tag(name="work", user_id=owner.id))
    home = await tags.create(Tag(name="home", user_id=owner.id))
    tasks = TaskItemRepo(session)

    await tasks.add_tag(task.id, work.id)
    await tasks.add_tag(task.id, work.id)
    assert [t.name for t in await tasks.tags_for_task(task.id)] == ["work"]

    await tasks.set_tags(task.id, [home.id, home.id])
    assert [t.name for t in await tasks.tags_for_task(task.id)] == ["home"]
    assert [t.id for t in await tasks.list_by_tag(owner.id, home.id)] == [task.id]

    assert await tags.delete(home.id) is True
    assert await tasks.tags_for_task(task.id) == []


@pytest.mark.asyncio
async def test_category_names_are_unique_per_user(session) -> None:
    ada = await add_user(session, "ada")
    bob = await add_user(session, "bob")
    categories = CategoryRepo(session)
    await categories.create(Category(name="Work", user_id=ada.id))

    with pytest.raises(ConflictError):
        await categories.create(Category(name="work", user_id=ada.id))
    await categories.create(Category(name="Work", user_id=bob.id))
    assert await categories.count_for_user(ada.id) == 1


@pytest.mark.asyncio
async def test_deleting_a_category_uncategorizes_its_tasks(session) -> None:
    ada = await add_user(session, "ada")
    categories = CategoryRepo(session)
    work = await categories.create(Category(name="Work", user_id=ada.id))
    report = await add_task(session, ada, "report", category_id=work.id)
    assert await categories.task_count(work.id) == 1

    assert await categories.delete(work.id) is True

    assert report.category_id is None
    assert await categories.task_count(work.id) == 0
    assert await categories.delete(work.id) is False


@pytest.mark.asyncio
async def test_deleting_a_task_releases_everything_that_points_at_it(session) -> None:
    ada = await add_user(session, "ada")
    tasks = TaskItemRepo(session)
    work = await TagRepo(session).create(Tag(name="work", user_id=ada.id))

    async def seeded(title: str) -> TaskItem:
        task = await add_task(session, ada, title)
        await tasks.add_tag(task.id, work.id)
        session.add_all(
            [
                Reminder(title=title, reminder_time=NOW, user_id=ada.id, task_item_id=task.id),
                FocusSession(user_id=ada.id, task_id=task.id, start_time=NOW),
                PointTransaction(
                    user_id=ada.id, points=10, transaction_type="task_completion", task_id=task.id
                ),
            ]
        )
        await session.flush()
        return task

    first = await seeded("first")
    second = await seeded("second")

    assert await tasks.delete(first.id) is True
    assert await tasks.delete_for_user(second.id, ada.id) is True

    links = await session.scalar(select(func.count()).select_from(task_tags))
    assert links == 0
    for model, column in (
        (Reminder, Reminder.task_item_id),
        (FocusSession, FocusSession.task_id),
        (PointTransaction, PointTransaction.task_id),
    ):
        assert (await session.scalars(select(column))).all() == [None, None], model.__name__
    assert await tasks.count() == 0


@pytest.mark.asyncio
async def test_detached_update_merges(session) -> None:
    owner = await add_user(session, "ada")
    task = await add_task(session, owner, "draft")
    detached = TaskItem(id=task.id, title="final", user_id=owner.id)

    merged = await TaskItemRepo(session).update(detached)

    assert merged.title == "final"
    assert merged.updated_at is not None


# --- Module Notes -----------------------------------------------------------
# Each test gets its own in-memory database (see conftest.py).
