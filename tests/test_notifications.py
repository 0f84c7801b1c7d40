"""
tests.test_notifications

Notification read-state, filtered paging, bulk cleanup and preferences.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from tasktracker.db.models import Notification, NotificationPreference
from tasktracker.db.repositories.filters import NotificationFilter, PageParams
from tasktracker.db.repositories.notifications import NotificationPreferenceRepo, NotificationRepo
from tests.factories import NOW, add_user


async def _notify(session, user, title, kind="task", *, minutes_ago=0, **fields) -> Notification:
    notification = Notification(
        user_id=user.id,
        title=title,
        message=f"{title} happened",
        notification_type=kind,
        created_at=NOW - timedelta(minutes=minutes_ago),
        **fields,
    )
    session.add(notification)
    await session.flush()
    return notification


@pytest.mark.asyncio
async def test_mark_read_respects_ownership(session) -> None:
    ada = await add_user(session, "ada")
    bob = await add_user(session, "bob")
    note = await _notify(session, ada, "Reminder")
    notifications = NotificationRepo(session)

    assert await notifications.mark_read(note.id, user_id=bob.id) is False
    assert await notifications.get_for_user(note.id, bob.id) is None
    assert await notifications.mark_read(note.id, user_id=ada.id) is True
    assert note.read_at is not None
    assert await notifications.mark_read(9999) is False


@pytest.mark.asyncio
async def test_bulk_read_and_cleanup_report_counts(session) -> None:
    ada = await add_user(session, "ada")
    bob = await add_user(session, "bob")
    for i in range(3):
        await _notify(session, ada, f"n{i}", minutes_ago=i)
    await _notify(session, bob, "other")
    notifications = NotificationRepo(session)

    assert await notifications.unread_count(ada.id) == 3
    assert await notifications.mark_all_read(ada.id) == 3
    assert await notifications.unread_count(ada.id) == 0
    assert await notifications.unread_count(bob.id) == 1
    assert await notifications.delete_all_read(ada.id) == 3
    assert await notifications.list_for_user(ada.id) == []


@pytest.mark.asyncio
async def test_search_filters_and_pages_newest_first(session) -> None:
    ada = await add_user(session, "ada")
    await _notify(session, ada, "Task due", minutes_ago=30)
    await _notify(session, ada, "Task overdue", minutes_ago=10, is_important=True)
    await _notify(session, ada, "Badge earned", kind="badge", minutes_ago=5)
    notifications = NotificationRepo(session)

    page = await notifications.search(ada.id, NotificationFilter(notification_type="task"))
    assert [n.title for n in page.items] == ["Task overdue", "Task due"]

    important = await notifications.search(ada.id, NotificationFilter(is_important=True))
    assert [n.title for n in important.items] == ["Task overdue"]

    recent = await notifications.search(
        ada.id,
        NotificationFilter(since=NOW - timedelta(minutes=15)),
        PageParams(page_number=1, page_size=1),
    )
    assert recent.total_count == 2
    assert [n.title for n in recent.items] == ["Badge earned"]

    assert await notifications.count_by_type(ada.id) == {"task": 2, "badge": 1}


@pytest.mark.asyncio
async def test_preferences_upsert_and_default_to_enabled(session) -> None:
    ada = await add_user(session, "ada")
    preferences = NotificationPreferenceRepo(session)

    assert await preferences.is_enabled(ada.id, "digest") is True

    first = await preferences.upsert(
        NotificationPreference(user_id=ada.id, notification_type="digest", enabled=False, priority=1)
    )
    second = await preferences.upsert(
        NotificationPreference(
            user_id=ada.id,
            notification_type="digest",
            enabled=True,
            priority=3,
            enable_email_notifications=True,
            enable_push_notifications=False,
        )
    )

    assert second.id == first.id
    assert second.priority == 3
    assert second.updated_at is not None
    assert await preferences.is_enabled(ada.id, "digest") is True
    assert len(await preferences.list_for_user(ada.id)) == 1


# --- Module Notes -----------------------------------------------------------
# Notifications carry their own created_at so ordering does not depend on insert speed.
