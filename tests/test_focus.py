"""
tests.test_focus

Focus sessions, distractions and focus-time rollups.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from tasktracker.db.errors import NotFoundError
from tasktracker.db.models import Distraction, FocusSession, FocusSessionStatus
from tasktracker.db.repositories.focus import FocusRepo
from tests.factories import NOW, add_user


@pytest.mark.asyncio
async def test_end_computes_whole_minutes(session) -> None:
    ada = await add_user(session, "ada")
    focus = FocusRepo(session)
    running = await focus.create(FocusSession(user_id=ada.id, start_time=NOW))

    assert (await focus.get_active(ada.id)).id == running.id
    assert await focus.end(running.id, NOW + timedelta(minutes=25, seconds=59)) is True

    assert running.duration_minutes == 25
    assert running.status is FocusSessionStatus.completed
    assert running.is_completed is True
    assert await focus.get_active(ada.id) is None
    assert await focus.end(9999) is False


@pytest.mark.asyncio
async def test_distraction_crud_and_counts(session) -> None:
    ada = await add_user(session, "ada")
    focus = FocusRepo(session)
    block = await focus.create(FocusSession(user_id=ada.id, start_time=NOW))

    phone = await focus.create_distraction(
        Distraction(focus_session_id=block.id, category="Phone", description="call")
    )
    await focus.create_distraction(Distraction(focus_session_id=block.id, category="Phone"))
    await focus.create_distraction(Distraction(focus_session_id=block.id, category="Noise"))
    assert phone.timestamp is not None

    phone.description = "long call"
    assert (await focus.update_distraction(phone)).description == "long call"
    with pytest.raises(NotFoundError):
        await focus.update_distraction(Distraction(id=9999, focus_session_id=block.id))

    assert await focus.total_distractions_count(ada.id) == 3
    assert await focus.distractions_by_category(ada.id) == {"Phone": 2, "Noise": 1}
    assert await focus.delete_distraction(phone.id) is True
    assert await focus.delete_distraction(phone.id) is False
    assert len(await focus.list_distractions(block.id)) == 2


@pytest.mark.asyncio
async def test_daily_minutes_include_empty_days(session) -> None:
    ada = await add_user(session, "ada")
    focus = FocusRepo(session)
    for days_ago, minutes in ((0, 30), (0, 15), (2, 50), (10, 99)):
        start = NOW - timedelta(days=days_ago)
        session.add(
            FocusSession(
                user_id=ada.id,
                start_time=start,
                end_time=start + timedelta(minutes=minutes),
                duration_minutes=minutes,
            )
        )
    # Still running; never counted.
    session.add(FocusSession(user_id=ada.id, start_time=NOW, duration_minutes=5))
    await session.flush()

    daily = await focus.daily_focus_minutes(ada.id, days=3, now=NOW)

    today = NOW.date()
    assert daily == {
        (today - timedelta(days=2)).isoformat(): 50,
        (today - timedelta(days=1)).isoformat(): 0,
        today.isoformat(): 45,
    }
    assert await focus.total_focus_minutes(ada.id) == 194
    assert await focus.total_focus_minutes(ada.id, start=NOW - timedelta(days=3)) == 95
    assert await focus.total_sessions_count(ada.id) == 5


# --- Module Notes -----------------------------------------------------------
# Durations are stored explicitly here; only `end` derives them from timestamps.
