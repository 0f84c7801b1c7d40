"""
tests.test_calendar

Family calendar events, attendees and the cross-family user calendar.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from tasktracker.db.errors import ConflictError
from tasktracker.db.models import AttendeeResponse, FamilyCalendarEvent
from tasktracker.db.repositories.calendar import CalendarEventRepo, UserCalendarRepo
from tests.factories import NOW, add_family, add_member, add_role, add_user


def _event(family, creator, title, start_offset_h, length_h=1, **fields):
    start = NOW + timedelta(hours=start_offset_h)
    return FamilyCalendarEvent(
        title=title,
        start_time=start,
        end_time=start + timedelta(hours=length_h),
        family_id=family.id,
        created_by_id=creator.id,
        **fields,
    )


@pytest.mark.asyncio
async def test_attendees_are_unique_per_event(session) -> None:
    ada = await add_user(session, "ada")
    family = await add_family(session, ada)
    member = await add_member(session, family, ada, await add_role(session, "Member"))
    events = CalendarEventRepo(session)
    dinner = await events.create(_event(family, ada, "Dinner", 6))

    attendee = await events.add_attendee(dinner.id, member.id)
    assert attendee.response is AttendeeResponse.pending
    with pytest.raises(ConflictError):
        await events.add_attendee(dinner.id, member.id)

    assert await events.set_response(dinner.id, member.id, AttendeeResponse.accepted) is True
    assert attendee.updated_at is not None
    assert await events.set_response(dinner.id, 9999, AttendeeResponse.accepted) is False
    assert await events.remove_attendee(dinner.id, member.id) is True
    assert await events.list_attendees(dinner.id) == []


@pytest.mark.asyncio
async def test_deleting_an_event_removes_its_attendees(session) -> None:
    ada = await add_user(session, "ada")
    family = await add_family(session, ada)
    member = await add_member(session, family, ada, await add_role(session, "Member"))
    events = CalendarEventRepo(session)
    dinner = await events.create(_event(family, ada, "Dinner", 6))
    await events.add_attendee(dinner.id, member.id)
    session.expunge(dinner)

    assert await events.delete(dinner.id) is True
    assert await events.get_attendee(dinner.id, member.id) is None


@pytest.mark.asyncio
async def test_user_calendar_spans_every_family(session) -> None:
    ada = await add_user(session, "ada")
    bob = await add_user(session, "bob")
    role = await add_role(session, "Member")
    home = await add_family(session, ada, name="Home")
    club = await add_family(session, bob, name="Club")
    other = await add_family(session, bob, name="Other")
    await add_member(session, home, ada, role)
    await add_member(session, club, ada, role)
    events = CalendarEventRepo(session)
    await events.create(_event(home, ada, "Breakfast", -4, event_type="Meal"))
    await events.create(_event(home, ada, "Dinner", 6, event_type="Meal"))
    await events.create(_event(club, bob, "Practice", 6, length_h=2, event_type="Sport"))
    await events.create(_event(other, bob, "Invisible", 6))
    calendar = UserCalendarRepo(session)

    assert {e.title for e in await calendar.list_all_events(ada.id)} == {
        "Breakfast",
        "Dinner",
        "Practice",
    }
    assert {e.title for e in await calendar.list_upcoming(ada.id, now=NOW)} == {"Dinner", "Practice"}
    assert {e.title for e in await calendar.list_today(ada.id, now=NOW)} == {
        "Breakfast",
        "Dinner",
        "Practice",
    }
    conflicting = await calendar.list_conflicting(ada.id, NOW, NOW + timedelta(days=1))
    assert {e.title for e in conflicting} == {"Dinner", "Practice"}

    assert await calendar.total_events_count(ada.id) == 3
    assert await calendar.upcoming_events_count(ada.id, now=NOW) == 2
    assert await calendar.past_events_count(ada.id, now=NOW) == 1
    assert await calendar.family_event_counts(ada.id) == {home.id: 2, club.id: 1}
    assert await calendar.event_type_distribution(ada.id) == {"Meal": 2, "Sport": 1}
    assert await calendar.next_upcoming_event_time(ada.id, now=NOW) == NOW + timedelta(hours=6)
    assert await calendar.events_created_count(bob.id) == 2


@pytest.mark.asyncio
async def test_calendar_permissions_follow_the_member_role(session) -> None:
    ada = await add_user(session, "ada")
    bob = await add_user(session, "bob")
    family = await add_family(session, ada)
    await add_member(session, family, ada, await add_role(session, "Organizer", "calendar.manage"))
    await add_member(session, family, bob, await add_role(session, "Viewer", "calendar.create"))
    calendar = UserCalendarRepo(session)

    assert await calendar.can_manage_events(ada.id, family.id) is True
    assert await calendar.can_create_events(ada.id, family.id) is True
    assert await calendar.can_manage_events(bob.id, family.id) is False
    assert await calendar.can_create_events(bob.id, family.id) is True
    assert await calendar.can_create_events(9999, family.id) is False


# --- Module Notes -----------------------------------------------------------
# Event times are offsets from the fixed NOW so range queries are deterministic.
