"""
tasktracker.db.repositories.calendar

Family calendar events, attendees and the per-user calendar view.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import func, select

from tasktracker.db.base import utcnow
from tasktracker.db.errors import ConflictError
from tasktracker.db.models import (
    AttendeeResponse,
    EventAttendee,
    FamilyCalendarEvent,
    FamilyMember,
    FamilyRolePermission,
)
from tasktracker.db.repositories.base import BaseRepo


def _overlapping(start: datetime, end: datetime):
    return (FamilyCalendarEvent.start_time < end, FamilyCalendarEvent.end_time > start)


class CalendarEventRepo(BaseRepo[FamilyCalendarEvent]):
    model = FamilyCalendarEvent

    async def list_for_family(self, family_id: int) -> list[FamilyCalendarEvent]:
        return await self.find(
            FamilyCalendarEvent.family_id == family_id,
            order_by=(FamilyCalendarEvent.start_time,),
        )

    async def list_in_range(
        self, family_id: int, start: datetime, end: datetime
    ) -> list[FamilyCalendarEvent]:
        return await self.find(
            FamilyCalendarEvent.family_id == family_id,
            *_overlapping(start, end),
            order_by=(FamilyCalendarEvent.start_time,),
        )

    async def get_attendee(self, event_id: int, member_id: int) -> EventAttendee | None:
        return await self._first(
            select(EventAttendee).where(
                EventAttendee.event_id == event_id, EventAttendee.family_member_id == member_id
            )
        )

    async def list_attendees(self, event_id: int) -> list[EventAttendee]:
        return await self._all(
            select(EventAttendee)
            .where(EventAttendee.event_id == event_id)
            .order_by(EventAttendee.id),
            operation="list_attendees",
        )

    async def add_attendee(
        self,
        event_id: int,
        member_id: int,
        response: AttendeeResponse = AttendeeResponse.pending,
    ) -> EventAttendee:
        if await self.get_attendee(event_id, member_id) is not None:
            raise ConflictError(
                "member already attends event",
                details={"event_id": event_id, "family_member_id": member_id},
            )
        attendee = EventAttendee(
            event_id=event_id, family_member_id=member_id, response=response, created_at=utcnow()
        )
        self._session.add(attendee)
        await self._flush(operation="add_attendee")
        return attendee

    async def set_response(
        self, event_id: int, member_id: int, response: AttendeeResponse
    ) -> bool:
        attendee = await self.get_attendee(event_id, member_id)
        if attendee is None:
            return False
        attendee.response = response
        attendee.updated_at = utcnow()
        await self._flush(operation="set_response")
        return True

    async def remove_attendee(self, event_id: int, member_id: int) -> bool:
        attendee = await self.get_attendee(event_id, member_id)
        if attendee is None:
            return False
        await self.remove(attendee)
        return True


class UserCalendarRepo(BaseRepo[FamilyCalendarEvent]):
    """Read-mostly view over the events of every family a user belongs to."""

    model = FamilyCalendarEvent

    def _families_of(self, user_id: int):
        return select(FamilyMember.family_id).where(FamilyMember.user_id == user_id)

    async def list_all_events(self, user_id: int) -> list[FamilyCalendarEvent]:
        return await self.find(
            FamilyCalendarEvent.family_id.in_(self._families_of(user_id)),
            order_by=(FamilyCalendarEvent.start_time,),
        )

    async def list_in_range(
        self, user_id: int, start: datetime, end: datetime
    ) -> list[FamilyCalendarEvent]:
        return await self.find(
            FamilyCalendarEvent.family_id.in_(self._families_of(user_id)),
            *_overlapping(start, end),
            order_by=(FamilyCalendarEvent.start_time,),
        )

    async def list_on_date(self, user_id: int, day: date) -> list[FamilyCalendarEvent]:
        start = datetime(day.year, day.month, day.day)
        return await self.list_in_range(user_id, start, start + timedelta(days=1))

    async def list_today(
        self, user_id: int, *, now: datetime | None = None
    ) -> list[FamilyCalendarEvent]:
        return await self.list_on_date(user_id, (now or utcnow()).date())

    async def list_upcoming(
        self, user_id: int, days: int = 7, *, now: datetime | None = None
    ) -> list[FamilyCalendarEvent]:
        now = now or utcnow()
        return await self.find(
            FamilyCalendarEvent.family_id.in_(self._families_of(user_id)),
            FamilyCalendarEvent.start_time >= now,
            FamilyCalendarEvent.start_time <= now + timedelta(days=days),
            order_by=(FamilyCalendarEvent.start_time,),
        )

    async def list_conflicting(
        self, user_id: int, start: datetime, end: datetime
    ) -> list[FamilyCalendarEvent]:
        """Events in the window that overlap at least one other event in it."""

        events = await self.list_in_range(user_id, start, end)
        clashing: list[FamilyCalendarEvent] = []
        for event in events:
            if any(
                other.id != event.id
                and other.start_time < event.end_time
                and other.end_time > event.start_time
                for other in events
            ):
                clashing.append(event)
        return clashing

    async def family_event_counts(self, user_id: int) -> dict[int, int]:
        stmt = (
            select(FamilyCalendarEvent.family_id, func.count())
            .where(FamilyCalendarEvent.family_id.in_(self._families_of(user_id)))
            .group_by(FamilyCalendarEvent.family_id)
        )
        return {family_id: n for family_id, n in await self._rows(stmt)}

    async def family_upcoming_event_counts(
        self, user_id: int, *, now: datetime | None = None
    ) -> dict[int, int]:
        stmt = (
            select(FamilyCalendarEvent.family_id, func.count())
            .where(
                FamilyCalendarEvent.family_id.in_(self._families_of(user_id)),
                FamilyCalendarEvent.start_time > (now or utcnow()),
            )
            .group_by(FamilyCalendarEvent.family_id)
        )
        return {family_id: n for family_id, n in await self._rows(stmt)}

    async def total_events_count(self, user_id: int) -> int:
        return await self.count(FamilyCalendarEvent.family_id.in_(self._families_of(user_id)))

    async def upcoming_events_count(self, user_id: int, *, now: datetime | None = None) -> int:
        return await self.count(
            FamilyCalendarEvent.family_id.in_(self._families_of(user_id)),
            FamilyCalendarEvent.start_time > (now or utcnow()),
        )

    async def past_events_count(self, user_id: int, *, now: datetime | None = None) -> int:
        return await self.count(
            FamilyCalendarEvent.family_id.in_(self._families_of(user_id)),
            FamilyCalendarEvent.end_time < (now or utcnow()),
        )

    async def events_created_count(self, user_id: int) -> int:
        return await self.count(FamilyCalendarEvent.created_by_id == user_id)

    async def event_type_distribution(self, user_id: int) -> dict[str, int]:
        stmt = (
            select(FamilyCalendarEvent.event_type, func.count())
            .where(FamilyCalendarEvent.family_id.in_(self._families_of(user_id)))
            .group_by(FamilyCalendarEvent.event_type)
        )
        return {event_type: n for event_type, n in await self._rows(stmt)}

    async def next_upcoming_event_time(
        self, user_id: int, *, now: datetime | None = None
    ) -> datetime | None:
        stmt = select(func.min(FamilyCalendarEvent.start_time)).where(
            FamilyCalendarEvent.family_id.in_(self._families_of(user_id)),
            FamilyCalendarEvent.start_time > (now or utcnow()),
        )
        return await self._scalar(stmt, operation="next_upcoming_event_time")

    # --- membership and permissions ----------------------------------------------

    async def get_membership(self, user_id: int, family_id: int) -> FamilyMember | None:
        return await self._first(
            select(FamilyMember).where(
                FamilyMember.user_id == user_id, FamilyMember.family_id == family_id
            )
        )

    async def list_memberships(self, user_id: int) -> list[FamilyMember]:
        return await self._all(
            select(FamilyMember)
            .where(FamilyMember.user_id == user_id)
            .order_by(FamilyMember.family_id)
        )

    async def _permissions(self, user_id: int, family_id: int) -> set[str]:
        stmt = (
            select(FamilyRolePermission.name)
            .join(FamilyMember, FamilyMember.role_id == FamilyRolePermission.role_id)
            .where(FamilyMember.user_id == user_id, FamilyMember.family_id == family_id)
        )
        return set(await self._all(stmt, operation="permissions"))

    async def can_create_events(self, user_id: int, family_id: int) -> bool:
        granted = await self._permissions(user_id, family_id)
        return bool(granted & {"calendar.create", "calendar.manage"})

    async def can_manage_events(self, user_id: int, family_id: int) -> bool:
        granted = await self._permissions(user_id, family_id)
        return bool(granted & {"calendar.manage", "admin"})
