"""
tasktracker.db.models.calendar

Shared family calendar events and their attendees.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tasktracker.db.base import Base, TimestampMixin


class AttendeeResponse(enum.StrEnum):
    pending = "PENDING"
    accepted = "ACCEPTED"
    declined = "DECLINED"
    tentative = "TENTATIVE"


class FamilyCalendarEvent(TimestampMixin, Base):
    __tablename__ = "family_calendar_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    start_time: Mapped[datetime] = mapped_column(nullable=False)
    end_time: Mapped[datetime] = mapped_column(nullable=False)
    is_all_day: Mapped[bool] = mapped_column(nullable=False, default=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_recurring: Mapped[bool] = mapped_column(nullable=False, default=False)
    recurrence_pattern: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False, default="General")
    family_id: Mapped[int] = mapped_column(
        ForeignKey("families.id", ondelete="CASCADE"), nullable=False
    )
    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)

    attendees: Mapped[list[EventAttendee]] = relationship(
        cascade="all, delete", lazy="selectin"
    )

    __table_args__ = (Index("ix_family_calendar_events_family_start", "family_id", "start_time"),)


class EventAttendee(TimestampMixin, Base):
    __tablename__ = "event_attendees"

    id: Mapped[int] = mapped_column(primary_key=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("family_calendar_events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    family_member_id: Mapped[int] = mapped_column(
        ForeignKey("family_members.id", ondelete="CASCADE"), nullable=False
    )
    response: Mapped[AttendeeResponse] = mapped_column(
        Enum(AttendeeResponse), nullable=False, default=AttendeeResponse.pending
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (UniqueConstraint("event_id", "family_member_id"),)
