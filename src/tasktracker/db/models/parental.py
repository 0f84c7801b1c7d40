"""
tasktracker.db.models.parental

Parental controls over a child account: screen-time limits, allowed hours and
permission requests raised by the child.
"""

from __future__ import annotations

import enum
from datetime import datetime, time
from typing import Any

from sqlalchemy import JSON, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tasktracker.db.base import Base, TimestampMixin, utcnow


class PermissionRequestType(enum.StrEnum):
    spend_points = "SPEND_POINTS"
    create_task = "CREATE_TASK"
    modify_task = "MODIFY_TASK"
    invite_family_member = "INVITE_FAMILY_MEMBER"
    change_profile = "CHANGE_PROFILE"
    chat_with_others = "CHAT_WITH_OTHERS"
    other = "OTHER"


class PermissionRequestStatus(enum.StrEnum):
    pending = "PENDING"
    approved = "APPROVED"
    denied = "DENIED"
    expired = "EXPIRED"


class ParentalControl(TimestampMixin, Base):
    __tablename__ = "parental_controls"

    id: Mapped[int] = mapped_column(primary_key=True)
    parent_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    child_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, unique=True)
    screen_time_enabled: Mapped[bool] = mapped_column(nullable=False, default=False)
    daily_time_limit_minutes: Mapped[int] = mapped_column(nullable=False, default=120)
    task_approval_required: Mapped[bool] = mapped_column(nullable=False, default=False)
    point_spending_approval_required: Mapped[bool] = mapped_column(nullable=False, default=False)
    blocked_features: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    chat_monitoring_enabled: Mapped[bool] = mapped_column(nullable=False, default=False)
    max_points_without_approval: Mapped[int] = mapped_column(nullable=False, default=50)
    can_invite_others: Mapped[bool] = mapped_column(nullable=False, default=False)
    can_view_other_members: Mapped[bool] = mapped_column(nullable=False, default=True)

    allowed_hours: Mapped[list[AllowedTimeRange]] = relationship(
        cascade="all, delete-orphan", lazy="selectin"
    )


class AllowedTimeRange(Base):
    __tablename__ = "allowed_time_ranges"

    id: Mapped[int] = mapped_column(primary_key=True)
    parental_control_id: Mapped[int] = mapped_column(
        ForeignKey("parental_controls.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Monday == 0, matching datetime.weekday().
    day_of_week: Mapped[int] = mapped_column(nullable=False)
    start_time: Mapped[time] = mapped_column(nullable=False)
    end_time: Mapped[time] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)

    def covers(self, moment: datetime) -> bool:
        return (
            self.is_active
            and self.day_of_week == moment.weekday()
            and self.start_time <= moment.time() <= self.end_time
        )


class PermissionRequest(Base):
    __tablename__ = "permission_requests"

    id: Mapped[int] = mapped_column(primary_key=True)
    child_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    parent_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    request_type: Mapped[PermissionRequestType] = mapped_column(
        Enum(PermissionRequestType), nullable=False
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    request_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    status: Mapped[PermissionRequestStatus] = mapped_column(
        Enum(PermissionRequestStatus),
        nullable=False,
        default=PermissionRequestStatus.pending,
        index=True,
    )
    requested_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    responded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    response_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)


class ScreenTimeSession(Base):
    __tablename__ = "screen_time_sessions"

    id: Mapped[int] = mapped_column(primary_key=True)
    child_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    started_at: Mapped[datetime] = mapped_column(nullable=False)
    duration_minutes: Mapped[int] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (Index("ix_screen_time_child_started", "child_user_id", "started_at"),)
