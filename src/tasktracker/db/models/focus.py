"""
tasktracker.db.models.focus

Focus (deep work) sessions and the distractions logged during them.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tasktracker.db.base import Base, utcnow


class FocusSessionStatus(enum.StrEnum):
    in_progress = "IN_PROGRESS"
    paused = "PAUSED"
    completed = "COMPLETED"
    interrupted = "INTERRUPTED"


class FocusSession(Base):
    __tablename__ = "focus_sessions"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    task_id: Mapped[int | None] = mapped_column(
        ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True
    )
    start_time: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    end_time: Mapped[datetime | None] = mapped_column(nullable=True)
    duration_minutes: Mapped[int] = mapped_column(nullable=False, default=0)
    is_completed: Mapped[bool] = mapped_column(nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    session_quality_rating: Mapped[int | None] = mapped_column(nullable=True)
    status: Mapped[FocusSessionStatus] = mapped_column(
        Enum(FocusSessionStatus), nullable=False, default=FocusSessionStatus.in_progress
    )

    distractions: Mapped[list[Distraction]] = relationship(
        cascade="all, delete", lazy="selectin", order_by="Distraction.timestamp"
    )

    __table_args__ = (Index("ix_focus_sessions_user_start", "user_id", "start_time"),)


class Distraction(Base):
    __tablename__ = "distractions"

    id: Mapped[int] = mapped_column(primary_key=True)
    focus_session_id: Mapped[int] = mapped_column(
        ForeignKey("focus_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="Other")
    timestamp: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
