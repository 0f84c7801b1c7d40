"""
tasktracker.db.models.analytics

Adaptive-learning data: per-user learning profile, template recommendation
scores and the adaptation events that tune them.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Enum, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from tasktracker.db.base import Base, TimestampMixin, utcnow


class AdaptationEventType(enum.StrEnum):
    preference_update = "PREFERENCE_UPDATE"
    recommendation_adjustment = "RECOMMENDATION_ADJUSTMENT"
    difficulty_adjustment = "DIFFICULTY_ADJUSTMENT"
    schedule_adjustment = "SCHEDULE_ADJUSTMENT"


class UserLearningProfile(TimestampMixin, Base):
    __tablename__ = "user_learning_profiles"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, unique=True)
    learning_style: Mapped[str] = mapped_column(String(32), nullable=False, default="balanced")
    preferred_difficulty: Mapped[int] = mapped_column(nullable=False, default=3)
    preferred_work_hours: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    adaptation_rate: Mapped[float] = mapped_column(nullable=False, default=1.0)
    confidence: Mapped[float] = mapped_column(nullable=False, default=0.1)


class RecommendationScore(Base):
    __tablename__ = "recommendation_scores"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    template_id: Mapped[int | None] = mapped_column(
        ForeignKey("task_templates.id", ondelete="SET NULL"), nullable=True
    )
    score: Mapped[float] = mapped_column(nullable=False, default=0.0)
    confidence: Mapped[float] = mapped_column(nullable=False, default=0.0)
    reasoning: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    was_shown: Mapped[bool] = mapped_column(nullable=False, default=False)
    shown_at: Mapped[datetime | None] = mapped_column(nullable=True)
    was_used: Mapped[bool] = mapped_column(nullable=False, default=False)
    # 1 accepted, -1 rejected, None no feedback.
    user_feedback: Mapped[int | None] = mapped_column(nullable=True)
    feedback_at: Mapped[datetime | None] = mapped_column(nullable=True)
    satisfaction_rating: Mapped[int | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (Index("ix_recommendation_scores_user_created", "user_id", "created_at"),)


class AdaptationEvent(Base):
    __tablename__ = "adaptation_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    event_type: Mapped[AdaptationEventType] = mapped_column(
        Enum(AdaptationEventType), nullable=False
    )
    trigger: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    before_state: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    after_state: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    confidence: Mapped[float] = mapped_column(nullable=False, default=0.5)
    # None until the outcome has been evaluated.
    was_successful: Mapped[bool | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (Index("ix_adaptation_events_user_created", "user_id", "created_at"),)
