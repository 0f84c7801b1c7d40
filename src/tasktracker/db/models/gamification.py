"""
tasktracker.db.models.gamification

Points, levels, streaks and the collectible layer (achievements, badges,
rewards, challenges).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tasktracker.db.base import Base, TimestampMixin, utcnow
from tasktracker.db.models.tasks import TaskPriority


class UserProgress(TimestampMixin, Base):
    __tablename__ = "user_progress"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, unique=True)
    level: Mapped[int] = mapped_column(nullable=False, default=1)
    current_points: Mapped[int] = mapped_column(nullable=False, default=0)
    total_points_earned: Mapped[int] = mapped_column(nullable=False, default=0)
    next_level_threshold: Mapped[int] = mapped_column(nullable=False, default=100)
    current_streak: Mapped[int] = mapped_column(nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(nullable=False, default=0)
    last_activity_date: Mapped[datetime | None] = mapped_column(nullable=True)
    user_tier: Mapped[str] = mapped_column(String(32), nullable=False, default="bronze")


class PointTransaction(Base):
    __tablename__ = "point_transactions"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    # Negative values are spends.
    points: Mapped[int] = mapped_column(nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    task_id: Mapped[int | None] = mapped_column(
        ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True
    )
    template_id: Mapped[int | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    __table_args__ = (Index("ix_point_transactions_user_created", "user_id", "created_at"),)


class PriorityMultiplier(Base):
    __tablename__ = "priority_multipliers"

    id: Mapped[int] = mapped_column(primary_key=True)
    priority: Mapped[TaskPriority] = mapped_column(Enum(TaskPriority), nullable=False, unique=True)
    multiplier: Mapped[float] = mapped_column(nullable=False, default=1.0)


class Achievement(TimestampMixin, Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    point_value: Mapped[int] = mapped_column(nullable=False, default=0)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    criteria: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    icon_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    difficulty: Mapped[int] = mapped_column(nullable=False, default=0)
    is_hidden: Mapped[bool] = mapped_column(nullable=False, default=False)


class UserAchievement(Base):
    __tablename__ = "user_achievements"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    achievement_id: Mapped[int] = mapped_column(ForeignKey("achievements.id"), nullable=False)
    progress: Mapped[int] = mapped_column(nullable=False, default=0)
    is_completed: Mapped[bool] = mapped_column(nullable=False, default=False)
    started_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    achievement: Mapped[Achievement] = relationship(lazy="selectin")

    __table_args__ = (UniqueConstraint("user_id", "achievement_id"),)


class Badge(TimestampMixin, Base):
    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    icon_url: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    criteria: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    rarity: Mapped[str] = mapped_column(String(50), nullable=False, default="Common")
    tier: Mapped[str] = mapped_column(String(50), nullable=False, default="bronze")
    series: Mapped[str | None] = mapped_column(String(50), nullable=True)
    points_required: Mapped[int] = mapped_column(nullable=False, default=0)
    point_value: Mapped[int] = mapped_column(nullable=False, default=0)
    color_scheme: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    display_order: Mapped[int] = mapped_column(nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    is_special: Mapped[bool] = mapped_column(nullable=False, default=False)


class UserBadge(Base):
    __tablename__ = "user_badges"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    badge_id: Mapped[int] = mapped_column(ForeignKey("badges.id"), nullable=False)
    awarded_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    award_note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_displayed: Mapped[bool] = mapped_column(nullable=False, default=True)
    is_featured: Mapped[bool] = mapped_column(nullable=False, default=False)

    badge: Mapped[Badge] = relationship(lazy="selectin")

    __table_args__ = (UniqueConstraint("user_id", "badge_id"),)


class Reward(Base):
    __tablename__ = "rewards"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    point_cost: Mapped[int] = mapped_column(nullable=False)
    minimum_level: Mapped[int] = mapped_column(nullable=False, default=1)
    icon_path: Mapped[str | None] = mapped_column(String(250), nullable=True)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    # None means unlimited stock.
    quantity: Mapped[int | None] = mapped_column(nullable=True)
    expiration_date: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)


class UserReward(Base):
    __tablename__ = "user_rewards"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    reward_id: Mapped[int] = mapped_column(ForeignKey("rewards.id"), nullable=False)
    redeemed_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    is_used: Mapped[bool] = mapped_column(nullable=False, default=False)
    used_at: Mapped[datetime | None] = mapped_column(nullable=True)

    reward: Mapped[Reward] = relationship(lazy="selectin")


class Challenge(Base):
    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    start_date: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    end_date: Mapped[datetime | None] = mapped_column(nullable=True)
    point_reward: Mapped[int] = mapped_column(nullable=False, default=0)
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False, default="TaskCompletion")
    target_count: Mapped[int] = mapped_column(nullable=False, default=1)
    reward_badge_id: Mapped[int | None] = mapped_column(ForeignKey("badges.id"), nullable=True)
    difficulty: Mapped[int] = mapped_column(nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)


class UserChallenge(Base):
    """Enrollment plus running progress for one user in one challenge."""

    __tablename__ = "user_challenges"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    challenge_id: Mapped[int] = mapped_column(ForeignKey("challenges.id"), nullable=False)
    enrolled_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    current_progress: Mapped[int] = mapped_column(nullable=False, default=0)
    tasks_completed: Mapped[int] = mapped_column(nullable=False, default=0)
    points_earned: Mapped[int] = mapped_column(nullable=False, default=0)
    is_completed: Mapped[bool] = mapped_column(nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    is_reward_claimed: Mapped[bool] = mapped_column(nullable=False, default=False)

    challenge: Mapped[Challenge] = relationship(lazy="selectin")

    __table_args__ = (UniqueConstraint("user_id", "challenge_id"),)
