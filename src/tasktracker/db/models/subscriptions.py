"""
tasktracker.db.models.subscriptions

Subscription tiers, per-user API quotas and per-tier rate-limit rules.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tasktracker.db.base import Base, TimestampMixin, utcnow


class SubscriptionTier(TimestampMixin, Base):
    __tablename__ = "subscription_tiers"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    default_rate_limit: Mapped[int] = mapped_column(nullable=False, default=60)
    default_time_window_seconds: Mapped[int] = mapped_column(nullable=False, default=60)
    daily_api_quota: Mapped[int] = mapped_column(nullable=False, default=1000)
    max_concurrent_connections: Mapped[int] = mapped_column(nullable=False, default=5)
    bypass_standard_rate_limits: Mapped[bool] = mapped_column(nullable=False, default=False)
    priority: Mapped[int] = mapped_column(nullable=False, default=0)
    is_system_tier: Mapped[bool] = mapped_column(nullable=False, default=False)
    monthly_cost: Mapped[float] = mapped_column(nullable=False, default=0.0)


class UserApiQuota(Base):
    __tablename__ = "user_api_quotas"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, unique=True)
    subscription_tier_id: Mapped[int] = mapped_column(
        ForeignKey("subscription_tiers.id"), nullable=False, index=True
    )
    api_calls_used_today: Mapped[int] = mapped_column(nullable=False, default=0)
    max_daily_api_calls: Mapped[int] = mapped_column(nullable=False, default=1000)
    last_reset_time: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    last_updated_time: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    is_exempt_from_quota: Mapped[bool] = mapped_column(nullable=False, default=False)
    has_received_quota_warning: Mapped[bool] = mapped_column(nullable=False, default=False)
    quota_warning_threshold_percent: Mapped[int] = mapped_column(nullable=False, default=80)

    tier: Mapped[SubscriptionTier] = relationship(lazy="selectin")


class RateLimitTierConfig(TimestampMixin, Base):
    __tablename__ = "rate_limit_tier_configs"

    id: Mapped[int] = mapped_column(primary_key=True)
    subscription_tier_id: Mapped[int] = mapped_column(
        ForeignKey("subscription_tiers.id", ondelete="CASCADE"), nullable=False
    )
    endpoint_pattern: Mapped[str] = mapped_column(String(255), nullable=False)
    http_method: Mapped[str | None] = mapped_column(String(10), nullable=True)
    rate_limit: Mapped[int] = mapped_column(nullable=False)
    time_window_seconds: Mapped[int] = mapped_column(nullable=False, default=60)
    is_critical_endpoint: Mapped[bool] = mapped_column(nullable=False, default=False)
    exempt_system_accounts: Mapped[bool] = mapped_column(nullable=False, default=True)
    match_priority: Mapped[int] = mapped_column(nullable=False, default=0)
    is_adaptive: Mapped[bool] = mapped_column(nullable=False, default=False)
    high_load_reduction_percent: Mapped[int] = mapped_column(nullable=False, default=0)

    __table_args__ = (UniqueConstraint("subscription_tier_id", "endpoint_pattern"),)
