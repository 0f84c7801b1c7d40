"""
tasktracker.db.repositories.subscriptions

Subscription tiers, per-user API quotas and rate-limit rules.

Responsibilities:
- Tier catalogue lookups, including the default free and system tiers.
- Quota upsert, usage counting, daily reset and tier changes.
- Per-tier rate-limit rules ordered by match priority.
- Usage rollups and stale-quota cleanup.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select

from tasktracker.db.base import utcnow
from tasktracker.db.models import RateLimitTierConfig, SubscriptionTier, UserApiQuota
from tasktracker.db.repositories.base import BaseRepo

FREE_TIER = "Free"
SYSTEM_TIER = "System"
# Unset fields on an incoming rule keep the stored value.
_RULE_FIELDS = (
    "rate_limit",
    "time_window_seconds",
    "is_critical_endpoint",
    "exempt_system_accounts",
    "match_priority",
    "is_adaptive",
    "high_load_reduction_percent",
)


@dataclass(frozen=True)
class QuotaUsage:
    calls_today: int
    daily_limit: int
    last_reset: datetime
    last_call: datetime

    @property
    def remaining(self) -> int:
        return max(0, self.daily_limit - self.calls_today)


@dataclass(frozen=True)
class TierUsage:
    tier_name: str
    user_count: int
    total_calls: int


class SubscriptionRepo(BaseRepo[SubscriptionTier]):
    model = SubscriptionTier

    # --- tiers --------------------------------------------------------------------

    async def get_tier(self, tier_id: int) -> SubscriptionTier | None:
        return await self.get(tier_id)

    async def get_tier_by_name(self, name: str, is_system: bool = False) -> SubscriptionTier | None:
        return await self.find_one(
            SubscriptionTier.name == name, SubscriptionTier.is_system_tier == is_system
        )

    async def list_tiers(self) -> list[SubscriptionTier]:
        return await self.find(order_by=(SubscriptionTier.priority, SubscriptionTier.name))

    async def default_free_tier(self) -> SubscriptionTier | None:
        return await self.get_tier_by_name(FREE_TIER)

    async def system_tier(self) -> SubscriptionTier | None:
        return await self.get_tier_by_name(SYSTEM_TIER, is_system=True)

    async def create_tier(self, tier: SubscriptionTier) -> SubscriptionTier:
        return await self.create(tier)

    async def update_tier(self, tier: SubscriptionTier) -> SubscriptionTier:
        return await self.update(tier)

    # --- quotas -------------------------------------------------------------------

    async def get_quota(self, user_id: int) -> UserApiQuota | None:
        return await self._first(select(UserApiQuota).where(UserApiQuota.user_id == user_id))

    async def upsert_quota(self, quota: UserApiQuota) -> UserApiQuota:
        existing = await self.get_quota(quota.user_id)
        now = utcnow()
        if existing is None:
            quota.last_updated_time = now
            quota.last_reset_time = quota.last_reset_time or now
            self._session.add(quota)
            await self._flush(operation="create_quota")
            return quota
        existing.subscription_tier_id = quota.subscription_tier_id
        if quota.max_daily_api_calls is not None:
            existing.max_daily_api_calls = quota.max_daily_api_calls
        if quota.api_calls_used_today is not None:
            existing.api_calls_used_today = quota.api_calls_used_today
        existing.last_reset_time = quota.last_reset_time or existing.last_reset_time
        existing.last_updated_time = now
        await self._flush(operation="update_quota")
        return existing

    async def increment_usage(self, user_id: int, by: int = 1) -> bool:
        quota = await self.get_quota(user_id)
        if quota is None:
            self._log.warning("quota_missing", user_id=user_id)
            return False
        quota.api_calls_used_today += by
        quota.last_updated_time = utcnow()
        await self._flush(operation="increment_usage")
        return True

    async def reset_daily_usage(self, user_id: int) -> bool:
        quota = await self.get_quota(user_id)
        if quota is None:
            return False
        now = utcnow()
        quota.api_calls_used_today = 0
        quota.has_received_quota_warning = False
        quota.last_reset_time = now
        quota.last_updated_time = now
        await self._flush(operation="reset_daily_usage")
        return True

    async def usage_statistics(self, user_id: int) -> QuotaUsage | None:
        quota = await self.get_quota(user_id)
        if quota is None:
            return None
        return QuotaUsage(
            calls_today=quota.api_calls_used_today,
            daily_limit=quota.max_daily_api_calls,
            last_reset=quota.last_reset_time,
            last_call=quota.last_updated_time,
        )

    async def change_tier(self, user_id: int, tier_id: int) -> bool:
        tier = await self.get_tier(tier_id)
        if tier is None:
            self._log.warning("tier_missing", tier_id=tier_id)
            return False
        now = utcnow()
        quota = await self.get_quota(user_id)
        if quota is None:
            quota = UserApiQuota(
                user_id=user_id,
                subscription_tier_id=tier_id,
                api_calls_used_today=0,
                last_reset_time=now,
            )
            self._session.add(quota)
        quota.subscription_tier_id = tier_id
        quota.tier = tier
        quota.max_daily_api_calls = tier.daily_api_quota
        quota.last_updated_time = now
        await self._flush(operation="change_tier")
        self._log.info("subscription_tier_changed", user_id=user_id, tier=tier.name)
        return True

    async def list_quotas_for_tier(self, tier_id: int, limit: int = 100) -> list[UserApiQuota]:
        return await self._all(
            select(UserApiQuota)
            .where(UserApiQuota.subscription_tier_id == tier_id)
            .order_by(UserApiQuota.last_updated_time.desc())
            .limit(limit)
        )

    async def is_trusted_system_account(self, user_id: int) -> bool:
        stmt = (
            select(SubscriptionTier.is_system_tier)
            .join(UserApiQuota, UserApiQuota.subscription_tier_id == SubscriptionTier.id)
            .where(UserApiQuota.user_id == user_id)
        )
        return bool(await self._scalar(stmt, operation="is_trusted_system_account"))

    async def top_quotas(
        self,
        limit: int = 10,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[UserApiQuota]:
        stmt = select(UserApiQuota)
        if since is not None:
            stmt = stmt.where(UserApiQuota.last_updated_time >= since)
        if until is not None:
            stmt = stmt.where(UserApiQuota.last_updated_time <= until)
        stmt = stmt.order_by(UserApiQuota.api_calls_used_today.desc(), UserApiQuota.user_id)
        return await self._all(stmt.limit(limit), operation="top_quotas")

    async def tier_statistics(self, since: datetime, until: datetime) -> list[TierUsage]:
        total_calls = func.sum(UserApiQuota.api_calls_used_today).label("total_calls")
        stmt = (
            select(SubscriptionTier.name, func.count(UserApiQuota.id), total_calls)
            .join(SubscriptionTier, SubscriptionTier.id == UserApiQuota.subscription_tier_id)
            .where(
                UserApiQuota.last_updated_time >= since,
                UserApiQuota.last_updated_time <= until,
            )
            .group_by(SubscriptionTier.name)
            .order_by(total_calls.desc())
        )
        return [
            TierUsage(name, int(users), int(calls or 0))
            for name, users, calls in await self._rows(stmt, operation="tier_statistics")
        ]

    async def cleanup_stale_quotas(self, days: int = 30, *, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - timedelta(days=days)
        removed = await self._write(
            delete(UserApiQuota)
            .where(UserApiQuota.last_updated_time < cutoff, UserApiQuota.api_calls_used_today == 0)
            .execution_options(synchronize_session="evaluate"),
            operation="cleanup_stale_quotas",
        )
        self._log.info("stale_quotas_removed", count=removed)
        return removed

    # --- rate limits --------------------------------------------------------------

    async def list_rate_limits_for_tier(self, tier_id: int) -> list[RateLimitTierConfig]:
        return await self._all(
            select(RateLimitTierConfig)
            .where(RateLimitTierConfig.subscription_tier_id == tier_id)
            .order_by(RateLimitTierConfig.match_priority.desc(), RateLimitTierConfig.id)
        )

    async def get_rate_limit(self, tier_id: int, pattern: str) -> RateLimitTierConfig | None:
        return await self._first(
            select(RateLimitTierConfig).where(
                RateLimitTierConfig.subscription_tier_id == tier_id,
                RateLimitTierConfig.endpoint_pattern == pattern,
            )
        )

    async def list_rate_limits(self) -> list[RateLimitTierConfig]:
        return await self._all(
            select(RateLimitTierConfig).order_by(
                RateLimitTierConfig.subscription_tier_id,
                RateLimitTierConfig.match_priority.desc(),
            )
        )

    async def upsert_rate_limit(self, config: RateLimitTierConfig) -> RateLimitTierConfig:
        existing = await self.get_rate_limit(config.subscription_tier_id, config.endpoint_pattern)
        now = utcnow()
        if existing is None:
            config.created_at = now
            config.updated_at = None
            self._session.add(config)
            await self._flush(operation="create_rate_limit")
            return config
        existing.http_method = config.http_method
        for field in _RULE_FIELDS:
            value = getattr(config, field)
            if value is not None:
                setattr(existing, field, value)
        existing.updated_at = now
        await self._flush(operation="update_rate_limit")
        return existing
