"""
tests.test_subscriptions

Tier catalogue, quota accounting and rate-limit rules.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from tasktracker.db.base import utcnow
from tasktracker.db.models import RateLimitTierConfig, SubscriptionTier, UserApiQuota
from tasktracker.db.repositories.subscriptions import SubscriptionRepo
from tests.factories import add_user


async def _tiers(repo: SubscriptionRepo) -> tuple[SubscriptionTier, SubscriptionTier]:
    free = await repo.create_tier(SubscriptionTier(name="Free", daily_api_quota=100, priority=1))
    system = await repo.create_tier(
        SubscriptionTier(name="System", daily_api_quota=100_000, is_system_tier=True, priority=0)
    )
    return free, system


@pytest.mark.asyncio
async def test_default_tiers_are_found_by_name(session) -> None:
    repo = SubscriptionRepo(session)
    free, system = await _tiers(repo)

    assert await repo.default_free_tier() is free
    assert await repo.system_tier() is system
    assert await repo.get_tier_by_name("System") is None
    assert [t.name for t in await repo.list_tiers()] == ["System", "Free"]


@pytest.mark.asyncio
async def test_quota_usage_and_daily_reset(session) -> None:
    repo = SubscriptionRepo(session)
    free, _ = await _tiers(repo)
    user = await add_user(session, "alice")

    assert await repo.increment_usage(user.id) is False
    assert await repo.usage_statistics(user.id) is None

    quota = await repo.upsert_quota(
        UserApiQuota(user_id=user.id, subscription_tier_id=free.id, max_daily_api_calls=100)
    )
    assert await repo.increment_usage(user.id, by=30) is True
    assert await repo.increment_usage(user.id) is True
    usage = await repo.usage_statistics(user.id)
    assert (usage.calls_today, usage.remaining) == (31, 69)

    again = await repo.upsert_quota(
        UserApiQuota(user_id=user.id, subscription_tier_id=free.id, max_daily_api_calls=200)
    )
    assert again is quota
    assert quota.max_daily_api_calls == 200
    assert (await repo.usage_statistics(user.id)).calls_today == 31

    quota.has_received_quota_warning = True
    assert await repo.reset_daily_usage(user.id) is True
    assert quota.api_calls_used_today == 0
    assert quota.has_received_quota_warning is False


@pytest.mark.asyncio
async def test_change_tier_creates_or_moves_the_quota(session) -> None:
    repo = SubscriptionRepo(session)
    free, system = await _tiers(repo)
    service = await add_user(session, "scheduler")

    assert await repo.change_tier(service.id, 9999) is False
    assert await repo.change_tier(service.id, free.id) is True
    assert await repo.is_trusted_system_account(service.id) is False

    assert await repo.change_tier(service.id, system.id) is True
    quota = await repo.get_quota(service.id)
    assert quota.max_daily_api_calls == 100_000
    assert await repo.is_trusted_system_account(service.id) is True
    assert await repo.is_trusted_system_account(9999) is False
    assert await repo.list_quotas_for_tier(free.id) == []


@pytest.mark.asyncio
async def test_usage_rollups_and_stale_cleanup(session) -> None:
    repo = SubscriptionRepo(session)
    free, system = await _tiers(repo)
    alice = await add_user(session, "alice")
    bob = await add_user(session, "bob")
    idle = await add_user(session, "idle")
    for user, tier in [(alice, free), (bob, free), (idle, system)]:
        await repo.change_tier(user.id, tier.id)
    await repo.increment_usage(alice.id, by=5)
    await repo.increment_usage(bob.id, by=12)

    assert [q.user_id for q in await repo.top_quotas(limit=2)] == [bob.id, alice.id]

    now = utcnow()
    stats = await repo.tier_statistics(now - timedelta(hours=1), now + timedelta(hours=1))
    assert [(s.tier_name, s.user_count, s.total_calls) for s in stats] == [
        ("Free", 2, 17),
        ("System", 1, 0),
    ]

    assert await repo.cleanup_stale_quotas(now=now + timedelta(days=31)) == 1
    assert await repo.get_quota(idle.id) is None


@pytest.mark.asyncio
async def test_rate_limit_rules_upsert_by_pattern(session) -> None:
    repo = SubscriptionRepo(session)
    free, _ = await _tiers(repo)

    broad = await repo.upsert_rate_limit(
        RateLimitTierConfig(subscription_tier_id=free.id, endpoint_pattern="/api/*", rate_limit=60)
    )
    await repo.upsert_rate_limit(
        RateLimitTierConfig(
            subscription_tier_id=free.id,
            endpoint_pattern="/api/auth/*",
            rate_limit=5,
            match_priority=10,
        )
    )
    updated = await repo.upsert_rate_limit(
        RateLimitTierConfig(
            subscription_tier_id=free.id, endpoint_pattern="/api/*", rate_limit=120
        )
    )

    assert updated is broad
    assert broad.rate_limit == 120
    assert broad.updated_at is not None
    rules = await repo.list_rate_limits_for_tier(free.id)
    assert [r.endpoint_pattern for r in rules] == ["/api/auth/*", "/api/*"]


# --- Module Notes -----------------------------------------------------------
# Quota timestamps come from the real clock, so rollup windows bracket utcnow().
