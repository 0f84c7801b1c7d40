"""
tests.test_gamification

Points ledger, levels, streaks, badges, rewards and challenges.

Responsibilities:
- Pin the level-up arithmetic and the signed transaction ledger.
- Exercise the award/redeem/enroll workflows and their conflict cases.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from tasktracker.db.errors import ConflictError, NotFoundError
from tasktracker.db.models import (
    Achievement,
    Badge,
    Challenge,
    PointTransaction,
    Reward,
    TaskItemStatus,
    TaskPriority,
    UserAchievement,
    UserChallenge,
)
from tasktracker.db.repositories.gamification import (
    DAILY_LOGIN,
    AchievementRepo,
    BadgeRepo,
    ChallengeRepo,
    ProgressRepo,
    RewardRepo,
    next_level_threshold,
)
from tests.factories import NOW, add_family, add_member, add_role, add_task, add_user


def test_level_thresholds_grow_by_fifty() -> None:
    assert [next_level_threshold(level) for level in (1, 2, 3, 4)] == [100, 150, 200, 250]


@pytest.mark.asyncio
async def test_add_points_levels_up_and_carries_the_remainder(session) -> None:
    user = await add_user(session, "ada")
    progress = ProgressRepo(session)

    tx = await progress.add_points(user.id, 260, "task_completion", "big task")

    state = await progress.get_progress(user.id)
    # 260 - 100 (to level 2) - 150 (to level 3) = 10
    assert state.level == 3
    assert state.current_points == 10
    assert state.total_points_earned == 260
    assert state.next_level_threshold == 200
    assert tx.points == 260


@pytest.mark.asyncio
async def test_deduct_points_records_a_negative_transaction(session) -> None:
    user = await add_user(session, "ada")
    progress = ProgressRepo(session)
    await progress.add_points(user.id, 80, "task_completion")

    tx = await progress.deduct_points(user.id, 30, "reward_redemption")

    assert tx.points == -30
    assert await progress.get_points(user.id) == 50
    assert await progress.total_points_earned(user.id) == 80
    assert await progress.total_points_spent(user.id) == 30
    assert await progress.has_sufficient_points(user.id, 60) is False


@pytest.mark.asyncio
async def test_deduct_points_rejects_overdraft_and_missing_progress(session) -> None:
    user = await add_user(session, "ada")
    progress = ProgressRepo(session)

    with pytest.raises(NotFoundError):
        await progress.deduct_points(user.id, 1, "spend")

    await progress.add_points(user.id, 10, "bonus")
    with pytest.raises(ConflictError):
        await progress.deduct_points(user.id, 11, "spend")
    assert await progress.get_points(user.id) == 10


@pytest.mark.asyncio
async def test_create_progress_twice_is_a_conflict(session) -> None:
    user = await add_user(session, "ada")
    progress = ProgressRepo(session)
    await progress.create_progress(user.id)

    with pytest.raises(ConflictError):
        await progress.create_progress(user.id)
    assert (await progress.get_or_create_progress(user.id)).level == 1
    assert await progress.delete_progress(user.id) is True
    assert await progress.delete_progress(user.id) is False


@pytest.mark.asyncio
async def test_points_statistics_and_ranks(session) -> None:
    ada = await add_user(session, "ada")
    bob = await add_user(session, "bob")
    progress = ProgressRepo(session)
    await progress.add_points(ada.id, 50, "task_completion")
    await progress.add_points(ada.id, 20, "daily_login")
    await progress.deduct_points(ada.id, 10, "reward_redemption")
    await progress.add_points(bob.id, 90, "task_completion")

    stats = await progress.points_statistics(ada.id)

    assert stats.current_points == 60
    assert stats.total_points_earned == 70
    assert stats.total_points_spent == 10
    assert stats.points_spent_this_month == 10
    assert stats.total_transactions == 3
    assert stats.points_by_transaction_type == {"task_completion": 50, "daily_login": 20}
    assert stats.current_points_rank == 2
    assert stats.total_points_rank == 2
    assert (await progress.points_statistics(9999)).total_transactions == 0

    leaders = await progress.leaderboard_by_points()
    assert [p.user_id for p in leaders] == [bob.id, ada.id]


@pytest.mark.asyncio
async def test_family_leaderboard_only_includes_members(session) -> None:
    ada = await add_user(session, "ada")
    bob = await add_user(session, "bob")
    outsider = await add_user(session, "eve")
    family = await add_family(session, ada)
    role = await add_role(session, "Member")
    await add_member(session, family, ada, role)
    await add_member(session, family, bob, role)
    progress = ProgressRepo(session)
    for user, points in ((ada, 10), (bob, 30), (outsider, 99)):
        await progress.add_points(user.id, points, "bonus")

    board = await progress.family_leaderboard(family.id)
    assert [p.user_id for p in board] == [bob.id, ada.id]


@pytest.mark.asyncio
async def test_activity_streak_follows_daily_logins(session) -> None:
    user = await add_user(session, "ada")
    progress = ProgressRepo(session)
    await progress.create_progress(user.id)

    def login(at: datetime) -> PointTransaction:
        return PointTransaction(
            user_id=user.id, points=5, transaction_type=DAILY_LOGIN, created_at=at
        )

    session.add_all([login(NOW - timedelta(days=1)), login(NOW)])
    await session.flush()

    state = await progress.update_activity_streak(user.id, now=NOW)
    assert state.current_streak == 1
    assert state.longest_streak == 1

    state = await progress.update_activity_streak(user.id, now=NOW)
    assert state.current_streak == 2

    # Three days later with no logins in between the streak resets.
    state = await progress.update_activity_streak(user.id, now=NOW + timedelta(days=3))
    assert state.current_streak == 0
    assert state.longest_streak == 2

    with pytest.raises(NotFoundError):
        await progress.update_activity_streak(9999, now=NOW)


@pytest.mark.asyncio
async def test_completion_counts_and_streak(session) -> None:
    user = await add_user(session, "ada")
    for days_ago in (0, 1, 2, 4):
        await add_task(
            session,
            user,
            f"done {days_ago}",
            status=TaskItemStatus.completed,
            is_completed=True,
            completed_at=NOW - timedelta(days=days_ago),
            priority=TaskPriority.high if days_ago == 0 else TaskPriority.low,
        )
    progress = ProgressRepo(session)

    assert await progress.completed_task_count(user.id) == 4
    assert await progress.completed_task_count_by_priority(user.id, TaskPriority.high) == 1
    assert await progress.task_completion_streak(user.id) == 3
    assert await progress.last_activity_date(user.id) == NOW


@pytest.mark.asyncio
async def test_achievements_available_until_completed(session) -> None:
    user = await add_user(session, "ada")
    achievements = AchievementRepo(session)
    first = await achievements.create(Achievement(name="First task", category="Tasks"))
    await achievements.create(Achievement(name="Secret", category="Tasks", is_hidden=True))
    level = await achievements.create(Achievement(name="Level 5", category="Level"))

    assert {a.name for a in await achievements.list_available(user.id)} == {"First task", "Level 5"}
    assert [a.id for a in await achievements.level_achievements()] == [level.id]

    record = await achievements.create_user_achievement(
        UserAchievement(user_id=user.id, achievement_id=first.id, is_completed=True)
    )
    assert record.completed_at is not None
    with pytest.raises(ConflictError):
        await achievements.create_user_achievement(
            UserAchievement(user_id=user.id, achievement_id=first.id)
        )
    assert [a.name for a in await achievements.list_available(user.id)] == ["Level 5"]
    assert await achievements.count_user_achievements(user.id) == 1

    with pytest.raises(NotFoundError):
        await achievements.update_user_achievement(
            UserAchievement(id=9999, user_id=user.id, achievement_id=level.id, is_completed=True)
        )
    assert await achievements.count_user_achievements(user.id) == 1


@pytest.mark.asyncio
async def test_badge_award_revoke_and_statistics(session) -> None:
    user = await add_user(session, "ada")
    badges = BadgeRepo(session)
    gold = await badges.create(
        Badge(name="Gold Finisher", category="Tasks", tier="gold", rarity="Rare", point_value=50)
    )
    await badges.create(Badge(name="Early Bird", category="Habits", series="Mornings"))

    awarded = await badges.award(user.id, gold.id, note="well done")
    assert awarded.is_displayed is True
    with pytest.raises(ConflictError):
        await badges.award(user.id, gold.id)
    with pytest.raises(NotFoundError):
        await badges.award(user.id, 9999)

    assert [b.name for b in await badges.list_eligible(user.id)] == ["Early Bird"]
    assert [b.name for b in await badges.list_by_series("Finisher")] == ["Gold Finisher"]
    assert [b.name for b in await badges.list_by_series("Mornings")] == ["Early Bird"]

    stats = await badges.statistics(user.id)
    assert stats.total_earned == 1
    assert stats.total_available == 2
    assert stats.points_from_badges == 50
    assert stats.by_tier == {"gold": 1}
    assert stats.by_rarity == {"Rare": 1}
    assert stats.most_recent is awarded

    assert await badges.set_featured(user.id, awarded.id, True) is True
    assert await badges.set_featured(9999, awarded.id, True) is False
    assert await badges.revoke(user.id, gold.id) is True
    assert await badges.revoke(user.id, gold.id) is False


@pytest.mark.asyncio
async def test_reward_availability_and_stock(session) -> None:
    user = await add_user(session, "ada")
    await ProgressRepo(session).add_points(user.id, 60, "bonus")
    rewards = RewardRepo(session)
    cheap = await rewards.create(Reward(name="Sticker", point_cost=20, quantity=1))
    await rewards.create(Reward(name="Trip", point_cost=500))
    await rewards.create(Reward(name="Gated", point_cost=10, minimum_level=3))
    await rewards.create(
        Reward(name="Expired", point_cost=10, expiration_date=NOW - timedelta(days=1))
    )

    assert [r.name for r in await rewards.list_available(user.id, now=NOW)] == ["Sticker"]

    redeemed = await rewards.redeem(user.id, cheap.id)
    assert cheap.quantity == 0
    assert await rewards.has_user_reward(user.id, cheap.id) is True
    with pytest.raises(ConflictError):
        await rewards.redeem(user.id, cheap.id)
    with pytest.raises(NotFoundError):
        await rewards.redeem(user.id, 9999)

    assert await rewards.mark_used(redeemed.id) is True
    assert redeemed.used_at is not None
    assert await rewards.count_user_rewards(user.id) == 1


@pytest.mark.asyncio
async def test_challenge_enrollment_and_completion(session) -> None:
    user = await add_user(session, "ada")
    challenges = ChallengeRepo(session)
    sprint = await challenges.create(
        Challenge(
            name="Sprint",
            start_date=NOW - timedelta(days=1),
            end_date=NOW + timedelta(days=6),
            target_count=2,
            point_reward=40,
        )
    )
    await challenges.create(
        Challenge(name="Finished", start_date=NOW - timedelta(days=10), end_date=NOW - timedelta(days=3))
    )

    assert [c.name for c in await challenges.list_active(now=NOW)] == ["Sprint"]

    await challenges.enroll(user.id, sprint.id)
    with pytest.raises(ConflictError):
        await challenges.enroll(user.id, sprint.id)
    with pytest.raises(NotFoundError):
        await challenges.enroll(user.id, 9999)
    assert await challenges.list_available(user.id, now=NOW) == []

    enrollment = await challenges.record_progress(user.id, sprint.id)
    assert enrollment.is_completed is False
    enrollment = await challenges.record_progress(user.id, sprint.id)
    assert enrollment.is_completed is True
    assert enrollment.points_earned == 40

    with pytest.raises(NotFoundError):
        await challenges.update_user_challenge(
            UserChallenge(id=9999, user_id=user.id, challenge_id=sprint.id)
        )
    assert await challenges.completed_ids(user.id) == [sprint.id]
    assert await challenges.active_count(user.id) == 0

    assert await challenges.leave(user.id, sprint.id) is True
    assert await challenges.record_progress(user.id, sprint.id) is None


# --- Module Notes -----------------------------------------------------------
# Transactions are stamped with the real clock, so month-window assertions
# only rely on "just now" rows; streak tests insert rows with pinned times.
