"""
tasktracker.db.repositories.gamification

Repositories for the gamification layer.

Responsibilities:
- Points ledger: earning, spending, level-ups, leaderboards and statistics.
- Activity streaks (daily logins) and task-completion streaks.
- Achievements, badges, rewards and challenges with their per-user records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from sqlalchemy import distinct, func, select

from tasktracker.db.base import utcnow
from tasktracker.db.errors import ConflictError, NotFoundError
from tasktracker.db.models import (
    Achievement,
    Badge,
    Category,
    Challenge,
    FamilyMember,
    FocusSession,
    PointTransaction,
    PriorityMultiplier,
    Reward,
    TaskItem,
    TaskPriority,
    UserAchievement,
    UserBadge,
    UserChallenge,
    UserProgress,
    UserReward,
)
from tasktracker.db.repositories.base import BaseRepo

DAILY_LOGIN = "daily_login"
LEVEL_ACHIEVEMENT_CATEGORY = "Level"


def next_level_threshold(level: int) -> int:
    # Level 1: 100, level 2: 150, level 3: 200, ...
    return 100 + (level - 1) * 50


@dataclass
class PointsStatistics:
    current_points: int = 0
    total_points_earned: int = 0
    total_points_spent: int = 0
    points_earned_this_month: int = 0
    points_spent_this_month: int = 0
    current_level: int = 1
    current_streak: int = 0
    longest_streak: int = 0
    total_transactions: int = 0
    current_points_rank: int = 0
    total_points_rank: int = 0
    points_by_transaction_type: dict[str, int] = field(default_factory=dict)
    first_transaction_at: datetime | None = None
    last_transaction_at: datetime | None = None


@dataclass
class BadgeStatistics:
    total_earned: int = 0
    total_available: int = 0
    displayed: int = 0
    featured: int = 0
    earned_this_month: int = 0
    points_from_badges: int = 0
    most_recent: UserBadge | None = None
    first_earned_at: datetime | None = None
    last_earned_at: datetime | None = None
    by_rarity: dict[str, int] = field(default_factory=dict)
    by_category: dict[str, int] = field(default_factory=dict)
    by_tier: dict[str, int] = field(default_factory=dict)


class ProgressRepo(BaseRepo[UserProgress]):
    model = UserProgress

    async def get_progress(self, user_id: int) -> UserProgress | None:
        return await self.find_one(UserProgress.user_id == user_id)

    async def create_progress(self, user_id: int) -> UserProgress:
        if await self.exists(UserProgress.user_id == user_id):
            raise ConflictError("user progress already exists", details={"user_id": user_id})
        return await self.create(
            UserProgress(
                user_id=user_id,
                level=1,
                current_points=0,
                total_points_earned=0,
                next_level_threshold=next_level_threshold(1),
                current_streak=0,
                longest_streak=0,
            )
        )

    async def update_progress(self, progress: UserProgress) -> UserProgress:
        return await self.update(progress)

    async def get_or_create_progress(self, user_id: int) -> UserProgress:
        progress = await self.get_progress(user_id)
        if progress is None:
            progress = await self.create_progress(user_id)
        return progress

    async def delete_progress(self, user_id: int) -> bool:
        progress = await self.get_progress(user_id)
        if progress is None:
            return False
        await self.remove(progress)
        return True

    # --- points ledger ---------------------------------------------------------

    async def add_points(
        self,
        user_id: int,
        points: int,
        transaction_type: str,
        description: str = "",
        *,
        task_id: int | None = None,
        template_id: int | None = None,
    ) -> PointTransaction:
        progress = await self.get_or_create_progress(user_id)
        progress.current_points += points
        progress.total_points_earned += points
        while progress.current_points >= progress.next_level_threshold:
            progress.current_points -= progress.next_level_threshold
            progress.level += 1
            progress.next_level_threshold = next_level_threshold(progress.level)
            self._log.info("level_up", user_id=user_id, level=progress.level)
        await self.update(progress)
        return await self._record(user_id, points, transaction_type, description, task_id, template_id)

    async def deduct_points(
        self,
        user_id: int,
        points: int,
        transaction_type: str,
        description: str = "",
        *,
        task_id: int | None = None,
        template_id: int | None = None,
    ) -> PointTransaction:
        progress = await self.get_progress(user_id)
        if progress is None:
            raise NotFoundError("user progress not found", details={"user_id": user_id})
        if progress.current_points < points:
            raise ConflictError(
                "insufficient points",
                details={"user_id": user_id, "required": points},
            )
        progress.current_points -= points
        await self.update(progress)
        return await self._record(
            user_id, -points, transaction_type, description, task_id, template_id
        )

    async def _record(
        self,
        user_id: int,
        points: int,
        transaction_type: str,
        description: str,
        task_id: int | None,
        template_id: int | None,
    ) -> PointTransaction:
        tx = PointTransaction(
            user_id=user_id,
            points=points,
            transaction_type=transaction_type,
            description=description,
            task_id=task_id,
            template_id=template_id,
            created_at=utcnow(),
        )
        self._session.add(tx)
        await self._flush(operation="record_transaction")
        return tx

    async def get_points(self, user_id: int) -> int:
        progress = await self.get_progress(user_id)
        return progress.current_points if progress else 0

    async def has_sufficient_points(self, user_id: int, required: int) -> bool:
        return await self.get_points(user_id) >= required

    async def get_transaction(self, transaction_id: int) -> PointTransaction | None:
        return await self._first(
            select(PointTransaction).where(PointTransaction.id == transaction_id)
        )

    async def transaction_history(self, user_id: int, limit: int = 50) -> list[PointTransaction]:
        stmt = (
            select(PointTransaction)
            .where(PointTransaction.user_id == user_id)
            .order_by(PointTransaction.created_at.desc(), PointTransaction.id.desc())
            .limit(limit)
        )
        return await self._all(stmt, operation="transaction_history")

    async def transactions_in_range(
        self, user_id: int, start: datetime, end: datetime
    ) -> list[PointTransaction]:
        stmt = (
            select(PointTransaction)
            .where(
                PointTransaction.user_id == user_id,
                PointTransaction.created_at >= start,
                PointTransaction.created_at <= end,
            )
            .order_by(PointTransaction.created_at.desc())
        )
        return await self._all(stmt, operation="transactions_in_range")

    async def transactions_by_type(
        self, user_id: int, transaction_type: str
    ) -> list[PointTransaction]:
        stmt = (
            select(PointTransaction)
            .where(
                PointTransaction.user_id == user_id,
                PointTransaction.transaction_type == transaction_type,
            )
            .order_by(PointTransaction.created_at.desc())
        )
        return await self._all(stmt, operation="transactions_by_type")

    async def total_points_earned(self, user_id: int) -> int:
        stmt = select(func.coalesce(func.sum(PointTransaction.points), 0)).where(
            PointTransaction.user_id == user_id, PointTransaction.points > 0
        )
        return int(await self._scalar(stmt, operation="total_points_earned"))

    async def total_points_spent(self, user_id: int) -> int:
        stmt = select(func.coalesce(func.sum(-PointTransaction.points), 0)).where(
            PointTransaction.user_id == user_id, PointTransaction.points < 0
        )
        return int(await self._scalar(stmt, operation="total_points_spent"))

    async def points_earned_this_month(self, user_id: int, *, now: datetime | None = None) -> int:
        since = (now or utcnow()) - timedelta(days=30)
        stmt = select(func.coalesce(func.sum(PointTransaction.points), 0)).where(
            PointTransaction.user_id == user_id,
            PointTransaction.points > 0,
            PointTransaction.created_at >= since,
        )
        return int(await self._scalar(stmt, operation="points_earned_this_month"))

    async def points_statistics(self, user_id: int, *, now: datetime | None = None) -> PointsStatistics:
        progress = await self.get_progress(user_id)
        if progress is None:
            return PointsStatistics()
        now = now or utcnow()
        month_ago = now - timedelta(days=30)
        transactions = await self._all(
            select(PointTransaction)
            .where(PointTransaction.user_id == user_id)
            .order_by(PointTransaction.created_at, PointTransaction.id),
            operation="points_statistics",
        )
        by_type: dict[str, int] = {}
        for tx in transactions:
            if tx.points > 0:
                by_type[tx.transaction_type] = by_type.get(tx.transaction_type, 0) + tx.points

        current_rank = await self.count(UserProgress.current_points > progress.current_points) + 1
        total_rank = (
            await self.count(UserProgress.total_points_earned > progress.total_points_earned) + 1
        )
        return PointsStatistics(
            current_points=progress.current_points,
            total_points_earned=progress.total_points_earned,
            total_points_spent=sum(-tx.points for tx in transactions if tx.points < 0),
            points_earned_this_month=sum(
                tx.points for tx in transactions if tx.points > 0 and tx.created_at >= month_ago
            ),
            points_spent_this_month=sum(
                -tx.points for tx in transactions if tx.points < 0 and tx.created_at >= month_ago
            ),
            current_level=progress.level,
            current_streak=progress.current_streak,
            longest_streak=progress.longest_streak,
            total_transactions=len(transactions),
            current_points_rank=current_rank,
            total_points_rank=total_rank,
            points_by_transaction_type=by_type,
            first_transaction_at=transactions[0].created_at if transactions else None,
            last_transaction_at=transactions[-1].created_at if transactions else None,
        )

    # --- leaderboards ------------------------------------------------------------

    async def leaderboard_by_points(self, limit: int = 10) -> list[UserProgress]:
        return await self.find(
            order_by=(UserProgress.current_points.desc(), UserProgress.user_id), limit=limit
        )

    async def leaderboard_by_total_points(self, limit: int = 10) -> list[UserProgress]:
        return await self.find(
            order_by=(UserProgress.total_points_earned.desc(), UserProgress.user_id), limit=limit
        )

    async def leaderboard_by_level(self, limit: int = 10) -> list[UserProgress]:
        return await self.find(
            order_by=(
                UserProgress.level.desc(),
                UserProgress.current_points.desc(),
                UserProgress.user_id,
            ),
            limit=limit,
        )

    async def leaderboard_by_streak(self, limit: int = 10) -> list[UserProgress]:
        return await self.find(
            order_by=(UserProgress.current_streak.desc(), UserProgress.user_id), limit=limit
        )

    async def family_leaderboard(self, family_id: int, limit: int = 10) -> list[UserProgress]:
        members = select(FamilyMember.user_id).where(FamilyMember.family_id == family_id)
        return await self.find(
            UserProgress.user_id.in_(members),
            order_by=(UserProgress.total_points_earned.desc(), UserProgress.user_id),
            limit=limit,
        )

    # --- streaks and activity ----------------------------------------------------

    async def has_daily_login(self, user_id: int, day: date) -> bool:
        start = datetime(day.year, day.month, day.day)
        stmt = (
            select(PointTransaction.id)
            .where(
                PointTransaction.user_id == user_id,
                PointTransaction.transaction_type == DAILY_LOGIN,
                PointTransaction.created_at >= start,
                PointTransaction.created_at < start + timedelta(days=1),
            )
            .limit(1)
        )
        return (await self._first(stmt, operation="has_daily_login")) is not None

    async def update_activity_streak(
        self, user_id: int, *, now: datetime | None = None
    ) -> UserProgress:
        progress = await self.get_progress(user_id)
        if progress is None:
            raise NotFoundError("user progress not found", details={"user_id": user_id})

        now = now or utcnow()
        today = now.date()
        yesterday = today - timedelta(days=1)
        active_today = await self.has_daily_login(user_id, today)
        active_yesterday = await self.has_daily_login(user_id, yesterday)

        if active_today:
            if active_yesterday or progress.current_streak == 0:
                progress.current_streak += 1
                progress.last_activity_date = now
                progress.longest_streak = max(progress.longest_streak, progress.current_streak)
        elif (
            not active_yesterday
            and progress.last_activity_date is not None
            and progress.last_activity_date.date() < yesterday
        ):
            progress.current_streak = 0
        return await self.update(progress)

    async def completed_task_count(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(TaskItem).where(
            TaskItem.user_id == user_id, TaskItem.is_completed.is_(True)
        )
        return int(await self._scalar(stmt, operation="completed_task_count") or 0)

    async def completed_task_count_by_category(self, user_id: int, category_name: str) -> int:
        stmt = (
            select(func.count())
            .select_from(TaskItem)
            .join(Category, Category.id == TaskItem.category_id)
            .where(
                TaskItem.user_id == user_id,
                TaskItem.is_completed.is_(True),
                Category.name == category_name,
            )
        )
        return int(await self._scalar(stmt, operation="completed_by_category") or 0)

    async def completed_task_count_by_priority(self, user_id: int, priority: TaskPriority) -> int:
        stmt = select(func.count()).select_from(TaskItem).where(
            TaskItem.user_id == user_id,
            TaskItem.is_completed.is_(True),
            TaskItem.priority == priority,
        )
        return int(await self._scalar(stmt, operation="completed_by_priority") or 0)

    async def task_completion_streak(self, user_id: int) -> int:
        """Consecutive days with at least one completion, counted back from the latest one."""

        stmt = (
            select(TaskItem.completed_at)
            .where(TaskItem.user_id == user_id, TaskItem.completed_at.is_not(None))
            .order_by(TaskItem.completed_at.desc())
        )
        days = sorted({ts.date() for ts in await self._all(stmt)}, reverse=True)
        streak = 0
        previous: date | None = None
        for day in days:
            if previous is not None and previous - timedelta(days=1) != day:
                break
            streak += 1
            previous = day
        return streak

    async def last_activity_date(self, user_id: int) -> datetime | None:
        last_completion = await self._scalar(
            select(func.max(TaskItem.completed_at)).where(TaskItem.user_id == user_id)
        )
        last_focus = await self._scalar(
            select(func.max(FocusSession.start_time)).where(FocusSession.user_id == user_id)
        )
        candidates = [d for d in (last_completion, last_focus) if d is not None]
        return max(candidates) if candidates else None

    async def priority_multipliers(self) -> list[PriorityMultiplier]:
        return await self._all(select(PriorityMultiplier).order_by(PriorityMultiplier.id))


class AchievementRepo(BaseRepo[Achievement]):
    model = Achievement

    async def list_all(self) -> list[Achievement]:
        return await self.find(order_by=(Achievement.category, Achievement.name))

    async def list_available(self, user_id: int) -> list[Achievement]:
        earned = select(UserAchievement.achievement_id).where(
            UserAchievement.user_id == user_id, UserAchievement.is_completed.is_(True)
        )
        return await self.find(
            Achievement.id.not_in(earned),
            Achievement.is_hidden.is_(False),
            order_by=(Achievement.difficulty, Achievement.name),
        )

    async def list_by_category(self, category: str) -> list[Achievement]:
        return await self.find(Achievement.category == category, order_by=(Achievement.name,))

    async def level_achievements(self) -> list[Achievement]:
        return await self.list_by_category(LEVEL_ACHIEVEMENT_CATEGORY)

    async def get_user_achievement(self, user_id: int, achievement_id: int) -> UserAchievement | None:
        return await self._first(
            select(UserAchievement).where(
                UserAchievement.user_id == user_id,
                UserAchievement.achievement_id == achievement_id,
            )
        )

    async def list_user_achievements(self, user_id: int) -> list[UserAchievement]:
        stmt = (
            select(UserAchievement)
            .where(UserAchievement.user_id == user_id)
            .order_by(UserAchievement.completed_at.desc(), UserAchievement.id.desc())
        )
        return await self._all(stmt, operation="list_user_achievements")

    async def recent_user_achievements(self, user_id: int, count: int = 5) -> list[UserAchievement]:
        stmt = (
            select(UserAchievement)
            .where(UserAchievement.user_id == user_id, UserAchievement.is_completed.is_(True))
            .order_by(UserAchievement.completed_at.desc())
            .limit(count)
        )
        return await self._all(stmt, operation="recent_user_achievements")

    async def has_user_achievement(self, user_id: int, achievement_id: int) -> bool:
        return await self.get_user_achievement(user_id, achievement_id) is not None

    async def create_user_achievement(self, record: UserAchievement) -> UserAchievement:
        if await self.has_user_achievement(record.user_id, record.achievement_id):
            raise ConflictError(
                "achievement already recorded for user",
                details={"user_id": record.user_id, "achievement_id": record.achievement_id},
            )
        if record.is_completed and record.completed_at is None:
            record.completed_at = utcnow()
        self._session.add(record)
        await self._flush(operation="create_user_achievement")
        return record

    async def update_user_achievement(self, record: UserAchievement) -> UserAchievement:
        if record.is_completed and record.completed_at is None:
            record.completed_at = utcnow()
        return await self._save(record)

    async def count_user_achievements(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(UserAchievement).where(
            UserAchievement.user_id == user_id, UserAchievement.is_completed.is_(True)
        )
        return int(await self._scalar(stmt) or 0)


class BadgeRepo(BaseRepo[Badge]):
    model = Badge

    _display_order = (Badge.display_order, Badge.name)

    async def list_all(self) -> list[Badge]:
        return await self.find(Badge.is_active.is_(True), order_by=self._display_order)

    async def list_by_category(self, category: str) -> list[Badge]:
        return await self.find(
            Badge.is_active.is_(True), Badge.category == category, order_by=self._display_order
        )

    async def list_by_tier(self, tier: str) -> list[Badge]:
        return await self.find(
            Badge.is_active.is_(True), Badge.tier == tier, order_by=self._display_order
        )

    async def list_by_series(self, series: str) -> list[Badge]:
        # Badges without an explicit series are grouped by name or category.
        return await self.find(
            Badge.is_active.is_(True),
            (Badge.series == series)
            | Badge.name.contains(series, autoescape=True)
            | Badge.category.contains(series, autoescape=True),
            order_by=self._display_order,
        )

    async def list_user_badges(self, user_id: int) -> list[UserBadge]:
        stmt = (
            select(UserBadge)
            .where(UserBadge.user_id == user_id)
            .order_by(UserBadge.awarded_at.desc(), UserBadge.id.desc())
        )
        return await self._all(stmt, operation="list_user_badges")

    async def get_user_badge(self, user_id: int, badge_id: int) -> UserBadge | None:
        return await self._first(
            select(UserBadge).where(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id)
        )

    async def has_earned(self, user_id: int, badge_id: int) -> bool:
        return await self.get_user_badge(user_id, badge_id) is not None

    async def award(self, user_id: int, badge_id: int, note: str | None = None) -> UserBadge:
        if await self.has_earned(user_id, badge_id):
            raise ConflictError(
                "badge already awarded", details={"user_id": user_id, "badge_id": badge_id}
            )
        badge = await self.get(badge_id)
        if badge is None:
            raise NotFoundError("badge not found", details={"badge_id": badge_id})
        user_badge = UserBadge(
            user_id=user_id,
            badge_id=badge_id,
            awarded_at=utcnow(),
            award_note=note,
            is_displayed=True,
            is_featured=False,
        )
        user_badge.badge = badge
        self._session.add(user_badge)
        await self._flush(operation="award")
        self._log.info("badge_awarded", user_id=user_id, badge_id=badge_id)
        return user_badge

    async def revoke(self, user_id: int, badge_id: int) -> bool:
        user_badge = await self.get_user_badge(user_id, badge_id)
        if user_badge is None:
            return False
        await self.remove(user_badge)
        return True

    async def list_eligible(self, user_id: int) -> list[Badge]:
        earned = select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
        return await self.find(
            Badge.is_active.is_(True), Badge.id.not_in(earned), order_by=self._display_order
        )

    async def list_recently_earned(
        self, user_id: int, days: int = 7, *, now: datetime | None = None
    ) -> list[UserBadge]:
        since = (now or utcnow()) - timedelta(days=days)
        stmt = (
            select(UserBadge)
            .where(UserBadge.user_id == user_id, UserBadge.awarded_at >= since)
            .order_by(UserBadge.awarded_at.desc())
        )
        return await self._all(stmt, operation="list_recently_earned")

    async def statistics(self, user_id: int, *, now: datetime | None = None) -> BadgeStatistics:
        owned = await self.list_user_badges(user_id)
        month_ago = (now or utcnow()) - timedelta(days=30)
        stats = BadgeStatistics(
            total_earned=len(owned),
            total_available=await self.count(Badge.is_active.is_(True)),
            displayed=sum(1 for ub in owned if ub.is_displayed),
            featured=sum(1 for ub in owned if ub.is_featured),
            earned_this_month=sum(1 for ub in owned if ub.awarded_at >= month_ago),
            points_from_badges=sum(ub.badge.point_value for ub in owned),
        )
        if owned:
            # list_user_badges is newest first.
            stats.most_recent = owned[0]
            stats.last_earned_at = owned[0].awarded_at
            stats.first_earned_at = owned[-1].awarded_at
        for ub in owned:
            for bucket, key in (
                (stats.by_rarity, ub.badge.rarity),
                (stats.by_category, ub.badge.category),
                (stats.by_tier, ub.badge.tier),
            ):
                bucket[key] = bucket.get(key, 0) + 1
        return stats

    async def _owned_user_badge(self, user_id: int, user_badge_id: int) -> UserBadge | None:
        return await self._first(
            select(UserBadge).where(UserBadge.id == user_badge_id, UserBadge.user_id == user_id)
        )

    async def set_displayed(self, user_id: int, user_badge_id: int, displayed: bool) -> bool:
        user_badge = await self._owned_user_badge(user_id, user_badge_id)
        if user_badge is None:
            return False
        user_badge.is_displayed = displayed
        await self._flush(operation="set_displayed")
        return True

    async def set_featured(self, user_id: int, user_badge_id: int, featured: bool) -> bool:
        user_badge = await self._owned_user_badge(user_id, user_badge_id)
        if user_badge is None:
            return False
        user_badge.is_featured = featured
        await self._flush(operation="set_featured")
        return True


class RewardRepo(BaseRepo[Reward]):
    model = Reward

    async def list_active(self) -> list[Reward]:
        return await self.find(
            Reward.is_active.is_(True), order_by=(Reward.minimum_level, Reward.point_cost)
        )

    async def list_available(self, user_id: int, *, now: datetime | None = None) -> list[Reward]:
        """Active, in-stock, unexpired rewards the user can afford at their level."""

        progress = await self._first(select(UserProgress).where(UserProgress.user_id == user_id))
        points = progress.current_points if progress else 0
        level = progress.level if progress else 1
        now = now or utcnow()
        return await self.find(
            Reward.is_active.is_(True),
            Reward.point_cost <= points,
            Reward.minimum_level <= level,
            (Reward.expiration_date.is_(None)) | (Reward.expiration_date > now),
            (Reward.quantity.is_(None)) | (Reward.quantity > 0),
            order_by=(Reward.point_cost, Reward.name),
        )

    async def list_user_rewards(self, user_id: int) -> list[UserReward]:
        stmt = (
            select(UserReward)
            .where(UserReward.user_id == user_id)
            .order_by(UserReward.redeemed_at.desc(), UserReward.id.desc())
        )
        return await self._all(stmt, operation="list_user_rewards")

    async def get_user_reward(self, user_reward_id: int) -> UserReward | None:
        return await self._first(select(UserReward).where(UserReward.id == user_reward_id))

    async def has_user_reward(self, user_id: int, reward_id: int) -> bool:
        stmt = (
            select(UserReward.id)
            .where(UserReward.user_id == user_id, UserReward.reward_id == reward_id)
            .limit(1)
        )
        return (await self._first(stmt)) is not None

    async def count_user_rewards(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(UserReward).where(UserReward.user_id == user_id)
        return int(await self._scalar(stmt) or 0)

    async def redeem(self, user_id: int, reward_id: int) -> UserReward:
        reward = await self.get(reward_id)
        if reward is None:
            raise NotFoundError("reward not found", details={"reward_id": reward_id})
        if reward.quantity is not None:
            if reward.quantity <= 0:
                raise ConflictError("reward out of stock", details={"reward_id": reward_id})
            reward.quantity -= 1
        user_reward = UserReward(user_id=user_id, reward_id=reward_id, redeemed_at=utcnow())
        user_reward.reward = reward
        self._session.add(user_reward)
        await self._flush(operation="redeem")
        return user_reward

    async def mark_used(self, user_reward_id: int) -> bool:
        user_reward = await self.get_user_reward(user_reward_id)
        if user_reward is None:
            return False
        user_reward.is_used = True
        user_reward.used_at = utcnow()
        await self._flush(operation="mark_used")
        return True


class ChallengeRepo(BaseRepo[Challenge]):
    model = Challenge

    def _running(self, now: datetime):
        return (
            Challenge.is_active.is_(True),
            Challenge.start_date <= now,
            (Challenge.end_date.is_(None)) | (Challenge.end_date >= now),
        )

    async def list_active(self, *, now: datetime | None = None) -> list[Challenge]:
        return await self.find(*self._running(now or utcnow()), order_by=(Challenge.difficulty,))

    async def list_available(self, user_id: int, *, now: datetime | None = None) -> list[Challenge]:
        enrolled = select(UserChallenge.challenge_id).where(UserChallenge.user_id == user_id)
        return await self.find(
            *self._running(now or utcnow()),
            Challenge.id.not_in(enrolled),
            order_by=(Challenge.difficulty, Challenge.name),
        )

    async def get_user_challenge(self, user_id: int, challenge_id: int) -> UserChallenge | None:
        return await self._first(
            select(UserChallenge).where(
                UserChallenge.user_id == user_id, UserChallenge.challenge_id == challenge_id
            )
        )

    async def list_user_challenges(self, user_id: int) -> list[UserChallenge]:
        stmt = (
            select(UserChallenge)
            .where(UserChallenge.user_id == user_id)
            .order_by(UserChallenge.enrolled_at.desc())
        )
        return await self._all(stmt, operation="list_user_challenges")

    async def list_user_active(self, user_id: int) -> list[UserChallenge]:
        stmt = (
            select(UserChallenge)
            .join(Challenge, Challenge.id == UserChallenge.challenge_id)
            .where(
                UserChallenge.user_id == user_id,
                UserChallenge.is_completed.is_(False),
                Challenge.is_active.is_(True),
            )
            .order_by(UserChallenge.enrolled_at)
        )
        return await self._all(stmt, operation="list_user_active")

    async def enroll(self, user_id: int, challenge_id: int) -> UserChallenge:
        if await self.get_user_challenge(user_id, challenge_id) is not None:
            raise ConflictError(
                "already enrolled", details={"user_id": user_id, "challenge_id": challenge_id}
            )
        challenge = await self.get(challenge_id)
        if challenge is None:
            raise NotFoundError("challenge not found", details={"challenge_id": challenge_id})
        enrollment = UserChallenge(user_id=user_id, challenge_id=challenge_id, enrolled_at=utcnow())
        enrollment.challenge = challenge
        self._session.add(enrollment)
        await self._flush(operation="enroll")
        return enrollment

    async def update_user_challenge(self, enrollment: UserChallenge) -> UserChallenge:
        return await self._save(enrollment)

    async def record_progress(
        self, user_id: int, challenge_id: int, increment: int = 1
    ) -> UserChallenge | None:
        enrollment = await self.get_user_challenge(user_id, challenge_id)
        if enrollment is None or enrollment.is_completed:
            return enrollment
        enrollment.current_progress += increment
        enrollment.tasks_completed += increment
        if enrollment.current_progress >= enrollment.challenge.target_count:
            enrollment.is_completed = True
            enrollment.completed_at = utcnow()
            enrollment.points_earned = enrollment.challenge.point_reward
            self._log.info("challenge_completed", user_id=user_id, challenge_id=challenge_id)
        await self._flush(operation="record_progress")
        return enrollment

    async def leave(self, user_id: int, challenge_id: int) -> bool:
        enrollment = await self.get_user_challenge(user_id, challenge_id)
        if enrollment is None:
            return False
        await self.remove(enrollment)
        return True

    async def enrolled_ids(self, user_id: int) -> list[int]:
        return await self._all(
            select(UserChallenge.challenge_id).where(
                UserChallenge.user_id == user_id, UserChallenge.is_completed.is_(False)
            )
        )

    async def completed_ids(self, user_id: int) -> list[int]:
        return await self._all(
            select(UserChallenge.challenge_id).where(
                UserChallenge.user_id == user_id, UserChallenge.is_completed.is_(True)
            )
        )

    async def active_count(self, user_id: int) -> int:
        stmt = select(func.count()).select_from(UserChallenge).where(
            UserChallenge.user_id == user_id, UserChallenge.is_completed.is_(False)
        )
        return int(await self._scalar(stmt) or 0)
