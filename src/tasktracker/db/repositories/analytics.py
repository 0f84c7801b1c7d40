"""
tasktracker.db.repositories.analytics

Adaptive-learning storage and read-only analytics rollups.

Responsibilities:
- Learning profiles, recommendation scores and adaptation events.
- Derived learning signals (success rate, velocity, confidence, weekly trends).
- Task, focus, gamification, family and platform rollups over the core tables.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import func, select, update

from tasktracker.db.base import utcnow
from tasktracker.db.errors import ConflictError
from tasktracker.db.models import (
    AdaptationEvent,
    AdaptationEventType,
    Board,
    Category,
    Family,
    FamilyMember,
    FocusSession,
    RecommendationScore,
    TaskItem,
    TaskItemStatus,
    User,
    UserAchievement,
    UserBadge,
    UserLearningProfile,
    UserProgress,
)
from tasktracker.db.repositories.base import BaseRepo

LEARNING_WINDOW_DAYS = 30
ACTIVE_MEMBER_DAYS = 7


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def week_start(moment: datetime) -> date:
    """Sunday that opens the week containing `moment`."""

    day = moment.date()
    return day - timedelta(days=(day.weekday() + 1) % 7)


class AdaptationLearningRepo(BaseRepo[UserLearningProfile]):
    model = UserLearningProfile

    # --- profiles -----------------------------------------------------------------

    async def get_profile(self, user_id: int) -> UserLearningProfile | None:
        return await self.find_one(UserLearningProfile.user_id == user_id)

    async def create_profile(self, profile: UserLearningProfile) -> UserLearningProfile:
        if await self.exists(UserLearningProfile.user_id == profile.user_id):
            raise ConflictError(
                "learning profile already exists", details={"user_id": profile.user_id}
            )
        return await self.create(profile)

    async def update_profile(self, profile: UserLearningProfile) -> UserLearningProfile:
        return await self.update(profile)

    async def delete_profile(self, user_id: int) -> bool:
        profile = await self.get_profile(user_id)
        if profile is None:
            return False
        await self.remove(profile)
        return True

    # --- recommendations ----------------------------------------------------------

    async def list_recommendations(
        self, user_id: int, template_id: int | None = None
    ) -> list[RecommendationScore]:
        stmt = select(RecommendationScore).where(RecommendationScore.user_id == user_id)
        if template_id is not None:
            stmt = stmt.where(RecommendationScore.template_id == template_id)
        return await self._all(
            stmt.order_by(RecommendationScore.score.desc(), RecommendationScore.id),
            operation="list_recommendations",
        )

    async def create_recommendation(self, score: RecommendationScore) -> RecommendationScore:
        score.created_at = utcnow()
        self._session.add(score)
        await self._flush(operation="create_recommendation")
        return score

    async def update_recommendation(self, score: RecommendationScore) -> RecommendationScore:
        if score.user_feedback is not None and score.feedback_at is None:
            score.feedback_at = utcnow()
        return await self._save(score)

    async def recent_recommendations(
        self, user_id: int, hours: int = 24, *, now: datetime | None = None
    ) -> list[RecommendationScore]:
        since = (now or utcnow()) - timedelta(hours=hours)
        return await self._all(
            select(RecommendationScore)
            .where(RecommendationScore.user_id == user_id, RecommendationScore.created_at >= since)
            .order_by(RecommendationScore.created_at.desc())
        )

    async def unshown_recommendations(
        self, user_id: int, count: int = 10
    ) -> list[RecommendationScore]:
        return await self._all(
            select(RecommendationScore)
            .where(
                RecommendationScore.user_id == user_id,
                RecommendationScore.was_shown.is_(False),
            )
            .order_by(RecommendationScore.score.desc(), RecommendationScore.id)
            .limit(count)
        )

    async def mark_shown(self, recommendation_ids: Iterable[int]) -> int:
        ids = list(recommendation_ids)
        if not ids:
            return 0
        return await self._write(
            update(RecommendationScore)
            .where(RecommendationScore.id.in_(ids))
            .values(was_shown=True, shown_at=utcnow())
            .execution_options(synchronize_session="evaluate"),
            operation="mark_shown",
        )

    async def feedback_recommendations(
        self, user_id: int, since: datetime | None = None
    ) -> list[RecommendationScore]:
        stmt = select(RecommendationScore).where(
            RecommendationScore.user_id == user_id,
            RecommendationScore.user_feedback.is_not(None),
        )
        if since is not None:
            stmt = stmt.where(RecommendationScore.feedback_at >= since)
        return await self._all(stmt.order_by(RecommendationScore.feedback_at.desc()))

    async def recommendation_metrics(
        self, user_id: int, since: datetime | None = None
    ) -> dict[str, float]:
        stmt = select(RecommendationScore).where(RecommendationScore.user_id == user_id)
        if since is not None:
            stmt = stmt.where(RecommendationScore.created_at >= since)
        recommendations = await self._all(stmt, operation="recommendation_metrics")
        if not recommendations:
            return {
                "TotalRecommendations": 0.0,
                "AcceptanceRate": 0.0,
                "UsageRate": 0.0,
                "AverageConfidence": 0.0,
                "AverageSatisfaction": 0.0,
            }

        shown = sum(1 for r in recommendations if r.was_shown)
        accepted = sum(1 for r in recommendations if r.user_feedback == 1)
        used = sum(1 for r in recommendations if r.was_used)
        ratings = [r.satisfaction_rating for r in recommendations if r.satisfaction_rating is not None]
        return {
            "TotalRecommendations": float(len(recommendations)),
            "AcceptanceRate": accepted / shown if shown else 0.0,
            "UsageRate": used / len(recommendations),
            "AverageConfidence": _mean([r.confidence for r in recommendations]),
            "AverageSatisfaction": _mean(ratings),
        }

    # --- adaptation events --------------------------------------------------------

    async def list_events(
        self, user_id: int, since: datetime | None = None
    ) -> list[AdaptationEvent]:
        stmt = select(AdaptationEvent).where(AdaptationEvent.user_id == user_id)
        if since is not None:
            stmt = stmt.where(AdaptationEvent.created_at >= since)
        return await self._all(stmt.order_by(AdaptationEvent.created_at.desc()))

    async def create_event(self, event: AdaptationEvent) -> AdaptationEvent:
        event.created_at = event.created_at or utcnow()
        self._session.add(event)
        await self._flush(operation="create_event")
        return event

    async def update_event(self, event: AdaptationEvent) -> AdaptationEvent:
        return await self._save(event)

    async def recent_events(
        self, user_id: int, days: int = LEARNING_WINDOW_DAYS, *, now: datetime | None = None
    ) -> list[AdaptationEvent]:
        return await self.list_events(user_id, since=(now or utcnow()) - timedelta(days=days))

    async def event_counts_by_type(
        self, user_id: int, since: datetime | None = None
    ) -> dict[AdaptationEventType, int]:
        stmt = select(AdaptationEvent.event_type, func.count()).where(
            AdaptationEvent.user_id == user_id
        )
        if since is not None:
            stmt = stmt.where(AdaptationEvent.created_at >= since)
        rows = await self._rows(stmt.group_by(AdaptationEvent.event_type))
        return {event_type: n for event_type, n in rows}

    async def success_rate(
        self, user_id: int, event_type: AdaptationEventType | None = None
    ) -> float:
        stmt = select(AdaptationEvent.was_successful).where(
            AdaptationEvent.user_id == user_id, AdaptationEvent.was_successful.is_not(None)
        )
        if event_type is not None:
            stmt = stmt.where(AdaptationEvent.event_type == event_type)
        outcomes = await self._all(stmt, operation="success_rate")
        if not outcomes:
            return 0.0
        return sum(1 for ok in outcomes if ok) / len(outcomes)

    async def data_point_count(self, user_id: int) -> int:
        tasks = await self._scalar(
            select(func.count()).select_from(TaskItem).where(TaskItem.user_id == user_id)
        )
        adaptations = await self._scalar(
            select(func.count())
            .select_from(AdaptationEvent)
            .where(AdaptationEvent.user_id == user_id)
        )
        feedback = await self._scalar(
            select(func.count())
            .select_from(RecommendationScore)
            .where(
                RecommendationScore.user_id == user_id,
                RecommendationScore.user_feedback.is_not(None),
            )
        )
        return int(tasks or 0) + int(adaptations or 0) + int(feedback or 0)

    async def learning_velocity(self, user_id: int, *, now: datetime | None = None) -> float:
        recent = await self.recent_events(user_id, now=now)
        if not recent:
            return 1.0
        per_week = len(recent) / 4.0
        velocity = (
            per_week * await self.success_rate(user_id) * _mean([e.confidence for e in recent])
        ) + 0.5
        return max(0.1, min(5.0, velocity))

    async def adaptation_confidence(self, user_id: int, *, now: datetime | None = None) -> float:
        recent = await self.recent_events(user_id, now=now)
        if not recent:
            return 0.1
        data_confidence = min(1.0, await self.data_point_count(user_id) / 100.0)
        return (
            data_confidence
            + await self.success_rate(user_id)
            + _mean([e.confidence for e in recent])
        ) / 3.0

    async def success_rate_trends(
        self, user_id: int, days: int = LEARNING_WINDOW_DAYS, *, now: datetime | None = None
    ) -> list[tuple[date, float]]:
        since = (now or utcnow()) - timedelta(days=days)
        stmt = (
            select(AdaptationEvent)
            .where(
                AdaptationEvent.user_id == user_id,
                AdaptationEvent.created_at >= since,
                AdaptationEvent.was_successful.is_not(None),
            )
            .order_by(AdaptationEvent.created_at)
        )
        weeks: dict[date, list[bool]] = {}
        for event in await self._all(stmt, operation="success_rate_trends"):
            weeks.setdefault(week_start(event.created_at), []).append(bool(event.was_successful))
        return [
            (start, sum(outcomes) / len(outcomes)) for start, outcomes in sorted(weeks.items())
        ]


# --- rollups ----------------------------------------------------------------------


@dataclass(frozen=True)
class TaskStats:
    total: int
    completed: int
    pending: int
    overdue: int


@dataclass(frozen=True)
class ProductivityMetrics:
    completion_rate: float
    focus_minutes: int
    sessions_completed: int
    average_session_minutes: float


@dataclass(frozen=True)
class GamificationStats:
    current_points: int
    total_points_earned: int
    level: int
    current_streak: int
    longest_streak: int
    badges_earned: int
    achievements_unlocked: int


@dataclass(frozen=True)
class FamilyOverview:
    total_members: int
    active_members: int
    total_tasks: int
    completed_tasks: int
    productivity_score: float


@dataclass(frozen=True)
class MemberStats:
    user_id: int
    username: str
    tasks_completed: int
    productivity_score: float
    points: int


@dataclass(frozen=True)
class PlatformOverview:
    total_users: int
    active_users: int
    total_families: int
    total_tasks: int
    total_boards: int


def _percent(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0.0


class AnalyticsRepo(BaseRepo[TaskItem]):
    """Read-only rollups; every method issues aggregate queries only."""

    model = TaskItem

    def _user_tasks(self, user_id: int, start: datetime | None, end: datetime | None) -> list:
        criteria = [TaskItem.user_id == user_id]
        if start is not None:
            criteria.append(TaskItem.created_at >= start)
        if end is not None:
            criteria.append(TaskItem.created_at <= end)
        return criteria

    async def user_task_stats(
        self,
        user_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        now: datetime | None = None,
    ) -> TaskStats:
        criteria = self._user_tasks(user_id, start, end)
        now = now or utcnow()
        return TaskStats(
            total=await self.count(*criteria),
            completed=await self.count(*criteria, TaskItem.status == TaskItemStatus.completed),
            pending=await self.count(
                *criteria,
                TaskItem.status.in_((TaskItemStatus.in_progress, TaskItemStatus.pending)),
            ),
            overdue=await self.count(
                *criteria,
                TaskItem.due_date.is_not(None),
                TaskItem.due_date < now,
                TaskItem.status != TaskItemStatus.completed,
            ),
        )

    async def completion_trend(
        self, user_id: int, start: datetime, end: datetime
    ) -> dict[date, int]:
        stmt = select(TaskItem.completed_at).where(
            TaskItem.user_id == user_id,
            TaskItem.status == TaskItemStatus.completed,
            TaskItem.completed_at >= start,
            TaskItem.completed_at <= end,
        )
        trend: dict[date, int] = {}
        for completed_at in await self._all(stmt, operation="completion_trend"):
            trend[completed_at.date()] = trend.get(completed_at.date(), 0) + 1
        return dict(sorted(trend.items()))

    async def category_breakdown(
        self, user_id: int, start: datetime | None = None, end: datetime | None = None
    ) -> dict[str, int]:
        label = func.coalesce(Category.name, "Uncategorized")
        stmt = (
            select(label, func.count())
            .select_from(TaskItem)
            .outerjoin(Category, Category.id == TaskItem.category_id)
            .where(*self._user_tasks(user_id, start, end))
            .group_by(label)
        )
        return {name: n for name, n in await self._rows(stmt, operation="category_breakdown")}

    async def priority_breakdown(
        self, user_id: int, start: datetime | None = None, end: datetime | None = None
    ) -> dict[str, int]:
        stmt = (
            select(TaskItem.priority, func.count())
            .where(*self._user_tasks(user_id, start, end))
            .group_by(TaskItem.priority)
        )
        return {
            str(priority): n
            for priority, n in await self._rows(stmt, operation="priority_breakdown")
        }

    async def productivity_metrics(
        self, user_id: int, start: datetime | None = None, end: datetime | None = None
    ) -> ProductivityMetrics:
        criteria = self._user_tasks(user_id, start, end)
        total = await self.count(*criteria)
        completed = await self.count(*criteria, TaskItem.status == TaskItemStatus.completed)

        focus = select(FocusSession.duration_minutes, FocusSession.is_completed).where(
            FocusSession.user_id == user_id
        )
        if start is not None:
            focus = focus.where(FocusSession.start_time >= start)
        if end is not None:
            focus = focus.where(FocusSession.start_time <= end)
        sessions = await self._rows(focus, operation="productivity_focus")
        minutes = [m for m, _ in sessions]
        return ProductivityMetrics(
            completion_rate=_percent(completed, total),
            focus_minutes=sum(minutes),
            sessions_completed=sum(1 for _, done in sessions if done),
            average_session_minutes=_mean(minutes),
        )

    async def gamification_stats(self, user_id: int) -> GamificationStats:
        progress = await self._first(select(UserProgress).where(UserProgress.user_id == user_id))
        badges = await self._scalar(
            select(func.count()).select_from(UserBadge).where(UserBadge.user_id == user_id)
        )
        achievements = await self._scalar(
            select(func.count())
            .select_from(UserAchievement)
            .where(UserAchievement.user_id == user_id, UserAchievement.is_completed.is_(True))
        )
        return GamificationStats(
            current_points=progress.current_points if progress else 0,
            total_points_earned=progress.total_points_earned if progress else 0,
            level=progress.level if progress else 1,
            current_streak=progress.current_streak if progress else 0,
            longest_streak=progress.longest_streak if progress else 0,
            badges_earned=int(badges or 0),
            achievements_unlocked=int(achievements or 0),
        )

    async def family_overview(
        self,
        family_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        now: datetime | None = None,
    ) -> FamilyOverview:
        """An active member completed at least one task in the last seven days."""

        members = select(FamilyMember.user_id).where(FamilyMember.family_id == family_id)
        total_members = int(
            await self._scalar(
                select(func.count()).select_from(FamilyMember).where(FamilyMember.family_id == family_id)
            )
            or 0
        )
        active_since = (now or utcnow()) - timedelta(days=ACTIVE_MEMBER_DAYS)
        active = await self._scalar(
            select(func.count(func.distinct(TaskItem.user_id))).where(
                TaskItem.user_id.in_(members), TaskItem.completed_at >= active_since
            )
        )

        criteria = [TaskItem.user_id.in_(members)]
        if start is not None:
            criteria.append(TaskItem.created_at >= start)
        if end is not None:
            criteria.append(TaskItem.created_at <= end)
        total_tasks = await self.count(*criteria)
        completed = await self.count(*criteria, TaskItem.status == TaskItemStatus.completed)
        return FamilyOverview(
            total_members=total_members,
            active_members=int(active or 0),
            total_tasks=total_tasks,
            completed_tasks=completed,
            productivity_score=_percent(completed, total_tasks),
        )

    async def family_member_stats(
        self, family_id: int, start: datetime | None = None, end: datetime | None = None
    ) -> list[MemberStats]:
        stmt = (
            select(User.id, User.username)
            .join(FamilyMember, FamilyMember.user_id == User.id)
            .where(FamilyMember.family_id == family_id)
            .order_by(User.username)
        )
        stats = []
        for user_id, username in await self._rows(stmt, operation="family_member_stats"):
            criteria = self._user_tasks(user_id, start, end)
            total = await self.count(*criteria)
            completed = await self.count(*criteria, TaskItem.status == TaskItemStatus.completed)
            points = await self._scalar(
                select(UserProgress.current_points).where(UserProgress.user_id == user_id)
            )
            stats.append(
                MemberStats(
                    user_id=user_id,
                    username=username,
                    tasks_completed=completed,
                    productivity_score=_percent(completed, total),
                    points=int(points or 0),
                )
            )
        return stats

    async def platform_overview(self) -> PlatformOverview:
        async def total(model, *criteria) -> int:
            stmt = select(func.count()).select_from(model).where(*criteria)
            return int(await self._scalar(stmt, operation="platform_overview") or 0)

        return PlatformOverview(
            total_users=await total(User),
            active_users=await total(User, User.is_active.is_(True)),
            total_families=await total(Family),
            total_tasks=await total(TaskItem),
            total_boards=await total(Board),
        )
