"""
tasktracker.db.uow

Unit of work: one session, one transaction, every repository bound to it.

Responsibilities:
- Open a session from the factory and build each repository over it.
- Commit when the block exits cleanly, roll back when it raises.
- Expose explicit commit/rollback/flush for callers that need checkpoints.
"""

from __future__ import annotations

from types import TracebackType

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tasktracker.db.errors import translate_error
from tasktracker.db.repositories.analytics import AdaptationLearningRepo, AnalyticsRepo
from tasktracker.db.repositories.boards import BoardColumnRepo, BoardRepo, BoardSettingsRepo
from tasktracker.db.repositories.calendar import CalendarEventRepo, UserCalendarRepo
from tasktracker.db.repositories.family import FamilyRepo, FamilyRoleRepo, InvitationRepo
from tasktracker.db.repositories.focus import FocusRepo
from tasktracker.db.repositories.gamification import (
    AchievementRepo,
    BadgeRepo,
    ChallengeRepo,
    ProgressRepo,
    RewardRepo,
)
from tasktracker.db.repositories.notifications import (
    NotificationPreferenceRepo,
    NotificationRepo,
)
from tasktracker.db.repositories.parental import ParentalControlRepo
from tasktracker.db.repositories.security import (
    BehavioralAnalyticsRepo,
    FailedLoginRepo,
    SecurityAuditRepo,
    SecurityQuestionRepo,
    SessionRepo,
    ThreatIntelligenceRepo,
)
from tasktracker.db.repositories.subscriptions import SubscriptionRepo
from tasktracker.db.repositories.tasks import CategoryRepo, ReminderRepo, TagRepo, TaskItemRepo
from tasktracker.db.repositories.templates import BoardTemplateRepo, TaskTemplateRepo
from tasktracker.db.repositories.users import UserRepo
from tasktracker.observability.logging import get_logger

log = get_logger(__name__)


class UnitOfWork:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("UnitOfWork is not active; use `async with`")
        return self._session

    async def __aenter__(self) -> UnitOfWork:
        session = self._session_factory()
        self._session = session

        self.users = UserRepo(session)
        self.tasks = TaskItemRepo(session)
        self.categories = CategoryRepo(session)
        self.tags = TagRepo(session)
        self.reminders = ReminderRepo(session)
        self.boards = BoardRepo(session)
        self.board_columns = BoardColumnRepo(session)
        self.board_settings = BoardSettingsRepo(session)
        self.board_templates = BoardTemplateRepo(session)
        self.task_templates = TaskTemplateRepo(session)
        self.progress = ProgressRepo(session)
        self.achievements = AchievementRepo(session)
        self.badges = BadgeRepo(session)
        self.rewards = RewardRepo(session)
        self.challenges = ChallengeRepo(session)
        self.families = FamilyRepo(session)
        self.family_roles = FamilyRoleRepo(session)
        self.invitations = InvitationRepo(session)
        self.calendar_events = CalendarEventRepo(session)
        self.user_calendar = UserCalendarRepo(session)
        self.notifications = NotificationRepo(session)
        self.notification_preferences = NotificationPreferenceRepo(session)
        self.focus = FocusRepo(session)
        self.parental = ParentalControlRepo(session)
        self.audit = SecurityAuditRepo(session)
        self.failed_logins = FailedLoginRepo(session)
        self.sessions = SessionRepo(session)
        self.security_questions = SecurityQuestionRepo(session)
        self.threats = ThreatIntelligenceRepo(session)
        self.behavior = BehavioralAnalyticsRepo(session)
        self.subscriptions = SubscriptionRepo(session)
        self.learning = AdaptationLearningRepo(session)
        self.analytics = AnalyticsRepo(session)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if exc_type is None:
                await self.commit()
            else:
                log.warning("uow_rollback", error=exc_type.__name__)
                await self.rollback()
        finally:
            await self.session.close()
            self._session = None

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise translate_error(e, operation="UnitOfWork.commit") from e

    async def rollback(self) -> None:
        await self.session.rollback()

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            raise translate_error(e, operation="UnitOfWork.flush") from e


# --- Module Notes -----------------------------------------------------------
# Repositories only flush; the unit of work is the one place that commits.
