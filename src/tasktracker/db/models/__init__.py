"""
tasktracker.db.models

ORM models, grouped by domain.

Responsibilities:
- Import every model module so `Base.metadata` sees all tables.
- Re-export model classes and enums for repository modules.
"""

from tasktracker.db.models.analytics import (
    AdaptationEvent,
    AdaptationEventType,
    RecommendationScore,
    UserLearningProfile,
)
from tasktracker.db.models.boards import Board, BoardColumn, BoardSettings
from tasktracker.db.models.calendar import AttendeeResponse, EventAttendee, FamilyCalendarEvent
from tasktracker.db.models.family import (
    Family,
    FamilyMember,
    FamilyRole,
    FamilyRolePermission,
    Invitation,
)
from tasktracker.db.models.focus import Distraction, FocusSession, FocusSessionStatus
from tasktracker.db.models.gamification import (
    Achievement,
    Badge,
    Challenge,
    PointTransaction,
    PriorityMultiplier,
    Reward,
    UserAchievement,
    UserBadge,
    UserChallenge,
    UserProgress,
    UserReward,
)
from tasktracker.db.models.notifications import Notification, NotificationPreference
from tasktracker.db.models.parental import (
    AllowedTimeRange,
    ParentalControl,
    PermissionRequest,
    PermissionRequestStatus,
    PermissionRequestType,
    ScreenTimeSession,
)
from tasktracker.db.models.security import (
    BehavioralAnalytics,
    FailedLoginAttempt,
    SecurityAuditLog,
    SecurityQuestion,
    ThreatIntelligence,
    UserDevice,
    UserSession,
)
from tasktracker.db.models.subscriptions import RateLimitTierConfig, SubscriptionTier, UserApiQuota
from tasktracker.db.models.tasks import (
    Category,
    Reminder,
    ReminderStatus,
    Tag,
    TaskItem,
    TaskItemStatus,
    TaskPriority,
    task_tags,
)
from tasktracker.db.models.templates import BoardTemplate, BoardTemplateColumn, TaskTemplate
from tasktracker.db.models.users import AgeGroup, User

__all__ = [
    "Achievement",
    "AdaptationEvent",
    "AdaptationEventType",
    "AgeGroup",
    "AllowedTimeRange",
    "AttendeeResponse",
    "Badge",
    "BehavioralAnalytics",
    "Board",
    "BoardColumn",
    "BoardSettings",
    "BoardTemplate",
    "BoardTemplateColumn",
    "Category",
    "Challenge",
    "Distraction",
    "EventAttendee",
    "FailedLoginAttempt",
    "Family",
    "FamilyCalendarEvent",
    "FamilyMember",
    "FamilyRole",
    "FamilyRolePermission",
    "FocusSession",
    "FocusSessionStatus",
    "Invitation",
    "Notification",
    "NotificationPreference",
    "ParentalControl",
    "PermissionRequest",
    "PermissionRequestStatus",
    "PermissionRequestType",
    "PointTransaction",
    "PriorityMultiplier",
    "RateLimitTierConfig",
    "RecommendationScore",
    "Reminder",
    "ReminderStatus",
    "Reward",
    "ScreenTimeSession",
    "SecurityAuditLog",
    "SecurityQuestion",
    "SubscriptionTier",
    "Tag",
    "TaskItem",
    "TaskItemStatus",
    "TaskPriority",
    "TaskTemplate",
    "ThreatIntelligence",
    "User",
    "UserAchievement",
    "UserApiQuota",
    "UserBadge",
    "UserChallenge",
    "UserDevice",
    "UserLearningProfile",
    "UserProgress",
    "UserReward",
    "UserSession",
    "task_tags",
]
