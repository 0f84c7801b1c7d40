"""
tasktracker.db.repositories.filters

Query-shaping value objects: pagination parameters, result pages and
optional-criteria filters.

Responsibilities:
- Validate and bound page requests.
- Apply optional filter predicates to a select in one fixed order.
- Escape user-supplied text for LIKE matching.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Select, or_, select

from tasktracker.db.models import (
    FailedLoginAttempt,
    Notification,
    SecurityAuditLog,
    TaskItem,
    TaskItemStatus,
    TaskPriority,
    task_tags,
)

T = TypeVar("T")

MAX_PAGE_SIZE = 100


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally (use with escape='\\')."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_pattern(value: str) -> str:
    return f"%{escape_like(value.strip())}%"


class PageParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_number: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=MAX_PAGE_SIZE)

    @classmethod
    def bounded(cls, page_number: int, page_size: int, *, max_page_size: int) -> PageParams:
        """Clamp instead of rejecting; for callers relaying raw query parameters."""
        return cls(
            page_number=max(1, page_number),
            page_size=min(max(1, page_size), max_page_size, MAX_PAGE_SIZE),
        )

    @property
    def offset(self) -> int:
        return (self.page_number - 1) * self.page_size


@dataclass
class Page(Generic[T]):
    items: list[T]
    total_count: int
    page_number: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0

    @property
    def has_next(self) -> bool:
        return self.page_number < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page_number > 1


@dataclass(frozen=True)
class TaskFilter:
    status: TaskItemStatus | None = None
    priority: TaskPriority | None = None
    category_id: int | None = None
    tag_id: int | None = None
    board_id: int | None = None
    family_id: int | None = None
    due_after: datetime | None = None
    due_before: datetime | None = None
    is_completed: bool | None = None
    search_term: str | None = None

    def apply(self, stmt: Select[Any]) -> Select[Any]:
        if self.status is not None:
            stmt = stmt.where(TaskItem.status == self.status)
        if self.priority is not None:
            stmt = stmt.where(TaskItem.priority == self.priority)
        if self.category_id is not None:
            stmt = stmt.where(TaskItem.category_id == self.category_id)
        if self.tag_id is not None:
            stmt = stmt.where(
                TaskItem.id.in_(
                    select(task_tags.c.task_id).where(task_tags.c.tag_id == self.tag_id)
                )
            )
        if self.board_id is not None:
            stmt = stmt.where(TaskItem.board_id == self.board_id)
        if self.family_id is not None:
            stmt = stmt.where(TaskItem.family_id == self.family_id)
        if self.due_after is not None:
            stmt = stmt.where(TaskItem.due_date >= self.due_after)
        if self.due_before is not None:
            stmt = stmt.where(TaskItem.due_date <= self.due_before)
        if self.is_completed is not None:
            stmt = stmt.where(TaskItem.is_completed == self.is_completed)
        if self.search_term:
            pattern = contains_pattern(self.search_term)
            stmt = stmt.where(
                or_(
                    TaskItem.title.ilike(pattern, escape="\\"),
                    TaskItem.description.ilike(pattern, escape="\\"),
                )
            )
        return stmt


@dataclass(frozen=True)
class NotificationFilter:
    notification_type: str | None = None
    is_read: bool | None = None
    is_important: bool | None = None
    since: datetime | None = None
    until: datetime | None = None
    search_term: str | None = None

    def apply(self, stmt: Select[Any]) -> Select[Any]:
        if self.notification_type is not None:
            stmt = stmt.where(Notification.notification_type == self.notification_type)
        if self.is_read is not None:
            stmt = stmt.where(Notification.is_read == self.is_read)
        if self.is_important is not None:
            stmt = stmt.where(Notification.is_important == self.is_important)
        if self.since is not None:
            stmt = stmt.where(Notification.created_at >= self.since)
        if self.until is not None:
            stmt = stmt.where(Notification.created_at <= self.until)
        if self.search_term:
            pattern = contains_pattern(self.search_term)
            stmt = stmt.where(
                or_(
                    Notification.title.ilike(pattern, escape="\\"),
                    Notification.message.ilike(pattern, escape="\\"),
                )
            )
        return stmt


@dataclass(frozen=True)
class SecurityEventFilter:
    user_id: int | None = None
    ip_address: str | None = None
    event_types: tuple[str, ...] = field(default_factory=tuple)
    severity: str | None = None
    is_suspicious: bool | None = None
    since: datetime | None = None
    until: datetime | None = None

    def apply(self, stmt: Select[Any]) -> Select[Any]:
        if self.user_id is not None:
            stmt = stmt.where(SecurityAuditLog.user_id == self.user_id)
        if self.ip_address is not None:
            stmt = stmt.where(SecurityAuditLog.ip_address == self.ip_address)
        if self.event_types:
            stmt = stmt.where(SecurityAuditLog.event_type.in_(self.event_types))
        if self.severity is not None:
            stmt = stmt.where(SecurityAuditLog.severity == self.severity)
        if self.is_suspicious is not None:
            stmt = stmt.where(SecurityAuditLog.is_suspicious == self.is_suspicious)
        if self.since is not None:
            stmt = stmt.where(SecurityAuditLog.timestamp >= self.since)
        if self.until is not None:
            stmt = stmt.where(SecurityAuditLog.timestamp <= self.until)
        return stmt


@dataclass(frozen=True)
class FailedLoginFilter:
    email_or_username: str | None = None
    ip_address: str | None = None
    is_suspicious: bool | None = None
    since: datetime | None = None
    until: datetime | None = None

    def apply(self, stmt: Select[Any]) -> Select[Any]:
        if self.email_or_username is not None:
            stmt = stmt.where(FailedLoginAttempt.email_or_username == self.email_or_username)
        if self.ip_address is not None:
            stmt = stmt.where(FailedLoginAttempt.ip_address == self.ip_address)
        if self.is_suspicious is not None:
            stmt = stmt.where(FailedLoginAttempt.is_suspicious == self.is_suspicious)
        if self.since is not None:
            stmt = stmt.where(FailedLoginAttempt.attempt_time >= self.since)
        if self.until is not None:
            stmt = stmt.where(FailedLoginAttempt.attempt_time <= self.until)
        return stmt


# --- Module Notes -----------------------------------------------------------
# Predicate order in each `apply` is fixed so generated SQL is stable for a
# given filter, which keeps query plans and log output comparable.
