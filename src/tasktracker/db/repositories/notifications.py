"""
tasktracker.db.repositories.notifications

Repositories for in-app notifications and per-type delivery preferences.

Responsibilities:
- Owner-scoped notification reads, filtered paging and read-state changes.
- Bulk read/cleanup operations returning affected row counts.
- Preference upsert keyed on (user, type, family).
"""

from __future__ import annotations

from sqlalchemy import delete, func, select, update

from tasktracker.db.base import utcnow
from tasktracker.db.models import Notification, NotificationPreference
from tasktracker.db.repositories.base import BaseRepo
from tasktracker.db.repositories.filters import NotificationFilter, Page, PageParams


class NotificationRepo(BaseRepo[Notification]):
    model = Notification

    _newest_first = (Notification.created_at.desc(), Notification.id.desc())

    async def get_for_user(self, notification_id: int, user_id: int) -> Notification | None:
        return await self.find_one(
            Notification.id == notification_id, Notification.user_id == user_id
        )

    async def list_for_user(self, user_id: int) -> list[Notification]:
        return await self.find(Notification.user_id == user_id, order_by=self._newest_first)

    async def list_unread(self, user_id: int) -> list[Notification]:
        return await self.find(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
            order_by=self._newest_first,
        )

    async def search(
        self, user_id: int, criteria: NotificationFilter, page: PageParams | None = None
    ) -> Page[Notification]:
        stmt = criteria.apply(select(Notification).where(Notification.user_id == user_id))
        return await self.paginate(stmt.order_by(*self._newest_first), page or PageParams())

    async def unread_count(self, user_id: int) -> int:
        return await self.count(Notification.user_id == user_id, Notification.is_read.is_(False))

    async def mark_read(self, notification_id: int, user_id: int | None = None) -> bool:
        notification = await self.get(notification_id)
        if notification is None or (user_id is not None and notification.user_id != user_id):
            return False
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            await self._flush(operation="mark_read")
        return True

    async def mark_all_read(self, user_id: int) -> int:
        return await self._write(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session="evaluate"),
            operation="mark_all_read",
        )

    async def delete_all_read(self, user_id: int) -> int:
        removed = await self._write(
            delete(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(True))
            .execution_options(synchronize_session="evaluate"),
            operation="delete_all_read",
        )
        self._log.info("read_notifications_removed", user_id=user_id, count=removed)
        return removed

    async def count_by_type(self, user_id: int) -> dict[str, int]:
        stmt = (
            select(Notification.notification_type, func.count())
            .where(Notification.user_id == user_id)
            .group_by(Notification.notification_type)
        )
        return {kind: n for kind, n in await self._rows(stmt, operation="count_by_type")}


class NotificationPreferenceRepo(BaseRepo[NotificationPreference]):
    model = NotificationPreference

    async def list_for_user(self, user_id: int) -> list[NotificationPreference]:
        return await self.find(
            NotificationPreference.user_id == user_id,
            order_by=(NotificationPreference.notification_type, NotificationPreference.id),
        )

    async def get_for_type(
        self, user_id: int, notification_type: str, family_id: int | None = None
    ) -> NotificationPreference | None:
        family_match = (
            NotificationPreference.family_id.is_(None)
            if family_id is None
            else NotificationPreference.family_id == family_id
        )
        return await self.find_one(
            NotificationPreference.user_id == user_id,
            NotificationPreference.notification_type == notification_type,
            family_match,
        )

    async def upsert(self, preference: NotificationPreference) -> NotificationPreference:
        # NULL family ids do not collide under the unique index, so match in code.
        existing = await self.get_for_type(
            preference.user_id, preference.notification_type, preference.family_id
        )
        if existing is None:
            return await self.create(preference)
        existing.enabled = preference.enabled
        existing.priority = preference.priority
        existing.enable_email_notifications = preference.enable_email_notifications
        existing.enable_push_notifications = preference.enable_push_notifications
        return await self.update(existing)

    async def is_enabled(self, user_id: int, notification_type: str) -> bool:
        preference = await self.get_for_type(user_id, notification_type)
        return True if preference is None else preference.enabled
