"""
tasktracker.db.repositories.tasks

Repositories for task items and their satellites.

Responsibilities:
- Owner-scoped task reads, writes and filtered paging.
- Tag links (idempotent add, full replacement).
- Family assignment and approval workflow on tasks.
- Categories, tags and reminders.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from sqlalchemy import delete, func, insert, or_, select, update

from tasktracker.db.base import utcnow
from tasktracker.db.errors import ConflictError
from tasktracker.db.models import (
    Category,
    FamilyMember,
    FocusSession,
    PointTransaction,
    Reminder,
    ReminderStatus,
    Tag,
    TaskItem,
    TaskItemStatus,
    task_tags,
)
from tasktracker.db.repositories.base import BaseRepo
from tasktracker.db.repositories.filters import Page, PageParams, TaskFilter


class TaskItemRepo(BaseRepo[TaskItem]):
    model = TaskItem

    async def list_for_user(self, user_id: int) -> list[TaskItem]:
        return await self.find(
            TaskItem.user_id == user_id, order_by=(TaskItem.created_at.desc(), TaskItem.id.desc())
        )

    async def list_paged(self, user_id: int, page: PageParams) -> Page[TaskItem]:
        stmt = (
            select(TaskItem)
            .where(TaskItem.user_id == user_id)
            .order_by(TaskItem.created_at.desc(), TaskItem.id.desc())
        )
        return await self.paginate(stmt, page)

    async def search(
        self, user_id: int, criteria: TaskFilter, page: PageParams | None = None
    ) -> Page[TaskItem]:
        stmt = criteria.apply(select(TaskItem).where(TaskItem.user_id == user_id))
        stmt = stmt.order_by(TaskItem.due_date.is_(None), TaskItem.due_date, TaskItem.id)
        return await self.paginate(stmt, page or PageParams())

    async def get_for_user(self, task_id: int, user_id: int) -> TaskItem | None:
        # Ownership filter: another user's task is indistinguishable from a missing one.
        return await self.find_one(TaskItem.id == task_id, TaskItem.user_id == user_id)

    async def _release(self, task_id: int) -> None:
        await self._execute(
            delete(task_tags).where(task_tags.c.task_id == task_id), operation="delete_tags"
        )
        for model, column in (
            (Reminder, Reminder.task_item_id),
            (FocusSession, FocusSession.task_id),
            (PointTransaction, PointTransaction.task_id),
        ):
            await self._write(
                update(model).where(column == task_id).values({column.key: None}),
                operation="detach_task_references",
            )

    async def delete(self, entity_id: int) -> bool:
        task = await self.get(entity_id)
        if task is None:
            return False
        await self._release(entity_id)
        await self.remove(task)
        self._log.info("task_deleted", task_id=entity_id)
        return True

    async def delete_for_user(self, task_id: int, user_id: int) -> bool:
        task = await self.get_for_user(task_id, user_id)
        if task is None:
            return False
        await self._release(task_id)
        await self.remove(task)
        self._log.info("task_deleted", task_id=task_id, user_id=user_id)
        return True

    async def list_by_status(self, user_id: int, status: TaskItemStatus) -> list[TaskItem]:
        return await self.find(
            TaskItem.user_id == user_id, TaskItem.status == status, order_by=(TaskItem.id,)
        )

    async def list_by_category(self, user_id: int, category_id: int) -> list[TaskItem]:
        return await self.find(
            TaskItem.user_id == user_id,
            TaskItem.category_id == category_id,
            order_by=(TaskItem.id,),
        )

    async def list_by_tag(self, user_id: int, tag_id: int) -> list[TaskItem]:
        stmt = (
            select(TaskItem)
            .join(task_tags, task_tags.c.task_id == TaskItem.id)
            .where(TaskItem.user_id == user_id, task_tags.c.tag_id == tag_id)
            .order_by(TaskItem.id)
        )
        return await self._all(stmt, operation="list_by_tag")

    async def is_owned_by(self, task_id: int, user_id: int) -> bool:
        return await self.exists(TaskItem.id == task_id, TaskItem.user_id == user_id)

    async def count_by_status(self, user_id: int) -> dict[TaskItemStatus, int]:
        stmt = (
            select(TaskItem.status, func.count())
            .where(TaskItem.user_id == user_id)
            .group_by(TaskItem.status)
        )
        return {status: n for status, n in await self._rows(stmt, operation="count_by_status")}

    async def complete(self, task_id: int, user_id: int) -> bool:
        task = await self.get_for_user(task_id, user_id)
        if task is None:
            return False
        task.status = TaskItemStatus.completed
        task.is_completed = True
        task.completed_at = utcnow()
        task.progress_percentage = 100
        await self.update(task)
        return True

    # --- tags ----------------------------------------------------------------

    async def add_tag(self, task_id: int, tag_id: int) -> None:
        linked = await self._first(
            select(task_tags.c.task_id).where(
                task_tags.c.task_id == task_id, task_tags.c.tag_id == tag_id
            ),
            operation="add_tag",
        )
        if linked is not None:
            return
        await self._execute(insert(task_tags).values(task_id=task_id, tag_id=tag_id))

    async def remove_tag(self, task_id: int, tag_id: int) -> None:
        await self._execute(
            delete(task_tags).where(task_tags.c.task_id == task_id, task_tags.c.tag_id == tag_id),
            operation="remove_tag",
        )

    async def set_tags(self, task_id: int, tag_ids: Iterable[int]) -> None:
        await self._execute(
            delete(task_tags).where(task_tags.c.task_id == task_id), operation="set_tags"
        )
        rows = [{"task_id": task_id, "tag_id": tag_id} for tag_id in dict.fromkeys(tag_ids)]
        if rows:
            await self._execute(insert(task_tags), rows, operation="set_tags")

    async def tags_for_task(self, task_id: int) -> list[Tag]:
        stmt = (
            select(Tag)
            .join(task_tags, task_tags.c.tag_id == Tag.id)
            .where(task_tags.c.task_id == task_id)
            .order_by(Tag.name)
        )
        return await self._all(stmt, operation="tags_for_task")

    # --- family assignment -----------------------------------------------------

    async def get_shared(self, task_id: int) -> TaskItem | None:
        """A task visible through its family rather than through ownership."""
        return await self.find_one(TaskItem.id == task_id, TaskItem.family_id.is_not(None))

    async def list_assigned_to_member(self, member_id: int) -> list[TaskItem]:
        return await self.find(
            TaskItem.assigned_to_family_member_id == member_id,
            order_by=(TaskItem.due_date.is_(None), TaskItem.due_date, TaskItem.id),
        )

    async def list_for_family(self, family_id: int) -> list[TaskItem]:
        return await self.find(
            TaskItem.family_id == family_id,
            order_by=(TaskItem.due_date.is_(None), TaskItem.due_date, TaskItem.id),
        )

    async def assign_to_member(
        self,
        task_id: int,
        member_id: int,
        *,
        assigned_by_user_id: int,
        requires_approval: bool = False,
    ) -> bool:
        task = await self.get(task_id)
        member = await self._session.get(FamilyMember, member_id)
        if task is None or member is None:
            self._log.warning("assign_task_target_missing", task_id=task_id, member_id=member_id)
            return False
        task.assigned_to_family_member_id = member.id
        task.assigned_by_user_id = assigned_by_user_id
        task.family_id = member.family_id
        task.requires_approval = requires_approval
        await self.update(task)
        return True

    async def unassign(self, task_id: int) -> bool:
        task = await self.get(task_id)
        if task is None:
            return False
        task.assigned_to_family_member_id = None
        await self.update(task)
        return True

    async def approve(self, task_id: int, approver_user_id: int, comment: str | None = None) -> bool:
        task = await self.get(task_id)
        if task is None or not task.requires_approval:
            return False
        task.approved_by_user_id = approver_user_id
        task.approved_at = utcnow()
        task.approval_comment = comment
        await self.update(task)
        return True

    async def is_family_task_owner(self, task_id: int, user_id: int) -> bool:
        return await self.exists(
            TaskItem.id == task_id,
            or_(TaskItem.user_id == user_id, TaskItem.assigned_by_user_id == user_id),
        )

    async def list_upcoming_deadlines(self, start: datetime, end: datetime) -> list[TaskItem]:
        return await self.find(
            TaskItem.due_date.is_not(None),
            TaskItem.due_date >= start,
            TaskItem.due_date <= end,
            TaskItem.status != TaskItemStatus.completed,
            order_by=(TaskItem.due_date,),
        )


class CategoryRepo(BaseRepo[Category]):
    model = Category

    async def list_for_user(self, user_id: int) -> list[Category]:
        return await self.find(Category.user_id == user_id, order_by=(Category.name,))

    async def get_for_user(self, category_id: int, user_id: int) -> Category | None:
        return await self.find_one(Category.id == category_id, Category.user_id == user_id)

    async def name_exists(self, user_id: int, name: str, *, exclude_id: int | None = None) -> bool:
        criteria = [Category.user_id == user_id, func.lower(Category.name) == name.strip().lower()]
        if exclude_id is not None:
            criteria.append(Category.id != exclude_id)
        return await self.exists(*criteria)

    async def create(self, entity: Category) -> Category:
        if await self.name_exists(entity.user_id, entity.name):
            raise ConflictError("category name already used", details={"name": entity.name})
        return await super().create(entity)

    async def count_for_user(self, user_id: int) -> int:
        return await self.count(Category.user_id == user_id)

    async def delete(self, entity_id: int) -> bool:
        category = await self.get(entity_id)
        if category is None:
            return False
        await self._write(
            update(TaskItem).where(TaskItem.category_id == entity_id).values(category_id=None),
            operation="uncategorize_tasks",
        )
        await self.remove(category)
        return True

    async def task_count(self, category_id: int) -> int:
        stmt = select(func.count()).select_from(TaskItem).where(TaskItem.category_id == category_id)
        return int(await self._scalar(stmt, operation="task_count") or 0)


class TagRepo(BaseRepo[Tag]):
    model = Tag

    async def list_for_user(self, user_id: int) -> list[Tag]:
        return await self.find(Tag.user_id == user_id, order_by=(Tag.name,))

    async def get_for_user(self, tag_id: int, user_id: int) -> Tag | None:
        return await self.find_one(Tag.id == tag_id, Tag.user_id == user_id)

    async def get_by_name(self, user_id: int, name: str) -> Tag | None:
        return await self.find_one(Tag.user_id == user_id, Tag.name == name)

    async def create(self, entity: Tag) -> Tag:
        if await self.exists(Tag.user_id == entity.user_id, Tag.name == entity.name):
            raise ConflictError("tag already exists", details={"name": entity.name})
        return await super().create(entity)

    async def delete(self, entity_id: int) -> bool:
        tag = await self.get(entity_id)
        if tag is None:
            return False
        await self._execute(
            delete(task_tags).where(task_tags.c.tag_id == entity_id), operation="delete_links"
        )
        await self.remove(tag)
        return True


class ReminderRepo(BaseRepo[Reminder]):
    model = Reminder

    async def list_for_user(self, user_id: int) -> list[Reminder]:
        return await self.find(Reminder.user_id == user_id, order_by=(Reminder.reminder_time,))

    async def list_by_status(self, user_id: int, status: ReminderStatus) -> list[Reminder]:
        return await self.find(
            Reminder.user_id == user_id,
            Reminder.status == status,
            order_by=(Reminder.reminder_time,),
        )

    async def list_for_task(self, task_id: int) -> list[Reminder]:
        return await self.find(Reminder.task_item_id == task_id, order_by=(Reminder.reminder_time,))

    async def list_due(self, now: datetime | None = None) -> list[Reminder]:
        return await self.find(
            Reminder.status == ReminderStatus.pending,
            Reminder.reminder_time <= (now or utcnow()),
            order_by=(Reminder.reminder_time,),
        )

    async def list_upcoming(
        self, user_id: int, *, days: int = 7, now: datetime | None = None
    ) -> list[Reminder]:
        start = now or utcnow()
        return await self.find(
            Reminder.user_id == user_id,
            Reminder.is_completed.is_(False),
            Reminder.reminder_time >= start,
            Reminder.reminder_time <= start + timedelta(days=days),
            order_by=(Reminder.reminder_time,),
        )

    async def set_status(self, reminder_id: int, status: ReminderStatus) -> bool:
        reminder = await self.get(reminder_id)
        if reminder is None:
            return False
        reminder.status = status
        if status is ReminderStatus.completed:
            reminder.is_completed = True
            reminder.completed_at = utcnow()
        await self.update(reminder)
        return True

    async def snooze(self, reminder_id: int, minutes: int) -> bool:
        reminder = await self.get(reminder_id)
        if reminder is None:
            return False
        reminder.reminder_time = reminder.reminder_time + timedelta(minutes=minutes)
        reminder.status = ReminderStatus.snoozed
        await self.update(reminder)
        return True
