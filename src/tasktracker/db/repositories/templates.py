"""
tasktracker.db.repositories.templates

Repositories for board templates (with their default columns) and task
templates.

Responsibilities:
- Catalogue queries: public, default, popular, top rated, by tag or category.
- Usage counting and running rating averages.
- Edit rights: only the creator edits a template, and defaults stay read-only.
"""

from __future__ import annotations

from sqlalchemy import or_, select, update

from tasktracker.db.base import utcnow
from tasktracker.db.models import BoardTemplate, RecommendationScore, TaskTemplate
from tasktracker.db.repositories.base import BaseRepo
from tasktracker.db.repositories.filters import contains_pattern

MIN_RATING = 1.0
MAX_RATING = 5.0


class BoardTemplateRepo(BaseRepo[BoardTemplate]):
    model = BoardTemplate

    _catalogue_order = (BoardTemplate.usage_count.desc(), BoardTemplate.name)

    async def list_public(self) -> list[BoardTemplate]:
        return await self.find(BoardTemplate.is_public.is_(True), order_by=self._catalogue_order)

    async def list_for_user(self, user_id: int) -> list[BoardTemplate]:
        return await self.find(
            BoardTemplate.created_by_user_id == user_id,
            order_by=(BoardTemplate.created_at.desc(), BoardTemplate.id.desc()),
        )

    async def list_by_category(self, category: str) -> list[BoardTemplate]:
        return await self.find(
            BoardTemplate.is_public.is_(True),
            BoardTemplate.category == category,
            order_by=self._catalogue_order,
        )

    async def list_defaults(self) -> list[BoardTemplate]:
        return await self.find(BoardTemplate.is_default.is_(True), order_by=(BoardTemplate.name,))

    async def list_popular(self, limit: int = 10) -> list[BoardTemplate]:
        return await self.find(
            BoardTemplate.is_public.is_(True), order_by=self._catalogue_order, limit=limit
        )

    async def list_top_rated(self, limit: int = 10) -> list[BoardTemplate]:
        return await self.find(
            BoardTemplate.is_public.is_(True),
            BoardTemplate.average_rating.is_not(None),
            order_by=(BoardTemplate.average_rating.desc(), BoardTemplate.rating_count.desc()),
            limit=limit,
        )

    async def get_with_columns(self, template_id: int) -> BoardTemplate | None:
        # Columns load eagerly and arrive sorted by their order.
        stmt = (
            select(BoardTemplate)
            .where(BoardTemplate.id == template_id)
            .execution_options(populate_existing=True)
        )
        return await self._first(stmt, operation="get_with_columns")

    async def increment_usage(self, template_id: int) -> bool:
        template = await self.get(template_id)
        if template is None:
            return False
        template.usage_count += 1
        await self.update(template)
        return True

    async def add_rating(self, template_id: int, rating: float) -> bool:
        if not MIN_RATING <= rating <= MAX_RATING:
            return False
        template = await self.get(template_id)
        if template is None:
            return False
        count = template.rating_count
        average = template.average_rating or 0.0
        template.average_rating = round((average * count + rating) / (count + 1), 2)
        template.rating_count = count + 1
        await self.update(template)
        return True

    async def can_user_edit(self, template_id: int, user_id: int) -> bool:
        return await self.exists(
            BoardTemplate.id == template_id,
            BoardTemplate.created_by_user_id == user_id,
            BoardTemplate.is_default.is_(False),
        )

    async def search(self, term: str) -> list[BoardTemplate]:
        pattern = contains_pattern(term)
        return await self.find(
            BoardTemplate.is_public.is_(True),
            or_(
                BoardTemplate.name.ilike(pattern, escape="\\"),
                BoardTemplate.description.ilike(pattern, escape="\\"),
                BoardTemplate.tags.ilike(pattern, escape="\\"),
            ),
            order_by=self._catalogue_order,
        )

    async def list_by_tags(self, tags: str) -> list[BoardTemplate]:
        """Public templates carrying any of the comma-separated `tags`."""

        wanted = [t.strip() for t in tags.split(",") if t.strip()]
        if not wanted:
            return []
        return await self.find(
            BoardTemplate.is_public.is_(True),
            BoardTemplate.tags.is_not(None),
            or_(*(BoardTemplate.tags.ilike(contains_pattern(t), escape="\\") for t in wanted)),
            order_by=self._catalogue_order,
        )

    async def list_categories(self) -> list[str]:
        stmt = (
            select(BoardTemplate.category)
            .where(
                BoardTemplate.is_public.is_(True),
                BoardTemplate.category.is_not(None),
                BoardTemplate.category != "",
            )
            .distinct()
            .order_by(BoardTemplate.category)
        )
        return await self._all(stmt, operation="list_categories")


class TaskTemplateRepo(BaseRepo[TaskTemplate]):
    model = TaskTemplate

    async def list_for_user(self, user_id: int) -> list[TaskTemplate]:
        return await self.find(
            or_(
                TaskTemplate.user_id == user_id,
                TaskTemplate.is_public.is_(True),
                TaskTemplate.is_system_template.is_(True),
            ),
            order_by=(TaskTemplate.name,),
        )

    async def list_public(self) -> list[TaskTemplate]:
        return await self.find(
            TaskTemplate.is_public.is_(True),
            order_by=(TaskTemplate.usage_count.desc(), TaskTemplate.name),
        )

    async def list_by_category(self, category: str) -> list[TaskTemplate]:
        return await self.find(TaskTemplate.category == category, order_by=(TaskTemplate.name,))

    async def list_popular(self, limit: int = 10) -> list[TaskTemplate]:
        return await self.find(
            or_(TaskTemplate.is_public.is_(True), TaskTemplate.is_system_template.is_(True)),
            order_by=(TaskTemplate.usage_count.desc(), TaskTemplate.name),
            limit=limit,
        )

    async def search(self, user_id: int, term: str) -> list[TaskTemplate]:
        pattern = contains_pattern(term)
        return await self.find(
            or_(
                TaskTemplate.user_id == user_id,
                TaskTemplate.is_public.is_(True),
                TaskTemplate.is_system_template.is_(True),
            ),
            or_(
                TaskTemplate.name.ilike(pattern, escape="\\"),
                TaskTemplate.description.ilike(pattern, escape="\\"),
            ),
            order_by=(TaskTemplate.name,),
        )

    async def increment_usage(self, template_id: int) -> bool:
        template = await self.get(template_id)
        if template is None:
            return False
        template.usage_count += 1
        template.last_used_date = utcnow()
        await self.update(template)
        return True

    async def record_outcome(self, template_id: int, *, succeeded: bool) -> bool:
        """Fold one more outcome into the success rate (a fraction in [0, 1])."""

        template = await self.get(template_id)
        if template is None:
            return False
        uses = max(template.usage_count, 1)
        successes = template.success_rate * (uses - 1) + (1.0 if succeeded else 0.0)
        template.success_rate = round(successes / uses, 4)
        await self.update(template)
        return True

    async def delete(self, entity_id: int) -> bool:
        template = await self.get(entity_id)
        if template is None:
            return False
        await self._write(
            update(RecommendationScore)
            .where(RecommendationScore.template_id == entity_id)
            .values(template_id=None),
            operation="detach_recommendations",
        )
        await self.remove(template)
        return True
