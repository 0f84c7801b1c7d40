"""
tasktracker.db.repositories.focus

Focus sessions, their distractions and focus-time aggregates.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func, select

from tasktracker.db.base import utcnow
from tasktracker.db.models import Distraction, FocusSession, FocusSessionStatus
from tasktracker.db.repositories.base import BaseRepo


class FocusRepo(BaseRepo[FocusSession]):
    model = FocusSession

    async def get_active(self, user_id: int) -> FocusSession | None:
        return await self.find_one(
            FocusSession.user_id == user_id,
            FocusSession.end_time.is_(None),
            order_by=(FocusSession.start_time.desc(), FocusSession.id.desc()),
        )

    async def list_for_user(self, user_id: int) -> list[FocusSession]:
        return await self.find(
            FocusSession.user_id == user_id, order_by=(FocusSession.start_time.desc(),)
        )

    async def list_in_range(
        self, user_id: int, start: datetime, end: datetime
    ) -> list[FocusSession]:
        return await self.find(
            FocusSession.user_id == user_id,
            FocusSession.start_time >= start,
            FocusSession.end_time.is_(None) | (FocusSession.end_time <= end),
            order_by=(FocusSession.start_time.desc(),),
        )

    async def end(self, session_id: int, end_time: datetime | None = None) -> bool:
        focus = await self.get(session_id)
        if focus is None:
            return False
        focus.end_time = end_time or utcnow()
        focus.duration_minutes = int((focus.end_time - focus.start_time).total_seconds() // 60)
        focus.is_completed = True
        focus.status = FocusSessionStatus.completed
        await self._flush(operation="end")
        self._log.info("focus_session_ended", session_id=session_id, minutes=focus.duration_minutes)
        return True

    async def is_owned_by(self, session_id: int, user_id: int) -> bool:
        return await self.exists(FocusSession.id == session_id, FocusSession.user_id == user_id)

    # --- distractions -------------------------------------------------------------

    async def get_distraction(self, distraction_id: int) -> Distraction | None:
        return await self._first(select(Distraction).where(Distraction.id == distraction_id))

    async def list_distractions(self, session_id: int) -> list[Distraction]:
        return await self._all(
            select(Distraction)
            .where(Distraction.focus_session_id == session_id)
            .order_by(Distraction.timestamp),
            operation="list_distractions",
        )

    async def create_distraction(self, distraction: Distraction) -> Distraction:
        if distraction.timestamp is None:
            distraction.timestamp = utcnow()
        self._session.add(distraction)
        await self._flush(operation="create_distraction")
        return distraction

    async def update_distraction(self, distraction: Distraction) -> Distraction:
        return await self._save(distraction)

    async def delete_distraction(self, distraction_id: int) -> bool:
        distraction = await self.get_distraction(distraction_id)
        if distraction is None:
            return False
        await self.remove(distraction)
        return True

    # --- aggregates ---------------------------------------------------------------

    async def total_focus_minutes(
        self, user_id: int, start: datetime | None = None, end: datetime | None = None
    ) -> int:
        stmt = select(func.coalesce(func.sum(FocusSession.duration_minutes), 0)).where(
            FocusSession.user_id == user_id, FocusSession.end_time.is_not(None)
        )
        if start is not None:
            stmt = stmt.where(FocusSession.start_time >= start)
        if end is not None:
            stmt = stmt.where(FocusSession.end_time <= end)
        return int(await self._scalar(stmt, operation="total_focus_minutes"))

    async def total_sessions_count(self, user_id: int) -> int:
        return await self.count(FocusSession.user_id == user_id)

    async def total_distractions_count(self, user_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(Distraction)
            .join(FocusSession, FocusSession.id == Distraction.focus_session_id)
            .where(FocusSession.user_id == user_id)
        )
        return int(await self._scalar(stmt) or 0)

    async def distractions_by_category(self, user_id: int) -> dict[str, int]:
        stmt = (
            select(Distraction.category, func.count())
            .join(FocusSession, FocusSession.id == Distraction.focus_session_id)
            .where(FocusSession.user_id == user_id)
            .group_by(Distraction.category)
        )
        return {category: n for category, n in await self._rows(stmt)}

    async def daily_focus_minutes(
        self, user_id: int, days: int = 7, *, now: datetime | None = None
    ) -> dict[str, int]:
        today = (now or utcnow()).date()
        first_day = today - timedelta(days=days - 1)
        totals = {
            (first_day + timedelta(days=offset)).isoformat(): 0 for offset in range(days)
        }
        stmt = select(FocusSession.start_time, FocusSession.duration_minutes).where(
            FocusSession.user_id == user_id,
            FocusSession.end_time.is_not(None),
            FocusSession.start_time >= datetime(first_day.year, first_day.month, first_day.day),
        )
        for started, minutes in await self._rows(stmt, operation="daily_focus_minutes"):
            key = started.date().isoformat()
            if key in totals:
                totals[key] += minutes
        return totals
