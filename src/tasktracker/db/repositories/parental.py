"""
tasktracker.db.repositories.parental

Parental controls over child accounts.

Responsibilities:
- Control records (one per child) and parent authority checks.
- Permission requests raised by children, their responses and expiry.
- Screen-time recording, daily totals and allowed-hours enforcement.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import exists, func, select, update

from tasktracker.db.base import utcnow
from tasktracker.db.errors import ConflictError
from tasktracker.db.models import (
    AllowedTimeRange,
    FamilyMember,
    FamilyRole,
    ParentalControl,
    PermissionRequest,
    PermissionRequestStatus,
    PermissionRequestType,
    ScreenTimeSession,
)
from tasktracker.db.repositories.base import BaseRepo

EXPIRED_MESSAGE = "Request expired without response"
GUARDIAN_ROLES = ("Parent", "Guardian")
# Actions only the parent named on the control record may take.
DIRECT_PARENT_ACTIONS = frozenset({"DeleteChild", "ViewSensitiveData"})


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime(day.year, day.month, day.day)
    return start, start + timedelta(days=1)


class ParentalControlRepo(BaseRepo[ParentalControl]):
    model = ParentalControl

    async def get_for_child(self, child_user_id: int) -> ParentalControl | None:
        return await self.find_one(ParentalControl.child_user_id == child_user_id)

    async def list_for_parent(self, parent_user_id: int) -> list[ParentalControl]:
        return await self.find(
            ParentalControl.parent_user_id == parent_user_id,
            order_by=(ParentalControl.child_user_id,),
        )

    async def create(self, entity: ParentalControl) -> ParentalControl:
        if await self.has_controls(entity.child_user_id):
            raise ConflictError(
                "child already has parental controls",
                details={"child_user_id": entity.child_user_id},
            )
        return await super().create(entity)

    async def has_controls(self, child_user_id: int) -> bool:
        return await self.exists(ParentalControl.child_user_id == child_user_id)

    async def get_parent_user_id(self, child_user_id: int) -> int | None:
        control = await self.get_for_child(child_user_id)
        return control.parent_user_id if control else None

    async def _is_direct_parent(self, parent_user_id: int, child_user_id: int) -> bool:
        return await self.exists(
            ParentalControl.parent_user_id == parent_user_id,
            ParentalControl.child_user_id == child_user_id,
        )

    async def has_parent_permission(self, parent_user_id: int, child_user_id: int) -> bool:
        """Direct parent, or a Parent/Guardian member of a family the child belongs to."""

        if await self._is_direct_parent(parent_user_id, child_user_id):
            return True
        child_families = select(FamilyMember.family_id).where(
            FamilyMember.user_id == child_user_id
        )
        stmt = select(
            exists()
            .where(
                FamilyMember.user_id == parent_user_id,
                FamilyMember.family_id.in_(child_families),
                FamilyMember.role_id == FamilyRole.id,
                FamilyRole.name.in_(GUARDIAN_ROLES),
            )
        )
        return bool(await self._scalar(stmt, operation="has_parent_permission"))

    async def validate_parent_action(
        self, parent_user_id: int, child_user_id: int, action_type: str
    ) -> bool:
        if not await self.has_parent_permission(parent_user_id, child_user_id):
            return False
        if action_type in DIRECT_PARENT_ACTIONS:
            return await self._is_direct_parent(parent_user_id, child_user_id)
        return True

    async def requires_parent_approval(
        self, child_user_id: int, action_type: PermissionRequestType
    ) -> bool:
        control = await self.get_for_child(child_user_id)
        if control is None:
            return False
        match action_type:
            case PermissionRequestType.spend_points:
                return control.point_spending_approval_required
            case PermissionRequestType.create_task | PermissionRequestType.modify_task:
                return control.task_approval_required
            case PermissionRequestType.invite_family_member:
                return not control.can_invite_others
            case PermissionRequestType.change_profile:
                return True
            case PermissionRequestType.chat_with_others:
                return control.chat_monitoring_enabled
            case _:
                return False

    # --- permission requests ------------------------------------------------------

    async def get_permission_request(self, request_id: int) -> PermissionRequest | None:
        return await self._first(select(PermissionRequest).where(PermissionRequest.id == request_id))

    async def list_requests_for_child(self, child_user_id: int) -> list[PermissionRequest]:
        return await self._all(
            select(PermissionRequest)
            .where(PermissionRequest.child_user_id == child_user_id)
            .order_by(PermissionRequest.requested_at.desc())
        )

    async def list_pending_for_parent(self, parent_user_id: int) -> list[PermissionRequest]:
        return await self._all(
            select(PermissionRequest)
            .where(
                PermissionRequest.parent_user_id == parent_user_id,
                PermissionRequest.status == PermissionRequestStatus.pending,
            )
            .order_by(PermissionRequest.requested_at)
        )

    async def list_requests_by_status(
        self, status: PermissionRequestStatus
    ) -> list[PermissionRequest]:
        return await self._all(
            select(PermissionRequest)
            .where(PermissionRequest.status == status)
            .order_by(PermissionRequest.requested_at.desc())
        )

    async def create_request(self, request: PermissionRequest) -> PermissionRequest:
        request.requested_at = request.requested_at or utcnow()
        request.status = request.status or PermissionRequestStatus.pending
        self._session.add(request)
        await self._flush(operation="create_request")
        self._log.info(
            "permission_requested",
            child_user_id=request.child_user_id,
            request_type=str(request.request_type),
        )
        return request

    async def update_request(self, request: PermissionRequest) -> PermissionRequest:
        return await self._save(request)

    async def delete_request(self, request_id: int) -> bool:
        request = await self.get_permission_request(request_id)
        if request is None:
            return False
        await self.remove(request)
        return True

    async def respond_to_request(
        self, request_id: int, approved: bool, message: str | None = None
    ) -> bool:
        request = await self.get_permission_request(request_id)
        if request is None or request.status is not PermissionRequestStatus.pending:
            return False
        request.status = (
            PermissionRequestStatus.approved if approved else PermissionRequestStatus.denied
        )
        request.responded_at = utcnow()
        request.response_message = message
        await self._flush(operation="respond_to_request")
        return True

    async def pending_request_count(self, parent_user_id: int) -> int:
        stmt = select(func.count()).select_from(PermissionRequest).where(
            PermissionRequest.parent_user_id == parent_user_id,
            PermissionRequest.status == PermissionRequestStatus.pending,
        )
        return int(await self._scalar(stmt) or 0)

    async def recent_requests(self, child_user_id: int, count: int = 5) -> list[PermissionRequest]:
        return await self._all(
            select(PermissionRequest)
            .where(PermissionRequest.child_user_id == child_user_id)
            .order_by(PermissionRequest.requested_at.desc())
            .limit(count)
        )

    async def mark_expired_requests(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        expired = await self._write(
            update(PermissionRequest)
            .where(
                PermissionRequest.status == PermissionRequestStatus.pending,
                PermissionRequest.expires_at.is_not(None),
                PermissionRequest.expires_at < now,
            )
            .values(
                status=PermissionRequestStatus.expired,
                responded_at=now,
                response_message=EXPIRED_MESSAGE,
            )
            .execution_options(synchronize_session="evaluate"),
            operation="mark_expired_requests",
        )
        if expired:
            self._log.info("permission_requests_expired", count=expired)
        return expired

    # --- screen time --------------------------------------------------------------

    async def record_screen_time(
        self, child_user_id: int, minutes: int, started_at: datetime | None = None
    ) -> ScreenTimeSession:
        entry = ScreenTimeSession(
            child_user_id=child_user_id,
            duration_minutes=minutes,
            started_at=started_at or utcnow(),
            created_at=utcnow(),
        )
        self._session.add(entry)
        await self._flush(operation="record_screen_time")
        return entry

    async def screen_time_for_date(self, child_user_id: int, day: date) -> int:
        start, end = _day_bounds(day)
        stmt = select(func.coalesce(func.sum(ScreenTimeSession.duration_minutes), 0)).where(
            ScreenTimeSession.child_user_id == child_user_id,
            ScreenTimeSession.started_at >= start,
            ScreenTimeSession.started_at < end,
        )
        return int(await self._scalar(stmt, operation="screen_time_for_date"))

    async def screen_time_range(
        self, child_user_id: int, start_date: date, end_date: date
    ) -> dict[date, int]:
        totals = {
            start_date + timedelta(days=offset): 0
            for offset in range((end_date - start_date).days + 1)
        }
        range_start, _ = _day_bounds(start_date)
        _, range_end = _day_bounds(end_date)
        stmt = select(ScreenTimeSession.started_at, ScreenTimeSession.duration_minutes).where(
            ScreenTimeSession.child_user_id == child_user_id,
            ScreenTimeSession.started_at >= range_start,
            ScreenTimeSession.started_at < range_end,
        )
        for started, minutes in await self._rows(stmt, operation="screen_time_range"):
            totals[started.date()] += minutes
        return totals

    async def is_within_allowed_hours(self, child_user_id: int, moment: datetime) -> bool:
        control = await self.get_for_child(child_user_id)
        if control is None or not control.screen_time_enabled:
            return True
        windows = await self._all(
            select(AllowedTimeRange).where(AllowedTimeRange.parental_control_id == control.id),
            operation="allowed_hours",
        )
        return any(window.covers(moment) for window in windows)

    async def remaining_screen_time(
        self, child_user_id: int, today: date | None = None
    ) -> int | None:
        control = await self.get_for_child(child_user_id)
        if control is None or not control.screen_time_enabled:
            return None
        used = await self.screen_time_for_date(child_user_id, today or utcnow().date())
        return max(0, control.daily_time_limit_minutes - used)
