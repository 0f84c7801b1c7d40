"""
tests.test_parental

Parental authority, permission requests and screen-time limits.
"""

from __future__ import annotations

from datetime import time, timedelta

import pytest

from tasktracker.db.errors import ConflictError, NotFoundError
from tasktracker.db.models import (
    AgeGroup,
    AllowedTimeRange,
    ParentalControl,
    PermissionRequest,
    PermissionRequestStatus,
    PermissionRequestType,
)
from tasktracker.db.repositories.parental import EXPIRED_MESSAGE, ParentalControlRepo
from tests.factories import NOW, add_family, add_member, add_role, add_user


async def _family_with_child(session):
    parent = await add_user(session, "parent")
    guardian = await add_user(session, "grandma")
    child = await add_user(session, "kid", age_group=AgeGroup.child)
    family = await add_family(session, parent)
    await add_member(session, family, child, await add_role(session, "Child"))
    await add_member(session, family, guardian, await add_role(session, "Guardian"))
    controls = ParentalControlRepo(session)
    await controls.create(
        ParentalControl(
            parent_user_id=parent.id,
            child_user_id=child.id,
            screen_time_enabled=True,
            daily_time_limit_minutes=60,
            point_spending_approval_required=True,
            allowed_hours=[
                AllowedTimeRange(day_of_week=0, start_time=time(9, 0), end_time=time(17, 0))
            ],
        )
    )
    return parent, guardian, child, controls


@pytest.mark.asyncio
async def test_one_control_record_per_child(session) -> None:
    parent, _, child, controls = await _family_with_child(session)

    with pytest.raises(ConflictError):
        await controls.create(ParentalControl(parent_user_id=parent.id, child_user_id=child.id))
    assert await controls.get_parent_user_id(child.id) == parent.id
    assert await controls.get_parent_user_id(parent.id) is None


@pytest.mark.asyncio
async def test_guardians_share_authority_except_for_direct_parent_actions(session) -> None:
    parent, guardian, child, controls = await _family_with_child(session)
    stranger = await add_user(session, "stranger")

    assert await controls.has_parent_permission(parent.id, child.id) is True
    assert await controls.has_parent_permission(guardian.id, child.id) is True
    assert await controls.has_parent_permission(stranger.id, child.id) is False

    assert await controls.validate_parent_action(guardian.id, child.id, "ApproveTask") is True
    assert await controls.validate_parent_action(guardian.id, child.id, "DeleteChild") is False
    assert await controls.validate_parent_action(parent.id, child.id, "DeleteChild") is True


@pytest.mark.asyncio
async def test_approval_rules_by_action(session) -> None:
    _, _, child, controls = await _family_with_child(session)

    assert await controls.requires_parent_approval(child.id, PermissionRequestType.spend_points) is True
    assert await controls.requires_parent_approval(child.id, PermissionRequestType.create_task) is False
    assert (
        await controls.requires_parent_approval(child.id, PermissionRequestType.invite_family_member)
        is True
    )
    assert await controls.requires_parent_approval(child.id, PermissionRequestType.other) is False
    assert await controls.requires_parent_approval(9999, PermissionRequestType.change_profile) is False


@pytest.mark.asyncio
async def test_requests_are_answered_once_and_expire(session) -> None:
    parent, _, child, controls = await _family_with_child(session)

    def ask(kind: PermissionRequestType, expires_in: timedelta | None) -> PermissionRequest:
        return PermissionRequest(
            child_user_id=child.id,
            parent_user_id=parent.id,
            request_type=kind,
            expires_at=NOW + expires_in if expires_in is not None else None,
        )

    answered = await controls.create_request(ask(PermissionRequestType.spend_points, None))
    stale = await controls.create_request(ask(PermissionRequestType.create_task, timedelta(hours=-1)))
    await controls.create_request(ask(PermissionRequestType.chat_with_others, timedelta(days=1)))
    assert answered.status is PermissionRequestStatus.pending
    assert await controls.pending_request_count(parent.id) == 3

    assert await controls.respond_to_request(answered.id, approved=True, message="ok") is True
    assert answered.status is PermissionRequestStatus.approved
    assert await controls.respond_to_request(answered.id, approved=False) is False

    assert await controls.mark_expired_requests(NOW) == 1
    assert stale.status is PermissionRequestStatus.expired
    assert stale.response_message == EXPIRED_MESSAGE
    assert len(await controls.list_pending_for_parent(parent.id)) == 1
    assert len(await controls.list_requests_by_status(PermissionRequestStatus.expired)) == 1

    with pytest.raises(NotFoundError):
        await controls.update_request(
            PermissionRequest(
                id=9999,
                child_user_id=child.id,
                parent_user_id=parent.id,
                request_type=PermissionRequestType.other,
            )
        )


@pytest.mark.asyncio
async def test_screen_time_totals_and_allowed_hours(session) -> None:
    _, _, child, controls = await _family_with_child(session)
    today = NOW.date()
    await controls.record_screen_time(child.id, 20, started_at=NOW)
    await controls.record_screen_time(child.id, 25, started_at=NOW + timedelta(hours=2))
    await controls.record_screen_time(child.id, 40, started_at=NOW - timedelta(days=2))

    assert await controls.screen_time_for_date(child.id, today) == 45
    assert await controls.remaining_screen_time(child.id, today) == 15
    assert await controls.screen_time_range(child.id, today - timedelta(days=2), today) == {
        today - timedelta(days=2): 40,
        today - timedelta(days=1): 0,
        today: 45,
    }

    # NOW is a Monday at noon.
    assert await controls.is_within_allowed_hours(child.id, NOW) is True
    assert await controls.is_within_allowed_hours(child.id, NOW + timedelta(hours=8)) is False
    assert await controls.is_within_allowed_hours(child.id, NOW + timedelta(days=1)) is False
    assert await controls.is_within_allowed_hours(9999, NOW) is True
    assert await controls.remaining_screen_time(9999, today) is None


# --- Module Notes -----------------------------------------------------------
# Guardian authority flows through a shared family whose role is Parent or Guardian.
