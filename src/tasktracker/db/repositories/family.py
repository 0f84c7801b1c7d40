"""
tasktracker.db.repositories.family

Repositories for families, roles and invitations.

Responsibilities:
- Family CRUD with membership management and an audited cascade delete.
- Permission checks through the member's role, including age-based management rules.
- Role catalogue with named permissions.
- Invitation tokens with acceptance and expiry.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Select, delete, func, inspect, or_, select, update

from tasktracker.db.base import utcnow
from tasktracker.db.errors import ConflictError
from tasktracker.db.models import (
    AgeGroup,
    EventAttendee,
    Family,
    FamilyCalendarEvent,
    FamilyMember,
    FamilyRole,
    FamilyRolePermission,
    Invitation,
    NotificationPreference,
    SecurityAuditLog,
    TaskItem,
    User,
)
from tasktracker.db.repositories.base import BaseRepo

MANAGE_FAMILY = "manage_family"
TEEN_MANAGE_FAMILY = "teen_manage_family"
# Any member may create and manage calendar events.
MEMBERSHIP_PERMISSIONS = frozenset({"create_events", "manage_calendar"})
TEEN_FAMILY_SIZE_LIMIT = 5


class FamilyRepo(BaseRepo[Family]):
    model = Family

    async def list_all(self) -> list[Family]:
        return await self.find(order_by=(Family.name, Family.id))

    async def list_for_user(self, user_id: int) -> list[Family]:
        memberships = select(FamilyMember.family_id).where(FamilyMember.user_id == user_id)
        return await self.find(Family.id.in_(memberships), order_by=(Family.name, Family.id))

    async def delete(self, entity_id: int) -> bool:
        family = await self.get(entity_id)
        if family is None:
            return False

        events = select(FamilyCalendarEvent.id).where(FamilyCalendarEvent.family_id == entity_id)
        await self._write(
            delete(EventAttendee).where(EventAttendee.event_id.in_(events)),
            operation="delete_family_attendees",
        )
        await self._write(
            delete(FamilyCalendarEvent).where(FamilyCalendarEvent.family_id == entity_id),
            operation="delete_family_events",
        )
        await self._write(
            delete(Invitation).where(Invitation.family_id == entity_id),
            operation="delete_family_invitations",
        )
        await self._write(
            update(User).where(User.primary_family_id == entity_id).values(primary_family_id=None),
            operation="clear_primary_family",
        )
        await self._detach_members(
            select(FamilyMember.id).where(FamilyMember.family_id == entity_id)
        )
        await self._write(
            update(TaskItem).where(TaskItem.family_id == entity_id).values(family_id=None),
            operation="detach_family_tasks",
        )
        await self._write(
            delete(NotificationPreference).where(NotificationPreference.family_id == entity_id),
            operation="delete_family_preferences",
        )
        self._session.add(
            SecurityAuditLog(
                event_type="family.deleted",
                action="Delete",
                user_id=family.created_by_id,
                resource=f"family:{entity_id}",
                details=f"Family '{family.name}' was deleted",
                timestamp=utcnow(),
                created_at=utcnow(),
            )
        )
        # Members go with the family through the relationship cascade.
        await self.remove(family)
        self._log.info("family_deleted", family_id=entity_id)
        return True

    async def _detach_members(self, member_ids: Select[tuple[int]] | list[int]) -> None:
        # Task assignments are cleared; calendar attendance goes with the member.
        await self._write(
            update(TaskItem)
            .where(TaskItem.assigned_to_family_member_id.in_(member_ids))
            .values(assigned_to_family_member_id=None),
            operation="clear_member_assignments",
        )
        await self._write(
            delete(EventAttendee).where(EventAttendee.family_member_id.in_(member_ids)),
            operation="delete_member_attendance",
        )

    # --- membership ---------------------------------------------------------------

    async def get_member(self, member_id: int) -> FamilyMember | None:
        return await self._first(select(FamilyMember).where(FamilyMember.id == member_id))

    async def get_member_for_user(self, user_id: int, family_id: int) -> FamilyMember | None:
        return await self._first(
            select(FamilyMember).where(
                FamilyMember.family_id == family_id, FamilyMember.user_id == user_id
            )
        )

    async def list_members(self, family_id: int) -> list[FamilyMember]:
        stmt = (
            select(FamilyMember)
            .where(FamilyMember.family_id == family_id)
            .order_by(FamilyMember.joined_at, FamilyMember.id)
        )
        return await self._all(stmt, operation="list_members")

    async def list_pending_members(self) -> list[FamilyMember]:
        stmt = (
            select(FamilyMember)
            .where(FamilyMember.is_pending.is_(True))
            .order_by(FamilyMember.joined_at)
        )
        return await self._all(stmt, operation="list_pending_members")

    async def is_member(self, family_id: int, user_id: int) -> bool:
        return await self.get_member_for_user(user_id, family_id) is not None

    async def add_member(self, family_id: int, user_id: int, role_id: int) -> bool:
        if await self.is_member(family_id, user_id):
            return False
        user = await self._first(select(User).where(User.id == user_id))
        member = FamilyMember(
            family_id=family_id,
            user_id=user_id,
            role_id=role_id,
            name=user.full_name if user else "",
            email=user.email if user else None,
            joined_at=utcnow(),
            created_at=utcnow(),
        )
        self._session.add(member)
        await self._flush(operation="add_member")
        self._log.info("family_member_added", family_id=family_id, user_id=user_id)
        return True

    async def remove_member(self, family_id: int, user_id: int) -> bool:
        member = await self.get_member_for_user(user_id, family_id)
        if member is None:
            return False
        await self._detach_members([member.id])
        await self.remove(member)
        return True

    async def update_member_role(self, family_id: int, user_id: int, role_id: int) -> bool:
        member = await self.get_member_for_user(user_id, family_id)
        if member is None:
            return False
        member.role_id = role_id
        member.updated_at = utcnow()
        await self._flush(operation="update_member_role")
        return True

    async def update_member(self, member: FamilyMember) -> bool:
        if await self.get_member(member.id) is None:
            return False
        if not inspect(member).persistent:
            member = await self._session.merge(member)
        member.updated_at = utcnow()
        await self._flush(operation="update_member")
        return True

    async def delete_member(self, member_id: int) -> bool:
        member = await self.get_member(member_id)
        if member is None:
            return False
        await self._detach_members([member.id])
        await self.remove(member)
        return True

    # --- permissions --------------------------------------------------------------

    async def has_permission(self, family_id: int, user_id: int, permission: str) -> bool:
        member = await self.get_member_for_user(user_id, family_id)
        if member is None:
            return False
        if permission in MEMBERSHIP_PERMISSIONS:
            return True
        granted = await self._first(
            select(FamilyRolePermission.id).where(
                FamilyRolePermission.role_id == member.role_id,
                FamilyRolePermission.name == permission,
            ),
            operation="has_permission",
        )
        return granted is not None

    async def is_admin_of(self, user_id: int, family_id: int) -> bool:
        family = await self.get(family_id)
        if family is None:
            return False
        if family.created_by_id == user_id:
            return True
        return await self.has_permission(family_id, user_id, MANAGE_FAMILY)

    async def list_admin_families(self, user_id: int) -> list[Family]:
        return [
            family
            for family in await self.list_for_user(user_id)
            if await self.is_admin_of(user_id, family.id)
        ]

    async def is_any_family_admin(self, user_id: int) -> bool:
        return bool(await self.list_admin_families(user_id))

    async def list_member_families(self, user_id: int) -> list[Family]:
        return await self.list_for_user(user_id)

    async def list_management_families(self, user_id: int) -> list[Family]:
        privileged_roles = select(FamilyRolePermission.role_id).where(
            or_(
                FamilyRolePermission.name.contains("manage"),
                FamilyRolePermission.name.contains("admin"),
            )
        )
        memberships = select(FamilyMember.family_id).where(
            FamilyMember.user_id == user_id, FamilyMember.role_id.in_(privileged_roles)
        )
        return await self.find(Family.id.in_(memberships), order_by=(Family.name, Family.id))

    async def transfer_ownership(
        self, family_id: int, current_owner_id: int, new_owner_id: int
    ) -> bool:
        family = await self.find_one(Family.id == family_id, Family.created_by_id == current_owner_id)
        if family is None:
            return False
        new_owner = await self.get_member_for_user(new_owner_id, family_id)
        age_group = await self._first(select(User.age_group).where(User.id == new_owner_id))
        if new_owner is None or age_group is AgeGroup.child:
            return False

        family.created_by_id = new_owner_id
        family.updated_at = utcnow()
        admin_role = await self._first(select(FamilyRole).where(FamilyRole.name == "Admin"))
        if admin_role is not None:
            new_owner.role_id = admin_role.id
        old_owner = await self.get_member_for_user(current_owner_id, family_id)
        member_role = await self._first(select(FamilyRole).where(FamilyRole.name == "Member"))
        if old_owner is not None and member_role is not None:
            old_owner.role_id = member_role.id
        await self._flush(operation="transfer_ownership")
        self._log.info(
            "family_ownership_transferred",
            family_id=family_id,
            from_user=current_owner_id,
            to_user=new_owner_id,
        )
        return True

    async def can_manage_by_age(self, user_id: int, family_id: int) -> bool:
        user = await self._first(select(User).where(User.id == user_id))
        family = await self.get(family_id)
        if user is None or family is None:
            return False

        if user.age_group is AgeGroup.child:
            return False
        if user.age_group is AgeGroup.teen:
            size = await self._scalar(
                select(func.count())
                .select_from(FamilyMember)
                .where(FamilyMember.family_id == family_id)
            )
            if size > TEEN_FAMILY_SIZE_LIMIT:
                return False
            if family.created_by_id == user_id:
                return True
            return await self.has_permission(family_id, user_id, TEEN_MANAGE_FAMILY)
        return family.created_by_id == user_id or await self.has_permission(
            family_id, user_id, MANAGE_FAMILY
        )

    # --- primary family -----------------------------------------------------------

    async def get_primary_family(self, user_id: int) -> Family | None:
        user = await self._first(select(User).where(User.id == user_id))
        if user is None or user.primary_family_id is None:
            return None
        return await self.get(user.primary_family_id)

    async def set_primary_family(self, user_id: int, family_id: int) -> bool:
        user = await self._first(select(User).where(User.id == user_id))
        if user is None or not await self.is_member(family_id, user_id):
            return False
        user.primary_family_id = family_id
        user.updated_at = utcnow()
        await self._flush(operation="set_primary_family")
        return True


class FamilyRoleRepo(BaseRepo[FamilyRole]):
    model = FamilyRole

    async def list_all(self) -> list[FamilyRole]:
        return await self.find(order_by=(FamilyRole.name,))

    async def get_by_name(self, name: str) -> FamilyRole | None:
        return await self.find_one(FamilyRole.name == name)

    async def get_default(self) -> FamilyRole | None:
        return await self.find_one(FamilyRole.is_default.is_(True), order_by=(FamilyRole.id,))

    async def create(self, entity: FamilyRole) -> FamilyRole:
        if await self.exists(FamilyRole.name == entity.name):
            raise ConflictError("role name already exists", details={"name": entity.name})
        return await super().create(entity)

    async def delete(self, entity_id: int) -> bool:
        in_use = await self._scalar(
            select(func.count()).select_from(FamilyMember).where(FamilyMember.role_id == entity_id)
        ) + await self._scalar(
            select(func.count()).select_from(Invitation).where(Invitation.role_id == entity_id)
        )
        if in_use:
            self._log.warning("role_in_use", role_id=entity_id, references=in_use)
            return False
        return await super().delete(entity_id)

    async def _permission(self, role_id: int, name: str) -> FamilyRolePermission | None:
        return await self._first(
            select(FamilyRolePermission).where(
                FamilyRolePermission.role_id == role_id, FamilyRolePermission.name == name
            )
        )

    async def add_permission(self, role_id: int, name: str) -> bool:
        if await self.get(role_id) is None:
            return False
        if await self._permission(role_id, name) is None:
            self._session.add(
                FamilyRolePermission(role_id=role_id, name=name, created_at=utcnow())
            )
            await self._flush(operation="add_permission")
        return True

    async def remove_permission(self, role_id: int, name: str) -> bool:
        match = await self._permission(role_id, name)
        if match is None:
            return False
        await self.remove(match)
        return True

    async def list_permissions(self, role_id: int) -> list[str]:
        stmt = (
            select(FamilyRolePermission.name)
            .where(FamilyRolePermission.role_id == role_id)
            .order_by(FamilyRolePermission.name)
        )
        return await self._all(stmt, operation="list_permissions")


class InvitationRepo(BaseRepo[Invitation]):
    model = Invitation

    async def get_by_token(self, token: str) -> Invitation | None:
        return await self.find_one(Invitation.token == token)

    async def list_for_family(self, family_id: int) -> list[Invitation]:
        return await self.find(
            Invitation.family_id == family_id, order_by=(Invitation.created_at.desc(),)
        )

    async def list_pending_for_email(
        self, email: str, *, now: datetime | None = None
    ) -> list[Invitation]:
        return await self.find(
            func.lower(Invitation.email) == email.lower(),
            Invitation.is_accepted.is_(False),
            Invitation.expires_at > (now or utcnow()),
            order_by=(Invitation.created_at.desc(),),
        )

    async def create(self, entity: Invitation) -> Invitation:
        if await self.exists(Invitation.token == entity.token):
            raise ConflictError("invitation token already exists")
        return await super().create(entity)

    async def is_valid(self, token: str, *, now: datetime | None = None) -> bool:
        invitation = await self.get_by_token(token)
        return (
            invitation is not None
            and not invitation.is_accepted
            and invitation.expires_at > (now or utcnow())
        )

    async def accept(self, token: str, *, now: datetime | None = None) -> Invitation | None:
        now = now or utcnow()
        if not await self.is_valid(token, now=now):
            return None
        invitation = await self.get_by_token(token)
        invitation.is_accepted = True
        invitation.accepted_at = now
        await self._flush(operation="accept")
        self._log.info("invitation_accepted", invitation_id=invitation.id)
        return invitation

    async def exists_pending(
        self, family_id: int, email: str, *, now: datetime | None = None
    ) -> bool:
        return await self.exists(
            Invitation.family_id == family_id,
            func.lower(Invitation.email) == email.lower(),
            Invitation.is_accepted.is_(False),
            Invitation.expires_at > (now or utcnow()),
        )

    async def delete_expired(self, now: datetime | None = None) -> int:
        removed = await self._write(
            delete(Invitation).where(
                Invitation.is_accepted.is_(False), Invitation.expires_at <= (now or utcnow())
            ),
            operation="delete_expired",
        )
        self._log.info("expired_invitations_removed", count=removed)
        return removed
