"""
tests.factories

Seed helpers that add and flush minimal rows for repository tests.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from tasktracker.db.models import (
    AgeGroup,
    Family,
    FamilyMember,
    FamilyRole,
    FamilyRolePermission,
    TaskItem,
    User,
)

# Fixed clock for time-window assertions; Monday noon.
NOW = datetime(2026, 3, 16, 12, 0, 0)


async def add_user(
    session: AsyncSession,
    username: str,
    *,
    age_group: AgeGroup = AgeGroup.adult,
    is_active: bool = True,
) -> User:
    user = User(
        username=username,
        email=f"{username}@example.com",
        age_group=age_group,
        is_active=is_active,
    )
    session.add(user)
    await session.flush()
    return user


async def add_task(session: AsyncSession, user: User, title: str, **fields) -> TaskItem:
    task = TaskItem(title=title, user_id=user.id, **fields)
    session.add(task)
    await session.flush()
    return task


async def add_family(
    session: AsyncSession, creator: User, name: str = "Home", **fields
) -> Family:
    family = Family(name=name, created_by_id=creator.id, members=[], **fields)
    session.add(family)
    await session.flush()
    return family


async def add_role(session: AsyncSession, name: str, *permissions: str) -> FamilyRole:
    role = FamilyRole(
        name=name, permissions=[FamilyRolePermission(name=p) for p in permissions]
    )
    session.add(role)
    await session.flush()
    return role


async def add_member(
    session: AsyncSession, family: Family, user: User, role: FamilyRole, **fields
) -> FamilyMember:
    member = FamilyMember(user_id=user.id, role=role, user=user, **fields)
    family.members.append(member)
    await session.flush()
    return member
