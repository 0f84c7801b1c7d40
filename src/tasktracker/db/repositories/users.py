"""
tasktracker.db.repositories.users

Repository for `User` accounts.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import func, or_, select

from tasktracker.db.errors import ConflictError
from tasktracker.db.models import User
from tasktracker.db.repositories.base import BaseRepo
from tasktracker.db.repositories.filters import contains_pattern


class UserRepo(BaseRepo[User]):
    model = User

    async def get_by_username(self, username: str) -> User | None:
        return await self.find_one(User.username == username)

    async def get_by_email(self, email: str) -> User | None:
        return await self.find_one(func.lower(User.email) == email.strip().lower())

    async def get_by_username_or_email(self, identifier: str) -> User | None:
        ident = identifier.strip()
        return await self.find_one(
            or_(User.username == ident, func.lower(User.email) == ident.lower())
        )

    async def create(self, entity: User) -> User:
        if await self.exists(User.username == entity.username):
            raise ConflictError("username already taken", details={"username": entity.username})
        if await self.exists(func.lower(User.email) == entity.email.lower()):
            raise ConflictError("email already registered", details={"email": entity.email})
        return await super().create(entity)

    async def deactivate(self, user_id: int) -> bool:
        user = await self.get(user_id)
        if user is None:
            return False
        user.is_active = False
        await self.update(user)
        return True

    async def list_active(self) -> list[User]:
        return await self.find(User.is_active.is_(True), order_by=(User.username,))

    async def search(self, term: str, *, limit: int = 50) -> list[User]:
        pattern = contains_pattern(term)
        stmt = (
            select(User)
            .where(
                or_(
                    User.username.ilike(pattern, escape="\\"),
                    User.email.ilike(pattern, escape="\\"),
                    User.first_name.ilike(pattern, escape="\\"),
                    User.last_name.ilike(pattern, escape="\\"),
                )
            )
            .order_by(User.username)
            .limit(limit)
        )
        return await self._all(stmt, operation="search")

    async def get_many(self, user_ids: Iterable[int]) -> list[User]:
        ids = list(user_ids)
        if not ids:
            return []
        return await self.find(User.id.in_(ids), order_by=(User.id,))

    async def count_active(self) -> int:
        return await self.count(User.is_active.is_(True))
