"""
tasktracker.db.models.users

User accounts.
"""

from __future__ import annotations

import enum

from sqlalchemy import Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from tasktracker.db.base import Base, TimestampMixin


class AgeGroup(enum.StrEnum):
    child = "CHILD"
    teen = "TEEN"
    adult = "ADULT"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    salt: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    first_name: Mapped[str | None] = mapped_column(String(250), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(250), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="User")
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    points: Mapped[int] = mapped_column(nullable=False, default=0)
    age_group: Mapped[AgeGroup] = mapped_column(
        Enum(AgeGroup), nullable=False, default=AgeGroup.adult
    )
    # families.created_by_id points back at users, hence use_alter on this edge.
    primary_family_id: Mapped[int | None] = mapped_column(
        ForeignKey("families.id", ondelete="SET NULL", use_alter=True), nullable=True
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.username
