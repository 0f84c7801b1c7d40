"""
tasktracker.db.models.family

Families (households), roles with named permissions, memberships and
invitations.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tasktracker.db.base import Base, TimestampMixin, utcnow
from tasktracker.db.models.users import User


class Family(TimestampMixin, Base):
    __tablename__ = "families"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    members: Mapped[list[FamilyMember]] = relationship(
        cascade="all, delete", lazy="selectin"
    )


class FamilyRole(TimestampMixin, Base):
    __tablename__ = "family_roles"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_default: Mapped[bool] = mapped_column(nullable=False, default=False)

    permissions: Mapped[list[FamilyRolePermission]] = relationship(
        back_populates="role", cascade="all, delete", lazy="selectin"
    )

    def permission_names(self) -> set[str]:
        return {p.name for p in self.permissions}


class FamilyRolePermission(Base):
    __tablename__ = "family_role_permissions"

    id: Mapped[int] = mapped_column(primary_key=True)
    role_id: Mapped[int] = mapped_column(
        ForeignKey("family_roles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    role: Mapped[FamilyRole] = relationship(back_populates="permissions")

    __table_args__ = (UniqueConstraint("role_id", "name"),)


class FamilyMember(TimestampMixin, Base):
    __tablename__ = "family_members"

    id: Mapped[int] = mapped_column(primary_key=True)
    family_id: Mapped[int] = mapped_column(
        ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    role_id: Mapped[int] = mapped_column(ForeignKey("family_roles.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    relationship_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    joined_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    is_pending: Mapped[bool] = mapped_column(nullable=False, default=False)
    profile_completed: Mapped[bool] = mapped_column(nullable=False, default=False)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    role: Mapped[FamilyRole] = relationship(lazy="selectin")
    user: Mapped[User] = relationship(lazy="selectin")

    __table_args__ = (UniqueConstraint("family_id", "user_id"),)


class Invitation(Base):
    __tablename__ = "invitations"

    id: Mapped[int] = mapped_column(primary_key=True)
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    family_id: Mapped[int] = mapped_column(
        ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_id: Mapped[int] = mapped_column(ForeignKey("family_roles.id"), nullable=False)
    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_accepted: Mapped[bool] = mapped_column(nullable=False, default=False)
    accepted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
