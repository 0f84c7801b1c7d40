"""
tasktracker.db.models.templates

Reusable board layouts and task templates.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tasktracker.db.base import Base, TimestampMixin
from tasktracker.db.models.tasks import TaskItemStatus


class BoardTemplate(TimestampMixin, Base):
    __tablename__ = "board_templates"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    # Comma-separated free-form tags.
    tags: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_public: Mapped[bool] = mapped_column(nullable=False, default=False, index=True)
    is_default: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_by_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )
    layout_configuration: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    preview_image_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    usage_count: Mapped[int] = mapped_column(nullable=False, default=0)
    average_rating: Mapped[float | None] = mapped_column(nullable=True)
    rating_count: Mapped[int] = mapped_column(nullable=False, default=0)

    columns: Mapped[list[BoardTemplateColumn]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="BoardTemplateColumn.order",
        lazy="selectin",
    )


class BoardTemplateColumn(Base):
    __tablename__ = "board_template_columns"

    id: Mapped[int] = mapped_column(primary_key=True)
    board_template_id: Mapped[int] = mapped_column(
        ForeignKey("board_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    order: Mapped[int] = mapped_column("sort_order", nullable=False, default=0)
    color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    mapped_status: Mapped[TaskItemStatus] = mapped_column(
        Enum(TaskItemStatus), nullable=False, default=TaskItemStatus.not_started
    )
    task_limit: Mapped[int | None] = mapped_column(nullable=True)
    is_done_column: Mapped[bool] = mapped_column(nullable=False, default=False)

    template: Mapped[BoardTemplate] = relationship(back_populates="columns")


class TaskTemplate(TimestampMixin, Base):
    __tablename__ = "task_templates"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    template_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Custom")
    template_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    is_system_template: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_public: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_automated: Mapped[bool] = mapped_column(nullable=False, default=False)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    usage_count: Mapped[int] = mapped_column(nullable=False, default=0)
    success_rate: Mapped[float] = mapped_column(nullable=False, default=0.0)
    average_completion_time_minutes: Mapped[int] = mapped_column(nullable=False, default=0)
    last_used_date: Mapped[datetime | None] = mapped_column(nullable=True)
