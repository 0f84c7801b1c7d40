"""
tasktracker.db.models.boards

Kanban boards, their columns and per-board display settings.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tasktracker.db.base import Base, TimestampMixin
from tasktracker.db.models.tasks import TaskItemStatus


class Board(TimestampMixin, Base):
    __tablename__ = "boards"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    template: Mapped[str | None] = mapped_column(String(64), nullable=True)
    custom_layout: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    is_archived: Mapped[bool] = mapped_column(nullable=False, default=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)


class BoardColumn(TimestampMixin, Base):
    __tablename__ = "board_columns"

    id: Mapped[int] = mapped_column(primary_key=True)
    board_id: Mapped[int] = mapped_column(
        ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    order: Mapped[int] = mapped_column("sort_order", nullable=False, default=0)
    color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Tasks whose status equals mapped_status render in this column.
    mapped_status: Mapped[TaskItemStatus] = mapped_column(Enum(TaskItemStatus), nullable=False)
    task_limit: Mapped[int | None] = mapped_column(nullable=True)
    is_collapsed: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_hidden: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_done_column: Mapped[bool] = mapped_column(nullable=False, default=False)

    __table_args__ = (Index("ix_board_columns_board_order", "board_id", "sort_order"),)


class BoardSettings(TimestampMixin, Base):
    __tablename__ = "board_settings"

    id: Mapped[int] = mapped_column(primary_key=True)
    board_id: Mapped[int] = mapped_column(
        ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    enable_wip_limits: Mapped[bool] = mapped_column(nullable=False, default=False)
    show_subtasks: Mapped[bool] = mapped_column(nullable=False, default=True)
    enable_swimlanes: Mapped[bool] = mapped_column(nullable=False, default=False)
    default_task_view: Mapped[str] = mapped_column(String(32), nullable=False, default="detailed")
    enable_drag_drop: Mapped[bool] = mapped_column(nullable=False, default=True)
    show_task_ids: Mapped[bool] = mapped_column(nullable=False, default=False)
    enable_task_timer: Mapped[bool] = mapped_column(nullable=False, default=True)
    show_progress_bars: Mapped[bool] = mapped_column(nullable=False, default=True)
    show_avatars: Mapped[bool] = mapped_column(nullable=False, default=True)
    show_due_dates: Mapped[bool] = mapped_column(nullable=False, default=True)
    show_priority: Mapped[bool] = mapped_column(nullable=False, default=True)
    show_categories: Mapped[bool] = mapped_column(nullable=False, default=True)
    auto_refresh: Mapped[bool] = mapped_column(nullable=False, default=True)
    auto_refresh_interval: Mapped[int] = mapped_column(nullable=False, default=30)
    enable_real_time_collaboration: Mapped[bool] = mapped_column(nullable=False, default=True)
    show_notifications: Mapped[bool] = mapped_column(nullable=False, default=True)
    enable_keyboard_shortcuts: Mapped[bool] = mapped_column(nullable=False, default=True)
    theme: Mapped[str] = mapped_column(String(32), nullable=False, default="auto")
    custom_theme_config: Mapped[str | None] = mapped_column(Text, nullable=True)
    swimlane_group_by: Mapped[str | None] = mapped_column(String(32), nullable=True)
    default_sort_by: Mapped[str] = mapped_column(String(32), nullable=False, default="created")
    default_sort_direction: Mapped[str] = mapped_column(String(4), nullable=False, default="desc")
    show_column_counts: Mapped[bool] = mapped_column(nullable=False, default=True)
    show_board_stats: Mapped[bool] = mapped_column(nullable=False, default=True)
    enable_gamification: Mapped[bool] = mapped_column(nullable=False, default=True)
    is_archived: Mapped[bool] = mapped_column(nullable=False, default=False)
