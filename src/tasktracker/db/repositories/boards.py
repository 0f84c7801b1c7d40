"""
tasktracker.db.repositories.boards

Repositories for Kanban boards, board columns and board settings.

Responsibilities:
- Owner-scoped board CRUD; deleting a board removes its columns and settings.
- Column ordering, WIP limits and status mapping.
- Per-board settings with the product defaults.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, select, update

from tasktracker.db.base import utcnow
from tasktracker.db.errors import ConflictError
from tasktracker.db.models import Board, BoardColumn, BoardSettings, TaskItem, TaskItemStatus
from tasktracker.db.repositories.base import BaseRepo

DEFAULT_BOARD_SETTINGS: dict[str, Any] = {
    "enable_wip_limits": False,
    "show_subtasks": True,
    "enable_swimlanes": False,
    "default_task_view": "detailed",
    "enable_drag_drop": True,
    "show_task_ids": False,
    "enable_task_timer": True,
    "show_progress_bars": True,
    "show_avatars": True,
    "show_due_dates": True,
    "show_priority": True,
    "show_categories": True,
    "auto_refresh": True,
    "auto_refresh_interval": 30,
    "enable_real_time_collaboration": True,
    "show_notifications": True,
    "enable_keyboard_shortcuts": True,
    "theme": "auto",
    "custom_theme_config": None,
    "swimlane_group_by": None,
    "default_sort_by": "created",
    "default_sort_direction": "desc",
    "show_column_counts": True,
    "show_board_stats": True,
    "enable_gamification": True,
    "is_archived": False,
}


class BoardRepo(BaseRepo[Board]):
    model = Board

    async def list_for_user(self, user_id: int, *, include_archived: bool = False) -> list[Board]:
        criteria = [Board.user_id == user_id]
        if not include_archived:
            criteria.append(Board.is_archived.is_(False))
        return await self.find(*criteria, order_by=(Board.name,))

    async def get_for_user(self, board_id: int, user_id: int) -> Board | None:
        return await self.find_one(Board.id == board_id, Board.user_id == user_id)

    async def is_owned_by(self, board_id: int, user_id: int) -> bool:
        return await self.exists(Board.id == board_id, Board.user_id == user_id)

    async def delete(self, entity_id: int) -> bool:
        board = await self.get(entity_id)
        if board is None:
            return False
        await self._execute(
            update(TaskItem).where(TaskItem.board_id == entity_id).values(board_id=None),
            operation="delete_board_detach_tasks",
        )
        await self._execute(
            delete(BoardColumn).where(BoardColumn.board_id == entity_id),
            operation="delete_board_columns",
        )
        await self._execute(
            delete(BoardSettings).where(BoardSettings.board_id == entity_id),
            operation="delete_board_settings",
        )
        await self.remove(board)
        self._log.info("board_deleted", board_id=entity_id)
        return True

    async def archive(self, board_id: int) -> bool:
        board = await self.get(board_id)
        if board is None:
            return False
        board.is_archived = True
        await self.update(board)
        return True


class BoardColumnRepo(BaseRepo[BoardColumn]):
    model = BoardColumn

    async def list_for_board(self, board_id: int) -> list[BoardColumn]:
        return await self.find(
            BoardColumn.board_id == board_id, order_by=(BoardColumn.order, BoardColumn.id)
        )

    async def list_visible(self, board_id: int) -> list[BoardColumn]:
        return await self.find(
            BoardColumn.board_id == board_id,
            BoardColumn.is_hidden.is_(False),
            order_by=(BoardColumn.order, BoardColumn.id),
        )

    async def reorder(self, board_id: int, column_orders: dict[int, int]) -> bool:
        """Apply `{column_id: order}`; ids that are not on the board are ignored."""

        columns = await self.find(
            BoardColumn.board_id == board_id, BoardColumn.id.in_(list(column_orders))
        )
        if not columns:
            self._log.warning("reorder_no_matching_columns", board_id=board_id)
            return False
        now = utcnow()
        for column in columns:
            column.order = column_orders[column.id]
            column.updated_at = now
        await self._flush(operation="reorder")
        return True

    async def next_order(self, board_id: int) -> int:
        stmt = select(func.max(BoardColumn.order)).where(BoardColumn.board_id == board_id)
        current = await self._scalar(stmt, operation="next_order")
        return 0 if current is None else int(current) + 1

    async def belongs_to_board(self, column_id: int, board_id: int) -> bool:
        return await self.exists(BoardColumn.id == column_id, BoardColumn.board_id == board_id)

    async def get_by_status(self, board_id: int, status: TaskItemStatus) -> BoardColumn | None:
        return await self.find_one(
            BoardColumn.board_id == board_id,
            BoardColumn.mapped_status == status,
            order_by=(BoardColumn.order,),
        )

    async def task_count(self, column_id: int) -> int:
        column = await self.get(column_id)
        if column is None:
            return 0
        stmt = (
            select(func.count())
            .select_from(TaskItem)
            .where(TaskItem.board_id == column.board_id, TaskItem.status == column.mapped_status)
        )
        return int(await self._scalar(stmt, operation="task_count") or 0)

    async def is_wip_limit_reached(self, column_id: int) -> bool:
        column = await self.get(column_id)
        if column is None or not column.task_limit:
            return False
        return await self.task_count(column_id) >= column.task_limit

    async def list_done_columns(self, board_id: int) -> list[BoardColumn]:
        return await self.find(
            BoardColumn.board_id == board_id,
            BoardColumn.is_done_column.is_(True),
            order_by=(BoardColumn.order,),
        )


class BoardSettingsRepo(BaseRepo[BoardSettings]):
    model = BoardSettings

    async def get_for_board(self, board_id: int) -> BoardSettings | None:
        return await self.find_one(BoardSettings.board_id == board_id)

    async def exists_for_board(self, board_id: int) -> bool:
        return await self.exists(BoardSettings.board_id == board_id)

    async def create(self, entity: BoardSettings) -> BoardSettings:
        if await self.exists_for_board(entity.board_id):
            raise ConflictError("board already has settings", details={"board_id": entity.board_id})
        return await super().create(entity)

    async def create_defaults(self, board_id: int) -> BoardSettings:
        return await self.create(BoardSettings(board_id=board_id, **DEFAULT_BOARD_SETTINGS))

    async def reset_to_defaults(self, board_id: int) -> BoardSettings:
        settings = await self.get_for_board(board_id)
        if settings is None:
            return await self.create_defaults(board_id)
        for name, value in DEFAULT_BOARD_SETTINGS.items():
            setattr(settings, name, value)
        return await self.update(settings)

    def _owned_by(self, user_id: int):
        return select(BoardSettings).join(Board, Board.id == BoardSettings.board_id).where(
            Board.user_id == user_id
        )

    async def list_archived(self, user_id: int) -> list[BoardSettings]:
        stmt = self._owned_by(user_id).where(BoardSettings.is_archived.is_(True))
        return await self._all(stmt, operation="list_archived")

    async def list_by_theme(self, user_id: int, theme: str) -> list[BoardSettings]:
        stmt = self._owned_by(user_id).where(BoardSettings.theme == theme)
        return await self._all(stmt, operation="list_by_theme")

    async def list_gamified(self, user_id: int) -> list[BoardSettings]:
        stmt = self._owned_by(user_id).where(BoardSettings.enable_gamification.is_(True))
        return await self._all(stmt, operation="list_gamified")
