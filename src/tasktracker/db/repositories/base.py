"""
tasktracker.db.repositories.base

Generic repository plumbing shared by every entity repository.

Responsibilities:
- Route all session I/O through a few helpers that log and translate faults.
- Provide CRUD building blocks with consistent audit-timestamp handling.
- Provide offset pagination over arbitrary select statements.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import Executable, Select, func, inspect, select
from sqlalchemy.engine import Result, Row
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tasktracker.db.base import Base, utcnow
from tasktracker.db.errors import NotFoundError, RepositoryError, translate_error
from tasktracker.db.repositories.filters import Page, PageParams
from tasktracker.observability.logging import get_logger

ModelT = TypeVar("ModelT", bound=Base)
EntityT = TypeVar("EntityT", bound=Base)


class BaseRepo(Generic[ModelT]):
    model: ClassVar[type[Base]]

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._log = get_logger(type(self).__module__).bind(repo=type(self).__name__)

    # --- I/O helpers ---------------------------------------------------------

    def _fail(self, exc: SQLAlchemyError, operation: str) -> RepositoryError:
        err = translate_error(exc, operation=f"{type(self).__name__}.{operation}")
        self._log.error(
            "repository_error", operation=operation, kind=err.kind.value, exc_info=True
        )
        return err

    async def _execute(
        self, stmt: Executable, params: Any = None, *, operation: str = "execute"
    ) -> Result[Any]:
        try:
            return await self._session.execute(stmt, params)
        except SQLAlchemyError as e:
            raise self._fail(e, operation) from e

    async def _all(self, stmt: Executable, *, operation: str = "query") -> list[Any]:
        return list((await self._execute(stmt, operation=operation)).scalars().all())

    async def _first(self, stmt: Executable, *, operation: str = "query") -> Any | None:
        return (await self._execute(stmt, operation=operation)).scalars().first()

    async def _scalar(self, stmt: Executable, *, operation: str = "aggregate") -> Any:
        return (await self._execute(stmt, operation=operation)).scalar()

    async def _rows(self, stmt: Executable, *, operation: str = "query") -> Sequence[Row[Any]]:
        return (await self._execute(stmt, operation=operation)).all()

    async def _write(self, stmt: Executable, *, operation: str = "bulk_write") -> int:
        result = await self._execute(stmt, operation=operation)
        return int(result.rowcount or 0)  # type: ignore[attr-defined]

    async def _flush(self, *, operation: str = "flush") -> None:
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise self._fail(e, operation) from e

    # --- CRUD ---------------------------------------------------------------

    async def get(self, entity_id: int) -> ModelT | None:
        try:
            return await self._session.get(self.model, entity_id)  # type: ignore[return-value]
        except SQLAlchemyError as e:
            raise self._fail(e, "get") from e

    async def find(
        self,
        *criteria: Any,
        order_by: Iterable[Any] = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[ModelT]:
        stmt = select(self.model).where(*criteria).order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._all(stmt, operation="find")

    async def find_one(self, *criteria: Any, order_by: Iterable[Any] = ()) -> ModelT | None:
        stmt = select(self.model).where(*criteria).order_by(*order_by).limit(1)
        return await self._first(stmt, operation="find_one")

    async def count(self, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(self.model).where(*criteria)
        return int(await self._scalar(stmt, operation="count") or 0)

    async def exists(self, *criteria: Any) -> bool:
        pk = inspect(self.model).primary_key[0]
        stmt = select(pk).where(*criteria).limit(1)
        return (await self._first(stmt, operation="exists")) is not None

    async def create(self, entity: ModelT) -> ModelT:
        if hasattr(entity, "created_at"):
            entity.created_at = utcnow()  # type: ignore[attr-defined]
        if hasattr(entity, "updated_at"):
            entity.updated_at = None  # type: ignore[attr-defined]
        self._session.add(entity)
        await self._flush(operation="create")
        self._log.debug("entity_created", entity=type(entity).__name__, id=_pk(entity))
        return entity

    async def update(self, entity: ModelT) -> ModelT:
        """
        Persist changes to an existing row. Accepts instances attached to this
        session or detached copies carrying a primary key.
        """
        return await self._save(entity)

    async def _save(self, entity: EntityT) -> EntityT:
        # Same contract as `update`, for satellite entities a repository also owns.
        state = inspect(entity)
        if not state.persistent:
            entity_id = _pk(entity)
            try:
                known = entity_id is not None and (
                    await self._session.get(type(entity), entity_id) is not None
                )
                if known:
                    entity = await self._session.merge(entity)
            except SQLAlchemyError as e:
                raise self._fail(e, "update") from e
            if not known:
                raise NotFoundError(
                    f"{type(entity).__name__} not found",
                    details={"id": entity_id},
                )
        if hasattr(entity, "updated_at"):
            entity.updated_at = utcnow()  # type: ignore[attr-defined]
        await self._flush(operation="update")
        self._log.debug("entity_updated", entity=type(entity).__name__, id=_pk(entity))
        return entity

    async def remove(self, entity: ModelT) -> None:
        try:
            await self._session.delete(entity)
        except SQLAlchemyError as e:
            raise self._fail(e, "delete") from e
        await self._flush(operation="delete")

    async def delete(self, entity_id: int) -> bool:
        entity = await self.get(entity_id)
        if entity is None:
            return False
        await self.remove(entity)
        self._log.debug("entity_deleted", entity=self.model.__name__, id=entity_id)
        return True

    async def paginate(self, stmt: Select[Any], page: PageParams) -> Page[ModelT]:
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        total = int(await self._scalar(count_stmt, operation="paginate_count") or 0)
        items = await self._all(
            stmt.offset(page.offset).limit(page.page_size), operation="paginate"
        )
        return Page(
            items=items,
            total_count=total,
            page_number=page.page_number,
            page_size=page.page_size,
        )


def _pk(entity: Any) -> Any:
    identity = inspect(entity).identity
    if identity:
        return identity[0]
    return getattr(entity, "id", None)


# --- Module Notes -----------------------------------------------------------
# Statement helpers carry an `operation` label so error logs point at the
# repository method that failed rather than at the shared helper.
