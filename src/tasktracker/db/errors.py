"""
tasktracker.db.errors

Typed error taxonomy for the data-access layer.

Responsibilities:
- Distinguish not-found, conflict and transient I/O failures from other faults.
- Translate SQLAlchemy exceptions into that taxonomy in one place.
"""

from __future__ import annotations

import enum
from typing import Any

from sqlalchemy import exc as sa_exc


class ErrorKind(enum.StrEnum):
    not_found = "NOT_FOUND"
    conflict = "CONFLICT"
    transient_io = "TRANSIENT_IO"
    database = "DATABASE"


class RepositoryError(Exception):
    kind: ErrorKind = ErrorKind.database

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        kind: ErrorKind | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if kind is not None:
            self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.transient_io

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class NotFoundError(RepositoryError):
    kind = ErrorKind.not_found


class ConflictError(RepositoryError):
    kind = ErrorKind.conflict


class TransientIOError(RepositoryError):
    kind = ErrorKind.transient_io


def translate_error(exc: BaseException, *, operation: str) -> RepositoryError:
    """Map a driver/ORM exception onto the repository error taxonomy."""

    if isinstance(exc, RepositoryError):
        return exc

    details: dict[str, Any] = {"operation": operation, "cause": type(exc).__name__}
    if isinstance(exc, sa_exc.IntegrityError):
        return ConflictError(f"{operation}: constraint violated", details=details)
    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return TransientIOError(f"{operation}: connection lost", details=details)
    if isinstance(exc, (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError)):
        return TransientIOError(f"{operation}: database unavailable", details=details)
    return RepositoryError(f"{operation}: database error", details=details)


# --- Module Notes -----------------------------------------------------------
# Reads report absence as None/[]/0/False, deletes as False; only updates of a
# missing row raise NotFoundError.
