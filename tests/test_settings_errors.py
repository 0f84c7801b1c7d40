"""
tests.test_settings_errors

Configuration defaults, error translation and structured log output.
"""

from __future__ import annotations

import json
import logging

import pytest
import structlog
from pydantic import ValidationError
from sqlalchemy import exc as sa_exc

from tasktracker.db.errors import (
    ConflictError,
    ErrorKind,
    NotFoundError,
    RepositoryError,
    TransientIOError,
    translate_error,
)
from tasktracker.observability.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)
from tasktracker.settings import Settings, get_settings


def test_schema_autocreate_follows_environment() -> None:
    assert Settings(env="dev").auto_create_schema is True
    assert Settings(env="test").auto_create_schema is True
    assert Settings(env="prod").auto_create_schema is False
    assert Settings(env="prod", auto_create_schema=True).auto_create_schema is True


def test_page_size_bounds_are_validated() -> None:
    with pytest.raises(ValidationError):
        Settings(default_page_size=500, max_page_size=100)
    with pytest.raises(ValidationError):
        Settings(max_page_size=0)


def test_settings_read_prefixed_environment(monkeypatch) -> None:
    monkeypatch.setenv("TASKTRACKER_ENV", "prod")
    monkeypatch.setenv("TASKTRACKER_MAX_PAGE_SIZE", "50")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert (settings.env, settings.max_page_size) == ("prod", 50)
        assert get_settings() is settings
        assert "database_url" not in repr(settings)
    finally:
        get_settings.cache_clear()


def test_integrity_errors_become_conflicts() -> None:
    err = translate_error(
        sa_exc.IntegrityError("INSERT", {}, Exception("UNIQUE failed")), operation="create"
    )
    assert isinstance(err, ConflictError)
    assert err.kind is ErrorKind.conflict
    assert err.details == {"operation": "create", "cause": "IntegrityError"}
    assert err.retryable is False


def test_connectivity_errors_are_retryable() -> None:
    dropped = sa_exc.DBAPIError("SELECT 1", {}, Exception("reset"), connection_invalidated=True)
    locked = sa_exc.OperationalError("UPDATE", {}, Exception("database is locked"))
    for cause in (dropped, locked):
        err = translate_error(cause, operation="find")
        assert isinstance(err, TransientIOError)
        assert err.retryable is True


def test_other_faults_keep_the_generic_kind() -> None:
    err = translate_error(sa_exc.ArgumentError("bad column"), operation="find")
    assert type(err) is RepositoryError
    assert err.kind is ErrorKind.database

    already = NotFoundError("task not found", details={"id": 7})
    assert translate_error(already, operation="update") is already
    assert "NOT_FOUND" in repr(already)


def test_logs_render_as_json_with_service_and_context(caplog) -> None:
    caplog.set_level(logging.INFO)
    configure_logging(service_name="tasktracker-test", level="INFO")
    try:
        bind_context(user_id=7)
        get_logger("tests.logging").info("task_created", task_id=3)
        get_logger("tests.logging").debug("hidden")
    finally:
        clear_context()
        structlog.reset_defaults()

    lines = [json.loads(r.getMessage()) for r in caplog.records if r.name == "tests.logging"]
    assert len(lines) == 1
    assert lines[0]["event"] == "task_created"
    assert lines[0]["service"] == "tasktracker-test"
    assert lines[0]["level"] == "info"
    assert (lines[0]["user_id"], lines[0]["task_id"]) == (7, 3)


def test_console_renderer_writes_key_value_lines(caplog) -> None:
    caplog.set_level(logging.INFO)
    configure_logging(service_name="tasktracker-test", level="INFO", json=False)
    try:
        get_logger("tests.console").info("task_created", task_id=3)
    finally:
        structlog.reset_defaults()

    [line] = [r.getMessage() for r in caplog.records if r.name == "tests.console"]
    assert "task_created" in line
    assert "task_id=3" in line
    assert "service=tasktracker-test" in line


# --- Module Notes -----------------------------------------------------------
# The logging check resets structlog afterwards so later tests see defaults.
