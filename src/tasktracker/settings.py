"""
tasktracker.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for the data layer.
- Bound pagination so callers cannot request unbounded pages.
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TASKTRACKER_", case_sensitive=False)

    # Environment controls toggle behavior like auto-creating tables.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "tasktracker-data"
    log_level: str = "INFO"
    # JSON for log shippers; key=value console lines for local work.
    log_json: bool = True

    # Persistence
    database_url: str = Field(default="sqlite+aiosqlite:///./tasktracker.db", repr=False)
    sql_echo: bool = False
    sqlite_foreign_keys: bool = False
    auto_create_schema: bool | None = None

    # Pagination
    default_page_size: int = Field(default=20, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def _resolve_defaults(self) -> Settings:
        if self.auto_create_schema is None:
            self.auto_create_schema = self.env in ("dev", "test")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size must not exceed max_page_size")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each unit of work.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# database_url is hidden from repr because production URLs usually embed credentials.
