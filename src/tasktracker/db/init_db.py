"""
tasktracker.db.init_db

Schema bootstrap for dev and test databases.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine

# Importing the models package registers every table on Base.metadata.
from tasktracker.db import models  # noqa: F401
from tasktracker.db.base import Base
from tasktracker.observability.logging import get_logger

log = get_logger(__name__)


async def init_db(engine: AsyncEngine) -> None:
    """Create any missing tables; existing tables are left untouched."""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    log.info("schema_ready", tables=len(Base.metadata.tables))


# --- Module Notes -----------------------------------------------------------
# Production schemas are managed outside this package; `Database.startup` only
# calls this when `auto_create_schema` is on.
