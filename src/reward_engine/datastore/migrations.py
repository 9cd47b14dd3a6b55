"""Schema bootstrap for the state store.

Alembic (``alembic/env.py``) targets the same metadata for managed
deployments; ``run_auto_migrate`` covers development, tests and a first
start on SQLite.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reward_engine.engine.models import ALL_MODELS
from reward_engine.engine.models.base import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


def table_names() -> list[str]:
    """Tables owned by the engine, in dependency order."""
    return [table.name for table in Base.metadata.sorted_tables]


async def run_auto_migrate(engine: AsyncEngine) -> None:
    """Create any missing table. Existing tables are left untouched."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Schema ready: %d models, tables %s", len(ALL_MODELS), ", ".join(table_names()))


async def drop_all_tables(engine: AsyncEngine) -> None:
    """Drop every engine table, dependents first. Development use only."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
