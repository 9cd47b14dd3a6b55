"""Async SQLAlchemy engine factory for SQLite (aiosqlite) and PostgreSQL (asyncpg)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

if TYPE_CHECKING:
    from reward_engine.config.settings import DatabaseConfig


def _is_memory_sqlite(dsn: str) -> bool:
    return dsn.startswith("sqlite") and (":memory:" in dsn or dsn.endswith("://"))


def create_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create an async SQLAlchemy engine from database configuration.

    In-memory SQLite shares one connection across sessions so every session
    sees the same database.

    Args:
        config: Database configuration with DSN and pool settings.

    Returns:
        A configured ``AsyncEngine``.
    """
    kwargs: dict[str, Any] = {
        "echo": config.debug_sql,
    }

    if "sqlite" in config.dsn:
        if _is_memory_sqlite(config.dsn):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_size"] = config.max_idle_connections
        kwargs["max_overflow"] = config.max_open_connections - config.max_idle_connections
        kwargs["pool_pre_ping"] = True

    engine = create_async_engine(config.dsn, **kwargs)

    if "sqlite" in config.dsn:
        # ON DELETE CASCADE from epochs to cycles needs foreign keys enabled
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine
