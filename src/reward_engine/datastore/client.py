"""State store for epochs, cycles, distributions and payouts.

A committed transaction is the durability point of the engine: a cycle's
terminal state, its distribution snapshot, the payout ledger and the
statistics increment are visible together or not at all.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from reward_engine.datastore.engines import create_engine
from reward_engine.datastore.migrations import run_auto_migrate

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from reward_engine.config.settings import DatabaseConfig

logger = logging.getLogger(__name__)

_NOT_OPEN = "Datastore is not open. Call open() first."


class Datastore:
    """Owns the async engine and hands out sessions.

    Usage::

        ds = Datastore(config.db)
        await ds.open(migrate=True)
        async with ds.transaction() as session:
            ...
        await ds.close()
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._config = config
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError(_NOT_OPEN)
        return self._engine

    @property
    def dialect(self) -> str:
        """``sqlite`` or ``postgresql``, as reported by the driver."""
        return self.engine.dialect.name

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    async def open(self, *, migrate: bool = False) -> None:
        """Connect, and with ``migrate`` create any missing tables."""
        if self._engine is not None:
            return
        self._engine = create_engine(self._config)
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)
        if migrate:
            await run_auto_migrate(self._engine)
        logger.info("Datastore open (%s)", self._engine.dialect.name)

    async def close(self) -> None:
        engine, self._engine = self._engine, None
        self._sessions = None
        if engine is not None:
            await engine.dispose()

    def session(self) -> AsyncSession:
        """A new session for reads; use it as an async context manager."""
        if self._sessions is None:
            raise RuntimeError(_NOT_OPEN)
        return self._sessions()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Yield a session inside ``BEGIN``; commit on success, roll back on error."""
        async with self.session() as session, session.begin():
            yield session

    async def ping(self) -> bool:
        """Round-trip ``SELECT 1``; False when closed or unreachable."""
        if self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Datastore ping failed", exc_info=True)
            return False
        return True
