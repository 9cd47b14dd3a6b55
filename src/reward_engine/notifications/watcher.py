"""Distribution watcher: change detection over the cumulative statistics.

The watcher keeps the last fingerprint it acted on in ``notification_cursors``.
A poll that sees a different fingerprint publishes one ``DistributionEvent``
built from the stored last snapshot, then advances the cursor. Because the
cursor is durable, a restarted watcher does not announce the same state twice.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from reward_engine.engine.models.notification_cursor import NotificationCursor
from reward_engine.errors.engine_errors import PersistenceError
from reward_engine.notifications.events import DistributionEvent

if TYPE_CHECKING:
    from reward_engine.engine.client import RewardEngine
    from reward_engine.notifications.service import NotificationService

logger = logging.getLogger(__name__)


class DistributionWatcher:
    """Publishes a ``DistributionEvent`` whenever the statistics change."""

    def __init__(
        self,
        engine: RewardEngine,
        bus: NotificationService,
        *,
        consumer_id: str | None = None,
    ) -> None:
        self._engine = engine
        self._bus = bus
        self._consumer_id = consumer_id or engine.config.notifications.consumer_id

    @property
    def consumer_id(self) -> str:
        return self._consumer_id

    async def cursor(self) -> str:
        """The fingerprint this consumer last acted on ('' if never)."""
        async with self._engine.datastore.session() as session:
            row = await session.get(NotificationCursor, self._consumer_id)
        return row.fingerprint if row is not None else ""

    async def poll(self) -> DistributionEvent | None:
        """Publish an event if the statistics changed since the last poll.

        Returns:
            The published event, or None when nothing changed.
        """
        stats = await self._engine.statistics_service.get_statistics()
        seen = await self.cursor()
        if stats.fingerprint == seen:
            return None

        if stats.distribution_count == 0:
            # Nothing distributed yet: remember the empty state silently.
            await self._advance(stats.fingerprint)
            return None

        last = await self._engine.statistics_service.last_distribution()
        event = DistributionEvent.from_snapshot(stats, last)
        await self._bus.notify(event)
        await self._advance(stats.fingerprint)
        logger.info(
            "Distribution change published to %s: %s#%d",
            self._consumer_id,
            event.epoch_id,
            event.cycle_seq,
        )
        return event

    async def _advance(self, fingerprint: str) -> None:
        try:
            async with self._engine.datastore.transaction() as session:
                row = await session.get(NotificationCursor, self._consumer_id)
                if row is None:
                    session.add(
                        NotificationCursor(consumer_id=self._consumer_id, fingerprint=fingerprint)
                    )
                else:
                    row.fingerprint = fingerprint
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"failed to store cursor for {self._consumer_id}: {exc}"
            ) from exc
