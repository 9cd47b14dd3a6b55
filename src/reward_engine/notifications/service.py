"""In-process event bus for cycle outcomes and distribution changes.

The scheduler and the distribution watcher publish; any number of local
consumers (an alerting bot, a websocket relay) subscribe by key and
optionally by event type. Publishing never blocks a cycle: a full queue
drops the event and counts it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from reward_engine.notifications.events import RawEvent

logger = logging.getLogger(__name__)

_PENDING_LIMIT = 100


@dataclass
class _Subscription:
    queue: asyncio.Queue[RawEvent]
    types: frozenset[str] = field(default_factory=frozenset)
    dropped: int = 0

    def wants(self, event: RawEvent) -> bool:
        return not self.types or event.type in self.types


class NotificationService:
    """Fans published events out to subscriber queues.

    Usage::

        bus = NotificationService()
        q = bus.add_subscriber("alerts", types=["distribution"])
        await bus.start()
        await bus.notify(DistributionEvent.from_snapshot(stats, distribution))
        event = await q.get()
        await bus.stop()
    """

    def __init__(self) -> None:
        self._input: asyncio.Queue[RawEvent] = asyncio.Queue(maxsize=_PENDING_LIMIT)
        self._subscriptions: dict[str, _Subscription] = {}
        self._dispatcher: asyncio.Task[None] | None = None
        self._published = 0
        self._rejected = 0

    @property
    def is_running(self) -> bool:
        return self._dispatcher is not None

    @property
    def published(self) -> int:
        """Events accepted onto the bus since creation."""
        return self._published

    @property
    def rejected(self) -> int:
        """Events refused because the bus itself was backed up."""
        return self._rejected

    def add_subscriber(
        self,
        key: str,
        *,
        types: Iterable[str] = (),
        buffer: int = _PENDING_LIMIT,
    ) -> asyncio.Queue[RawEvent]:
        """Register ``key`` and return the queue its events land on.

        An empty ``types`` receives every event type. Re-registering a key
        replaces its queue.
        """
        queue: asyncio.Queue[RawEvent] = asyncio.Queue(maxsize=buffer)
        self._subscriptions[key] = _Subscription(queue, frozenset(types))
        return queue

    def remove_subscriber(self, key: str) -> None:
        self._subscriptions.pop(key, None)

    def dropped_for(self, key: str) -> int:
        sub = self._subscriptions.get(key)
        return sub.dropped if sub else 0

    async def notify(self, event: RawEvent) -> None:
        try:
            self._input.put_nowait(event)
        except asyncio.QueueFull:
            self._rejected += 1
            logger.warning("Event bus backed up, dropping %s event", event.type)
            return
        self._published += 1

    async def start(self) -> None:
        if self._dispatcher is None:
            self._dispatcher = asyncio.create_task(self._dispatch(), name="event-bus")

    async def stop(self) -> None:
        task, self._dispatcher = self._dispatcher, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _dispatch(self) -> None:
        while True:
            event = await self._input.get()
            for key, sub in list(self._subscriptions.items()):
                if not sub.wants(event):
                    continue
                try:
                    sub.queue.put_nowait(event)
                except asyncio.QueueFull:
                    sub.dropped += 1
                    logger.warning("Subscriber %s is full, dropping %s event", key, event.type)
