"""Tests for the in-process notification bus."""

from __future__ import annotations

import asyncio

import pytest

from reward_engine.notifications.events import CycleEvent, RawEvent
from reward_engine.notifications.service import NotificationService


@pytest.fixture
async def bus():
    svc = NotificationService()
    await svc.start()
    yield svc
    await svc.stop()


async def _next(q: asyncio.Queue) -> RawEvent:
    return await asyncio.wait_for(q.get(), timeout=2.0)


class TestNotificationService:
    """Tests for NotificationService fan-out."""

    async def test_start_stop(self) -> None:
        """start() and stop() toggle the fan-out task."""
        svc = NotificationService()
        assert not svc.is_running
        await svc.start()
        await svc.start()  # Second start is a no-op
        assert svc.is_running
        await svc.stop()
        await svc.stop()
        assert not svc.is_running

    async def test_fan_out(self, bus: NotificationService) -> None:
        """Every subscriber gets each event."""
        a = bus.add_subscriber("a")
        b = bus.add_subscriber("b")
        event = CycleEvent(epoch_id="2024-03-15", cycle_seq=121, state="DISTRIBUTED")

        await bus.notify(event)

        assert await _next(a) is event
        assert await _next(b) is event

    async def test_removed_subscriber_gets_nothing(self, bus: NotificationService) -> None:
        """Unsubscribed queues get nothing."""
        a = bus.add_subscriber("a")
        b = bus.add_subscriber("b")
        bus.remove_subscriber("b")
        bus.remove_subscriber("missing")

        await bus.notify(RawEvent(type="ping"))
        await _next(a)
        assert b.empty()

    async def test_full_subscriber_drops(self, bus: NotificationService) -> None:
        """A full subscriber loses events without slowing the others."""
        slow = bus.add_subscriber("slow", buffer=1)
        fast = bus.add_subscriber("fast")

        await bus.notify(RawEvent(type="one"))
        await bus.notify(RawEvent(type="two"))

        assert (await _next(fast)).type == "one"
        assert (await _next(fast)).type == "two"
        assert slow.qsize() == 1
        assert slow.get_nowait().type == "one"
        assert bus.dropped_for("slow") == 1
        assert bus.dropped_for("fast") == 0
        assert bus.dropped_for("missing") == 0

    async def test_type_filter(self, bus: NotificationService) -> None:
        """Subscribers can filter by event type."""
        cycles = bus.add_subscriber("cycles", types=["cycle"])
        everything = bus.add_subscriber("all")

        await bus.notify(RawEvent(type="distribution"))
        await bus.notify(CycleEvent(epoch_id="2024-03-15", cycle_seq=1, state="ROLLED_OVER"))

        assert (await _next(everything)).type == "distribution"
        assert (await _next(everything)).type == "cycle"
        assert (await _next(cycles)).type == "cycle"
        assert cycles.empty()

    async def test_notify_without_running_never_blocks(self) -> None:
        """notify() rejects instead of blocking once the input queue is full."""
        svc = NotificationService()
        for i in range(150):
            await svc.notify(RawEvent(type=str(i)))
        assert svc._input.qsize() == 100
        assert svc.published == 100
        assert svc.rejected == 50


class TestEvents:
    def test_cycle_event_dict(self) -> None:
        """Cycle events serialise their state and error."""
        event = CycleEvent(epoch_id="2024-03-15", cycle_seq=7, state="FAILED", error="boom")
        data = event.to_dict()
        assert data["type"] == "cycle"
        assert data["state"] == "FAILED"
        assert data["error"] == "boom"
