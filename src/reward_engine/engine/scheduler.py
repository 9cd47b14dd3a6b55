"""Cycle scheduler: one pipeline run per PENDING cycle.

Each tick derives the current ``(epoch, cycle)`` from the clock, makes sure
the epoch exists, and runs the distribution pipeline only for a cycle that
is still PENDING. At most one run is in flight per process: a tick that
arrives while a run (or a settlement pass) holds the lock is dropped, not
queued. Across processes the cluster lease keeps a single active scheduler;
while a run is in flight a heartbeat renews the lease every third of its
TTL, and the pipeline stops before its next stage once the lease is gone.
A PENDING cycle stamped as started less than one lease TTL ago is left
alone, since another process may still be running it.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import socket
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, timedelta
from functools import partial
from typing import TYPE_CHECKING

from reward_engine.engine.models.cycle import CycleState
from reward_engine.errors.engine_errors import LeaseLostError, PersistenceError
from reward_engine.notifications.events import CycleEvent

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import datetime

    from reward_engine.engine.client import RewardEngine
    from reward_engine.engine.services.payout_service import SettlementReport
    from reward_engine.engine.stages.payout import PayoutStage
    from reward_engine.engine.stages.pipeline import DistributionPipeline, PipelineOutcome

logger = logging.getLogger(__name__)

LEASE_KEY = "scheduler"


class TickAction(enum.StrEnum):
    """What a tick ended up doing."""

    DROPPED = "dropped"
    NOT_LEADER = "not_leader"
    SKIPPED = "skipped"
    RECORDED = "recorded"
    LEASE_LOST = "lease_lost"


@dataclass(frozen=True)
class TickReport:
    action: TickAction
    epoch_id: str = ""
    cycle_seq: int = 0
    state: CycleState | None = None


def _default_owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class CycleScheduler:
    """Drives the pipeline from clock ticks.

    Usage::

        scheduler = CycleScheduler(engine, pipeline, payout_stage)
        report = await scheduler.tick()
    """

    def __init__(
        self,
        engine: RewardEngine,
        pipeline: DistributionPipeline,
        payout: PayoutStage,
        *,
        owner: str | None = None,
    ) -> None:
        self._engine = engine
        self._pipeline = pipeline
        self._payout = payout
        self._owner = owner or _default_owner()
        self._lock = asyncio.Lock()

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def busy(self) -> bool:
        """Whether a cycle run or settlement pass is in flight."""
        return self._lock.locked()

    async def tick(self) -> TickReport:
        """Run the current cycle if it is still PENDING.

        Raises:
            PersistenceError: If a durable write fails; the cycle is not
                reported as done.
        """
        if self._lock.locked():
            logger.info("Tick dropped: previous run still in flight")
            if self._engine.metrics is not None:
                self._engine.metrics.record_dropped_tick()
            return TickReport(TickAction.DROPPED)

        async with self._lock:
            if not await self._engine.cluster.try_lock(LEASE_KEY, owner=self._owner):
                logger.debug("Scheduler lease held elsewhere, tick skipped")
                return TickReport(TickAction.NOT_LEADER)

            cycles = self._engine.cycle_service
            epoch_id, seq = cycles.current_epoch_and_cycle()
            await cycles.ensure_epoch(epoch_id)

            cycle = await cycles.get_cycle(epoch_id, seq)
            if cycle is None:
                raise PersistenceError(f"cycle {epoch_id}#{seq} missing after epoch creation")
            if cycle.cycle_state is not CycleState.PENDING:
                logger.debug("Cycle %s#%d already %s", epoch_id, seq, cycle.state)
                return TickReport(TickAction.SKIPPED, epoch_id, seq, cycle.cycle_state)
            if cycle.started_at is not None and self._started_recently(cycle.started_at):
                logger.warning(
                    "Cycle %s#%d was started at %s and may still be running elsewhere",
                    epoch_id,
                    seq,
                    cycle.started_at.isoformat(),
                )
                return TickReport(TickAction.SKIPPED, epoch_id, seq, cycle.cycle_state)

            await cycles.mark_started(epoch_id, seq)
            logger.info("Cycle %s#%d started", epoch_id, seq)
            try:
                async with self._lease_heartbeat() as lost:
                    outcome = await self._pipeline.run(
                        epoch_id, seq, checkpoint=partial(self._ensure_lease, lost)
                    )
            except LeaseLostError as exc:
                logger.error("Cycle %s#%d aborted: %s", epoch_id, seq, exc.message)
                await cycles.clear_started(epoch_id, seq)
                return TickReport(TickAction.LEASE_LOST, epoch_id, seq, CycleState.PENDING)
            except asyncio.CancelledError:
                logger.warning("Cycle %s#%d cancelled, left PENDING", epoch_id, seq)
                await cycles.clear_started(epoch_id, seq)
                raise

            recorded = await cycles.record_cycle_result(
                epoch_id, seq, outcome.state, outcome.snapshot, error=outcome.error
            )
            if not recorded:
                return TickReport(TickAction.SKIPPED, epoch_id, seq, outcome.state)

            await self._publish(outcome)
            return TickReport(TickAction.RECORDED, epoch_id, seq, outcome.state)

    async def settle_outstanding(self) -> SettlementReport | None:
        """Retry outstanding payouts; returns None when the run was dropped."""
        if self._lock.locked():
            logger.info("Settlement skipped: a cycle is running")
            return None

        async with self._lock:
            if not await self._engine.cluster.try_lock(LEASE_KEY, owner=self._owner):
                return None
            async with self._lease_heartbeat():
                report = await self._engine.payout_service.settle_outstanding(self._payout)
            if self._engine.metrics is not None:
                count, amount = await self._engine.payout_service.outstanding_total()
                self._engine.metrics.set_outstanding(count, amount)
            return report

    async def release(self) -> None:
        await self._engine.cluster.release(LEASE_KEY, owner=self._owner)

    def _started_recently(self, started_at: datetime) -> bool:
        if started_at.tzinfo is None:
            started_at = started_at.replace(tzinfo=UTC)
        ttl = timedelta(seconds=self._engine.config.cluster.lock_ttl)
        return self._engine.now() - started_at < ttl

    @asynccontextmanager
    async def _lease_heartbeat(self) -> AsyncIterator[asyncio.Event]:
        """Renew the lease in the background; the yielded event is set once it is lost."""
        lost = asyncio.Event()
        task = asyncio.create_task(self._renew_lease(lost), name=f"lease:{self._owner}")
        try:
            yield lost
        finally:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _renew_lease(self, lost: asyncio.Event) -> None:
        interval = self._engine.config.cluster.lock_ttl / 3
        while True:
            await asyncio.sleep(interval)
            try:
                held = await self._engine.cluster.try_lock(LEASE_KEY, owner=self._owner)
            except Exception:
                logger.exception("Scheduler lease renewal failed")
                held = False
            if not held:
                logger.error("Scheduler lease lost by %s", self._owner)
                lost.set()
                return

    async def _ensure_lease(self, lost: asyncio.Event, stage: str) -> None:
        if not lost.is_set() and await self._engine.cluster.try_lock(
            LEASE_KEY, owner=self._owner
        ):
            return
        lost.set()
        raise LeaseLostError(f"scheduler lease lost before {stage}")

    async def _publish(self, outcome: PipelineOutcome) -> None:
        metrics = self._engine.metrics
        if metrics is not None:
            metrics.record_cycle(outcome.state.value)
            if outcome.snapshot is not None:
                metrics.set_statistics(await self._engine.statistics_service.get_statistics())
                metrics.set_outstanding(*await self._engine.payout_service.outstanding_total())

        bus = self._engine.notification_service
        if bus is not None:
            await bus.notify(
                CycleEvent(
                    epoch_id=outcome.epoch_id,
                    cycle_seq=outcome.cycle_seq,
                    state=outcome.state.value,
                    error=outcome.error,
                )
            )
