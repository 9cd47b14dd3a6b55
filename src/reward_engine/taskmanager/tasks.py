"""Background task definitions: cron job handlers.

- ``run_cycle`` (``distribution.tick_seconds``): scheduler tick
- ``settle_payouts`` (``settlement.period``): retry outstanding payouts
- ``calculate_metrics`` (15 s): refresh statistics gauges
- ``watch_distributions`` (``notifications.poll_seconds``): change detection
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reward_engine.errors.engine_errors import RewardEngineError

if TYPE_CHECKING:
    from reward_engine.engine.client import RewardEngine
    from reward_engine.metrics.collector import EngineMetrics
    from reward_engine.notifications.watcher import DistributionWatcher

logger = logging.getLogger(__name__)

CALCULATE_METRICS_PERIOD = 15


async def task_run_cycle(engine: RewardEngine) -> None:
    """One scheduler tick.

    A failed durable write is logged here and surfaces again on the next
    tick, which finds the cycle still PENDING.
    """
    scheduler = engine.scheduler
    if scheduler is None:
        return
    try:
        report = await scheduler.tick()
    except RewardEngineError as exc:
        logger.error("run_cycle failed: [%s] %s", exc.code, exc.message)
        return
    logger.debug("run_cycle: %s", report)


async def task_settle_payouts(engine: RewardEngine) -> None:
    scheduler = engine.scheduler
    if scheduler is None:
        return
    try:
        await scheduler.settle_outstanding()
    except RewardEngineError as exc:
        logger.error("settle_payouts failed: [%s] %s", exc.code, exc.message)


async def task_calculate_metrics(engine: RewardEngine, metrics: EngineMetrics) -> None:
    """Push the persisted counters and the outstanding totals to the gauges."""
    try:
        metrics.set_statistics(await engine.statistics_service.get_statistics())
        count, amount = await engine.payout_service.outstanding_total()
        metrics.set_outstanding(count, amount)
    except Exception:
        logger.exception("calculate_metrics failed")


async def task_watch_distributions(watcher: DistributionWatcher) -> None:
    try:
        await watcher.poll()
    except RewardEngineError as exc:
        logger.error("watch_distributions failed: [%s] %s", exc.code, exc.message)
