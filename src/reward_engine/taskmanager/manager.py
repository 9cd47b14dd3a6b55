"""Periodic job runner for the engine's background work.

Each registered ``CronJob`` runs on its own asyncio task: wait ``period``
seconds, run the handler, repeat. The wait starts after the handler
returns, so a job never overlaps itself. A handler that raises is logged and
retried on the next period; cancellation on ``stop()`` propagates into the
handler.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from reward_engine.metrics.collector import EngineMetrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CronJob:
    handler: Callable[[], Awaitable[object]]
    period: float  # seconds
    name: str = ""
    immediate: bool = False  # first run without waiting a period


@dataclass
class JobStatus:
    """Run history of one job since the manager started."""

    runs: int = 0
    failures: int = 0
    last_error: str = ""
    last_finished: float | None = None  # wall clock, epoch seconds


class TaskManager:
    """Runs the engine's cron jobs.

    Usage::

        tm = TaskManager(metrics=engine_metrics)
        tm.register("run_cycle", CronJob(handler=scheduler.tick, period=60))
        await tm.start()
        ...
        await tm.stop()
    """

    def __init__(self, *, metrics: EngineMetrics | None = None) -> None:
        self._metrics = metrics
        self._jobs: dict[str, CronJob] = {}
        self._status: dict[str, JobStatus] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> dict[str, CronJob]:
        return dict(self._jobs)

    def status(self, name: str) -> JobStatus:
        return self._status.setdefault(name, JobStatus())

    def register(self, name: str, job: CronJob) -> None:
        """Add ``job`` under ``name``; started at once if the manager runs."""
        named = CronJob(job.handler, job.period, name=name, immediate=job.immediate)
        self._jobs[name] = named
        if self._running:
            self._spawn(named)

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for job in self._jobs.values():
            self._spawn(job)
        logger.info("TaskManager started: %s", ", ".join(self._jobs) or "no jobs")

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for outcome in await asyncio.gather(*tasks, return_exceptions=True):
            if isinstance(outcome, Exception):
                logger.error("Cron task ended with %r during shutdown", outcome)
        logger.info("TaskManager stopped")

    def _spawn(self, job: CronJob) -> None:
        self._tasks[job.name] = asyncio.create_task(self._loop(job), name=f"cron:{job.name}")

    async def _loop(self, job: CronJob) -> None:
        delay = 0.0 if job.immediate else job.period
        while self._running:
            await asyncio.sleep(delay)
            delay = job.period
            if self._running:
                await self._run_once(job)

    async def _run_once(self, job: CronJob) -> None:
        status = self.status(job.name)
        try:
            if self._metrics is None:
                await job.handler()
            else:
                with self._metrics.track_cron(job.name):
                    await job.handler()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            status.failures += 1
            status.last_error = f"{type(exc).__name__}: {exc}"
            logger.exception("Cron job %r failed", job.name)
        status.runs += 1
        status.last_finished = time.time()
