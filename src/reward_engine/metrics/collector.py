"""Metrics collector: Prometheus counters, gauges, histograms.

- ``reward_cycles_total`` counter-vec (state)
- ``reward_stats_total`` gauge-vec (harvested, swapped, proceeds, holders, treasury, ...)
- ``reward_outstanding_payouts`` gauge-vec (count, amount)
- ``reward_stage_histogram`` (stage: harvest, swap, payout)
- ``reward_ticks_dropped_total``
- ``reward_cron_histogram`` / ``reward_cron_last_execution_gauge``
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

if TYPE_CHECKING:
    from collections.abc import Iterator

    from reward_engine.engine.services.statistics_service import Statistics

_PREFIX = "reward"

_STAT_FIELDS = (
    "total_harvested",
    "total_swapped",
    "total_proceeds",
    "total_to_holders",
    "total_to_treasury",
    "total_retained",
    "distribution_count",
)

# Ledger round trips dominate stage durations
_STAGE_BUCKETS = (0.5, 1, 2.5, 5, 10, 20, 30, 60, 120, 300)


class MetricsCollector:
    """Low-level Prometheus collector that owns the registry.

    Use :class:`EngineMetrics` for the high-level tracking interface.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def gauge(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Gauge:
        return Gauge(name, doc, labels, registry=self._registry)

    def histogram(
        self,
        name: str,
        doc: str,
        labels: tuple[str, ...] = (),
        buckets: tuple[float, ...] = Histogram.DEFAULT_BUCKETS,
    ) -> Histogram:
        return Histogram(name, doc, labels, registry=self._registry, buckets=buckets)

    def counter(self, name: str, doc: str, labels: tuple[str, ...] = ()) -> Counter:
        return Counter(name, doc, labels, registry=self._registry)


class EngineMetrics:
    """High-level metrics for the distribution engine."""

    def __init__(self, collector: MetricsCollector | None = None) -> None:
        self._collector = collector or MetricsCollector()

        self._cycles = self._collector.counter(
            f"{_PREFIX}_cycles_total",
            "Cycles recorded, by terminal state",
            ("state",),
        )
        self._ticks_dropped = self._collector.counter(
            f"{_PREFIX}_ticks_dropped",
            "Scheduler ticks dropped because a cycle was still running",
        )
        self._stats = self._collector.gauge(
            f"{_PREFIX}_stats_total",
            "Cumulative distribution counters",
            ("field",),
        )
        self._outstanding = self._collector.gauge(
            f"{_PREFIX}_outstanding_payouts",
            "Payouts still owed to recipients",
            ("measure",),
        )
        self._stage = self._collector.histogram(
            f"{_PREFIX}_stage_histogram",
            "Duration of pipeline stages",
            ("stage",),
            buckets=_STAGE_BUCKETS,
        )
        self._cron_histogram = self._collector.histogram(
            f"{_PREFIX}_cron_histogram",
            "Duration of cron job executions",
            ("job_name",),
        )
        self._cron_last = self._collector.gauge(
            f"{_PREFIX}_cron_last_execution_gauge",
            "Timestamp of last cron execution",
            ("job_name",),
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Return the underlying Prometheus registry."""
        return self._collector.registry

    # -- Setters --

    def record_cycle(self, state: str) -> None:
        self._cycles.labels(state=state).inc()

    def record_dropped_tick(self) -> None:
        self._ticks_dropped.inc()

    def set_statistics(self, stats: Statistics) -> None:
        """Mirror the persisted cumulative counters."""
        for name in _STAT_FIELDS:
            self._stats.labels(field=name).set(getattr(stats, name))

    def set_outstanding(self, count: int, amount: int) -> None:
        self._outstanding.labels(measure="count").set(count)
        self._outstanding.labels(measure="amount").set(amount)

    # -- Trackers (context managers) --

    @contextmanager
    def track_stage(self, stage: str) -> Iterator[None]:
        """Track the duration of a pipeline stage."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._stage.labels(stage=stage).observe(time.monotonic() - start)

    @contextmanager
    def track_cron(self, job_name: str) -> Iterator[None]:
        """Track the duration of a cron job and record last execution time."""
        start = time.monotonic()
        try:
            yield
        finally:
            self._cron_histogram.labels(job_name=job_name).observe(time.monotonic() - start)
            self._cron_last.labels(job_name=job_name).set(time.time())
