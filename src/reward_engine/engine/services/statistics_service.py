"""Statistics service: cumulative counters and distribution history."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select

from reward_engine.engine.models.distribution import (
    STATS_ROW_ID,
    Distribution,
    DistributionStats,
)

if TYPE_CHECKING:
    from reward_engine.engine.client import RewardEngine


@dataclass(frozen=True)
class Statistics:
    """Read-only view of the cumulative counters."""

    total_harvested: int = 0
    total_swapped: int = 0
    total_proceeds: int = 0
    total_to_holders: int = 0
    total_to_treasury: int = 0
    total_retained: int = 0
    distribution_count: int = 0
    last_distribution_id: str | None = None
    last_epoch_id: str | None = None
    last_cycle_seq: int | None = None
    fingerprint: str = ""

    @classmethod
    def from_model(cls, stats: DistributionStats) -> Statistics:
        return cls(
            **stats.counters(),
            last_distribution_id=stats.last_distribution_id,
            last_epoch_id=stats.last_epoch_id,
            last_cycle_seq=stats.last_cycle_seq,
            fingerprint=stats.fingerprint(),
        )


class StatisticsService:
    """Reads the counters written by :class:`CycleService`."""

    def __init__(self, engine: RewardEngine) -> None:
        self._engine = engine

    async def get_statistics(self) -> Statistics:
        """Current counters; all zero before the first distribution."""
        async with self._engine.datastore.session() as session:
            stats = await session.get(DistributionStats, STATS_ROW_ID)
        if stats is None:
            stats = DistributionStats(id=STATS_ROW_ID)
        return Statistics.from_model(stats)

    async def fingerprint(self) -> str:
        return (await self.get_statistics()).fingerprint

    async def last_distribution(self) -> Distribution | None:
        """The snapshot of the most recent distribution.

        Its ``epoch_id``/``cycle_seq`` name the cycle that produced it, not
        the cycle current at query time.
        """
        async with self._engine.datastore.session() as session:
            stats = await session.get(DistributionStats, STATS_ROW_ID)
            if stats is None or stats.last_distribution_id is None:
                return None
            return await session.get(Distribution, stats.last_distribution_id)

    async def get_distribution(self, distribution_id: str) -> Distribution | None:
        async with self._engine.datastore.session() as session:
            return await session.get(Distribution, distribution_id)

    async def list_distributions(
        self, *, limit: int = 50, epoch_id: str | None = None
    ) -> list[Distribution]:
        """Snapshots newest first, optionally restricted to one epoch."""
        async with self._engine.datastore.session() as session:
            stmt = select(Distribution)
            if epoch_id is not None:
                stmt = stmt.where(Distribution.epoch_id == epoch_id)
            stmt = stmt.order_by(
                Distribution.epoch_id.desc(), Distribution.cycle_seq.desc()
            ).limit(limit)
            return list((await session.execute(stmt)).scalars().all())
