"""Cycle service: epoch/cycle records and the atomic end-of-cycle write.

Every epoch is materialized with all of its cycles in PENDING the first time
it is observed, so cycle numbers within an epoch are always ``1..N``. A cycle
leaves PENDING exactly once: the terminal write is a conditional update on
``state = 'PENDING'`` and a second write for the same cycle changes nothing.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from reward_engine.engine import clock
from reward_engine.engine.models.cycle import Cycle, CycleState, Epoch
from reward_engine.engine.models.distribution import (
    STATS_ROW_ID,
    Distribution,
    DistributionStats,
)
from reward_engine.engine.models.payout import Payout
from reward_engine.errors.engine_errors import PersistenceError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from reward_engine.engine.client import RewardEngine
    from reward_engine.engine.stages.results import DistributionSnapshot

logger = logging.getLogger(__name__)

_MAX_ERROR_LENGTH = 2000


@dataclass(frozen=True)
class EpochSummary:
    """An epoch with the number of its cycles in each state."""

    epoch_id: str
    cycle_count: int
    counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CycleView:
    sequence: int
    state: CycleState
    started_at: datetime | None
    completed_at: datetime | None
    error: str
    distribution: Distribution | None = None


@dataclass(frozen=True)
class EpochView:
    """An epoch, its ordered cycles and the snapshots of its distributed cycles."""

    epoch_id: str
    cycles: list[CycleView]

    @property
    def counts(self) -> dict[str, int]:
        return dict(Counter(c.state.value for c in self.cycles))

    @property
    def total_to_holders(self) -> int:
        return sum(c.distribution.holders_amount for c in self.cycles if c.distribution)

    @property
    def total_to_treasury(self) -> int:
        return sum(c.distribution.treasury_amount for c in self.cycles if c.distribution)


@dataclass(frozen=True)
class EpochStatistics:
    epoch_id: str
    distribution_count: int = 0
    harvested: int = 0
    proceeds: int = 0
    to_holders: int = 0
    to_treasury: int = 0
    retained: int = 0


class CycleService:
    """Owns the ``epochs``, ``cycles``, ``distributions`` and stats writes."""

    def __init__(self, engine: RewardEngine) -> None:
        self._engine = engine

    @property
    def cycles_per_epoch(self) -> int:
        return clock.cycles_per_epoch(self._engine.config.distribution.cycle_seconds)

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def current_epoch_and_cycle(self, now: datetime | None = None) -> tuple[str, int]:
        """``(epoch_id, cycle_seq)`` for *now* (defaults to the engine clock)."""
        dist = self._engine.config.distribution
        return clock.epoch_and_cycle_at(
            now or self._engine.now(),
            cycle_seconds=dist.cycle_seconds,
            tz=dist.tz,
        )

    # ------------------------------------------------------------------
    # Epoch lifecycle
    # ------------------------------------------------------------------

    async def ensure_epoch(self, epoch_id: str) -> bool:
        """Create *epoch_id* with all cycles PENDING if it does not exist yet.

        Creating a new epoch also prunes epochs beyond the retention window.

        Returns:
            True if the epoch was created by this call.

        Raises:
            ValueError: If *epoch_id* is not ``YYYY-MM-DD``.
            PersistenceError: On database failure.
        """
        clock.parse_epoch_id(epoch_id)
        n = self.cycles_per_epoch
        try:
            async with self._engine.datastore.transaction() as session:
                if await session.get(Epoch, epoch_id) is not None:
                    return False
                session.add(Epoch(id=epoch_id, cycle_count=n))
                await session.flush()
                session.add_all(
                    Cycle(epoch_id=epoch_id, sequence=seq, state=CycleState.PENDING.value)
                    for seq in range(1, n + 1)
                )
                await session.flush()
                pruned = await self._prune(session)
        except IntegrityError:
            logger.debug("Epoch %s created concurrently", epoch_id)
            return False
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to create epoch {epoch_id}: {exc}") from exc

        logger.info("Opened epoch %s with %d cycles", epoch_id, n)
        if pruned:
            logger.info("Pruned %d epochs beyond retention: %s", len(pruned), ", ".join(pruned))
        return True

    async def _prune(self, session: AsyncSession) -> list[str]:
        retention = self._engine.config.distribution.retention_epochs
        stmt = select(Epoch.id).order_by(Epoch.id.desc()).offset(retention)
        stale = list((await session.execute(stmt)).scalars().all())
        if stale:
            await session.execute(delete(Cycle).where(Cycle.epoch_id.in_(stale)))
            await session.execute(delete(Epoch).where(Epoch.id.in_(stale)))
        return stale

    # ------------------------------------------------------------------
    # Cycle state
    # ------------------------------------------------------------------

    async def get_cycle(self, epoch_id: str, seq: int) -> Cycle | None:
        async with self._engine.datastore.session() as session:
            stmt = select(Cycle).where(Cycle.epoch_id == epoch_id, Cycle.sequence == seq)
            return (await session.execute(stmt)).scalar_one_or_none()

    async def mark_started(self, epoch_id: str, seq: int) -> bool:
        """Stamp ``started_at`` on a PENDING cycle. The state stays PENDING."""
        try:
            async with self._engine.datastore.transaction() as session:
                result = await session.execute(
                    update(Cycle)
                    .where(
                        Cycle.epoch_id == epoch_id,
                        Cycle.sequence == seq,
                        Cycle.state == CycleState.PENDING.value,
                    )
                    .values(started_at=self._engine.now())
                )
                return result.rowcount > 0  # type: ignore[union-attr]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to mark {epoch_id}#{seq} started: {exc}") from exc

    async def clear_started(self, epoch_id: str, seq: int) -> None:
        """Drop the ``started_at`` stamp of a PENDING cycle whose run was abandoned."""
        try:
            async with self._engine.datastore.transaction() as session:
                await session.execute(
                    update(Cycle)
                    .where(
                        Cycle.epoch_id == epoch_id,
                        Cycle.sequence == seq,
                        Cycle.state == CycleState.PENDING.value,
                    )
                    .values(started_at=None)
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to clear start of {epoch_id}#{seq}: {exc}") from exc

    async def record_cycle_result(
        self,
        epoch_id: str,
        seq: int,
        state: CycleState | str,
        snapshot: DistributionSnapshot | None = None,
        *,
        error: str = "",
    ) -> bool:
        """Write the terminal state of a cycle, at most once.

        For DISTRIBUTED cycles the snapshot, its payout rows and the
        cumulative statistics increment commit in the same transaction as
        the state change.

        Returns:
            True if this call moved the cycle out of PENDING; False if the
            cycle already had a terminal state (nothing is written).

        Raises:
            ValueError: If *state* is PENDING, or DISTRIBUTED without a
                snapshot, or the snapshot belongs to another cycle.
            PersistenceError: If the cycle does not exist or the write fails.
        """
        state = CycleState(state)
        if not state.is_terminal:
            msg = "a cycle result must be a terminal state"
            raise ValueError(msg)
        if (state is CycleState.DISTRIBUTED) != (snapshot is not None):
            msg = "a snapshot is recorded with DISTRIBUTED cycles and only with them"
            raise ValueError(msg)
        if snapshot is not None and (snapshot.epoch_id, snapshot.cycle_seq) != (epoch_id, seq):
            msg = (
                f"snapshot for {snapshot.epoch_id}#{snapshot.cycle_seq} "
                f"cannot be recorded on {epoch_id}#{seq}"
            )
            raise ValueError(msg)

        distribution_id = uuid.uuid4().hex if snapshot is not None else None
        try:
            async with self._engine.datastore.transaction() as session:
                result = await session.execute(
                    update(Cycle)
                    .where(
                        Cycle.epoch_id == epoch_id,
                        Cycle.sequence == seq,
                        Cycle.state == CycleState.PENDING.value,
                    )
                    .values(
                        state=state.value,
                        completed_at=self._engine.now(),
                        error=error[:_MAX_ERROR_LENGTH],
                        distribution_id=distribution_id,
                    )
                )
                if result.rowcount == 0:  # type: ignore[union-attr]
                    exists = await session.scalar(
                        select(func.count())
                        .select_from(Cycle)
                        .where(Cycle.epoch_id == epoch_id, Cycle.sequence == seq)
                    )
                    if not exists:
                        raise PersistenceError(f"cycle {epoch_id}#{seq} does not exist")
                    logger.info("Cycle %s#%d already terminal, result ignored", epoch_id, seq)
                    return False

                if snapshot is not None and distribution_id is not None:
                    await self._write_distribution(session, distribution_id, snapshot)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to record {epoch_id}#{seq}: {exc}") from exc

        logger.info("Cycle %s#%d recorded as %s", epoch_id, seq, state.value)
        return True

    async def _write_distribution(
        self, session: AsyncSession, distribution_id: str, snapshot: DistributionSnapshot
    ) -> None:
        session.add(
            Distribution(
                id=distribution_id,
                epoch_id=snapshot.epoch_id,
                cycle_seq=snapshot.cycle_seq,
                harvested=snapshot.harvested,
                swapped=snapshot.swapped,
                proceeds=snapshot.proceeds,
                holders_amount=snapshot.holders_amount,
                treasury_amount=snapshot.treasury_amount,
                retained_amount=snapshot.retained_amount,
                recipient_count=snapshot.recipient_count,
                outstanding_count=snapshot.outstanding_count,
                tx_refs=list(snapshot.tx_refs),
            )
        )
        session.add_all(
            Payout(
                id=uuid.uuid4().hex,
                distribution_id=distribution_id,
                epoch_id=snapshot.epoch_id,
                cycle_seq=snapshot.cycle_seq,
                recipient=record.recipient,
                kind=record.kind.value,
                amount=record.amount,
                status=record.status.value,
                attempts=record.attempts,
                signature=record.signature,
                last_error=record.last_error[:_MAX_ERROR_LENGTH],
                last_valid_height=record.last_valid_height,
            )
            for record in snapshot.payouts
        )

        if await session.get(DistributionStats, STATS_ROW_ID) is None:
            session.add(DistributionStats(id=STATS_ROW_ID))
        await session.flush()

        await session.execute(
            update(DistributionStats)
            .where(DistributionStats.id == STATS_ROW_ID)
            .values(
                total_harvested=DistributionStats.total_harvested + snapshot.harvested,
                total_swapped=DistributionStats.total_swapped + snapshot.swapped,
                total_proceeds=DistributionStats.total_proceeds + snapshot.proceeds,
                total_to_holders=DistributionStats.total_to_holders + snapshot.holders_amount,
                total_to_treasury=DistributionStats.total_to_treasury + snapshot.treasury_amount,
                total_retained=DistributionStats.total_retained + snapshot.retained_amount,
                distribution_count=DistributionStats.distribution_count + 1,
                version=DistributionStats.version + 1,
                last_distribution_id=distribution_id,
                last_epoch_id=snapshot.epoch_id,
                last_cycle_seq=snapshot.cycle_seq,
            )
            .execution_options(synchronize_session=False)
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_epochs(self, limit: int = 30) -> list[EpochSummary]:
        """Most recent epochs first, with per-state cycle counts."""
        async with self._engine.datastore.session() as session:
            epochs = list(
                (await session.execute(select(Epoch).order_by(Epoch.id.desc()).limit(limit)))
                .scalars()
                .all()
            )
            if not epochs:
                return []
            rows = await session.execute(
                select(Cycle.epoch_id, Cycle.state, func.count())
                .where(Cycle.epoch_id.in_([e.id for e in epochs]))
                .group_by(Cycle.epoch_id, Cycle.state)
            )
            counts: dict[str, dict[str, int]] = {}
            for epoch_id, state, count in rows:
                counts.setdefault(epoch_id, {})[state] = count

        return [
            EpochSummary(epoch_id=e.id, cycle_count=e.cycle_count, counts=counts.get(e.id, {}))
            for e in epochs
        ]

    async def get_epoch(self, epoch_id: str) -> EpochView | None:
        """The full cycle list of *epoch_id* with snapshots, or None if unknown or pruned."""
        async with self._engine.datastore.session() as session:
            if await session.get(Epoch, epoch_id) is None:
                return None
            cycles = (
                await session.execute(
                    select(Cycle).where(Cycle.epoch_id == epoch_id).order_by(Cycle.sequence)
                )
            ).scalars()
            distributions = {
                d.cycle_seq: d
                for d in (
                    await session.execute(
                        select(Distribution).where(Distribution.epoch_id == epoch_id)
                    )
                ).scalars()
            }
            views = [
                CycleView(
                    sequence=c.sequence,
                    state=c.cycle_state,
                    started_at=c.started_at,
                    completed_at=c.completed_at,
                    error=c.error,
                    distribution=distributions.get(c.sequence),
                )
                for c in cycles
            ]
        return EpochView(epoch_id=epoch_id, cycles=views)

    async def epoch_statistics(self, epoch_id: str) -> EpochStatistics:
        """Sums over the snapshots recorded in *epoch_id*."""
        async with self._engine.datastore.session() as session:
            row = (
                await session.execute(
                    select(
                        func.count(Distribution.id),
                        func.coalesce(func.sum(Distribution.harvested), 0),
                        func.coalesce(func.sum(Distribution.proceeds), 0),
                        func.coalesce(func.sum(Distribution.holders_amount), 0),
                        func.coalesce(func.sum(Distribution.treasury_amount), 0),
                        func.coalesce(func.sum(Distribution.retained_amount), 0),
                    ).where(Distribution.epoch_id == epoch_id)
                )
            ).one()
        return EpochStatistics(epoch_id, *(int(v) for v in row))
