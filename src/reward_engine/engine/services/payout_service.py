"""Payout service: outstanding obligations and their settlement.

A cycle that could not pay a recipient still completes as DISTRIBUTED; the
unpaid transfer is stored as an OUTSTANDING payout. Settlement retries those
on its own schedule until the per-payout attempt budget is spent, after which
the payout is ABANDONED and left for manual handling.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from reward_engine.engine.models.payout import Payout, PayoutKind, PayoutStatus
from reward_engine.engine.stages.results import PayoutRecord
from reward_engine.errors.engine_errors import PersistenceError

if TYPE_CHECKING:
    from reward_engine.engine.client import RewardEngine
    from reward_engine.engine.stages.payout import PayoutStage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementReport:
    attempted: int = 0
    settled: int = 0
    still_outstanding: int = 0
    abandoned: int = 0


class PayoutService:
    """Queries and settles the ``payouts`` table."""

    def __init__(self, engine: RewardEngine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_payouts(
        self,
        *,
        status: PayoutStatus | None = None,
        distribution_id: str | None = None,
        limit: int = 100,
    ) -> list[Payout]:
        async with self._engine.datastore.session() as session:
            stmt = select(Payout)
            if status is not None:
                stmt = stmt.where(Payout.status == status.value)
            if distribution_id is not None:
                stmt = stmt.where(Payout.distribution_id == distribution_id)
            stmt = stmt.order_by(Payout.created_at.desc(), Payout.id).limit(limit)
            return list((await session.execute(stmt)).scalars().all())

    async def outstanding(self) -> list[Payout]:
        """Every payout still owed, oldest first."""
        async with self._engine.datastore.session() as session:
            stmt = (
                select(Payout)
                .where(Payout.status == PayoutStatus.OUTSTANDING.value)
                .order_by(Payout.created_at, Payout.id)
            )
            return list((await session.execute(stmt)).scalars().all())

    async def outstanding_total(self) -> tuple[int, int]:
        """``(count, amount)`` of outstanding payouts."""
        rows = await self.outstanding()
        return len(rows), sum(p.amount for p in rows)

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def settle_outstanding(self, stage: PayoutStage) -> SettlementReport:
        """Retry every outstanding payout once through *stage*.

        Each payout gets at most ``settlement.max_attempts`` attempts over its
        whole life (cycle attempts included). A payout out of attempts is
        abandoned only after its last transaction is known not to have landed
        and its blockhash has expired.
        """
        max_attempts = self._engine.config.settlement.max_attempts
        per_run = self._engine.config.distribution.max_payout_retries
        attempted = settled = pending = abandoned = 0

        for payout in await self.outstanding():
            kind = PayoutKind(payout.kind)
            record = PayoutRecord(
                recipient=payout.recipient,
                amount=payout.amount,
                kind=kind,
                status=PayoutStatus.OUTSTANDING,
                attempts=payout.attempts,
                signature=payout.signature,
                last_error=payout.last_error,
                last_valid_height=payout.last_valid_height,
            )
            remaining = max_attempts - payout.attempts
            if remaining > 0:
                attempted += 1
                record = await stage.pay(
                    payout.recipient,
                    payout.amount,
                    kind,
                    max_attempts=min(per_run, remaining),
                    prior=record,
                )
            else:
                await stage.check_landed(record)

            if record.paid:
                settled += 1
            elif record.attempts >= max_attempts and not await stage.in_flight(record):
                record.status = PayoutStatus.ABANDONED
                abandoned += 1
                logger.error(
                    "Payout %s of %d to %s abandoned after %d attempts",
                    payout.id,
                    payout.amount,
                    payout.recipient,
                    record.attempts,
                )
            else:
                pending += 1
            await self._save(payout.id, record)

        report = SettlementReport(
            attempted=attempted,
            settled=settled,
            still_outstanding=pending,
            abandoned=abandoned,
        )
        if attempted or abandoned:
            logger.info("Settlement: %s", report)
        return report

    async def _save(self, payout_id: str, record: PayoutRecord) -> None:
        try:
            async with self._engine.datastore.transaction() as session:
                await session.execute(
                    update(Payout)
                    .where(
                        Payout.id == payout_id,
                        Payout.status == PayoutStatus.OUTSTANDING.value,
                    )
                    .values(
                        status=record.status.value,
                        attempts=record.attempts,
                        signature=record.signature,
                        last_error=record.last_error,
                        last_valid_height=record.last_valid_height,
                    )
                )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"failed to update payout {payout_id}: {exc}") from exc
