"""Distribution pipeline: Harvest, then Swap, then Split & Payout.

Stages run strictly in sequence; each consumes only the previous stage's
output. The pipeline turns every outcome into a cycle state and never raises
for a stage failure. Cancellation and a lost scheduler lease are not caught:
either leaves the cycle PENDING.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from dataclasses import dataclass
from typing import TYPE_CHECKING

from reward_engine.engine.models.cycle import CycleState
from reward_engine.engine.stages.results import DistributionSnapshot
from reward_engine.errors.engine_errors import LeaseLostError
from reward_engine.errors.ledger_errors import LedgerError
from reward_engine.errors.stage_errors import StageError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from contextlib import AbstractContextManager

    from reward_engine.engine.services.holder_service import HolderService
    from reward_engine.engine.stages.harvest import HarvestStage
    from reward_engine.engine.stages.payout import PayoutStage
    from reward_engine.engine.stages.results import HarvestResult, PayoutResult, SwapResult
    from reward_engine.engine.stages.swap import SwapStage
    from reward_engine.metrics.collector import EngineMetrics

    # awaited with the stage name before each stage that sends transactions
    Checkpoint = Callable[[str], Awaitable[None]]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineOutcome:
    """Terminal state for one cycle plus what each stage produced."""

    epoch_id: str
    cycle_seq: int
    state: CycleState
    snapshot: DistributionSnapshot | None = None
    error: str = ""
    harvest: HarvestResult | None = None
    swap: SwapResult | None = None
    payout: PayoutResult | None = None


class DistributionPipeline:
    """Runs one cycle's stages and classifies the result."""

    def __init__(
        self,
        harvest: HarvestStage,
        swap: SwapStage,
        payout: PayoutStage,
        holders: HolderService,
        *,
        metrics: EngineMetrics | None = None,
    ) -> None:
        self._harvest = harvest
        self._swap = swap
        self._payout = payout
        self._holders = holders
        self._metrics = metrics

    async def run(
        self, epoch_id: str, cycle_seq: int, *, checkpoint: Checkpoint | None = None
    ) -> PipelineOutcome:
        """Run the pipeline for the cycle ``epoch_id#cycle_seq``.

        The snapshot is labelled with the cycle passed in here, however long
        the run takes. *checkpoint* may raise ``LeaseLostError`` to stop the
        run before the next stage; that error propagates.
        """
        try:
            return await self._run(epoch_id, cycle_seq, checkpoint)
        except LeaseLostError:
            raise
        except (StageError, LedgerError) as exc:
            logger.error("Cycle %s#%d failed: [%s] %s", epoch_id, cycle_seq, exc.code, exc.message)
            return PipelineOutcome(
                epoch_id, cycle_seq, CycleState.FAILED, error=f"{exc.code}: {exc.message}"
            )
        except Exception as exc:
            logger.exception("Cycle %s#%d failed unexpectedly", epoch_id, cycle_seq)
            return PipelineOutcome(
                epoch_id, cycle_seq, CycleState.FAILED, error=f"{type(exc).__name__}: {exc}"
            )

    async def _run(
        self, epoch_id: str, cycle_seq: int, checkpoint: Checkpoint | None
    ) -> PipelineOutcome:
        if checkpoint is not None:
            await checkpoint("harvest")
        with self._track("harvest"):
            harvest = await self._harvest.run()
        if not harvest.harvested:
            return PipelineOutcome(epoch_id, cycle_seq, CycleState.ROLLED_OVER, harvest=harvest)

        holders = await self._holders.resolve(harvest.accounts)

        if checkpoint is not None:
            await checkpoint("swap")
        with self._track("swap"):
            swap = await self._swap.run(harvest.received)

        if checkpoint is not None:
            await checkpoint("payout")
        with self._track("payout"):
            payout = await self._payout.run(swap.proceeds, holders)

        snapshot = DistributionSnapshot(
            epoch_id=epoch_id,
            cycle_seq=cycle_seq,
            harvested=harvest.received,
            swapped=swap.amount_in,
            proceeds=swap.proceeds,
            holders_amount=payout.holders_amount,
            treasury_amount=payout.treasury_amount,
            retained_amount=payout.retained_amount,
            recipient_count=payout.recipient_count,
            outstanding_count=len(payout.outstanding),
            tx_refs=(*harvest.signatures, *swap.signatures, *payout.signatures),
            payouts=tuple(payout.records),
        )
        return PipelineOutcome(
            epoch_id,
            cycle_seq,
            CycleState.DISTRIBUTED,
            snapshot=snapshot,
            harvest=harvest,
            swap=swap,
            payout=payout,
        )

    def _track(self, stage: str) -> AbstractContextManager[None]:
        if self._metrics is None:
            return nullcontext()
        return self._metrics.track_stage(stage)
