"""V1 statistics endpoint."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from reward_engine.api.dependencies import get_engine
from reward_engine.api.v1.schemas import StatisticsResponse
from reward_engine.engine.client import RewardEngine  # noqa: TC001

router = APIRouter(tags=["statistics"])


@router.get("/statistics")
async def get_statistics(
    engine: Annotated[RewardEngine, Depends(get_engine)],
) -> dict:
    """Cumulative counters, their fingerprint and the outstanding payout totals."""
    stats = await engine.statistics_service.get_statistics()
    count, amount = await engine.payout_service.outstanding_total()
    return StatisticsResponse(
        total_harvested=stats.total_harvested,
        total_swapped=stats.total_swapped,
        total_proceeds=stats.total_proceeds,
        total_to_holders=stats.total_to_holders,
        total_to_treasury=stats.total_to_treasury,
        total_retained=stats.total_retained,
        distribution_count=stats.distribution_count,
        last_distribution_id=stats.last_distribution_id,
        last_epoch_id=stats.last_epoch_id,
        last_cycle_seq=stats.last_cycle_seq,
        fingerprint=stats.fingerprint,
        outstanding_count=count,
        outstanding_amount=amount,
    ).model_dump(mode="json")
