"""V1 distribution snapshot endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Query

from reward_engine.api.dependencies import get_engine
from reward_engine.api.v1.schemas import DistributionResponse
from reward_engine.engine.client import RewardEngine  # noqa: TC001
from reward_engine.errors.definitions import ErrNoDistribution

if TYPE_CHECKING:
    from reward_engine.engine.models.distribution import Distribution

router = APIRouter(tags=["distributions"])


def distribution_resp(d: Distribution) -> DistributionResponse:
    return DistributionResponse(
        id=d.id,
        epoch_id=d.epoch_id,
        cycle_seq=d.cycle_seq,
        harvested=d.harvested,
        swapped=d.swapped,
        proceeds=d.proceeds,
        holders_amount=d.holders_amount,
        treasury_amount=d.treasury_amount,
        retained_amount=d.retained_amount,
        recipient_count=d.recipient_count,
        outstanding_count=d.outstanding_count,
        tx_refs=list(d.tx_refs or []),
        created_at=d.created_at,
    )


@router.get("/distributions/last")
async def get_last_distribution(
    engine: Annotated[RewardEngine, Depends(get_engine)],
) -> dict:
    """The most recent snapshot, labelled with the cycle that produced it."""
    last = await engine.statistics_service.last_distribution()
    if last is None:
        raise ErrNoDistribution
    return distribution_resp(last).model_dump(mode="json")


@router.get("/distributions")
async def list_distributions(
    engine: Annotated[RewardEngine, Depends(get_engine)],
    limit: Annotated[int, Query(ge=1, le=1000)] = 50,
    epoch_id: str | None = None,
) -> list[dict]:
    rows = await engine.statistics_service.list_distributions(limit=limit, epoch_id=epoch_id)
    return [distribution_resp(d).model_dump(mode="json") for d in rows]
