"""V1 epoch endpoints.

Epochs are listed newest first; an epoch older than the retention window
is reported as not found.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from reward_engine.api.dependencies import get_engine
from reward_engine.api.v1.distributions import distribution_resp
from reward_engine.api.v1.schemas import (
    CycleResponse,
    EpochResponse,
    EpochSummaryResponse,
    EpochTotalsResponse,
)
from reward_engine.engine import clock
from reward_engine.engine.client import RewardEngine  # noqa: TC001
from reward_engine.errors.definitions import ErrEpochNotFound, ErrInvalidEpochId

router = APIRouter(tags=["epochs"])


@router.get("/epochs")
async def list_epochs(
    engine: Annotated[RewardEngine, Depends(get_engine)],
    limit: Annotated[int, Query(ge=1, le=366)] = 30,
) -> list[dict]:
    epochs = await engine.cycle_service.list_epochs(limit=limit)
    return [
        EpochSummaryResponse(
            epoch_id=e.epoch_id, cycle_count=e.cycle_count, counts=e.counts
        ).model_dump(mode="json")
        for e in epochs
    ]


@router.get("/epochs/{epoch_id}")
async def get_epoch(
    epoch_id: str,
    engine: Annotated[RewardEngine, Depends(get_engine)],
) -> dict:
    """Every cycle of *epoch_id* in order, with the snapshot of each distributed cycle."""
    try:
        clock.parse_epoch_id(epoch_id)
    except ValueError:
        raise ErrInvalidEpochId from None

    view = await engine.cycle_service.get_epoch(epoch_id)
    if view is None:
        raise ErrEpochNotFound
    totals = await engine.cycle_service.epoch_statistics(epoch_id)

    return EpochResponse(
        epoch_id=view.epoch_id,
        counts=view.counts,
        totals=EpochTotalsResponse(
            distribution_count=totals.distribution_count,
            harvested=totals.harvested,
            proceeds=totals.proceeds,
            to_holders=totals.to_holders,
            to_treasury=totals.to_treasury,
            retained=totals.retained,
        ),
        cycles=[
            CycleResponse(
                sequence=c.sequence,
                state=c.state.value,
                started_at=c.started_at,
                completed_at=c.completed_at,
                error=c.error,
                distribution=distribution_resp(c.distribution) if c.distribution else None,
            )
            for c in view.cycles
        ],
    ).model_dump(mode="json")
