"""V1 cycle endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from reward_engine.api.dependencies import get_engine
from reward_engine.api.v1.schemas import CurrentCycleResponse
from reward_engine.engine import clock
from reward_engine.engine.client import RewardEngine  # noqa: TC001

router = APIRouter(tags=["cycles"])


@router.get("/cycles/current")
async def get_current_cycle(
    engine: Annotated[RewardEngine, Depends(get_engine)],
) -> dict:
    """The cycle the clock is in right now and its recorded state, if any."""
    dist = engine.config.distribution
    now = engine.now()
    epoch_id, seq = engine.cycle_service.current_epoch_and_cycle(now)
    starts_at, ends_at = clock.cycle_window(
        epoch_id, seq, cycle_seconds=dist.cycle_seconds, tz=dist.tz
    )
    cycle = await engine.cycle_service.get_cycle(epoch_id, seq)
    return CurrentCycleResponse(
        epoch_id=epoch_id,
        cycle_seq=seq,
        cycles_per_epoch=engine.cycle_service.cycles_per_epoch,
        cycle_seconds=dist.cycle_seconds,
        seconds_until_next=clock.seconds_until_next_cycle(
            now, cycle_seconds=dist.cycle_seconds, tz=dist.tz
        ),
        state=cycle.state if cycle is not None else None,
        starts_at=starts_at,
        ends_at=ends_at,
    ).model_dump(mode="json")
