"""V1 payout endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Query

from reward_engine.api.dependencies import get_engine
from reward_engine.api.v1.schemas import PayoutResponse
from reward_engine.engine.client import RewardEngine  # noqa: TC001
from reward_engine.engine.models.payout import PayoutStatus
from reward_engine.errors.definitions import ErrInvalidPayoutStatus

if TYPE_CHECKING:
    from reward_engine.engine.models.payout import Payout

router = APIRouter(tags=["payouts"])


def _payout_resp(p: Payout) -> dict:
    return PayoutResponse(
        id=p.id,
        distribution_id=p.distribution_id,
        epoch_id=p.epoch_id,
        cycle_seq=p.cycle_seq,
        recipient=p.recipient,
        kind=p.kind,
        amount=p.amount,
        status=p.status,
        attempts=p.attempts,
        signature=p.signature,
        last_error=p.last_error,
        created_at=p.created_at,
        updated_at=p.updated_at,
    ).model_dump(mode="json")


@router.get("/payouts")
async def list_payouts(
    engine: Annotated[RewardEngine, Depends(get_engine)],
    status: str | None = None,
    distribution_id: str | None = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> list[dict]:
    """List payouts, optionally filtered by status (PAID, OUTSTANDING, ABANDONED)."""
    parsed: PayoutStatus | None = None
    if status is not None:
        try:
            parsed = PayoutStatus(status.upper())
        except ValueError:
            raise ErrInvalidPayoutStatus from None

    rows = await engine.payout_service.list_payouts(
        status=parsed, distribution_id=distribution_id, limit=limit
    )
    return [_payout_resp(p) for p in rows]
