"""V1 API response Pydantic schemas.

These are the *API-layer* schemas that define the HTTP contract. They do
NOT inherit from SQLAlchemy models; the endpoint code maps between ORM
objects / service dataclasses and these schemas.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Generic
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Standard error body ``{"code": "...", "message": "..."}``."""

    code: str
    message: str


# ---------------------------------------------------------------------------
# Cycles / epochs
# ---------------------------------------------------------------------------


class CurrentCycleResponse(BaseModel):
    """GET /api/v1/cycles/current"""

    epoch_id: str
    cycle_seq: int
    cycles_per_epoch: int
    cycle_seconds: int
    seconds_until_next: float
    state: str | None = None
    starts_at: datetime
    ends_at: datetime


class DistributionResponse(BaseModel):
    """An immutable distribution snapshot."""

    id: str
    epoch_id: str
    cycle_seq: int
    harvested: int
    swapped: int
    proceeds: int
    holders_amount: int
    treasury_amount: int
    retained_amount: int
    recipient_count: int
    outstanding_count: int
    tx_refs: list[str] = Field(default_factory=list)
    created_at: datetime | None = None


class CycleResponse(BaseModel):
    sequence: int
    state: str
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str = ""
    distribution: DistributionResponse | None = None


class EpochSummaryResponse(BaseModel):
    epoch_id: str
    cycle_count: int
    counts: dict[str, int] = Field(default_factory=dict)


class EpochTotalsResponse(BaseModel):
    distribution_count: int = 0
    harvested: int = 0
    proceeds: int = 0
    to_holders: int = 0
    to_treasury: int = 0
    retained: int = 0


class EpochResponse(BaseModel):
    """GET /api/v1/epochs/{epoch_id}: every cycle with its snapshot."""

    epoch_id: str
    counts: dict[str, int] = Field(default_factory=dict)
    totals: EpochTotalsResponse
    cycles: list[CycleResponse]


# ---------------------------------------------------------------------------
# Statistics / payouts
# ---------------------------------------------------------------------------


class StatisticsResponse(BaseModel):
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
    outstanding_count: int = 0
    outstanding_amount: int = 0


class PayoutResponse(BaseModel):
    id: str
    distribution_id: str
    epoch_id: str
    cycle_seq: int
    recipient: str
    kind: str
    amount: int
    status: str
    attempts: int
    signature: str = ""
    last_error: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
