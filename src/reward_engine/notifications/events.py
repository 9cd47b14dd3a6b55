"""Event types for the notification bus.

- ``RawEvent``: envelope with type string + JSON content
- ``CycleEvent``: a cycle reached its terminal state
- ``DistributionEvent``: the cumulative statistics changed
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from reward_engine.engine.models.distribution import Distribution
    from reward_engine.engine.services.statistics_service import Statistics


@dataclass(frozen=True)
class RawEvent:
    """Generic event envelope sent to subscribers."""

    type: str
    content: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CycleEvent(RawEvent):
    """Emitted by the scheduler after a cycle's terminal state is committed."""

    type: str = "cycle"
    epoch_id: str = ""
    cycle_seq: int = 0
    state: str = ""
    error: str = ""


@dataclass(frozen=True)
class DistributionEvent(RawEvent):
    """Emitted by the watcher when the distribution fingerprint changes.

    ``epoch_id``/``cycle_seq`` come from the stored snapshot and name the
    cycle that produced it.
    """

    type: str = "distribution"
    fingerprint: str = ""
    distribution_id: str = ""
    epoch_id: str = ""
    cycle_seq: int = 0
    proceeds: int = 0
    holders_amount: int = 0
    treasury_amount: int = 0
    recipient_count: int = 0
    total_to_holders: int = 0
    total_to_treasury: int = 0
    distribution_count: int = 0

    @classmethod
    def from_snapshot(
        cls, stats: Statistics, distribution: Distribution | None
    ) -> DistributionEvent:
        if distribution is None:
            return cls(
                fingerprint=stats.fingerprint,
                total_to_holders=stats.total_to_holders,
                total_to_treasury=stats.total_to_treasury,
                distribution_count=stats.distribution_count,
            )
        return cls(
            fingerprint=stats.fingerprint,
            distribution_id=distribution.id,
            epoch_id=distribution.epoch_id,
            cycle_seq=distribution.cycle_seq,
            proceeds=distribution.proceeds,
            holders_amount=distribution.holders_amount,
            treasury_amount=distribution.treasury_amount,
            recipient_count=distribution.recipient_count,
            total_to_holders=stats.total_to_holders,
            total_to_treasury=stats.total_to_treasury,
            distribution_count=stats.distribution_count,
        )
