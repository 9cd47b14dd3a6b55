"""Values passed between pipeline stages and into the cycle record."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from reward_engine.engine.models.payout import PayoutKind, PayoutStatus

if TYPE_CHECKING:
    from reward_engine.ledger.rpc.models import TokenAccount


class HolderStatus(enum.StrEnum):
    """``EXCLUDED`` holds less than the minimum balance; ``BLACKLISTED`` is never paid."""

    ELIGIBLE = "eligible"
    EXCLUDED = "excluded"
    BLACKLISTED = "blacklisted"


@dataclass(frozen=True)
class HolderEligibility:
    """A wallet's aggregated balance of the token and whether it shares in payouts."""

    owner: str
    balance: int
    status: HolderStatus

    @property
    def eligible(self) -> bool:
        return self.status is HolderStatus.ELIGIBLE


@dataclass(frozen=True)
class HarvestResult:
    """Outcome of the tax harvest.

    ``harvested`` is False when the harvestable total was below threshold; no
    transaction was sent in that case and ``received`` is 0. ``accounts`` are
    the mint's token accounts as read before harvesting, reused to resolve
    holders without a second scan.
    """

    harvested: bool
    harvestable: int
    received: int = 0
    signatures: tuple[str, ...] = ()
    accounts: tuple[TokenAccount, ...] = ()


@dataclass(frozen=True)
class SwapResult:
    """Outcome of the swap; ``proceeds`` is the measured native amount received."""

    amount_in: int
    expected_out: int
    minimum_out: int
    proceeds: int
    price_impact_bps: int
    signatures: tuple[str, ...] = ()


@dataclass
class PayoutRecord:
    """One recipient's transfer, paid or owed."""

    recipient: str
    amount: int
    kind: PayoutKind
    status: PayoutStatus
    attempts: int = 0
    signature: str = ""
    last_error: str = ""
    last_valid_height: int = 0  # of the blockhash behind ``signature``

    @property
    def paid(self) -> bool:
        return self.status is PayoutStatus.PAID


@dataclass
class PayoutResult:
    """Outcome of the split and payout stage."""

    proceeds: int
    holders_amount: int
    treasury_amount: int
    retained_amount: int
    records: list[PayoutRecord] = field(default_factory=list)

    @property
    def outstanding(self) -> list[PayoutRecord]:
        return [r for r in self.records if r.status is PayoutStatus.OUTSTANDING]

    @property
    def recipient_count(self) -> int:
        return sum(1 for r in self.records if r.kind is PayoutKind.HOLDER)

    @property
    def signatures(self) -> list[str]:
        return [r.signature for r in self.records if r.paid and r.signature]


@dataclass(frozen=True)
class DistributionSnapshot:
    """Everything recorded for a DISTRIBUTED cycle.

    ``epoch_id``/``cycle_seq`` identify the cycle that was pending when the
    pipeline began, fixed at that moment.
    """

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
    tx_refs: tuple[str, ...] = ()
    payouts: tuple[PayoutRecord, ...] = ()
