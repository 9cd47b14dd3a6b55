"""Ledger RPC data models: parsed responses of the JSON-RPC calls the engine uses."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Confirmation levels
# ---------------------------------------------------------------------------


class ConfirmationStatus(enum.StrEnum):
    """Signature confirmation levels, in increasing order of finality."""

    UNKNOWN = "unknown"
    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"

    @classmethod
    def from_string(cls, value: str | None) -> ConfirmationStatus:
        """Parse a status string, returning UNKNOWN for unrecognised values."""
        try:
            return cls(value or "")
        except ValueError:
            return cls.UNKNOWN

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {
    ConfirmationStatus.UNKNOWN: 0,
    ConfirmationStatus.PROCESSED: 1,
    ConfirmationStatus.CONFIRMED: 2,
    ConfirmationStatus.FINALIZED: 3,
}


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Blockhash:
    blockhash: str
    last_valid_block_height: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Blockhash:
        return cls(
            blockhash=data.get("blockhash", ""),
            last_valid_block_height=int(data.get("lastValidBlockHeight", 0)),
        )


@dataclass(frozen=True)
class TokenAccount:
    """A token account of the mint with its balance and withheld transfer fee.

    Attributes:
        address: Token account address.
        owner: Wallet owning the account.
        amount: Balance in base units.
        withheld: Transfer fee withheld inside the account, harvestable by the
            withdraw authority.
    """

    address: str
    owner: str
    amount: int
    withheld: int = 0

    @classmethod
    def from_rpc(cls, entry: dict[str, Any]) -> TokenAccount:
        """Build from a ``jsonParsed`` ``getProgramAccounts`` entry."""
        info = entry["account"]["data"]["parsed"]["info"]
        withheld = 0
        for ext in info.get("extensions", []):
            if ext.get("extension") == "transferFeeAmount":
                withheld = int(ext.get("state", {}).get("withheldAmount", 0))
        return cls(
            address=entry["pubkey"],
            owner=info.get("owner", ""),
            amount=int(info.get("tokenAmount", {}).get("amount", 0)),
            withheld=withheld,
        )


@dataclass(frozen=True)
class MintInfo:
    """Mint metadata including the transfer-fee extension.

    Attributes:
        address: Mint address.
        decimals: Token decimals.
        transfer_fee_bps: Fee charged on every transfer, in basis points.
        maximum_fee: Upper bound of the fee per transfer in base units
            (0 means unbounded).
        withheld: Fees already moved to the mint and awaiting withdrawal.
    """

    address: str
    decimals: int
    transfer_fee_bps: int = 0
    maximum_fee: int = 0
    withheld: int = 0

    def fee_on(self, amount: int) -> int:
        """Transfer fee charged when *amount* moves, rounded up as the ledger does."""
        if self.transfer_fee_bps == 0 or amount <= 0:
            return 0
        fee = -(-amount * self.transfer_fee_bps // 10_000)
        if self.maximum_fee:
            fee = min(fee, self.maximum_fee)
        return fee

    @classmethod
    def from_rpc(cls, address: str, value: dict[str, Any]) -> MintInfo:
        """Build from a ``jsonParsed`` ``getAccountInfo`` value."""
        info = value["data"]["parsed"]["info"]
        fee_bps = 0
        maximum_fee = 0
        withheld = 0
        for ext in info.get("extensions", []):
            if ext.get("extension") == "transferFeeConfig":
                state = ext.get("state", {})
                newer = state.get("newerTransferFee", {})
                fee_bps = int(newer.get("transferFeeBasisPoints", 0))
                maximum_fee = int(newer.get("maximumFee", 0))
                withheld = int(state.get("withheldAmount", 0))
        return cls(
            address=address,
            decimals=int(info.get("decimals", 0)),
            transfer_fee_bps=fee_bps,
            maximum_fee=maximum_fee,
            withheld=withheld,
        )


@dataclass(frozen=True)
class SignatureStatus:
    """Status of a sent transaction as reported by ``getSignatureStatuses``."""

    signature: str
    confirmation_status: ConfirmationStatus = ConfirmationStatus.UNKNOWN
    slot: int = 0
    err: Any = None
    found: bool = True

    @property
    def failed(self) -> bool:
        return self.err is not None

    def reached(self, commitment: str) -> bool:
        """Whether the transaction reached at least *commitment* without error."""
        target = ConfirmationStatus.from_string(commitment)
        return not self.failed and self.confirmation_status.rank >= target.rank > 0

    @classmethod
    def from_rpc(cls, signature: str, value: dict[str, Any] | None) -> SignatureStatus:
        if value is None:
            return cls(signature=signature, found=False)
        return cls(
            signature=signature,
            confirmation_status=ConfirmationStatus.from_string(value.get("confirmationStatus")),
            slot=int(value.get("slot", 0)),
            err=value.get("err"),
        )


@dataclass
class SimulationResult:
    err: Any = None
    logs: list[str] = field(default_factory=list)
    units_consumed: int = 0

    @property
    def ok(self) -> bool:
        return self.err is None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SimulationResult:
        return cls(
            err=data.get("err"),
            logs=list(data.get("logs") or []),
            units_consumed=int(data.get("unitsConsumed") or 0),
        )
