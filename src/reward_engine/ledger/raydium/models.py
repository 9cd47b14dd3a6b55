"""Pool trade API data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class PoolKeys:
    """Static description of a constant-product pool.

    Reserves are deliberately absent: they move every block and are read
    live from the vault accounts.
    """

    id: str
    program_id: str
    mint_a: str
    mint_b: str
    decimals_a: int
    decimals_b: int
    vault_a: str
    vault_b: str
    fee_rate_bps: int = 25

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PoolKeys:
        return cls(**data)

    @classmethod
    def from_api(cls, keys: dict[str, Any], info: dict[str, Any] | None = None) -> PoolKeys:
        """Build from ``/pools/key/ids`` and (optionally) ``/pools/info/ids`` entries."""
        fee_rate = float((info or {}).get("feeRate", 0.0025))
        return cls(
            id=keys["id"],
            program_id=keys.get("programId", ""),
            mint_a=keys["mintA"]["address"],
            mint_b=keys["mintB"]["address"],
            decimals_a=int(keys["mintA"].get("decimals", 0)),
            decimals_b=int(keys["mintB"].get("decimals", 0)),
            vault_a=keys["vault"]["A"],
            vault_b=keys["vault"]["B"],
            fee_rate_bps=round(fee_rate * 10_000),
        )


@dataclass(frozen=True)
class PoolState:
    """Pool keys together with reserves read at one point in time."""

    keys: PoolKeys
    reserve_a: int
    reserve_b: int

    def reserves_for(self, input_mint: str) -> tuple[int, int]:
        """``(reserve_in, reserve_out)`` when swapping *input_mint* into the other side.

        Raises:
            ValueError: If *input_mint* is not one of the pool's mints.
        """
        if input_mint == self.keys.mint_a:
            return self.reserve_a, self.reserve_b
        if input_mint == self.keys.mint_b:
            return self.reserve_b, self.reserve_a
        msg = f"mint {input_mint} is not part of pool {self.keys.id}"
        raise ValueError(msg)

    def other_mint(self, input_mint: str) -> str:
        return self.keys.mint_b if input_mint == self.keys.mint_a else self.keys.mint_a


@dataclass
class SwapQuote:
    """Quote from ``compute/swap-base-in``.

    ``raw`` is the untouched API response; the transaction endpoint expects
    it back verbatim.
    """

    input_mint: str
    output_mint: str
    input_amount: int
    output_amount: int
    other_amount_threshold: int
    slippage_bps: int
    price_impact_pct: float = 0.0
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, body: dict[str, Any]) -> SwapQuote:
        data = body.get("data", {})
        return cls(
            input_mint=data.get("inputMint", ""),
            output_mint=data.get("outputMint", ""),
            input_amount=int(data.get("inputAmount", 0)),
            output_amount=int(data.get("outputAmount", 0)),
            other_amount_threshold=int(data.get("otherAmountThreshold", 0)),
            slippage_bps=int(data.get("slippageBps", 0)),
            price_impact_pct=float(data.get("priceImpactPct", 0.0)),
            raw=body,
        )
