"""Errors raised by the harvest and swap pipeline stages."""

from __future__ import annotations

from reward_engine.errors.engine_errors import RewardEngineError


class StageError(RewardEngineError):
    """A pipeline stage could not complete; the cycle is recorded as FAILED."""

    def __init__(self, message: str, *, code: str = "stage-error") -> None:
        super().__init__(message, status_code=500, code=code)


class HarvestError(StageError):
    """Tax harvest failed or yielded nothing."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="harvest-error")


class SwapError(StageError):
    """Swap of harvested tokens failed."""

    def __init__(self, message: str, *, code: str = "swap-error") -> None:
        super().__init__(message, code=code)


class InsufficientLiquidityError(SwapError):
    """Pool reserves cannot absorb the swap within the configured bounds."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="insufficient-liquidity")
