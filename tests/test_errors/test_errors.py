"""Tests for error classes and pre-defined error instances."""

from __future__ import annotations

import pytest

from reward_engine.errors import definitions as defs
from reward_engine.errors.engine_errors import (
    LeaseLostError,
    PersistenceError,
    RewardEngineError,
)
from reward_engine.errors.ledger_errors import (
    ConfirmationTimeoutError,
    LedgerError,
    RaydiumError,
    RPCError,
    SimulationError,
    TransactionPendingError,
    TransactionRejectedError,
)
from reward_engine.errors.stage_errors import (
    HarvestError,
    InsufficientLiquidityError,
    StageError,
    SwapError,
)

# ---------------------------------------------------------------------------
# RewardEngineError base class
# ---------------------------------------------------------------------------


class TestRewardEngineError:
    def test_default_attributes(self) -> None:
        """Defaults are a 500 with the generic code."""
        err = RewardEngineError("something broke")
        assert str(err) == "something broke"
        assert err.message == "something broke"
        assert err.status_code == 500
        assert err.code == "reward-engine-error"

    def test_custom_attributes(self) -> None:
        """Status and code can be overridden."""
        err = RewardEngineError("bad request", status_code=400, code="bad-req")
        assert err.status_code == 400
        assert err.code == "bad-req"

    def test_persistence_error(self) -> None:
        """PersistenceError is a RewardEngineError."""
        with pytest.raises(RewardEngineError, match="disk full") as exc_info:
            raise PersistenceError("disk full")
        assert exc_info.value.code == "persistence-error"

    def test_lease_lost(self) -> None:
        """A lost lease is a conflict."""
        err = LeaseLostError("scheduler lease lost before swap")
        assert (err.status_code, err.code) == (409, "lease-lost")


# ---------------------------------------------------------------------------
# Ledger errors
# ---------------------------------------------------------------------------


class TestLedgerErrors:
    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (RPCError("x"), "rpc-error"),
            (RaydiumError("x"), "raydium-error"),
            (TransactionRejectedError("x"), "transaction-rejected"),
            (SimulationError("x"), "simulation-failed"),
            (ConfirmationTimeoutError("x"), "confirmation-timeout"),
            (TransactionPendingError("x"), "transaction-pending"),
        ],
    )
    def test_codes(self, error: LedgerError, code: str) -> None:
        """Each ledger error has its own code."""
        assert isinstance(error, LedgerError)
        assert error.code == code

    def test_gateway_status(self) -> None:
        """Upstream failures map to gateway statuses."""
        assert RPCError("down").status_code == 502
        assert ConfirmationTimeoutError("slow").status_code == 504

    def test_rpc_code(self) -> None:
        """The JSON-RPC error code is optional."""
        assert RPCError("bad", rpc_code=-32002).rpc_code == -32002
        assert RPCError("bad").rpc_code is None

    def test_signature_carried(self) -> None:
        """Send errors carry the signature they concern."""
        assert ConfirmationTimeoutError("slow", signature="sig").signature == "sig"
        assert TransactionRejectedError("no", signature="sig").signature == "sig"

    def test_simulation_logs(self) -> None:
        """Simulation errors keep their logs."""
        assert SimulationError("x").logs == []
        assert SimulationError("x", logs=["a"]).logs == ["a"]


# ---------------------------------------------------------------------------
# Stage errors
# ---------------------------------------------------------------------------


class TestStageErrors:
    def test_hierarchy(self) -> None:
        """Stage errors are separate from ledger errors."""
        assert issubclass(HarvestError, StageError)
        assert issubclass(InsufficientLiquidityError, SwapError)
        assert not issubclass(StageError, LedgerError)

    def test_codes(self) -> None:
        """Each stage error has its own code."""
        assert HarvestError("x").code == "harvest-error"
        assert SwapError("x").code == "swap-error"
        assert InsufficientLiquidityError("x").code == "insufficient-liquidity"


# ---------------------------------------------------------------------------
# Pre-defined error instances (definitions.py)
# ---------------------------------------------------------------------------


class TestDefinitions:
    """Verify all pre-defined error singletons have expected attributes."""

    @pytest.mark.parametrize(
        ("error_name", "status", "code"),
        [
            ("ErrInvalidEpochId", 400, "invalid-epoch-id"),
            ("ErrInvalidPayoutStatus", 400, "invalid-payout-status"),
            ("ErrEpochNotFound", 404, "epoch-not-found"),
            ("ErrNoDistribution", 404, "no-distribution"),
            ("ErrEngineNotReady", 503, "engine-not-ready"),
        ],
    )
    def test_predefined_error(self, error_name: str, status: int, code: str) -> None:
        """Predefined errors carry their status and code."""
        err = getattr(defs, error_name)
        assert isinstance(err, RewardEngineError)
        assert err.status_code == status
        assert err.code == code
        assert err.message  # non-empty message
