"""Ledger RPC and pool trade API errors."""

from __future__ import annotations

from reward_engine.errors.engine_errors import RewardEngineError


class LedgerError(RewardEngineError):
    """Error talking to the ledger or an on-chain service."""

    def __init__(self, message: str, *, status_code: int = 502, code: str = "ledger-error") -> None:
        super().__init__(message, status_code=status_code, code=code)


class RPCError(LedgerError):
    """JSON-RPC transport failure or RPC-level error response."""

    def __init__(self, message: str, *, rpc_code: int | None = None) -> None:
        super().__init__(message, code="rpc-error")
        self.rpc_code = rpc_code


class RaydiumError(LedgerError):
    """Error from the pool's trade API."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="raydium-error")


class TransactionRejectedError(LedgerError):
    """The ledger reported a transaction as failed."""

    def __init__(self, message: str, *, signature: str = "") -> None:
        super().__init__(message, code="transaction-rejected")
        self.signature = signature


class SimulationError(LedgerError):
    """Pre-flight simulation of a transaction failed."""

    def __init__(self, message: str, *, logs: list[str] | None = None) -> None:
        super().__init__(message, code="simulation-failed")
        self.logs = logs or []


class ConfirmationTimeoutError(LedgerError):
    """A sent transaction did not confirm within the configured timeout.

    The transaction may still land; ``signature`` allows a later status check.
    """

    def __init__(self, message: str, *, signature: str = "") -> None:
        super().__init__(message, status_code=504, code="confirmation-timeout")
        self.signature = signature


class TransactionPendingError(LedgerError):
    """An earlier transaction is unconfirmed and its blockhash has not expired.

    Sending a replacement now could pay twice; wait until the earlier one
    lands or can no longer land.
    """

    def __init__(self, message: str, *, signature: str = "") -> None:
        super().__init__(message, status_code=409, code="transaction-pending")
        self.signature = signature
