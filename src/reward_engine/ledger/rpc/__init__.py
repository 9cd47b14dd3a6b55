"""Ledger JSON-RPC client."""

from reward_engine.ledger.rpc.models import (
    Blockhash,
    ConfirmationStatus,
    MintInfo,
    SignatureStatus,
    SimulationResult,
    TokenAccount,
)
from reward_engine.ledger.rpc.service import RPCService

__all__ = [
    "Blockhash",
    "ConfirmationStatus",
    "MintInfo",
    "RPCService",
    "SignatureStatus",
    "SimulationResult",
    "TokenAccount",
]
