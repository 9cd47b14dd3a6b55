"""Ledger access: JSON-RPC, pool trade API and transaction execution."""

from reward_engine.ledger.interfaces import TransactionFactory
from reward_engine.ledger.service import LedgerService

__all__ = ["LedgerService", "TransactionFactory"]
