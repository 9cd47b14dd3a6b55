"""Pool trade API: pool keys, quotes and swap transactions."""

from reward_engine.ledger.raydium.models import PoolKeys, PoolState, SwapQuote
from reward_engine.ledger.raydium.service import RaydiumService

__all__ = ["PoolKeys", "PoolState", "RaydiumService", "SwapQuote"]
