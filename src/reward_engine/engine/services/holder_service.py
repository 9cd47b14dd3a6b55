"""Holder service: who shares in a distribution and by how much."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING

from reward_engine.engine.stages.results import HolderEligibility, HolderStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from reward_engine.engine.client import RewardEngine
    from reward_engine.ledger.rpc.models import TokenAccount

logger = logging.getLogger(__name__)


class HolderService:
    """Aggregates token accounts by owner and classifies each owner.

    Owners on the configured blacklist, the operational and treasury wallets,
    and the owner of the pool's vaults are BLACKLISTED. Owners holding less
    than ``distribution.min_holder_balance`` are EXCLUDED.
    """

    def __init__(self, engine: RewardEngine) -> None:
        self._engine = engine

    async def get_holders(self) -> list[HolderEligibility]:
        """Read the mint's token accounts from the ledger and classify their owners."""
        ledger_cfg = self._engine.config.ledger
        accounts = await self._engine.ledger.rpc.get_token_accounts(
            ledger_cfg.token_mint, ledger_cfg.token_program_id
        )
        return await self.resolve(accounts)

    async def resolve(self, accounts: Iterable[TokenAccount]) -> list[HolderEligibility]:
        """Classify the owners of *accounts*, largest balance first."""
        accounts = list(accounts)
        blacklist = await self._blacklist(accounts)
        min_balance = self._engine.config.distribution.min_holder_balance

        balances: dict[str, int] = defaultdict(int)
        for account in accounts:
            balances[account.owner] += account.amount

        holders = []
        for owner, balance in balances.items():
            if owner in blacklist:
                status = HolderStatus.BLACKLISTED
            elif balance <= 0 or balance < min_balance:
                status = HolderStatus.EXCLUDED
            else:
                status = HolderStatus.ELIGIBLE
            holders.append(HolderEligibility(owner=owner, balance=balance, status=status))

        holders.sort(key=lambda h: (-h.balance, h.owner))
        logger.debug(
            "Resolved %d holders, %d eligible",
            len(holders),
            sum(1 for h in holders if h.eligible),
        )
        return holders

    async def _blacklist(self, accounts: list[TokenAccount]) -> set[str]:
        config = self._engine.config
        blacklist = set(config.distribution.blacklist)
        blacklist.update(
            w for w in (config.ledger.operational_wallet, config.ledger.treasury_wallet) if w
        )
        if config.pool.pool_id:
            keys = await self._engine.ledger.get_pool_keys()
            vaults = {keys.vault_a, keys.vault_b}
            blacklist.update(a.owner for a in accounts if a.address in vaults)
        return blacklist
