"""Tax harvest stage.

Transfer fees accumulate as withheld amounts inside every holder's token
account (and, once swept, on the mint itself). Harvesting withdraws them into
the operational token account. The amount harvested is never the withheld
total reported beforehand: it is the measured balance change of the
operational account.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from reward_engine.engine.stages.results import HarvestResult
from reward_engine.errors.ledger_errors import LedgerError
from reward_engine.errors.stage_errors import HarvestError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from reward_engine.config.settings import AppConfig
    from reward_engine.ledger.service import LedgerService

logger = logging.getLogger(__name__)


def _chunks(items: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class HarvestStage:
    """Withdraws withheld transfer fees once they reach the configured threshold."""

    def __init__(self, config: AppConfig, ledger: LedgerService) -> None:
        self._config = config
        self._ledger = ledger

    async def run(self) -> HarvestResult:
        """Harvest withheld fees into the operational token account.

        Returns:
            ``HarvestResult(harvested=False)`` when the harvestable total is
            below ``distribution.min_harvest_threshold``; otherwise the
            measured amount received.

        Raises:
            HarvestError: If a withdraw transaction fails or nothing arrived.
            LedgerError: If reading accounts fails before anything was sent.
        """
        ledger_cfg = self._config.ledger
        threshold = self._config.distribution.min_harvest_threshold
        rpc = self._ledger.rpc

        accounts = await rpc.get_token_accounts(ledger_cfg.token_mint, ledger_cfg.token_program_id)
        mint = await rpc.get_mint_info(ledger_cfg.token_mint)
        sources = [a.address for a in accounts if a.withheld > 0]
        harvestable = sum(a.withheld for a in accounts) + mint.withheld

        if harvestable == 0 or harvestable < threshold:
            logger.info(
                "Harvestable tax %d below threshold %d, rolling over", harvestable, threshold
            )
            return HarvestResult(harvested=False, harvestable=harvestable, accounts=tuple(accounts))

        logger.info(
            "Harvesting %d withheld from %d accounts and the mint", harvestable, len(sources)
        )
        before = await rpc.get_token_account_balance(ledger_cfg.operational_token_account)
        try:
            signatures = await self._withdraw(sources, include_mint=mint.withheld > 0)
        except LedgerError as exc:
            raise HarvestError(f"withdraw of withheld tax failed: {exc.message}") from exc
        after = await rpc.get_token_account_balance(ledger_cfg.operational_token_account)

        received = after - before
        if received <= 0:
            raise HarvestError(
                f"harvest produced no tokens (before={before}, after={after}, "
                f"reported withheld={harvestable})"
            )

        logger.info("Harvest received %d (reported withheld %d)", received, harvestable)
        return HarvestResult(
            harvested=True,
            harvestable=harvestable,
            received=received,
            signatures=tuple(signatures),
            accounts=tuple(accounts),
        )

    async def _withdraw(self, sources: list[str], *, include_mint: bool) -> list[str]:
        ledger_cfg = self._config.ledger
        factory = self._ledger.factory
        signatures: list[str] = []

        for batch in _chunks(sources, self._config.distribution.harvest_batch_size):
            wire = factory.withdraw_withheld_from_accounts(
                mint=ledger_cfg.token_mint,
                destination=ledger_cfg.operational_token_account,
                sources=batch,
                blockhash=await self._ledger.recent_blockhash(),
            )
            signatures.append(await self._ledger.execute(wire))
            logger.debug("Withdrew withheld tax from %d accounts", len(batch))

        if include_mint:
            wire = factory.withdraw_withheld_from_mint(
                mint=ledger_cfg.token_mint,
                destination=ledger_cfg.operational_token_account,
                blockhash=await self._ledger.recent_blockhash(),
            )
            signatures.append(await self._ledger.execute(wire))

        return signatures
