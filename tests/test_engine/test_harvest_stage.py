"""Tests for the tax harvest stage."""

from __future__ import annotations

import pytest
from conftest import MINT, OPS_TOKEN, make_config

from reward_engine.config.settings import DistributionConfig
from reward_engine.engine.stages.harvest import HarvestStage
from reward_engine.errors.ledger_errors import RPCError, TransactionRejectedError
from reward_engine.errors.stage_errors import HarvestError
from reward_engine.ledger.rpc.models import MintInfo, TokenAccount


class TestThreshold:
    async def test_below_threshold_rolls_over(self, app_config, fake_ledger) -> None:
        """Below the threshold nothing is withdrawn."""
        fake_ledger.rpc.accounts = [
            TokenAccount(address="AccA", owner="HolderA", amount=600_000, withheld=10_000),
            TokenAccount(address="AccB", owner="HolderB", amount=400_000, withheld=5_000),
        ]
        result = await HarvestStage(app_config, fake_ledger).run()

        assert result.harvested is False
        assert result.harvestable == 15_000
        assert result.received == 0
        assert len(result.accounts) == 2
        assert fake_ledger.sent == []

    async def test_nothing_withheld_with_zero_threshold(self, fake_ledger) -> None:
        """With nothing withheld there is no harvest even at a zero threshold."""
        config = make_config(
            distribution=DistributionConfig(min_harvest_threshold=0, payout_retry_delay=0)
        )
        fake_ledger.rpc.accounts = [
            TokenAccount(address="AccA", owner="HolderA", amount=600_000),
        ]
        result = await HarvestStage(config, fake_ledger).run()
        assert result.harvested is False
        assert fake_ledger.sent == []

    async def test_mint_withheld_counts_towards_threshold(self, app_config, fake_ledger) -> None:
        """Fees withheld on the mint count towards the threshold."""
        fake_ledger.rpc.accounts = [
            TokenAccount(address="AccA", owner="HolderA", amount=600_000, withheld=10_000),
        ]
        fake_ledger.rpc.mint = MintInfo(address=MINT, decimals=6, withheld=10_000)
        result = await HarvestStage(app_config, fake_ledger).run()
        assert result.harvested is True
        assert result.received == 20_000


class TestHarvest:
    async def test_received_is_measured_balance_change(self, app_config, fake_ledger) -> None:
        """The received amount is the measured balance change."""
        fake_ledger.rpc.balances[OPS_TOKEN] = 5_000
        result = await HarvestStage(app_config, fake_ledger).run()

        assert result.harvested is True
        assert result.harvestable == 30_000
        assert result.received == 30_000
        assert result.signatures == ("sig1",)
        assert fake_ledger.sent == [b"withdraw_accounts:AccA,AccB"]
        assert fake_ledger.rpc.balances[OPS_TOKEN] == 35_000

    async def test_batched_withdraws(self, fake_ledger) -> None:
        """Withdrawals are batched by the configured size."""
        config = make_config(
            distribution=DistributionConfig(harvest_batch_size=1, payout_retry_delay=0)
        )
        result = await HarvestStage(config, fake_ledger).run()

        assert result.received == 30_000
        assert fake_ledger.sent == [b"withdraw_accounts:AccA", b"withdraw_accounts:AccB"]
        assert result.signatures == ("sig1", "sig2")

    async def test_received_below_reported(self, app_config, fake_ledger) -> None:
        """A short receipt is taken from the balance, not the report."""
        def partial_credit(wire: bytes) -> None:
            fake_ledger.rpc.balances[OPS_TOKEN] = 12_345

        fake_ledger._apply = partial_credit
        result = await HarvestStage(app_config, fake_ledger).run()
        assert result.harvestable == 30_000
        assert result.received == 12_345

    async def test_nothing_received_raises(self, app_config, fake_ledger) -> None:
        """A harvest that receives nothing raises."""
        fake_ledger._apply = lambda wire: None
        with pytest.raises(HarvestError, match="no tokens"):
            await HarvestStage(app_config, fake_ledger).run()

    async def test_withdraw_failure_raises(self, app_config, fake_ledger) -> None:
        """A failed withdrawal is a harvest error."""
        fake_ledger.fail(b"withdraw_accounts", TransactionRejectedError("custom program error"))
        with pytest.raises(HarvestError, match="custom program error"):
            await HarvestStage(app_config, fake_ledger).run()

    async def test_read_failure_propagates(self, app_config, fake_ledger) -> None:
        """Ledger read errors propagate unchanged."""
        async def broken(mint: str, program_id: str) -> list:
            raise RPCError("node unavailable")

        fake_ledger.rpc.get_token_accounts = broken
        with pytest.raises(RPCError):
            await HarvestStage(app_config, fake_ledger).run()
