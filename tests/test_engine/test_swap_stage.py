"""Tests for swap pricing and the swap stage."""

from __future__ import annotations

from dataclasses import replace

import pytest
from conftest import MINT, NATIVE_MINT, OUTPUT_ACCOUNT, POOL_ID, VAULT_A, VAULT_B

from reward_engine.config.settings import PoolConfig
from reward_engine.engine.stages.swap import SwapStage, constant_product_out, plan_swap
from reward_engine.errors.ledger_errors import SimulationError
from reward_engine.errors.stage_errors import InsufficientLiquidityError, SwapError
from reward_engine.ledger.raydium.models import PoolKeys, PoolState
from reward_engine.ledger.rpc.models import MintInfo


def _pool(reserve_a: int, reserve_b: int, fee_bps: int = 0) -> PoolState:
    keys = PoolKeys(
        id=POOL_ID,
        program_id="AmmProgram",
        mint_a=MINT,
        mint_b=NATIVE_MINT,
        decimals_a=6,
        decimals_b=9,
        vault_a=VAULT_A,
        vault_b=VAULT_B,
        fee_rate_bps=fee_bps,
    )
    return PoolState(keys=keys, reserve_a=reserve_a, reserve_b=reserve_b)


MINT_INFO = MintInfo(address=MINT, decimals=6)


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------


class TestConstantProduct:
    def test_no_fee(self) -> None:
        """Without a fee the output follows x * y = k, rounded down."""
        assert constant_product_out(1_000, 1_000_000, 1_000_000, 0) == 999

    def test_fee_reduces_output(self) -> None:
        """The pool fee is taken from the input before pricing."""
        assert constant_product_out(1_000, 1_000_000, 1_000_000, 25) < 999

    @pytest.mark.parametrize(("amount", "r_in", "r_out"), [(0, 1, 1), (1, 0, 1), (1, 1, 0)])
    def test_degenerate_inputs(self, amount: int, r_in: int, r_out: int) -> None:
        """A zero amount or an empty reserve yields nothing."""
        assert constant_product_out(amount, r_in, r_out, 0) == 0


class TestPlanSwap:
    def test_small_swap(self) -> None:
        """A small swap gets its quote, impact and slippage floor."""
        plan = plan_swap(1_000, _pool(1_000_000, 1_000_000), MINT_INFO, PoolConfig())
        assert plan.amount_to_pool == 1_000
        assert plan.expected_out == 999
        assert plan.price_impact_bps == 10
        assert plan.minimum_out == 979
        assert (plan.reserve_in, plan.reserve_out) == (1_000_000, 1_000_000)

    def test_price_impact_limit(self) -> None:
        """Swaps moving the price beyond the limit are refused."""
        with pytest.raises(InsufficientLiquidityError, match="price impact 909"):
            plan_swap(100_000, _pool(1_000_000, 1_000_000), MINT_INFO, PoolConfig())

    def test_liquidity_ratio(self) -> None:
        """Pools below the minimum liquidity ratio are refused."""
        config = PoolConfig(min_liquidity_ratio=10_000)
        with pytest.raises(InsufficientLiquidityError, match="below"):
            plan_swap(1_000, _pool(1_000_000, 1_000_000), MINT_INFO, config)

    def test_empty_reserves(self) -> None:
        """An empty pool side is insufficient liquidity."""
        with pytest.raises(InsufficientLiquidityError, match="empty reserves"):
            plan_swap(1_000, _pool(0, 1_000_000), MINT_INFO, PoolConfig())

    def test_dust_yields_nothing(self) -> None:
        """A swap that would return nothing is refused."""
        with pytest.raises(InsufficientLiquidityError):
            plan_swap(1, _pool(1_000_000, 1_000), MINT_INFO, PoolConfig())

    def test_foreign_mint(self) -> None:
        """A pool without the token is a plain swap error, not a liquidity one."""
        other = MintInfo(address="SomeOtherMint", decimals=6)
        with pytest.raises(SwapError) as exc_info:
            plan_swap(1_000, _pool(1_000_000, 1_000_000), other, PoolConfig())
        assert not isinstance(exc_info.value, InsufficientLiquidityError)

    def test_reversed_pool_orientation(self) -> None:
        """The token may sit on either side of the pool."""
        keys = replace(_pool(0, 0).keys, mint_a=NATIVE_MINT, mint_b=MINT)
        pool = PoolState(keys=keys, reserve_a=2_000_000, reserve_b=1_000_000)
        plan = plan_swap(1_000, pool, MINT_INFO, PoolConfig())
        assert (plan.reserve_in, plan.reserve_out) == (1_000_000, 2_000_000)

    def test_transfer_fee_reduces_amount_to_pool(self) -> None:
        """The transfer fee comes off the amount reaching the pool."""
        mint = MintInfo(address=MINT, decimals=6, transfer_fee_bps=100)
        plan = plan_swap(1_000, _pool(1_000_000, 1_000_000), mint, PoolConfig())
        assert plan.amount_to_pool == 990

    def test_transfer_fee_capped(self) -> None:
        """The transfer fee never exceeds the mint's maximum."""
        mint = MintInfo(address=MINT, decimals=6, transfer_fee_bps=100, maximum_fee=5)
        plan = plan_swap(1_000, _pool(1_000_000, 1_000_000), mint, PoolConfig())
        assert plan.amount_to_pool == 995

    def test_fee_consumes_everything(self) -> None:
        """A fee that eats the whole amount is an error."""
        mint = MintInfo(address=MINT, decimals=6, transfer_fee_bps=10_000)
        with pytest.raises(SwapError, match="consumes"):
            plan_swap(1_000, _pool(1_000_000, 1_000_000), mint, PoolConfig())


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------


class TestSwapStage:
    async def test_proceeds_measured_on_output_account(self, app_config, fake_ledger) -> None:
        """Proceeds are the balance delta of the native output account."""
        fake_ledger.swap_yield = 1_000_000
        fake_ledger.rpc.balances[OUTPUT_ACCOUNT] = 0

        result = await SwapStage(app_config, fake_ledger).run(30_000)

        assert result.amount_in == 30_000
        assert result.proceeds == 1_000_000
        assert result.expected_out > result.minimum_out > 0
        assert fake_ledger.sent == [
            b"create_native:" + OUTPUT_ACCOUNT.encode(),
            b"signed:swap-tx",
            b"close:" + OUTPUT_ACCOUNT.encode(),
        ]
        assert fake_ledger.simulated == [b"signed:swap-tx"]
        assert result.signatures == ("sig1", "sig2", "sig3")

    async def test_existing_output_account_reused(self, app_config, fake_ledger) -> None:
        """An existing output account is used as is and its prior balance ignored."""
        fake_ledger.swap_yield = 500_000
        fake_ledger.rpc.existing.add(OUTPUT_ACCOUNT)
        fake_ledger.rpc.balances[OUTPUT_ACCOUNT] = 2_039_280

        result = await SwapStage(app_config, fake_ledger).run(30_000)

        assert result.proceeds == 500_000
        assert not any(w.startswith(b"create_native") for w in fake_ledger.sent)

    async def test_multiple_transactions(self, app_config, fake_ledger) -> None:
        """Every transaction of a split swap is simulated and sent."""
        fake_ledger.swap_yield = 400_000
        fake_ledger.raydium.transactions = [b"setup", b"swap"]
        result = await SwapStage(app_config, fake_ledger).run(30_000)
        assert result.proceeds == 800_000
        assert fake_ledger.simulated == [b"signed:setup", b"signed:swap"]

    async def test_no_proceeds(self, app_config, fake_ledger) -> None:
        """A swap that credits nothing fails the stage."""
        with pytest.raises(SwapError, match="no proceeds"):
            await SwapStage(app_config, fake_ledger).run(30_000)

    async def test_nothing_to_swap(self, app_config, fake_ledger) -> None:
        """A zero amount fails the stage."""
        with pytest.raises(SwapError):
            await SwapStage(app_config, fake_ledger).run(0)

    async def test_quote_below_minimum(self, app_config, fake_ledger) -> None:
        """A quote under the slippage floor is never sent."""
        fake_ledger.raydium.quote_out = 1
        with pytest.raises(SwapError, match="below minimum"):
            await SwapStage(app_config, fake_ledger).run(30_000)
        assert b"signed:swap-tx" not in fake_ledger.sent

    async def test_pool_not_paired_with_native(self, app_config, fake_ledger) -> None:
        """The pool must pair the token with the native mint."""
        fake_ledger.pool_keys = replace(fake_ledger.pool_keys, mint_b="UsdMint")
        with pytest.raises(SwapError, match="native mint"):
            await SwapStage(app_config, fake_ledger).run(30_000)

    async def test_insufficient_liquidity(self, app_config, fake_ledger) -> None:
        """Thin reserves fail the stage before anything is sent."""
        fake_ledger.reserves = (10_000, 10_000)
        with pytest.raises(InsufficientLiquidityError):
            await SwapStage(app_config, fake_ledger).run(30_000)
        assert fake_ledger.sent == []

    async def test_simulation_failure(self, app_config, fake_ledger) -> None:
        """A failed simulation surfaces as a swap error."""
        fake_ledger.swap_yield = 1_000_000
        fake_ledger.fail(b"signed:", SimulationError("slippage exceeded"))
        with pytest.raises(SwapError, match="slippage exceeded"):
            await SwapStage(app_config, fake_ledger).run(30_000)
