"""Swap stage: harvested tokens into the native currency.

The swap is priced locally against live reserves before anything is sent:
the token's own transfer fee reduces what reaches the pool, the pool fee
reduces what is traded, and the constant-product curve gives the output.
Proceeds are measured on the specific output account the swap credits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from reward_engine.engine.stages.results import SwapResult
from reward_engine.errors.ledger_errors import LedgerError
from reward_engine.errors.stage_errors import InsufficientLiquidityError, SwapError

if TYPE_CHECKING:
    from reward_engine.config.settings import AppConfig, PoolConfig
    from reward_engine.ledger.raydium.models import PoolState
    from reward_engine.ledger.rpc.models import MintInfo
    from reward_engine.ledger.service import LedgerService

logger = logging.getLogger(__name__)

BPS = 10_000


@dataclass(frozen=True)
class SwapPlan:
    """Locally computed expectations for one exact-in swap."""

    amount_in: int
    amount_to_pool: int
    expected_out: int
    minimum_out: int
    price_impact_bps: int
    reserve_in: int
    reserve_out: int


def constant_product_out(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int) -> int:
    """Output of an exact-in trade on an ``x * y = k`` pool after the pool fee."""
    if amount_in <= 0 or reserve_in <= 0 or reserve_out <= 0:
        return 0
    in_after_fee = amount_in * (BPS - fee_bps) // BPS
    return reserve_out * in_after_fee // (reserve_in + in_after_fee)


def plan_swap(amount_in: int, pool: PoolState, mint: MintInfo, config: PoolConfig) -> SwapPlan:
    """Price a swap of *amount_in* tokens and check the pool can absorb it.

    Raises:
        SwapError: If the token is not traded by the pool or nothing reaches it.
        InsufficientLiquidityError: If reserves are empty, the price impact is
            above ``max_price_impact_bps``, the minimum output rounds to zero,
            or the output reserve is below ``min_liquidity_ratio`` times the
            minimum output.
    """
    try:
        reserve_in, reserve_out = pool.reserves_for(mint.address)
    except ValueError as exc:
        raise SwapError(str(exc)) from exc

    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidityError(
            f"pool {pool.keys.id} has empty reserves ({reserve_in}, {reserve_out})"
        )

    amount_to_pool = amount_in - mint.fee_on(amount_in)
    if amount_to_pool <= 0:
        raise SwapError(f"transfer fee consumes the whole swap amount {amount_in}")

    fee_bps = pool.keys.fee_rate_bps
    expected_out = constant_product_out(amount_to_pool, reserve_in, reserve_out, fee_bps)
    in_after_fee = amount_to_pool * (BPS - fee_bps) // BPS
    ideal_out = in_after_fee * reserve_out // reserve_in
    impact_bps = (ideal_out - expected_out) * BPS // ideal_out if ideal_out else BPS
    minimum_out = expected_out * (BPS - config.slippage_bps) // BPS

    if impact_bps > config.max_price_impact_bps:
        raise InsufficientLiquidityError(
            f"price impact {impact_bps} bps exceeds limit {config.max_price_impact_bps} bps"
        )
    if minimum_out <= 0:
        raise InsufficientLiquidityError(f"swap of {amount_in} yields no output")
    if reserve_out < config.min_liquidity_ratio * minimum_out:
        raise InsufficientLiquidityError(
            f"output reserve {reserve_out} below {config.min_liquidity_ratio}x "
            f"minimum output {minimum_out}"
        )

    return SwapPlan(
        amount_in=amount_in,
        amount_to_pool=amount_to_pool,
        expected_out=expected_out,
        minimum_out=minimum_out,
        price_impact_bps=impact_bps,
        reserve_in=reserve_in,
        reserve_out=reserve_out,
    )


class SwapStage:
    """Sells harvested tokens through the configured pool."""

    def __init__(self, config: AppConfig, ledger: LedgerService) -> None:
        self._config = config
        self._ledger = ledger

    async def run(self, amount_in: int) -> SwapResult:
        """Swap *amount_in* tokens and return the measured native proceeds.

        Raises:
            InsufficientLiquidityError: If the pool cannot absorb the swap.
            SwapError: If the quote, transaction or proceeds check fails.
        """
        if amount_in <= 0:
            raise SwapError(f"nothing to swap ({amount_in})")

        ledger_cfg = self._config.ledger
        pool_cfg = self._config.pool
        rpc = self._ledger.rpc

        try:
            pool = await self._ledger.get_pool_state()
            mint = await rpc.get_mint_info(ledger_cfg.token_mint)
        except LedgerError as exc:
            raise SwapError(f"could not load pool state: {exc.message}") from exc

        output_mint = pool.other_mint(ledger_cfg.token_mint)
        if output_mint != ledger_cfg.native_mint:
            raise SwapError(f"pool {pool.keys.id} does not pair the token with the native mint")

        plan = plan_swap(amount_in, pool, mint, pool_cfg)
        logger.info(
            "Swap plan: in=%d to_pool=%d expected=%d minimum=%d impact=%dbps",
            plan.amount_in,
            plan.amount_to_pool,
            plan.expected_out,
            plan.minimum_out,
            plan.price_impact_bps,
        )

        try:
            proceeds, signatures = await self._execute(plan, output_mint)
        except LedgerError as exc:
            raise SwapError(f"swap transaction failed: {exc.message}") from exc

        return SwapResult(
            amount_in=amount_in,
            expected_out=plan.expected_out,
            minimum_out=plan.minimum_out,
            proceeds=proceeds,
            price_impact_bps=plan.price_impact_bps,
            signatures=tuple(signatures),
        )

    async def _execute(self, plan: SwapPlan, output_mint: str) -> tuple[int, list[str]]:
        ledger_cfg = self._config.ledger
        pool_cfg = self._config.pool
        rpc = self._ledger.rpc
        factory = self._ledger.factory
        output_account = ledger_cfg.native_output_account
        signatures: list[str] = []

        if not await rpc.account_exists(output_account):
            logger.info("Creating native output account %s", output_account)
            wire = factory.create_native_account(
                account=output_account,
                owner=ledger_cfg.operational_wallet,
                blockhash=await self._ledger.recent_blockhash(),
            )
            signatures.append(await self._ledger.execute(wire))

        quote = await self._ledger.raydium.compute_swap_base_in(
            input_mint=ledger_cfg.token_mint,
            output_mint=output_mint,
            amount=plan.amount_in,
            slippage_bps=pool_cfg.slippage_bps,
        )
        if quote.output_amount < plan.minimum_out:
            raise SwapError(
                f"pool quote {quote.output_amount} below minimum output {plan.minimum_out}"
            )

        priority_fee = await self._ledger.raydium.get_priority_fee()
        before = await rpc.get_token_account_balance(output_account)
        transactions = await self._ledger.raydium.build_swap_transactions(
            quote,
            wallet=ledger_cfg.operational_wallet,
            input_account=ledger_cfg.operational_token_account,
            output_account=output_account,
            priority_fee=priority_fee,
        )
        for tx in transactions:
            signatures.append(await self._ledger.execute(factory.sign_serialized(tx), simulate=True))
        after = await rpc.get_token_account_balance(output_account)

        proceeds = after - before
        if proceeds <= 0:
            raise SwapError(f"swap produced no proceeds (before={before}, after={after})")
        if proceeds < plan.minimum_out:
            logger.warning("Proceeds %d below planned minimum %d", proceeds, plan.minimum_out)

        # unwrap into the operational wallet so payouts spend native currency
        wire = factory.close_account(
            account=output_account,
            destination=ledger_cfg.operational_wallet,
            blockhash=await self._ledger.recent_blockhash(),
        )
        signatures.append(await self._ledger.execute(wire))

        logger.info("Swap proceeds %d (expected %d)", proceeds, plan.expected_out)
        return proceeds, signatures
