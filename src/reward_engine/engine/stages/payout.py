"""Split & payout stage.

Proceeds are split by a fixed ratio between holders and the treasury. The
holders' share is allocated pro rata by balance with floor rounding; what
rounding and the minimum transfer size leave behind is retained in the
operational wallet and reported. Each transfer is independent: a recipient
that cannot be paid within its retry budget becomes an outstanding
obligation and never fails the cycle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from reward_engine.engine.models.payout import PayoutKind, PayoutStatus
from reward_engine.engine.stages.results import PayoutRecord, PayoutResult
from reward_engine.errors.ledger_errors import (
    ConfirmationTimeoutError,
    LedgerError,
    TransactionPendingError,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from reward_engine.config.settings import AppConfig
    from reward_engine.engine.stages.results import HolderEligibility
    from reward_engine.ledger.service import LedgerService

logger = logging.getLogger(__name__)

BPS = 10_000


def split_proceeds(proceeds: int, holders_share_bps: int) -> tuple[int, int]:
    """Split *proceeds* into ``(holders, treasury)``; the parts always sum to *proceeds*."""
    if proceeds < 0:
        msg = f"proceeds must be non-negative, got {proceeds}"
        raise ValueError(msg)
    if not 0 <= holders_share_bps <= BPS:
        msg = f"holders share must be within 0..{BPS} bps, got {holders_share_bps}"
        raise ValueError(msg)
    holders = proceeds * holders_share_bps // BPS
    return holders, proceeds - holders


def allocate_pro_rata(
    amount: int,
    holders: Sequence[HolderEligibility],
    *,
    min_payout: int = 0,
) -> tuple[list[tuple[str, int]], int]:
    """Allocate *amount* across eligible *holders* proportionally to balance.

    Each share is ``floor(amount * balance / total)``. Shares below
    *min_payout* (or zero) are skipped.

    Returns:
        ``(allocations, retained)`` where ``retained`` is the part of
        *amount* not allocated to anyone.
    """
    eligible = [h for h in holders if h.eligible and h.balance > 0]
    total = sum(h.balance for h in eligible)
    if amount <= 0 or total == 0:
        return [], max(amount, 0)

    floor = max(min_payout, 1)
    allocations: list[tuple[str, int]] = []
    for holder in eligible:
        share = amount * holder.balance // total
        if share >= floor:
            allocations.append((holder.owner, share))
    return allocations, amount - sum(share for _, share in allocations)


class PayoutStage:
    """Pays holders and the treasury from swap proceeds."""

    def __init__(
        self,
        config: AppConfig,
        ledger: LedgerService,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._ledger = ledger
        self._sleep = sleep

    async def run(self, proceeds: int, holders: Sequence[HolderEligibility]) -> PayoutResult:
        """Split *proceeds* and pay every recipient.

        Never raises for an individual transfer; unpaid recipients come back
        as OUTSTANDING records.
        """
        dist = self._config.distribution
        holders_amount, treasury_amount = split_proceeds(proceeds, dist.holders_share_bps)
        allocations, retained = allocate_pro_rata(
            holders_amount, holders, min_payout=dist.min_payout
        )
        if not allocations and holders_amount:
            logger.warning("No holder qualifies for a payout, retaining %d", holders_amount)

        records: list[PayoutRecord] = []
        for recipient, amount in allocations:
            records.append(await self.pay(recipient, amount, PayoutKind.HOLDER))
        if treasury_amount > 0:
            treasury = self._config.ledger.treasury_wallet
            records.append(await self.pay(treasury, treasury_amount, PayoutKind.TREASURY))

        result = PayoutResult(
            proceeds=proceeds,
            holders_amount=holders_amount,
            treasury_amount=treasury_amount,
            retained_amount=retained,
            records=records,
        )
        logger.info(
            "Paid %d/%d recipients, holders=%d treasury=%d retained=%d",
            len(records) - len(result.outstanding),
            len(records),
            holders_amount,
            treasury_amount,
            retained,
        )
        return result

    async def pay(
        self,
        recipient: str,
        amount: int,
        kind: PayoutKind,
        *,
        max_attempts: int | None = None,
        prior: PayoutRecord | None = None,
    ) -> PayoutRecord:
        """Transfer *amount* to *recipient* with a bounded number of attempts.

        A transaction whose confirmation timed out may still land. Each attempt
        first checks the signature of the previous one; a replacement is sent
        only once that signature is absent or its blockhash has expired.

        Args:
            recipient: Destination wallet.
            amount: Native base units.
            kind: Holder or treasury payout.
            max_attempts: Attempts allowed in this call; defaults to
                ``distribution.max_payout_retries``.
            prior: Record of earlier attempts to continue from.
        """
        record = prior or PayoutRecord(
            recipient=recipient, amount=amount, kind=kind, status=PayoutStatus.OUTSTANDING
        )
        dist = self._config.distribution
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts or dist.max_payout_retries),
            wait=wait_fixed(dist.payout_retry_delay),
            retry=retry_if_exception_type(LedgerError),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._attempt(record)
        except Exception:  # noqa: BLE001 - one recipient must not abort the others
            if not await self.check_landed(record):
                logger.error("Payout of %d to %s left outstanding", amount, recipient)
        return record

    async def _attempt(self, record: PayoutRecord) -> None:
        if await self.check_landed(record):
            return
        if await self.in_flight(record):
            raise TransactionPendingError(
                f"transaction {record.signature} may still land", signature=record.signature
            )

        record.attempts += 1
        try:
            blockhash = await self._ledger.latest_blockhash()
            wire = self._ledger.factory.transfer_native(
                recipient=record.recipient,
                amount=record.amount,
                blockhash=blockhash.blockhash,
            )
            record.last_valid_height = blockhash.last_valid_block_height
            record.signature = await self._ledger.execute(wire)
        except Exception as exc:
            if isinstance(exc, LedgerError):
                record.last_error = exc.message
            else:
                record.last_error = f"{type(exc).__name__}: {exc}"
            record.signature = exc.signature if isinstance(exc, ConfirmationTimeoutError) else ""
            logger.warning(
                "Payout of %d to %s failed (attempt %d): %s",
                record.amount,
                record.recipient,
                record.attempts,
                record.last_error,
            )
            raise
        record.status = PayoutStatus.PAID
        record.last_error = ""

    async def check_landed(self, record: PayoutRecord) -> bool:
        """Mark *record* PAID if its last signature reached the configured commitment."""
        if not record.signature or record.paid:
            return record.paid
        try:
            landed = await self._ledger.landed(record.signature)
        except LedgerError as exc:
            logger.warning("Status check for %s failed: %s", record.signature, exc.message)
            return False
        if landed:
            record.status = PayoutStatus.PAID
            record.last_error = ""
        return landed

    async def in_flight(self, record: PayoutRecord) -> bool:
        """Whether the unconfirmed transaction behind *record* could still land.

        A failed height lookup counts as in flight.
        """
        if not record.signature or record.paid:
            return False
        try:
            return not await self._ledger.blockhash_expired(record.last_valid_height)
        except LedgerError as exc:
            logger.warning("Block height check for %s failed: %s", record.signature, exc.message)
            return True
