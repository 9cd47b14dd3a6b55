"""Combined ledger service.

Composes the JSON-RPC client, the pool trade API and the transaction
factory into the single ledger surface the pipeline stages consume.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from reward_engine.errors.ledger_errors import (
    ConfirmationTimeoutError,
    LedgerError,
    SimulationError,
    TransactionRejectedError,
)
from reward_engine.ledger.raydium.models import PoolKeys, PoolState
from reward_engine.ledger.raydium.service import RaydiumService
from reward_engine.ledger.rpc.service import RPCService

if TYPE_CHECKING:
    from reward_engine.cache.client import CacheClient
    from reward_engine.config.settings import AppConfig
    from reward_engine.ledger.interfaces import TransactionFactory
    from reward_engine.ledger.rpc.models import Blockhash, SignatureStatus

logger = logging.getLogger(__name__)


class LedgerService:
    """Unified ledger access: reads, pool state, and send-and-confirm.

    Usage::

        ledger = LedgerService(config, factory, cache=cache)
        await ledger.connect()
        try:
            sig = await ledger.execute(factory.transfer_native(...))
        finally:
            await ledger.close()
    """

    def __init__(
        self,
        config: AppConfig,
        factory: TransactionFactory | None = None,
        *,
        cache: CacheClient | None = None,
        rpc: RPCService | None = None,
        raydium: RaydiumService | None = None,
    ) -> None:
        self._config = config
        self._factory = factory
        self._cache = cache
        self._rpc = rpc or RPCService(config.ledger)
        self._raydium = raydium or RaydiumService(
            config.pool, timeout=config.ledger.request_timeout
        )

    async def connect(self) -> None:
        await self._rpc.connect()
        await self._raydium.connect()

    async def close(self) -> None:
        await self._rpc.close()
        await self._raydium.close()

    @property
    def is_connected(self) -> bool:
        return self._rpc.is_connected and self._raydium.is_connected

    @property
    def rpc(self) -> RPCService:
        return self._rpc

    @property
    def raydium(self) -> RaydiumService:
        return self._raydium

    @property
    def factory(self) -> TransactionFactory:
        """The signing transaction factory.

        Raises:
            RuntimeError: If the service was built without one (read-only mode).
        """
        if self._factory is None:
            msg = "No transaction factory configured; the ledger is read-only."
            raise RuntimeError(msg)
        return self._factory

    @property
    def can_sign(self) -> bool:
        return self._factory is not None

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def recent_blockhash(self) -> str:
        return (await self.latest_blockhash()).blockhash

    async def latest_blockhash(self) -> Blockhash:
        """Recent blockhash with the last block height at which it is still accepted."""
        return await self._rpc.get_latest_blockhash()

    async def blockhash_expired(self, last_valid_height: int) -> bool:
        """Whether the chain is past *last_valid_height*.

        A transaction built on an expired blockhash can no longer land, so
        once this holds an unconfirmed signature is safe to replace. A height
        of 0 (not recorded) counts as expired.
        """
        if last_valid_height <= 0:
            return True
        return await self._rpc.get_block_height() > last_valid_height

    async def execute(self, wire: bytes, *, simulate: bool = False) -> str:
        """Send a signed transaction and wait until it reaches the configured commitment.

        Args:
            wire: Signed, serialized transaction.
            simulate: Run a pre-flight simulation first and refuse to send on error.

        Returns:
            The transaction signature.

        Raises:
            SimulationError: If the simulation reports an error.
            TransactionRejectedError: If the ledger reports the transaction failed.
            ConfirmationTimeoutError: If confirmation exceeds ``ledger.confirm_timeout``.
        """
        if simulate:
            sim = await self._rpc.simulate_transaction(wire)
            if not sim.ok:
                raise SimulationError(f"simulation failed: {sim.err}", logs=sim.logs)

        signature = await self._rpc.send_transaction(wire)
        await self.confirm(signature)
        return signature

    async def confirm(self, signature: str) -> SignatureStatus:
        """Poll the signature status until confirmed, failed, or timed out."""
        ledger = self._config.ledger
        try:
            async with asyncio.timeout(ledger.confirm_timeout):
                while True:
                    status = await self._rpc.get_signature_status(signature)
                    if status.failed:
                        raise TransactionRejectedError(
                            f"transaction {signature} failed: {status.err}",
                            signature=signature,
                        )
                    if status.reached(ledger.commitment):
                        return status
                    await asyncio.sleep(ledger.poll_interval)
        except TimeoutError as exc:
            raise ConfirmationTimeoutError(
                f"transaction {signature} not confirmed within {ledger.confirm_timeout}s",
                signature=signature,
            ) from exc

    async def landed(self, signature: str) -> bool:
        """Whether a previously sent transaction has reached the configured commitment."""
        status = await self._rpc.get_signature_status(signature)
        return status.reached(self._config.ledger.commitment)

    # ------------------------------------------------------------------
    # Pool
    # ------------------------------------------------------------------

    async def get_pool_keys(self) -> PoolKeys:
        """Pool keys, served from cache when available."""
        pool_id = self._config.pool.pool_id
        cache_key = f"pool_keys:{pool_id}"
        if self._cache is not None and self._cache.is_connected:
            cached = await self._cache.get_json(cache_key)
            if cached is not None:
                return PoolKeys.from_dict(cached)

        keys = await self._raydium.get_pool_keys(pool_id)
        if self._cache is not None and self._cache.is_connected:
            await self._cache.set_json(
                cache_key, keys.to_dict(), ttl=self._config.pool.keys_cache_ttl
            )
        return keys

    async def get_pool_state(self) -> PoolState:
        """Pool keys with reserves read live from the vault accounts."""
        keys = await self.get_pool_keys()
        reserve_a, reserve_b = await asyncio.gather(
            self._rpc.get_token_account_balance(keys.vault_a),
            self._rpc.get_token_account_balance(keys.vault_b),
        )
        return PoolState(keys=keys, reserve_a=reserve_a, reserve_b=reserve_b)

    async def healthcheck(self) -> dict[str, str]:
        """Check the RPC endpoint answers."""
        if not self._rpc.is_connected:
            return {"rpc": "not_connected"}
        try:
            await self._rpc.get_latest_blockhash()
        except LedgerError as exc:
            logger.warning("Ledger healthcheck failed: %s", exc.message)
            return {"rpc": "error"}
        return {"rpc": "ok"}
