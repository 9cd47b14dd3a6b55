"""Pool trade API client.

- GET  {api_url}/pools/key/ids - static pool keys
- GET  {api_url}/pools/info/ids - pool fee rate
- GET  {api_url}/main/auto-fee - suggested priority fee
- GET  {swap_host}/compute/swap-base-in - exact-in quote
- POST {swap_host}/transaction/swap-base-in - unsigned swap transactions
"""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING, Any

import httpx

from reward_engine.errors.ledger_errors import RaydiumError
from reward_engine.ledger.raydium.models import PoolKeys, SwapQuote

if TYPE_CHECKING:
    from reward_engine.config.settings import PoolConfig

logger = logging.getLogger(__name__)

_DEFAULT_PRIORITY_FEE = 100_000


class RaydiumService:
    """Async HTTP client for the pool's public trade API."""

    def __init__(self, config: PoolConfig, *, timeout: float = 30.0) -> None:
        self._config = config
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        self._client = httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=self._timeout,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_pool_keys(self, pool_id: str) -> PoolKeys:
        """Fetch the static keys and fee rate of *pool_id*.

        Raises:
            RaydiumError: If the pool is unknown or the API fails.
        """
        api = self._config.api_url.rstrip("/")
        keys_body = await self._get(f"{api}/pools/key/ids", {"ids": pool_id}, "get_pool_keys")
        keys = [k for k in keys_body.get("data") or [] if k]
        if not keys:
            raise RaydiumError(f"pool {pool_id} not found")

        info_body = await self._get(f"{api}/pools/info/ids", {"ids": pool_id}, "get_pool_info")
        infos = [i for i in info_body.get("data") or [] if i]
        return PoolKeys.from_api(keys[0], infos[0] if infos else None)

    async def get_priority_fee(self) -> int:
        """Suggested compute unit price in micro-lamports (high tier).

        Falls back to a fixed default when the fee endpoint is unavailable.
        """
        api = self._config.api_url.rstrip("/")
        try:
            body = await self._get(f"{api}/main/auto-fee", None, "get_priority_fee")
            return int(body["data"]["default"]["h"])
        except (RaydiumError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Priority fee unavailable, using default: %s", exc)
            return _DEFAULT_PRIORITY_FEE

    async def compute_swap_base_in(
        self,
        *,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
    ) -> SwapQuote:
        """Quote an exact-in swap of *amount* base units of *input_mint*."""
        host = self._config.swap_host.rstrip("/")
        body = await self._get(
            f"{host}/compute/swap-base-in",
            {
                "inputMint": input_mint,
                "outputMint": output_mint,
                "amount": str(amount),
                "slippageBps": str(slippage_bps),
                "txVersion": self._config.tx_version,
            },
            "compute_swap_base_in",
        )
        return SwapQuote.from_api(body)

    async def build_swap_transactions(
        self,
        quote: SwapQuote,
        *,
        wallet: str,
        input_account: str,
        output_account: str,
        priority_fee: int,
    ) -> list[bytes]:
        """Request the unsigned swap transaction(s) for *quote*.

        Native currency is neither wrapped nor unwrapped by the API; the output
        lands in *output_account* so proceeds can be measured there.
        """
        client = self._ensure_connected()
        host = self._config.swap_host.rstrip("/")
        payload = {
            "computeUnitPriceMicroLamports": str(priority_fee),
            "swapResponse": quote.raw,
            "txVersion": self._config.tx_version,
            "wallet": wallet,
            "wrapSol": False,
            "unwrapSol": False,
            "inputAccount": input_account,
            "outputAccount": output_account,
        }
        try:
            response = await client.post(f"{host}/transaction/swap-base-in", json=payload)
        except httpx.HTTPError as exc:
            raise RaydiumError(f"build_swap_transactions failed: {exc}") from exc

        body = self._check(response, "build_swap_transactions")
        txs = [base64.b64decode(item["transaction"]) for item in body.get("data") or []]
        if not txs:
            raise RaydiumError("build_swap_transactions returned no transactions")
        return txs

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "Raydium service not connected. Call connect() first."
            raise RaydiumError(msg)
        return self._client

    async def _get(self, url: str, params: dict[str, str] | None, operation: str) -> dict[str, Any]:
        client = self._ensure_connected()
        try:
            response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise RaydiumError(f"{operation} failed: {exc}") from exc
        return self._check(response, operation)

    @staticmethod
    def _check(response: httpx.Response, operation: str) -> dict[str, Any]:
        if response.status_code != 200:
            raise RaydiumError(f"{operation} failed ({response.status_code}): {response.text}")
        body = response.json()
        if not body.get("success", False):
            detail = body.get("msg") or body.get("message") or "unknown error"
            raise RaydiumError(f"{operation} rejected: {detail}")
        return body
