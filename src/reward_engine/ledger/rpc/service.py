"""Ledger JSON-RPC client.

Provides an async HTTP client for the subset of the ledger's JSON-RPC API
the engine needs:
- balances (native, token account) and account existence
- token accounts of the mint with their withheld transfer fees
- mint metadata (decimals, transfer fee, mint-level withheld amount)
- send / simulate transactions and signature status
"""

from __future__ import annotations

import base64
import itertools
import logging
from typing import TYPE_CHECKING, Any

import httpx

from reward_engine.errors.ledger_errors import RPCError
from reward_engine.ledger.rpc.models import (
    Blockhash,
    MintInfo,
    SignatureStatus,
    SimulationResult,
    TokenAccount,
)

if TYPE_CHECKING:
    from reward_engine.config.settings import LedgerConfig

logger = logging.getLogger(__name__)

# Offset of the mint field in a token account's data
_MINT_OFFSET = 0


class RPCService:
    """Async JSON-RPC client for the ledger.

    Usage::

        rpc = RPCService(config)
        await rpc.connect()
        try:
            lamports = await rpc.get_balance(wallet)
        finally:
            await rpc.close()
    """

    def __init__(self, config: LedgerConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None
        self._ids = itertools.count(1)

    async def connect(self) -> None:
        """Create the underlying HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self._config.rpc_url,
            headers={"Content-Type": "application/json"},
            timeout=self._config.request_timeout,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        """Check if the HTTP client is active."""
        return self._client is not None

    @property
    def commitment(self) -> str:
        return self._config.commitment.value

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_latest_blockhash(self) -> Blockhash:
        result = await self._call("getLatestBlockhash", [{"commitment": self.commitment}])
        return Blockhash.from_dict(result["value"])

    async def get_block_height(self) -> int:
        result = await self._call("getBlockHeight", [{"commitment": self.commitment}])
        return int(result)

    async def get_balance(self, address: str) -> int:
        """Native balance of *address* in base units."""
        result = await self._call("getBalance", [address, {"commitment": self.commitment}])
        return int(result["value"])

    async def get_token_account_balance(self, address: str) -> int:
        """Token balance of the token account *address* in base units.

        Raises:
            RPCError: If the account does not exist or the call fails.
        """
        result = await self._call(
            "getTokenAccountBalance", [address, {"commitment": self.commitment}]
        )
        return int(result["value"]["amount"])

    async def account_exists(self, address: str) -> bool:
        result = await self._call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": self.commitment}],
        )
        return result.get("value") is not None

    async def get_mint_info(self, mint: str) -> MintInfo:
        """Mint decimals, transfer fee configuration and mint-level withheld amount.

        Raises:
            RPCError: If the mint does not exist.
        """
        result = await self._call(
            "getAccountInfo",
            [mint, {"encoding": "jsonParsed", "commitment": self.commitment}],
        )
        value = result.get("value")
        if value is None:
            raise RPCError(f"mint {mint} not found")
        return MintInfo.from_rpc(mint, value)

    async def get_token_accounts(self, mint: str, program_id: str) -> list[TokenAccount]:
        """All token accounts of *mint* owned by the token program *program_id*."""
        result = await self._call(
            "getProgramAccounts",
            [
                program_id,
                {
                    "encoding": "jsonParsed",
                    "commitment": self.commitment,
                    "filters": [{"memcmp": {"offset": _MINT_OFFSET, "bytes": mint}}],
                },
            ],
        )
        accounts = [TokenAccount.from_rpc(entry) for entry in result or []]
        logger.debug("Loaded %d token accounts for mint %s", len(accounts), mint)
        return accounts

    async def get_signature_status(self, signature: str) -> SignatureStatus:
        result = await self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
        )
        values = result.get("value") or [None]
        return SignatureStatus.from_rpc(signature, values[0])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def send_transaction(self, wire: bytes) -> str:
        """Send a signed, serialized transaction and return its signature."""
        result = await self._call(
            "sendTransaction",
            [
                base64.b64encode(wire).decode("ascii"),
                {
                    "encoding": "base64",
                    "skipPreflight": False,
                    "preflightCommitment": self.commitment,
                },
            ],
        )
        return str(result)

    async def simulate_transaction(self, wire: bytes) -> SimulationResult:
        result = await self._call(
            "simulateTransaction",
            [
                base64.b64encode(wire).decode("ascii"),
                {"encoding": "base64", "commitment": self.commitment, "sigVerify": False},
            ],
        )
        return SimulationResult.from_dict(result["value"])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_connected(self) -> httpx.AsyncClient:
        """Return the HTTP client, raising if not connected."""
        if self._client is None:
            msg = "RPC service not connected. Call connect() first."
            raise RPCError(msg)
        return self._client

    async def _call(self, method: str, params: list[Any]) -> Any:
        client = self._ensure_connected()
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

        try:
            response = await client.post("", json=payload)
        except httpx.HTTPError as exc:
            raise RPCError(f"RPC {method} failed: {exc}") from exc

        if response.status_code != 200:
            raise RPCError(f"RPC {method} failed ({response.status_code}): {response.text}")

        body = response.json()
        error = body.get("error")
        if error:
            raise RPCError(
                f"RPC {method} error: {error.get('message', error)}",
                rpc_code=error.get("code"),
            )
        return body.get("result")
