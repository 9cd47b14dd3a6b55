"""Tests for the ledger JSON-RPC client: uses httpx mock transport."""

from __future__ import annotations

import base64
import json

import httpx
import pytest

from reward_engine.config.settings import LedgerConfig
from reward_engine.errors.ledger_errors import RPCError
from reward_engine.ledger.rpc.service import RPCService

RPC_URL = "https://rpc.test"


def _rpc_config(**overrides) -> LedgerConfig:
    defaults = {"rpc_url": RPC_URL}
    defaults.update(overrides)
    return LedgerConfig(**defaults)


async def _service(handler) -> RPCService:
    rpc = RPCService(_rpc_config())
    await rpc.connect()
    # Replace internal client with mock
    rpc._client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=RPC_URL)
    return rpc


def _result(request: httpx.Request, result) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


class TestRPCLifecycle:
    async def test_not_connected_by_default(self) -> None:
        """A new client has no HTTP session."""
        assert RPCService(_rpc_config()).is_connected is False

    async def test_connect_and_close(self) -> None:
        """connect() and close() toggle the session."""
        rpc = RPCService(_rpc_config())
        await rpc.connect()
        assert rpc.is_connected is True
        await rpc.close()
        assert rpc.is_connected is False

    async def test_not_connected_raises(self) -> None:
        """Calls before connect() raise RPCError."""
        with pytest.raises(RPCError, match="not connected"):
            await RPCService(_rpc_config()).get_balance("Wallet1")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestRPCReads:
    async def test_request_envelope(self) -> None:
        """Requests are JSON-RPC 2.0 with the configured commitment."""
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return _result(request, {"context": {"slot": 1}, "value": 2_039_280})

        rpc = await _service(handler)
        assert await rpc.get_balance("Wallet1") == 2_039_280
        assert seen[0]["method"] == "getBalance"
        assert seen[0]["jsonrpc"] == "2.0"
        assert seen[0]["params"] == ["Wallet1", {"commitment": "confirmed"}]

    async def test_block_height(self) -> None:
        """getBlockHeight returns a bare integer at the configured commitment."""
        seen: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return _result(request, 312_456_789)

        rpc = await _service(handler)
        assert await rpc.get_block_height() == 312_456_789
        assert seen[0]["method"] == "getBlockHeight"
        assert seen[0]["params"] == [{"commitment": "confirmed"}]

    async def test_token_account_balance(self) -> None:
        """Token balances parse the raw amount string."""
        def handler(request: httpx.Request) -> httpx.Response:
            return _result(request, {"value": {"amount": "123456", "decimals": 6}})

        rpc = await _service(handler)
        assert await rpc.get_token_account_balance("Acct") == 123_456

    async def test_account_exists(self) -> None:
        """A null account value means the account does not exist."""
        def handler(request: httpx.Request) -> httpx.Response:
            address = json.loads(request.content)["params"][0]
            value = {"lamports": 1} if address == "Known" else None
            return _result(request, {"value": value})

        rpc = await _service(handler)
        assert await rpc.account_exists("Known") is True
        assert await rpc.account_exists("Unknown") is False

    async def test_mint_not_found(self) -> None:
        """A missing mint raises RPCError."""
        def handler(request: httpx.Request) -> httpx.Response:
            return _result(request, {"value": None})

        rpc = await _service(handler)
        with pytest.raises(RPCError, match="not found"):
            await rpc.get_mint_info("Mint1")

    async def test_token_accounts_filtered_by_mint(self) -> None:
        """Holder accounts are filtered by mint at offset 0."""
        def handler(request: httpx.Request) -> httpx.Response:
            params = json.loads(request.content)["params"]
            assert params[0] == "TokenProgram"
            assert params[1]["filters"] == [{"memcmp": {"offset": 0, "bytes": "Mint1"}}]
            entry = {
                "pubkey": "Acct1",
                "account": {
                    "data": {
                        "parsed": {
                            "info": {"owner": "W1", "tokenAmount": {"amount": "10"}},
                        }
                    }
                },
            }
            return _result(request, [entry])

        rpc = await _service(handler)
        accounts = await rpc.get_token_accounts("Mint1", "TokenProgram")
        assert [(a.address, a.owner, a.amount) for a in accounts] == [("Acct1", "W1", 10)]

    async def test_signature_status(self) -> None:
        """Signature statuses parse their confirmation level."""
        def handler(request: httpx.Request) -> httpx.Response:
            return _result(
                request, {"value": [{"confirmationStatus": "finalized", "slot": 5, "err": None}]}
            )

        rpc = await _service(handler)
        status = await rpc.get_signature_status("sig")
        assert status.reached("confirmed")


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestRPCWrites:
    async def test_send_transaction_base64(self) -> None:
        """Transactions are sent base64-encoded."""
        def handler(request: httpx.Request) -> httpx.Response:
            params = json.loads(request.content)["params"]
            assert base64.b64decode(params[0]) == b"wire"
            assert params[1]["encoding"] == "base64"
            return _result(request, "5igSig")

        rpc = await _service(handler)
        assert await rpc.send_transaction(b"wire") == "5igSig"

    async def test_simulate(self) -> None:
        """Simulation results keep the error and logs."""
        def handler(request: httpx.Request) -> httpx.Response:
            return _result(request, {"value": {"err": "X", "logs": ["log"], "unitsConsumed": 3}})

        rpc = await _service(handler)
        sim = await rpc.simulate_transaction(b"wire")
        assert not sim.ok
        assert sim.logs == ["log"]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestRPCErrors:
    async def test_http_error_status(self) -> None:
        """Non-2xx responses raise with the status code."""
        rpc = await _service(lambda request: httpx.Response(503, text="unavailable"))
        with pytest.raises(RPCError, match="503"):
            await rpc.get_balance("W")

    async def test_rpc_error_body(self) -> None:
        """A JSON-RPC error body raises with its code."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32002, "message": "bad tx"}},
            )

        rpc = await _service(handler)
        with pytest.raises(RPCError, match="bad tx") as exc_info:
            await rpc.send_transaction(b"wire")
        assert exc_info.value.rpc_code == -32002

    async def test_transport_error(self) -> None:
        """Transport failures are wrapped in RPCError."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused")

        rpc = await _service(handler)
        with pytest.raises(RPCError, match="refused"):
            await rpc.get_latest_blockhash()
