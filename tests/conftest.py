"""Shared test fixtures for the reward-engine test suite.

``fake_ledger`` stands in for :class:`LedgerService`: balances live in
dictionaries and executing a transaction applies its effect to them, so the
stages measure real balance deltas without a network.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from reward_engine.config.settings import (
    AppConfig,
    DatabaseConfig,
    DatabaseEngine,
    DistributionConfig,
    LedgerConfig,
    NotificationsConfig,
    PoolConfig,
    TaskConfig,
)
from reward_engine.engine.models.payout import PayoutKind, PayoutStatus
from reward_engine.engine.stages.results import DistributionSnapshot, PayoutRecord
from reward_engine.ledger.raydium.models import PoolKeys, PoolState, SwapQuote
from reward_engine.ledger.rpc.models import Blockhash, MintInfo, TokenAccount

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Sequence

# ---------------------------------------------------------------------------
# Addresses
# ---------------------------------------------------------------------------

MINT = "TokenMint1111111111111111111111111111111111"
NATIVE_MINT = "So11111111111111111111111111111111111111112"
TOKEN_PROGRAM = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
OPS_WALLET = "OpsWallet111111111111111111111111111111111"
OPS_TOKEN = "OpsToken1111111111111111111111111111111111"
OUTPUT_ACCOUNT = "NativeOut111111111111111111111111111111111"
TREASURY = "Treasury111111111111111111111111111111111"
POOL_ID = "Pool11111111111111111111111111111111111111"
POOL_AUTHORITY = "PoolAuthority1111111111111111111111111111"
VAULT_A = "VaultA1111111111111111111111111111111111111"
VAULT_B = "VaultB1111111111111111111111111111111111111"

# blocks a blockhash stays valid for
BLOCKHASH_LIFETIME = 150


class FakeClock:
    """Settable clock injected into the engine."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# ---------------------------------------------------------------------------
# Fake ledger
# ---------------------------------------------------------------------------


class FakeFactory:
    """Returns readable byte strings instead of signed transactions."""

    def withdraw_withheld_from_accounts(
        self, *, mint: str, destination: str, sources: Sequence[str], blockhash: str
    ) -> bytes:
        return b"withdraw_accounts:" + ",".join(sources).encode()

    def withdraw_withheld_from_mint(self, *, mint: str, destination: str, blockhash: str) -> bytes:
        return b"withdraw_mint:" + mint.encode()

    def create_native_account(self, *, account: str, owner: str, blockhash: str) -> bytes:
        return b"create_native:" + account.encode()

    def close_account(self, *, account: str, destination: str, blockhash: str) -> bytes:
        return b"close:" + account.encode()

    def transfer_native(self, *, recipient: str, amount: int, blockhash: str) -> bytes:
        return f"transfer:{recipient}:{amount}".encode()

    def sign_serialized(self, transaction: bytes) -> bytes:
        return b"signed:" + transaction


def build_factory(config: AppConfig) -> FakeFactory:
    """Target of ``ledger.transaction_factory = "conftest:build_factory"``."""
    return FakeFactory()


class FakeRPC:
    def __init__(self) -> None:
        self.accounts: list[TokenAccount] = []
        self.mint = MintInfo(address=MINT, decimals=6)
        self.balances: dict[str, int] = {}
        self.existing: set[str] = set()
        self.is_connected = True

    async def get_token_accounts(self, mint: str, program_id: str) -> list[TokenAccount]:
        return list(self.accounts)

    async def get_mint_info(self, mint: str) -> MintInfo:
        return self.mint

    async def get_token_account_balance(self, address: str) -> int:
        return self.balances.get(address, 0)

    async def account_exists(self, address: str) -> bool:
        return address in self.existing


class FakeRaydium:
    def __init__(self) -> None:
        self.quote_out = 10**15
        self.transactions = [b"swap-tx"]

    async def compute_swap_base_in(
        self, *, input_mint: str, output_mint: str, amount: int, slippage_bps: int
    ) -> SwapQuote:
        return SwapQuote(
            input_mint=input_mint,
            output_mint=output_mint,
            input_amount=amount,
            output_amount=self.quote_out,
            other_amount_threshold=0,
            slippage_bps=slippage_bps,
        )

    async def get_priority_fee(self) -> int:
        return 1_000

    async def build_swap_transactions(self, quote: SwapQuote, **kwargs: object) -> list[bytes]:
        return list(self.transactions)


class FakeLedger:
    """In-memory ledger with the surface the stages and services consume."""

    def __init__(self) -> None:
        self.rpc = FakeRPC()
        self.raydium = FakeRaydium()
        self.factory = FakeFactory()
        self.can_sign = True
        self.is_connected = False
        self.pool_keys = PoolKeys(
            id=POOL_ID,
            program_id="AmmProgram",
            mint_a=MINT,
            mint_b=NATIVE_MINT,
            decimals_a=6,
            decimals_b=9,
            vault_a=VAULT_A,
            vault_b=VAULT_B,
            fee_rate_bps=25,
        )
        self.reserves = (1_000_000_000, 34_000_000_000)
        self.swap_yield = 0
        self.sent: list[bytes] = []
        self.simulated: list[bytes] = []
        self.landed_signatures: set[str] = set()
        self.block_height = 100
        self.failures: dict[bytes, list[Exception]] = {}

    async def connect(self) -> None:
        self.is_connected = True

    async def close(self) -> None:
        self.is_connected = False

    async def healthcheck(self) -> dict[str, str]:
        return {"rpc": "ok"}

    async def recent_blockhash(self) -> str:
        return "blockhash"

    async def latest_blockhash(self) -> Blockhash:
        return Blockhash("blockhash", self.block_height + BLOCKHASH_LIFETIME)

    async def blockhash_expired(self, last_valid_height: int) -> bool:
        return self.block_height > last_valid_height

    async def get_pool_keys(self) -> PoolKeys:
        return self.pool_keys

    async def get_pool_state(self) -> PoolState:
        return PoolState(keys=self.pool_keys, reserve_a=self.reserves[0], reserve_b=self.reserves[1])

    async def landed(self, signature: str) -> bool:
        return signature in self.landed_signatures

    def fail(self, prefix: bytes, *errors: Exception) -> None:
        """Make the next executions of wires starting with *prefix* raise *errors* in order."""
        self.failures.setdefault(prefix, []).extend(errors)

    async def execute(self, wire: bytes, *, simulate: bool = False) -> str:
        if simulate:
            self.simulated.append(wire)
        for prefix, errors in self.failures.items():
            if wire.startswith(prefix) and errors:
                raise errors.pop(0)
        self.sent.append(wire)
        self._apply(wire)
        signature = f"sig{len(self.sent)}"
        self.landed_signatures.add(signature)
        return signature

    def transfers(self) -> list[tuple[str, int]]:
        out = []
        for wire in self.sent:
            if wire.startswith(b"transfer:"):
                _, recipient, amount = wire.decode().split(":")
                out.append((recipient, int(amount)))
        return out

    def _apply(self, wire: bytes) -> None:
        balances = self.rpc.balances
        if wire.startswith(b"withdraw_accounts:"):
            sources = set(wire.split(b":", 1)[1].decode().split(","))
            moved = sum(a.withheld for a in self.rpc.accounts if a.address in sources)
            balances[OPS_TOKEN] = balances.get(OPS_TOKEN, 0) + moved
        elif wire.startswith(b"withdraw_mint:"):
            balances[OPS_TOKEN] = balances.get(OPS_TOKEN, 0) + self.rpc.mint.withheld
        elif wire.startswith(b"create_native:"):
            self.rpc.existing.add(OUTPUT_ACCOUNT)
        elif wire.startswith(b"signed:"):
            balances[OUTPUT_ACCOUNT] = balances.get(OUTPUT_ACCOUNT, 0) + self.swap_yield
        elif wire.startswith(b"close:"):
            balances[OUTPUT_ACCOUNT] = 0
            self.rpc.existing.discard(OUTPUT_ACCOUNT)


def holder_accounts() -> list[TokenAccount]:
    """Two holders (60/40), the pool vault and the operational account; 30 000 withheld."""
    return [
        TokenAccount(address="AccA", owner="HolderA", amount=600_000, withheld=20_000),
        TokenAccount(address="AccB", owner="HolderB", amount=400_000, withheld=10_000),
        TokenAccount(address=VAULT_A, owner=POOL_AUTHORITY, amount=1_000_000_000),
        TokenAccount(address=OPS_TOKEN, owner=OPS_WALLET, amount=0),
    ]


def make_snapshot(
    epoch_id: str = "2024-03-15",
    cycle_seq: int = 121,
    *,
    proceeds: int = 1_000_000,
    outstanding: bool = False,
) -> DistributionSnapshot:
    """Snapshot of a 75/25 split between HolderA (60%), HolderB (40%) and the treasury.

    With *outstanding* HolderB's transfer is left unpaid after three attempts.
    """
    holders = proceeds * 7_500 // 10_000
    treasury = proceeds - holders
    share_a = holders * 6 // 10
    share_b = holders * 4 // 10
    payouts = (
        PayoutRecord(
            "HolderA", share_a, PayoutKind.HOLDER, PayoutStatus.PAID, attempts=1, signature="sigA"
        ),
        PayoutRecord(
            "HolderB",
            share_b,
            PayoutKind.HOLDER,
            PayoutStatus.OUTSTANDING if outstanding else PayoutStatus.PAID,
            attempts=3 if outstanding else 1,
            signature="" if outstanding else "sigB",
            last_error="rpc-error: boom" if outstanding else "",
        ),
        PayoutRecord(
            TREASURY, treasury, PayoutKind.TREASURY, PayoutStatus.PAID, attempts=1, signature="sigT"
        ),
    )
    return DistributionSnapshot(
        epoch_id=epoch_id,
        cycle_seq=cycle_seq,
        harvested=30_000,
        swapped=30_000,
        proceeds=proceeds,
        holders_amount=holders,
        treasury_amount=treasury,
        retained_amount=holders - share_a - share_b,
        recipient_count=2,
        outstanding_count=1 if outstanding else 0,
        tx_refs=("sigH", "sigS", "sigA", "sigB", "sigT"),
        payouts=payouts,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def make_config(**overrides: object) -> AppConfig:
    sections: dict[str, object] = {
        "db": DatabaseConfig(engine=DatabaseEngine.SQLITE, dsn="sqlite+aiosqlite:///:memory:"),
        "ledger": LedgerConfig(
            rpc_url="https://rpc.test",
            token_mint=MINT,
            token_program_id=TOKEN_PROGRAM,
            operational_wallet=OPS_WALLET,
            operational_token_account=OPS_TOKEN,
            native_output_account=OUTPUT_ACCOUNT,
            treasury_wallet=TREASURY,
            confirm_timeout=1.0,
            poll_interval=0.01,
        ),
        "pool": PoolConfig(
            api_url="https://api.pool.test",
            swap_host="https://swap.pool.test",
            pool_id=POOL_ID,
        ),
        "distribution": DistributionConfig(payout_retry_delay=0),
        "task": TaskConfig(enabled=False),
        "notifications": NotificationsConfig(enabled=True),
    }
    sections.update(overrides)
    return AppConfig(**sections)


@pytest.fixture
def app_config() -> AppConfig:
    """AppConfig on in-memory SQLite with background tasks off."""
    return make_config()


@pytest.fixture
def clock() -> FakeClock:
    """10:02:30 UTC on 2024-03-15, i.e. cycle 121 of epoch 2024-03-15."""
    return FakeClock(datetime(2024, 3, 15, 10, 2, 30, tzinfo=UTC))


@pytest.fixture
def fake_ledger() -> FakeLedger:
    ledger = FakeLedger()
    ledger.rpc.accounts = holder_accounts()
    return ledger


@pytest.fixture
async def engine(app_config, clock) -> AsyncIterator:
    """Initialized read-only engine (no transaction factory)."""
    from reward_engine.engine.client import RewardEngine

    eng = RewardEngine(app_config, clock=clock)
    await eng.initialize()
    yield eng
    await eng.close()


@pytest.fixture
async def signing_engine(app_config, clock, fake_ledger) -> AsyncIterator:
    """Initialized engine wired to the fake ledger, with a scheduler."""
    from reward_engine.engine.client import RewardEngine

    eng = RewardEngine(app_config, ledger=fake_ledger, clock=clock)
    await eng.initialize()
    yield eng
    await eng.close()
