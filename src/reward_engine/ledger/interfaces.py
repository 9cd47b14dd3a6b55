"""Transaction construction seam.

Instruction encoding, key custody and signing live outside this package.
The engine only needs something that turns an intent into signed wire bytes
bound to a recent blockhash.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence


class TransactionFactory(Protocol):
    """Builds and signs transactions on behalf of the operational wallet."""

    def withdraw_withheld_from_accounts(
        self, *, mint: str, destination: str, sources: Sequence[str], blockhash: str
    ) -> bytes:
        """Move fees withheld in *sources* into *destination*."""
        ...

    def withdraw_withheld_from_mint(self, *, mint: str, destination: str, blockhash: str) -> bytes:
        """Move fees withheld at the mint into *destination*."""
        ...

    def create_native_account(self, *, account: str, owner: str, blockhash: str) -> bytes:
        """Create the wrapped-native token account *account* owned by *owner*."""
        ...

    def close_account(self, *, account: str, destination: str, blockhash: str) -> bytes:
        """Close *account*, releasing its native balance to *destination*."""
        ...

    def transfer_native(self, *, recipient: str, amount: int, blockhash: str) -> bytes:
        """Transfer *amount* native base units to *recipient*."""
        ...

    def sign_serialized(self, transaction: bytes) -> bytes:
        """Sign a transaction serialized by a third party (the trade API)."""
        ...
