"""Payout ledger: one row per recipient per distribution."""

from __future__ import annotations

import enum

from sqlalchemy import BigInteger, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from reward_engine.engine.models.base import Base, TimestampMixin


class PayoutKind(enum.StrEnum):
    HOLDER = "holder"
    TREASURY = "treasury"


class PayoutStatus(enum.StrEnum):
    """``OUTSTANDING`` rows are obligations still owed to the recipient."""

    PAID = "PAID"
    OUTSTANDING = "OUTSTANDING"
    ABANDONED = "ABANDONED"


class Payout(Base, TimestampMixin):
    """A native-currency transfer owed to a holder or the treasury."""

    __tablename__ = "payouts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    distribution_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    epoch_id: Mapped[str] = mapped_column(String(10), nullable=False)
    cycle_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    recipient: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default=PayoutKind.HOLDER.value)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    signature: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    last_error: Mapped[str] = mapped_column(Text, nullable=False, default="")
    last_valid_height: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    @property
    def is_outstanding(self) -> bool:
        return self.status == PayoutStatus.OUTSTANDING

    def __repr__(self) -> str:
        return f"<Payout {self.recipient[:8]} {self.amount} {self.status}>"
