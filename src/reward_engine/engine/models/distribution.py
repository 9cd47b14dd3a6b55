"""Distribution snapshots and cumulative statistics."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from reward_engine.engine.models.base import Base, TimestampMixin

STATS_ROW_ID = 1

STAT_COUNTERS: tuple[str, ...] = (
    "total_harvested",
    "total_swapped",
    "total_proceeds",
    "total_to_holders",
    "total_to_treasury",
    "total_retained",
    "distribution_count",
)


class Distribution(Base):
    """Immutable record of one DISTRIBUTED cycle.

    ``epoch_id``/``cycle_seq`` are the cycle that was pending when the run
    began, not the cycle current when the row was written. Snapshots outlive
    the retention window of their epoch.
    """

    __tablename__ = "distributions"
    __table_args__ = (
        UniqueConstraint("epoch_id", "cycle_seq", name="uq_distributions_epoch_cycle"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    epoch_id: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    cycle_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    harvested: Mapped[int] = mapped_column(BigInteger, nullable=False)
    swapped: Mapped[int] = mapped_column(BigInteger, nullable=False)
    proceeds: Mapped[int] = mapped_column(BigInteger, nullable=False)
    holders_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    treasury_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    retained_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    recipient_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    outstanding_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tx_refs: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<Distribution {self.epoch_id}#{self.cycle_seq} "
            f"holders={self.holders_amount} treasury={self.treasury_amount}>"
        )


class DistributionStats(Base, TimestampMixin):
    """Single row of cumulative counters.

    Counters only ever move through in-place increments
    (``SET x = x + :delta``); the row is never rewritten wholesale.
    """

    __tablename__ = "distribution_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    total_harvested: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_swapped: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_proceeds: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_to_holders: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_to_treasury: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_retained: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    distribution_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_distribution_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    last_epoch_id: Mapped[str | None] = mapped_column(String(10), nullable=True)
    last_cycle_seq: Mapped[int | None] = mapped_column(Integer, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def counters(self) -> dict[str, int]:
        return {name: getattr(self, name) or 0 for name in STAT_COUNTERS}

    def fingerprint(self) -> str:
        """SHA-256 over the canonical JSON of the counters and the last-distribution pointer."""
        payload: dict[str, Any] = {
            **self.counters(),
            "last_distribution_id": self.last_distribution_id,
            "last_epoch_id": self.last_epoch_id,
            "last_cycle_seq": self.last_cycle_seq,
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
