"""Epoch and cycle models: the per-slot state records."""

from __future__ import annotations

import enum
from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from reward_engine.engine.models.base import Base, TimestampMixin


class CycleState(enum.StrEnum):
    """Lifecycle of a cycle.

    ``PENDING`` is the only non-terminal state; each cycle is written into
    exactly one terminal state, at most once.
    """

    PENDING = "PENDING"
    DISTRIBUTED = "DISTRIBUTED"
    ROLLED_OVER = "ROLLED_OVER"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not CycleState.PENDING


class Epoch(Base, TimestampMixin):
    """One calendar day in the reference timezone."""

    __tablename__ = "epochs"

    id: Mapped[str] = mapped_column(String(10), primary_key=True, comment="YYYY-MM-DD")
    cycle_count: Mapped[int] = mapped_column(
        Integer, nullable=False, comment="Cycles pre-created for this epoch"
    )

    def __repr__(self) -> str:
        return f"<Epoch {self.id} cycles={self.cycle_count}>"


class Cycle(Base, TimestampMixin):
    """A fixed-width slot within an epoch."""

    __tablename__ = "cycles"
    __table_args__ = (UniqueConstraint("epoch_id", "sequence", name="uq_cycles_epoch_sequence"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    epoch_id: Mapped[str] = mapped_column(
        String(10),
        ForeignKey("epochs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, comment="1..N within the epoch")
    state: Mapped[str] = mapped_column(
        String(16), nullable=False, default=CycleState.PENDING.value, index=True
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    error: Mapped[str] = mapped_column(Text, nullable=False, default="")
    distribution_id: Mapped[str | None] = mapped_column(String(32), nullable=True)

    @property
    def cycle_state(self) -> CycleState:
        return CycleState(self.state)

    def __repr__(self) -> str:
        return f"<Cycle {self.epoch_id}#{self.sequence} {self.state}>"
