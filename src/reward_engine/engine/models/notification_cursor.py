"""Per-consumer change-detection cursor."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from reward_engine.engine.models.base import Base, TimestampMixin


class NotificationCursor(Base, TimestampMixin):
    """Last statistics fingerprint a consumer has acted on."""

    __tablename__ = "notification_cursors"

    consumer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False, default="")
