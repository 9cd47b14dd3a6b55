"""Engine data models (SQLAlchemy ORM).

Import :data:`ALL_MODELS` for migration and table creation.
"""

from reward_engine.engine.models.base import Base, TimestampMixin
from reward_engine.engine.models.cycle import Cycle, CycleState, Epoch
from reward_engine.engine.models.distribution import (
    STAT_COUNTERS,
    STATS_ROW_ID,
    Distribution,
    DistributionStats,
)
from reward_engine.engine.models.notification_cursor import NotificationCursor
from reward_engine.engine.models.payout import Payout, PayoutKind, PayoutStatus

ALL_MODELS: list[type[Base]] = [
    Epoch,
    Cycle,
    Distribution,
    DistributionStats,
    Payout,
    NotificationCursor,
]

__all__ = [
    "ALL_MODELS",
    "STATS_ROW_ID",
    "STAT_COUNTERS",
    "Base",
    "Cycle",
    "CycleState",
    "Distribution",
    "DistributionStats",
    "Epoch",
    "NotificationCursor",
    "Payout",
    "PayoutKind",
    "PayoutStatus",
    "TimestampMixin",
]
