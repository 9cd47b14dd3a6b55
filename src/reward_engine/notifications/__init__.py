"""Notifications: in-process event bus and distribution change detection.

Provides:
- ``NotificationService``: fan-out event bus using asyncio queues
- ``DistributionWatcher``: fingerprint-based change detection
"""

from __future__ import annotations

from reward_engine.notifications.events import CycleEvent, DistributionEvent, RawEvent
from reward_engine.notifications.service import NotificationService
from reward_engine.notifications.watcher import DistributionWatcher

__all__ = [
    "CycleEvent",
    "DistributionEvent",
    "DistributionWatcher",
    "NotificationService",
    "RawEvent",
]
