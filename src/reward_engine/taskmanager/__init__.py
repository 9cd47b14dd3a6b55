"""Task manager: background cron scheduling.

Provides ``TaskManager`` for the engine's periodic jobs:
- Cycle ticks (harvest, swap and distribute when a cycle is PENDING)
- Settlement of outstanding payouts
- Metrics calculation (statistics gauges for Prometheus)
- Distribution change detection

Uses ``asyncio`` tasks for scheduling. The cycle and settlement jobs also
take the cluster lease so only one instance drives distributions.
"""

from __future__ import annotations

from reward_engine.taskmanager.manager import CronJob, TaskManager

__all__ = ["CronJob", "TaskManager"]
