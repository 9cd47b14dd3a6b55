"""RewardEngine: central engine client owning all services."""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

from reward_engine.engine.clock import utc_now

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from reward_engine.cache.client import CacheClient
    from reward_engine.cluster.client import ClusterClient
    from reward_engine.config.settings import AppConfig
    from reward_engine.datastore.client import Datastore
    from reward_engine.engine.scheduler import CycleScheduler
    from reward_engine.engine.services.cycle_service import CycleService
    from reward_engine.engine.services.holder_service import HolderService
    from reward_engine.engine.services.payout_service import PayoutService
    from reward_engine.engine.services.statistics_service import StatisticsService
    from reward_engine.ledger.interfaces import TransactionFactory
    from reward_engine.ledger.service import LedgerService
    from reward_engine.metrics.collector import EngineMetrics
    from reward_engine.notifications.service import NotificationService
    from reward_engine.notifications.watcher import DistributionWatcher
    from reward_engine.taskmanager.manager import TaskManager

logger = logging.getLogger(__name__)

# Error messages
_ERR_NOT_INITIALIZED = "Engine not initialized. Call initialize() first."


def load_transaction_factory(path: str, config: AppConfig) -> TransactionFactory:
    """Import ``module:callable`` and call it with *config*.

    Raises:
        ValueError: If *path* is not of the form ``module:callable``.
        ImportError: If the module cannot be imported.
        AttributeError: If the callable does not exist.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        msg = f"transaction factory must be 'module:callable', got {path!r}"
        raise ValueError(msg)
    target = getattr(importlib.import_module(module_name), attr)
    return target(config)


class RewardEngine:
    """Central engine that owns all services and infrastructure.

    Without a transaction factory the engine is read-only: it serves the
    query API and change detection but never schedules a cycle.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        factory: TransactionFactory | None = None,
        ledger: LedgerService | None = None,
        metrics: EngineMetrics | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize engine with configuration.

        Args:
            config: Application configuration.
            factory: Signing transaction factory; overrides
                ``ledger.transaction_factory``.
            ledger: Pre-built ledger service (tests, embedding).
            metrics: Metrics sharing a registry with the HTTP layer.
            clock: Source of the current time for cycle derivation.
        """
        self._config = config
        self._factory = factory
        self._clock = clock
        self._initialized = False

        # Infrastructure components
        self._datastore: Datastore | None = None
        self._cache: CacheClient | None = None
        self._cluster: ClusterClient | None = None
        self._ledger: LedgerService | None = ledger

        # Services
        self._cycle_service: CycleService | None = None
        self._statistics_service: StatisticsService | None = None
        self._payout_service: PayoutService | None = None
        self._holder_service: HolderService | None = None
        self._scheduler: CycleScheduler | None = None
        self._task_manager: TaskManager | None = None
        self._metrics: EngineMetrics | None = metrics
        self._notifications: NotificationService | None = None
        self._watcher: DistributionWatcher | None = None

    def now(self) -> datetime:
        return self._clock()

    async def initialize(self) -> None:
        """Initialize datastore, run migrations, and start services.

        Raises:
            RuntimeError: If already initialized.
        """
        if self._initialized:
            msg = "Engine already initialized"
            raise RuntimeError(msg)

        # Import here to avoid circular deps
        from reward_engine.cache.client import CacheClient
        from reward_engine.cluster.client import ClusterClient
        from reward_engine.datastore.client import Datastore

        self._datastore = Datastore(self._config.db)
        await self._datastore.open(migrate=True)

        self._cache = CacheClient(self._config.cache)
        await self._cache.connect()

        self._cluster = ClusterClient(self._config.cluster)
        await self._cluster.connect()

        # Ledger (RPC + pool API + signer)
        from reward_engine.ledger.service import LedgerService

        factory = self._factory
        if factory is None and self._config.ledger.transaction_factory:
            factory = load_transaction_factory(self._config.ledger.transaction_factory, self._config)
        if self._ledger is None:
            self._ledger = LedgerService(self._config, factory, cache=self._cache)
        await self._ledger.connect()

        # Services
        from reward_engine.engine.services.cycle_service import CycleService
        from reward_engine.engine.services.holder_service import HolderService
        from reward_engine.engine.services.payout_service import PayoutService
        from reward_engine.engine.services.statistics_service import StatisticsService

        self._cycle_service = CycleService(self)
        self._statistics_service = StatisticsService(self)
        self._payout_service = PayoutService(self)
        self._holder_service = HolderService(self)

        from reward_engine.metrics.collector import EngineMetrics

        if self._metrics is None:
            self._metrics = EngineMetrics()

        # Notification bus and change detection
        from reward_engine.notifications.service import NotificationService
        from reward_engine.notifications.watcher import DistributionWatcher

        if self._config.notifications.enabled:
            self._notifications = NotificationService()
            await self._notifications.start()
            self._watcher = DistributionWatcher(self, self._notifications)

        # Pipeline and scheduler, only when transactions can be signed
        if self._ledger.can_sign:
            self._scheduler = self._build_scheduler(self._ledger)
        else:
            logger.warning("No transaction factory configured; engine is read-only")

        if self._config.task.enabled:
            await self._start_tasks()

        self._initialized = True
        logger.info("Reward engine initialized")

    def _build_scheduler(self, ledger: LedgerService) -> CycleScheduler:
        from reward_engine.engine.scheduler import CycleScheduler
        from reward_engine.engine.stages.harvest import HarvestStage
        from reward_engine.engine.stages.payout import PayoutStage
        from reward_engine.engine.stages.pipeline import DistributionPipeline
        from reward_engine.engine.stages.swap import SwapStage

        payout = PayoutStage(self._config, ledger)
        pipeline = DistributionPipeline(
            HarvestStage(self._config, ledger),
            SwapStage(self._config, ledger),
            payout,
            self.holder_service,
            metrics=self._metrics,
        )
        return CycleScheduler(self, pipeline, payout)

    async def _start_tasks(self) -> None:
        from functools import partial

        from reward_engine.taskmanager.manager import CronJob, TaskManager
        from reward_engine.taskmanager.tasks import (
            CALCULATE_METRICS_PERIOD,
            task_calculate_metrics,
            task_run_cycle,
            task_settle_payouts,
            task_watch_distributions,
        )

        self._task_manager = TaskManager(metrics=self._metrics)
        if self._scheduler is not None:
            self._task_manager.register(
                "run_cycle",
                CronJob(
                    handler=partial(task_run_cycle, self),
                    period=self._config.distribution.tick_seconds,
                    immediate=True,
                ),
            )
            if self._config.settlement.enabled:
                self._task_manager.register(
                    "settle_payouts",
                    CronJob(
                        handler=partial(task_settle_payouts, self),
                        period=self._config.settlement.period,
                    ),
                )
        if self._metrics is not None and self._config.metrics.enabled:
            self._task_manager.register(
                "calculate_metrics",
                CronJob(
                    handler=partial(task_calculate_metrics, self, self._metrics),
                    period=CALCULATE_METRICS_PERIOD,
                    immediate=True,
                ),
            )
        if self._watcher is not None:
            self._task_manager.register(
                "watch_distributions",
                CronJob(
                    handler=partial(task_watch_distributions, self._watcher),
                    period=self._config.notifications.poll_seconds,
                ),
            )
        await self._task_manager.start()

    async def close(self) -> None:
        """Gracefully shut down all services and connections.

        Can be called multiple times (idempotent). A cycle interrupted here
        stays PENDING.
        """
        if not self._initialized:
            return

        # Stop task manager first (depends on services)
        if self._task_manager is not None:
            await self._task_manager.stop()
            self._task_manager = None

        if self._scheduler is not None:
            await self._scheduler.release()
            self._scheduler = None

        self._watcher = None
        if self._notifications is not None:
            await self._notifications.stop()
            self._notifications = None

        self._cycle_service = None
        self._statistics_service = None
        self._payout_service = None
        self._holder_service = None

        if self._ledger is not None:
            await self._ledger.close()
            self._ledger = None

        if self._cluster is not None:
            await self._cluster.close()
            self._cluster = None

        if self._cache is not None:
            await self._cache.close()
            self._cache = None

        if self._datastore is not None:
            await self._datastore.close()
            self._datastore = None

        self._initialized = False
        logger.info("Reward engine closed")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def datastore(self) -> Datastore:
        """Get the datastore instance.

        Raises:
            RuntimeError: If engine not initialized.
        """
        if self._datastore is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._datastore

    @property
    def cache(self) -> CacheClient:
        if self._cache is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._cache

    @property
    def cluster(self) -> ClusterClient:
        if self._cluster is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._cluster

    @property
    def ledger(self) -> LedgerService:
        if self._ledger is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._ledger

    @property
    def cycle_service(self) -> CycleService:
        if self._cycle_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._cycle_service

    @property
    def statistics_service(self) -> StatisticsService:
        if self._statistics_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._statistics_service

    @property
    def payout_service(self) -> PayoutService:
        if self._payout_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._payout_service

    @property
    def holder_service(self) -> HolderService:
        if self._holder_service is None:
            raise RuntimeError(_ERR_NOT_INITIALIZED)
        return self._holder_service

    @property
    def scheduler(self) -> CycleScheduler | None:
        """The cycle scheduler (None when the engine is read-only)."""
        return self._scheduler

    @property
    def metrics(self) -> EngineMetrics | None:
        return self._metrics

    @property
    def task_manager(self) -> TaskManager | None:
        return self._task_manager

    @property
    def notification_service(self) -> NotificationService | None:
        """Get the notification bus (None if not enabled)."""
        return self._notifications

    @property
    def watcher(self) -> DistributionWatcher | None:
        return self._watcher

    async def health_check(self) -> dict[str, str]:
        """Check health status of all engine components.

        Returns:
            Dictionary with component statuses ('ok', 'error', 'not_initialized').
        """
        status = {
            "engine": "ok" if self._initialized else "not_initialized",
            "datastore": "unknown",
            "cache": "unknown",
            "rpc": "unknown",
            "scheduler": "unknown",
        }

        if self._initialized:
            ok = self._datastore is not None and await self._datastore.ping()
            status["datastore"] = "ok" if ok else "error"

            if self._cache and self._cache.is_connected:
                status["cache"] = "ok"
            else:
                status["cache"] = "error"

            if self._ledger is not None:
                status.update(await self._ledger.healthcheck())

            status["scheduler"] = "active" if self._scheduler is not None else "read_only"

        return status
