"""Cluster client: the single-scheduler lease.

Only one scheduler may drive cycles against a state store. The lease is an
owner-token lock with a TTL: the holder refreshes it on every tick and any
other instance is refused until it expires.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from reward_engine.config.settings import Coordinator

if TYPE_CHECKING:
    from collections.abc import Callable

    from reward_engine.config.settings import ClusterConfig

logger = logging.getLogger(__name__)

# Refresh only if the stored owner is ours: KEYS[1]=lock, ARGV[1]=owner, ARGV[2]=ttl
_REFRESH_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('EXPIRE', KEYS[1], ARGV[2])
end
return 0
"""

_RELEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class ClusterClient:
    """Lease backend selected by ``cluster.coordinator``.

    Usage::

        cluster = ClusterClient(config.cluster)
        await cluster.connect()
        if await cluster.try_lock("scheduler", owner="host-1"):
            ...
        await cluster.close()
    """

    def __init__(
        self,
        config: ClusterConfig,
        *,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._monotonic = monotonic
        self._redis: Any = None
        # key -> (owner, expires_at)
        self._leases: dict[str, tuple[str, float]] = {}

    @property
    def coordinator(self) -> Coordinator:
        return self._config.coordinator

    async def connect(self) -> None:
        """Open the Redis connection when the redis coordinator is selected."""
        if self._config.coordinator != Coordinator.REDIS or self._redis is not None:
            return

        import redis.asyncio as aioredis

        self._redis = aioredis.from_url(self._config.redis_url, decode_responses=True)
        logger.info("Cluster lease using Redis (%s)", self._config.redis_url)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        self._leases.clear()

    def _key(self, key: str) -> str:
        return f"{self._config.prefix}lock:{key}"

    async def try_lock(self, key: str, *, owner: str, ttl: int | None = None) -> bool:
        """Acquire *key* for *owner*, or refresh it if *owner* already holds it.

        Returns True when *owner* holds the lease after the call.
        """
        ttl = ttl or self._config.lock_ttl
        if self._config.coordinator == Coordinator.REDIS:
            return await self._try_lock_redis(self._key(key), owner, ttl)

        now = self._monotonic()
        held = self._leases.get(key)
        if held is not None and held[0] != owner and held[1] > now:
            return False
        self._leases[key] = (owner, now + ttl)
        return True

    async def _try_lock_redis(self, key: str, owner: str, ttl: int) -> bool:
        if self._redis is None:
            await self.connect()
        if await self._redis.set(key, owner, nx=True, ex=ttl):
            return True
        return bool(await self._redis.eval(_REFRESH_SCRIPT, 1, key, owner, ttl))

    async def release(self, key: str, *, owner: str) -> None:
        """Give up *key* if *owner* holds it."""
        if self._config.coordinator == Coordinator.REDIS:
            if self._redis is not None:
                await self._redis.eval(_RELEASE_SCRIPT, 1, self._key(key), owner)
            return

        held = self._leases.get(key)
        if held is not None and held[0] == owner:
            del self._leases[key]
