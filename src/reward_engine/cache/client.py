"""Cache client for static ledger metadata (pool keys, mint info).

Live balances and reserves are never cached; only data that does not move
between cycles goes through here.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from reward_engine.config.settings import CacheConfig


class CacheBackend(Protocol):
    """Protocol for cache backend implementations."""

    async def connect(self) -> None: ...
    async def close(self) -> None: ...
    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str, ttl: int | None = None) -> None: ...
    async def delete(self, key: str) -> None: ...


class CacheClient:
    """Namespaced cache delegating to an in-memory LRU or Redis backend."""

    def __init__(self, config: CacheConfig, *, namespace: str = "reward:") -> None:
        self._config = config
        self._namespace = namespace
        self._backend: CacheBackend | None = None

    async def connect(self) -> None:
        """Create and connect the configured backend.

        Raises:
            ValueError: If the cache engine is not supported.
        """
        from reward_engine.cache.memory import MemoryCache
        from reward_engine.cache.redis import RedisCache

        engine = self._config.engine.lower()
        if engine == "redis":
            backend: CacheBackend = RedisCache(self._config)
        elif engine == "memory":
            backend = MemoryCache()
        else:
            msg = f"Unsupported cache engine: {engine}"
            raise ValueError(msg)

        await backend.connect()
        self._backend = backend

    async def close(self) -> None:
        """Close the backend (idempotent)."""
        if self._backend is not None:
            await self._backend.close()
            self._backend = None

    @property
    def is_connected(self) -> bool:
        """Check if a backend is connected."""
        return self._backend is not None

    async def get(self, key: str) -> str | None:
        """Return the cached string for *key*, or None."""
        return await self._require().get(self._namespace + key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        """Store *value* under *key*; ``ttl=None`` falls back to the configured default."""
        await self._require().set(
            self._namespace + key,
            value,
            ttl=self._config.ttl_seconds if ttl is None else ttl,
        )

    async def delete(self, key: str) -> None:
        """Remove *key* from the cache."""
        await self._require().delete(self._namespace + key)

    async def get_json(self, key: str) -> Any | None:
        """Return the decoded JSON value for *key*, or None if missing or unreadable."""
        raw = await self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            await self.delete(key)
            return None

    async def set_json(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Encode *value* as JSON and store it."""
        await self.set(key, json.dumps(value, sort_keys=True), ttl=ttl)

    def _require(self) -> CacheBackend:
        if self._backend is None:
            msg = "Cache not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._backend
