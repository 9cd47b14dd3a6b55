"""Redis cache backend, shared by the API and scheduler processes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from reward_engine.config.settings import CacheConfig

logger = logging.getLogger(__name__)


class RedisCache:
    def __init__(self, config: CacheConfig) -> None:
        self._config = config
        self._redis: Redis | None = None

    async def connect(self) -> None:
        """Open the pool and ping the server.

        Raises:
            ConnectionError: If the server does not answer.
        """
        from redis.asyncio import Redis
        from redis.exceptions import RedisError

        client = Redis.from_url(
            self._config.url,
            decode_responses=True,
            max_connections=self._config.max_connections,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as exc:
            await client.aclose()
            msg = f"Redis cache unreachable at {self._config.url}"
            raise ConnectionError(msg) from exc
        self._redis = client
        logger.info("Redis cache connected at %s", self._config.url)

    async def close(self) -> None:
        client, self._redis = self._redis, None
        if client is not None:
            await client.aclose()

    async def get(self, key: str) -> str | None:
        return await self._client().get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        # ex=None stores without expiry
        await self._client().set(key, value, ex=ttl or None)

    async def delete(self, key: str) -> None:
        await self._client().unlink(key)

    def _client(self) -> Redis:
        if self._redis is None:
            msg = "Redis cache not connected"
            raise RuntimeError(msg)
        return self._redis
