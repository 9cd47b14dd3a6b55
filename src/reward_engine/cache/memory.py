"""In-process LRU cache with per-key expiry."""

from __future__ import annotations

import time
from collections import OrderedDict


class MemoryCache:
    """Bounded LRU map of ``key -> (value, expires_at)``.

    Suitable for a single engine process; use the Redis backend when the
    API and the scheduler run in separate processes.
    """

    def __init__(self, max_size: int = 1024) -> None:
        self._max_size = max_size
        self._entries: OrderedDict[str, tuple[str, float | None]] = OrderedDict()

    async def connect(self) -> None:  # noqa: ASYNC910
        """No-op."""

    async def close(self) -> None:  # noqa: ASYNC910
        self._entries.clear()

    async def get(self, key: str) -> str | None:  # noqa: ASYNC910
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:  # noqa: ASYNC910
        expires_at = None if not ttl else time.monotonic() + ttl
        self._entries.pop(key, None)
        self._entries[key] = (value, expires_at)
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

    async def delete(self, key: str) -> None:  # noqa: ASYNC910
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
