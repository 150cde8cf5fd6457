"""Expiring per-node cache for daemon query results."""

import time
from typing import Any, Awaitable, Callable, Hashable, TypeVar

T = TypeVar("T")

CacheKey = tuple[int, str]  # (node id, resource kind)


class TTLCache:
    """In-memory cache whose entries expire after a fixed number of seconds.

    There is no invalidation beyond expiry; callers must tolerate stale values.
    ``now`` is injectable so expiry can be driven by tests.
    """

    def __init__(self, now: Callable[[], float] = time.monotonic):
        self._now = now
        self._entries: dict[Hashable, tuple[Any, float]] = {}

    def get(self, key: CacheKey, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        value, expires_at = entry
        if self._now() >= expires_at:
            del self._entries[key]
            return default
        return value

    def __contains__(self, key: CacheKey) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def set(self, key: CacheKey, value: Any, ttl: float) -> None:
        self._entries[key] = (value, self._now() + ttl)

    async def remember(
        self, key: CacheKey, ttl: float, factory: Callable[[], Awaitable[T]]
    ) -> T:
        """Return the cached value, or await factory and cache its result."""
        sentinel = object()
        cached = self.get(key, sentinel)
        if cached is not sentinel:
            return cached

        value = await factory()
        self.set(key, value, ttl)
        return value

    def forget(self, key: CacheKey) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
