"""Pass-through cache used to disable caching without touching call sites."""

from typing import Any

from phishlens.cache.protocol import CacheStats


class NoOpCache:
    """Cache backend that stores nothing and always misses."""

    def __init__(self):
        self._stats = CacheStats()

    async def get(self, key: str) -> Any | None:
        self._stats.misses += 1
        return None

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        return None

    async def delete(self, key: str) -> bool:
        return False

    async def has(self, key: str) -> bool:
        return False

    async def clear(self) -> None:
        return None

    async def size(self) -> int:
        return 0

    async def keys(self) -> list[str]:
        return []

    async def cleanup(self) -> int:
        return 0

    def get_stats(self) -> CacheStats:
        return self._stats
