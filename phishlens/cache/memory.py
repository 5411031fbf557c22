"""In-memory LRU cache bounded by approximate memory usage."""

import json
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from phishlens.cache.protocol import CacheEntry, CacheStats

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_SIZE = 1024


def estimate_size(value: Any) -> int:
    """Approximate the memory footprint of a value in bytes."""
    try:
        # two bytes per character of the serialized form
        return len(json.dumps(value, default=str)) * 2
    except (TypeError, ValueError):
        return DEFAULT_ENTRY_SIZE


class MemoryCache:
    """
    LRU cache with TTL expiry and memory-bound eviction.

    Least recently used entries are evicted as soon as storing a new entry
    would push usage above ``max_memory_bytes * eviction_threshold``. If
    usage still exceeds ``max_memory_bytes`` an emergency cleanup runs.
    Malformed entries are purged and reported as misses.
    """

    def __init__(
        self,
        max_memory_bytes: int = 100 * 1024 * 1024,
        eviction_threshold: float = 0.8,
        default_ttl: float | None = 3600,
        clock: Callable[[], float] = time.time,
    ):
        if not 0 < eviction_threshold <= 1:
            raise ValueError("eviction_threshold must be in (0, 1]")

        self.max_memory_bytes = max_memory_bytes
        self.eviction_threshold = eviction_threshold
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._memory_usage = 0
        self._stats = CacheStats()

    @property
    def eviction_limit(self) -> float:
        return self.max_memory_bytes * self.eviction_threshold

    def _valid_entry(self, key: str) -> CacheEntry | None:
        """Return the entry for key, purging it if malformed."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if not isinstance(entry, CacheEntry) or not isinstance(entry.size, int):
            logger.warning(f"Purging malformed cache entry: {key}")
            self._entries.pop(key, None)
            self._recalculate_usage()
            return None

        return entry

    def _remove(self, key: str) -> CacheEntry | None:
        entry = self._entries.pop(key, None)
        if isinstance(entry, CacheEntry):
            self._memory_usage = max(0, self._memory_usage - entry.size)
        return entry

    def _recalculate_usage(self) -> None:
        self._memory_usage = sum(
            e.size for e in self._entries.values() if isinstance(e, CacheEntry)
        )

    async def get(self, key: str) -> Any | None:
        entry = self._valid_entry(key)
        now = self._clock()

        if entry is None:
            self._stats.misses += 1
            return None

        if entry.is_expired(now):
            self._remove(key)
            self._stats.misses += 1
            return None

        entry.access_count += 1
        entry.last_accessed = now
        self._entries.move_to_end(key)
        self._stats.hits += 1
        return entry.value

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        now = self._clock()
        ttl = self.default_ttl if ttl is None else ttl
        size = estimate_size(value)

        self._remove(key)
        self._evict_for(size)

        self._entries[key] = CacheEntry(
            value=value,
            expires_at=now + ttl if ttl and ttl > 0 else None,
            created_at=now,
            size=size,
            last_accessed=now,
        )
        self._memory_usage += size
        self._stats.sets += 1

        if self._memory_usage > self.max_memory_bytes:
            logger.warning(
                f"Cache memory {self._memory_usage}B above limit "
                f"{self.max_memory_bytes}B, running emergency cleanup"
            )
            await self._emergency_cleanup()

    def _evict_for(self, incoming: int) -> None:
        """Evict LRU entries until the incoming entry fits under the threshold."""
        while self._entries and self._memory_usage + incoming > self.eviction_limit:
            key, _ = next(iter(self._entries.items()))
            self._remove(key)
            self._stats.evictions += 1
            logger.debug(f"Evicted LRU cache entry: {key}")

    async def _emergency_cleanup(self) -> None:
        await self.cleanup()
        while self._entries and self._memory_usage > self.eviction_limit:
            key = next(iter(self._entries))
            self._remove(key)
            self._stats.evictions += 1

    async def delete(self, key: str) -> bool:
        existed = self._remove(key) is not None
        if existed:
            self._stats.deletes += 1
        return existed

    async def has(self, key: str) -> bool:
        entry = self._valid_entry(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            self._remove(key)
            return False
        return True

    async def clear(self) -> None:
        self._entries.clear()
        self._memory_usage = 0

    async def size(self) -> int:
        return len(self._entries)

    async def keys(self) -> list[str]:
        return list(self._entries.keys())

    async def cleanup(self) -> int:
        now = self._clock()
        expired = [
            key
            for key, entry in self._entries.items()
            if not isinstance(entry, CacheEntry) or entry.is_expired(now)
        ]
        for key in expired:
            self._remove(key)
        if expired:
            self._recalculate_usage()
            logger.debug(f"Removed {len(expired)} expired cache entries")
        return len(expired)

    def get_memory_usage(self) -> dict[str, float]:
        return {
            "used_bytes": self._memory_usage,
            "max_bytes": self.max_memory_bytes,
            "usage_percent": round(self._memory_usage / self.max_memory_bytes * 100, 2)
            if self.max_memory_bytes
            else 0.0,
        }

    def get_stats(self) -> CacheStats:
        self._stats.extra = {"entries": len(self._entries), **self.get_memory_usage()}
        return self._stats
