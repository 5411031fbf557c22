"""Cache manager adding prefixing, TTL defaults and accounting over a backend."""

import asyncio
import contextlib
import logging
import re
import time
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from phishlens.cache.protocol import CacheBackend, CacheStats

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheManager(Generic[T]):
    """
    Wraps a cache backend for one signal provider.

    Values are stored inside a small envelope carrying the store time so
    that callers can learn how old a cached signal is. Every backend error
    is logged and degraded to a miss or a no-op; caching never decides
    whether an analysis succeeds.
    """

    def __init__(
        self,
        backend: CacheBackend,
        prefix: str,
        default_ttl: float | None = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.prefix = prefix
        self.default_ttl = default_ttl
        self._clock = clock
        self._stats = CacheStats()
        self._cleanup_task: asyncio.Task | None = None

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def _strip(self, full_key: str) -> str | None:
        head = f"{self.prefix}:"
        return full_key[len(head) :] if full_key.startswith(head) else None

    async def get_with_age(self, key: str) -> tuple[T, float] | None:
        """Return ``(value, age_ms)`` for a live entry, or None on miss."""
        try:
            envelope = await self.backend.get(self._key(key))
        except Exception as e:
            self._stats.errors += 1
            self._stats.misses += 1
            logger.warning(f"Cache get failed for {self._key(key)}: {e}")
            return None

        if envelope is None:
            self._stats.misses += 1
            return None

        if (
            not isinstance(envelope, dict)
            or "value" not in envelope
            or not isinstance(envelope.get("stored_at"), int | float)
        ):
            logger.warning(f"Discarding malformed cache entry {self._key(key)}")
            self._stats.misses += 1
            await self.delete(key)
            return None

        self._stats.hits += 1
        age_ms = max(0.0, (self._clock() - envelope["stored_at"]) * 1000)
        return envelope["value"], age_ms

    async def get(self, key: str) -> T | None:
        hit = await self.get_with_age(key)
        return hit[0] if hit else None

    async def get_entry_age(self, key: str) -> float | None:
        """Age in milliseconds of a live entry."""
        hit = await self.get_with_age(key)
        return hit[1] if hit else None

    async def set(self, key: str, value: T, ttl: float | None = None) -> bool:
        ttl = self.default_ttl if ttl is None else ttl
        envelope = {"value": value, "stored_at": self._clock()}
        try:
            await self.backend.set(self._key(key), envelope, ttl)
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache set failed for {self._key(key)}: {e}")
            return False
        self._stats.sets += 1
        return True

    async def delete(self, key: str) -> bool:
        try:
            removed = await self.backend.delete(self._key(key))
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache delete failed for {self._key(key)}: {e}")
            return False
        if removed:
            self._stats.deletes += 1
        return removed

    async def has(self, key: str) -> bool:
        try:
            return await self.backend.has(self._key(key))
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache has failed for {self._key(key)}: {e}")
            return False

    async def keys(self) -> list[str]:
        try:
            full_keys = await self.backend.keys()
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache keys failed for prefix {self.prefix}: {e}")
            return []
        return [k for k in (self._strip(fk) for fk in full_keys) if k is not None]

    async def size(self) -> int:
        return len(await self.keys())

    async def clear(self) -> None:
        """Remove every entry under this manager's prefix."""
        for key in await self.keys():
            await self.delete(key)

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        ttl: float | None = None,
    ) -> T:
        """
        Return the cached value, or compute it with ``factory`` and cache it.

        The factory runs at most once per call. Two concurrent calls that
        both miss the same key will both run their factory; this race is
        accepted because signal providers are idempotent. ``None`` results
        are returned but never cached.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await factory()
        if value is not None:
            await self.set(key, value, ttl)
        return value

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key matching a regular expression."""
        regex = re.compile(pattern)
        removed = 0
        for key in await self.keys():
            if regex.search(key) and await self.delete(key):
                removed += 1
        return removed

    async def cleanup(self) -> int:
        try:
            return await self.backend.cleanup()
        except Exception as e:
            self._stats.errors += 1
            logger.warning(f"Cache cleanup failed: {e}")
            return 0

    def start_background_cleanup(self, interval: float = 300) -> None:
        """Sweep expired entries every ``interval`` seconds on the running loop."""
        if self._cleanup_task and not self._cleanup_task.done():
            return

        async def _loop() -> None:
            while True:
                await asyncio.sleep(interval)
                removed = await self.cleanup()
                if removed:
                    logger.info(f"Cache {self.prefix}: swept {removed} expired entries")

        self._cleanup_task = asyncio.create_task(_loop())

    async def stop_background_cleanup(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._cleanup_task
        self._cleanup_task = None

    def get_stats(self) -> dict[str, Any]:
        stats = self._stats.to_dict()
        stats["prefix"] = self.prefix
        return stats
