"""Redis-backed signal cache."""

import json
import logging
from typing import Any

import redis.asyncio as redis

from phishlens.cache.protocol import CacheStats

logger = logging.getLogger(__name__)


class RedisCache:
    """
    Cache backend storing JSON values in Redis with native key expiry.

    Every key is stored under ``namespace:`` so that ``clear`` and ``keys``
    only touch entries owned by this cache. Errors are raised to the caller;
    the cache manager decides how to degrade.
    """

    def __init__(
        self,
        client: redis.Redis,
        namespace: str = "phishlens",
        default_ttl: int | None = 3600,
    ):
        self.client = client
        self.namespace = namespace
        self.default_ttl = default_ttl
        self._stats = CacheStats()

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisCache":
        client = redis.from_url(url, decode_responses=True, retry_on_timeout=True)
        return cls(client, **kwargs)

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Any | None:
        raw = await self.client.get(self._key(key))
        if raw is None:
            self._stats.misses += 1
            return None
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Purging undecodable Redis cache entry: {key}")
            await self.client.delete(self._key(key))
            self._stats.misses += 1
            return None
        self._stats.hits += 1
        return value

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        payload = json.dumps(value, default=str)
        if ttl and ttl > 0:
            await self.client.set(self._key(key), payload, ex=int(max(1, ttl)))
        else:
            await self.client.set(self._key(key), payload)
        self._stats.sets += 1

    async def delete(self, key: str) -> bool:
        removed = await self.client.delete(self._key(key))
        if removed:
            self._stats.deletes += 1
        return bool(removed)

    async def has(self, key: str) -> bool:
        return bool(await self.client.exists(self._key(key)))

    async def keys(self) -> list[str]:
        prefix = f"{self.namespace}:"
        return [
            key[len(prefix) :]
            async for key in self.client.scan_iter(match=f"{prefix}*")
        ]

    async def size(self) -> int:
        return len(await self.keys())

    async def clear(self) -> None:
        keys = [self._key(k) for k in await self.keys()]
        if keys:
            await self.client.delete(*keys)

    async def cleanup(self) -> int:
        # Redis expires keys natively
        return 0

    async def close(self) -> None:
        await self.client.aclose()

    def get_stats(self) -> CacheStats:
        return self._stats
