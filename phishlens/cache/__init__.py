"""Signal cache backends and manager."""

from phishlens.cache.manager import CacheManager
from phishlens.cache.memory import MemoryCache
from phishlens.cache.noop import NoOpCache
from phishlens.cache.protocol import CacheBackend, CacheEntry, CacheStats
from phishlens.cache.redis_cache import RedisCache

__all__ = [
    "CacheBackend",
    "CacheEntry",
    "CacheManager",
    "CacheStats",
    "MemoryCache",
    "NoOpCache",
    "RedisCache",
]


def create_backend(settings) -> CacheBackend:
    """Build the cache backend selected by ``settings.cache_backend``."""
    if settings.cache_backend == "none":
        return NoOpCache()
    if settings.cache_backend == "redis":
        return RedisCache.from_url(settings.redis_url)
    return MemoryCache(
        max_memory_bytes=settings.cache_max_memory_mb * 1024 * 1024,
        eviction_threshold=settings.cache_eviction_threshold,
    )
