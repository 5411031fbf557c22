"""Protocol definition for signal cache backends."""

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class CacheEntry:
    """A stored value with expiry and access bookkeeping."""

    value: Any
    expires_at: float | None  # epoch seconds, None = never
    created_at: float
    size: int  # approximate bytes
    access_count: int = 0
    last_accessed: float = 0.0

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


@dataclass
class CacheStats:
    """Hit/miss accounting for a cache or cache manager."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0
    errors: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hit_rate, 4),
            "sets": self.sets,
            "deletes": self.deletes,
            "evictions": self.evictions,
            "errors": self.errors,
            **self.extra,
        }


@runtime_checkable
class CacheBackend(Protocol):
    """Protocol that all cache backends must implement.

    TTLs are in seconds. A TTL of ``None`` means the backend default.
    """

    async def get(self, key: str) -> Any | None:
        """Return the stored value or None on miss/expiry."""
        ...

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value."""
        ...

    async def delete(self, key: str) -> bool:
        """Remove a key, returning whether it existed."""
        ...

    async def has(self, key: str) -> bool:
        """Check for a live (non-expired) key."""
        ...

    async def clear(self) -> None:
        """Drop every entry."""
        ...

    async def size(self) -> int:
        """Number of stored entries."""
        ...

    async def keys(self) -> list[str]:
        """All stored keys."""
        ...

    async def cleanup(self) -> int:
        """Purge expired entries, returning how many were removed."""
        ...

    def get_stats(self) -> CacheStats:
        """Backend-level statistics."""
        ...
