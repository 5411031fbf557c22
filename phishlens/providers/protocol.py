"""Result envelope and base class for signal providers."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from phishlens.cache.manager import CacheManager
from phishlens.exceptions import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class ErrorInfo:
    """Structured description of a provider failure."""

    code: str
    message: str
    retryable: bool = False

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorInfo":
        if isinstance(exc, ProviderError):
            return cls(code=exc.code, message=str(exc), retryable=exc.retryable)
        if isinstance(exc, TimeoutError):
            return cls(code="timeout", message="Service timed out", retryable=True)
        return cls(code="unknown", message=f"{type(exc).__name__}: {exc}")


@dataclass(frozen=True)
class SignalResult(Generic[T]):
    """Outcome of a single provider invocation."""

    success: bool
    data: T | None = None
    error: ErrorInfo | None = None
    from_cache: bool = False
    processing_time_ms: float = 0.0
    cache_age_ms: float | None = None
    error_count: int = 0

    @classmethod
    def ok(
        cls,
        data: T,
        processing_time_ms: float = 0.0,
        from_cache: bool = False,
        cache_age_ms: float | None = None,
        error_count: int = 0,
    ) -> "SignalResult[T]":
        return cls(
            success=True,
            data=data,
            from_cache=from_cache,
            processing_time_ms=processing_time_ms,
            cache_age_ms=cache_age_ms if from_cache else None,
            error_count=error_count,
        )

    @classmethod
    def fail(
        cls, error: ErrorInfo, processing_time_ms: float = 0.0, error_count: int = 1
    ) -> "SignalResult[T]":
        return cls(
            success=False,
            error=error,
            processing_time_ms=processing_time_ms,
            error_count=error_count,
        )

    @property
    def available(self) -> bool:
        return self.success and self.data is not None


class BaseProvider(ABC, Generic[M]):
    """
    Abstract base class for signal providers.

    Subclasses implement ``_fetch`` and raise ``ProviderError`` on failure.
    ``analyze`` adds caching and timing and converts every failure into a
    failed ``SignalResult``; it never raises.
    """

    #: pydantic model produced by this provider, used to revive cached data
    model: type[M]

    def __init__(self, cache: CacheManager | None = None, cache_ttl: float | None = None):
        self.cache = cache
        self.cache_ttl = cache_ttl

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for identification."""
        pass

    @property
    def version(self) -> str:
        return "1.0.0"

    @abstractmethod
    async def _fetch(self, target: str, **options: Any) -> M:
        """Query the external source for one target."""
        pass

    def cache_key(self, target: str, **options: Any) -> str:
        suffix = ":".join(f"{k}={v}" for k, v in sorted(options.items()) if v is not None)
        return f"{target.lower()}:{suffix}" if suffix else target.lower()

    async def analyze(self, target: str, **options: Any) -> SignalResult[M]:
        start_time = time.perf_counter()
        key = self.cache_key(target, **options)

        if self.cache is not None:
            cached = await self.cache.get_with_age(key)
            if cached is not None:
                value, age_ms = cached
                try:
                    data = self.model.model_validate(value)
                except PydanticValidationError:
                    logger.warning(f"{self.name}: discarding unreadable cached entry {key}")
                    await self.cache.delete(key)
                else:
                    return SignalResult.ok(
                        data,
                        processing_time_ms=(time.perf_counter() - start_time) * 1000,
                        from_cache=True,
                        cache_age_ms=age_ms,
                    )

        try:
            data = await self._fetch(target, **options)
        except Exception as e:
            elapsed = (time.perf_counter() - start_time) * 1000
            logger.warning(f"{self.name} failed for {target}: {type(e).__name__}: {e}")
            return SignalResult.fail(ErrorInfo.from_exception(e), processing_time_ms=elapsed)

        if self.cache is not None:
            await self.cache.set(key, data.model_dump(mode="json"), self.cache_ttl)

        return SignalResult.ok(
            data, processing_time_ms=(time.perf_counter() - start_time) * 1000
        )

    async def clear_cache(self, target: str | None = None, **options: Any) -> None:
        """Drop one cached target, or the whole provider cache."""
        if self.cache is None:
            return
        if target is None:
            await self.cache.clear()
        else:
            await self.cache.delete(self.cache_key(target, **options))

    async def aclose(self) -> None:
        return None
