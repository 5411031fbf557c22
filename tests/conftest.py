"""Pytest configuration and shared fixtures."""

import asyncio
import os
from datetime import UTC, datetime, timedelta

import pytest

# Set test environment before importing app modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("SAFE_BROWSING_API_KEY", "")
os.environ.setdefault("AI_API_KEY", "")

from phishlens.exceptions import ProviderError  # noqa: E402
from phishlens.providers.models import (  # noqa: E402
    AIAnalysisResult,
    CertificateSecurity,
    CertificateValidation,
    DomainAgeAnalysis,
    ReputationAnalysis,
    SSLCertificateAnalysis,
    ThreatMatch,
)
from phishlens.providers.protocol import ErrorInfo, SignalResult  # noqa: E402


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """
    Stand-in for any signal provider.

    ``result`` is returned from every call; ``delay`` seconds are slept
    first. A list of results is consumed one per call. An exception
    instance is raised instead of returned.
    """

    def __init__(self, result=None, delay: float = 0.0):
        self.result = result
        self.delay = delay
        self.calls: list[tuple[tuple, dict]] = []
        self.cleared: list[tuple[tuple, dict]] = []
        self.closed = False

    async def _respond(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.result
        if isinstance(result, list):
            result = result.pop(0) if len(result) > 1 else result[0]
        if isinstance(result, BaseException):
            raise result
        return result

    async def analyze_url(self, url, context=None):
        if context is None:
            return await self._respond(url)
        return await self._respond(url, context=context)

    async def analyze_domain(self, domain):
        return await self._respond(domain)

    async def analyze_certificate(self, domain, port=443):
        return await self._respond(domain, port=port)

    async def clear_cache(self, target=None, **options):
        self.cleared.append(((target,), options))

    async def aclose(self):
        self.closed = True


def reputation_signal(
    score: float = 0, threat_type: str = "SOCIAL_ENGINEERING", **kwargs
) -> SignalResult[ReputationAnalysis]:
    matches = [] if score == 0 else [ThreatMatch(threat_type=threat_type)]
    return SignalResult.ok(
        ReputationAnalysis(
            is_clean=score == 0,
            threat_matches=matches,
            score=score,
            risk_level="low" if score < 30 else "high",
            confidence=0.95 if score == 0 else 0.98,
        ),
        processing_time_ms=kwargs.pop("processing_time_ms", 100),
        **kwargs,
    )


def domain_age_signal(
    score: float = 0.05, age_in_days: int | None = 5000, **kwargs
) -> SignalResult[DomainAgeAnalysis]:
    return SignalResult.ok(
        DomainAgeAnalysis(
            domain="example.com",
            age_in_days=age_in_days,
            registration_date=datetime.now(UTC) - timedelta(days=age_in_days or 0),
            score=score,
            confidence=0.85,
        ),
        processing_time_ms=kwargs.pop("processing_time_ms", 200),
        **kwargs,
    )


def ssl_signal(
    score: float = 10, valid: bool = True, expired: bool = False, **kwargs
) -> SignalResult[SSLCertificateAnalysis]:
    """A DV certificate, self-signed when not ``valid``, past its expiry when ``expired``."""
    return SignalResult.ok(
        SSLCertificateAnalysis(
            domain="example.com",
            certificate_type="DV" if valid else "self-signed",
            days_until_expiry=-1 if expired else 60,
            certificate_age_days=300,
            validation=CertificateValidation(
                is_valid=valid and not expired,
                is_expired=expired,
                is_self_signed=not valid,
                chain_valid=valid,
            ),
            security=CertificateSecurity(encryption_strength="moderate", key_size=2048),
            score=score,
            confidence=(0.9 if expired else 1.0) if valid else 0.8,
        ),
        processing_time_ms=kwargs.pop("processing_time_ms", 300),
        **kwargs,
    )


def ai_signal(
    risk_score: float | None = 8, confidence: float = 90, category: str = "legitimate", **kwargs
) -> SignalResult[AIAnalysisResult]:
    return SignalResult.ok(
        AIAnalysisResult(
            risk_score=risk_score,
            confidence=confidence,
            scam_category=category,
            explanation="test",
        ),
        processing_time_ms=kwargs.pop("processing_time_ms", 1500),
        **kwargs,
    )


def failed_signal(code: str = "network", retryable: bool = False) -> SignalResult:
    return SignalResult.fail(ErrorInfo(code, f"{code} failure", retryable))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def good_signals() -> dict[str, SignalResult]:
    """Signals for a well established, clean site."""
    return {
        "reputation": reputation_signal(0),
        "whois": domain_age_signal(0.05),
        "ssl": ssl_signal(10),
        "ai": ai_signal(8),
    }


@pytest.fixture
def bad_signals() -> dict[str, SignalResult]:
    """Signals for a freshly registered phishing site."""
    return {
        "reputation": reputation_signal(85),
        "whois": domain_age_signal(0.9, age_in_days=3),
        "ssl": ssl_signal(75, valid=False),
        "ai": ai_signal(92, category="phishing"),
    }


@pytest.fixture
def provider_error() -> ProviderError:
    return ProviderError("upstream down", code="unavailable", retryable=True)
