"""URL reputation lookup against Google Safe Browsing."""

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from phishlens import __version__
from phishlens.cache.manager import CacheManager
from phishlens.config import settings
from phishlens.exceptions import ProviderError
from phishlens.providers.http import create_client, request_json
from phishlens.providers.models import ReputationAnalysis, ThreatMatch
from phishlens.providers.protocol import BaseProvider, SignalResult

logger = logging.getLogger(__name__)

SAFE_BROWSING_URL = "https://safebrowsing.googleapis.com/v4/threatMatches:find"

THREAT_SCORES: dict[str, float] = {
    "MALWARE": 90,
    "SOCIAL_ENGINEERING": 85,
    "UNWANTED_SOFTWARE": 70,
    "POTENTIALLY_HARMFUL_APPLICATION": 60,
}
UNKNOWN_THREAT_SCORE = 50


def risk_level_for(score: float) -> str:
    if score >= 70:
        return "high"
    if score >= 30:
        return "medium"
    return "low"


class SafeBrowsingReputationProvider(BaseProvider[ReputationAnalysis]):
    """
    Checks a URL against Safe Browsing threat lists.

    A clean URL scores 0. A flagged URL scores the highest risk among its
    matched threat types.
    """

    model = ReputationAnalysis

    def __init__(
        self,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        cache: CacheManager | None = None,
        cache_ttl: float | None = None,
    ):
        super().__init__(cache=cache, cache_ttl=cache_ttl or settings.reputation_cache_ttl)
        self.api_key = api_key if api_key is not None else settings.safe_browsing_api_key
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "reputation"

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = create_client(settings.reputation_timeout)
        return self._client

    async def analyze_url(self, url: str) -> SignalResult[ReputationAnalysis]:
        return await self.analyze(url)

    def _payload(self, url: str) -> dict[str, Any]:
        return {
            "client": {"clientId": "phishlens", "clientVersion": __version__},
            "threatInfo": {
                "threatTypes": list(THREAT_SCORES),
                "platformTypes": ["ANY_PLATFORM"],
                "threatEntryTypes": ["URL"],
                "threatEntries": [{"url": url}],
            },
        }

    async def _fetch(self, target: str, **options: Any) -> ReputationAnalysis:
        if not self.api_key:
            raise ProviderError("Safe Browsing API key is not configured", code="auth")

        data = await request_json(
            self.client,
            "POST",
            SAFE_BROWSING_URL,
            "safe_browsing",
            params={"key": self.api_key},
            json=self._payload(target),
        )
        if not isinstance(data, dict):
            raise ProviderError("safe_browsing: unexpected response shape", code="parsing")

        return self.parse_response(data)

    @staticmethod
    def parse_response(data: dict[str, Any]) -> ReputationAnalysis:
        matches = [
            ThreatMatch(
                threat_type=m.get("threatType", "THREAT_TYPE_UNSPECIFIED"),
                platform_type=m.get("platformType", "ANY_PLATFORM"),
                threat_entry_type=m.get("threatEntryType", "URL"),
                url=(m.get("threat") or {}).get("url"),
            )
            for m in data.get("matches", [])
        ]

        if not matches:
            return ReputationAnalysis(
                is_clean=True,
                score=0,
                risk_level="low",
                confidence=0.95,
                checked_at=datetime.now(UTC),
            )

        score = max(THREAT_SCORES.get(m.threat_type, UNKNOWN_THREAT_SCORE) for m in matches)
        logger.info(f"Safe Browsing flagged URL with {len(matches)} match(es)")
        return ReputationAnalysis(
            is_clean=False,
            threat_matches=matches,
            score=score,
            risk_level=risk_level_for(score),
            confidence=0.98,
            checked_at=datetime.now(UTC),
        )

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
