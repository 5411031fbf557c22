"""Domain registration age via RDAP, with WHOIS as fallback."""

import asyncio
import logging
from datetime import UTC, date, datetime
from typing import Any

import httpx
import whois

from phishlens.cache.manager import CacheManager
from phishlens.config import settings
from phishlens.exceptions import ProviderError
from phishlens.providers.http import create_client, request_json
from phishlens.providers.models import DomainAgeAnalysis
from phishlens.providers.protocol import BaseProvider, SignalResult

logger = logging.getLogger(__name__)

# RDAP servers for common TLDs; anything else goes through the rdap.org bootstrap
RDAP_SERVERS = {
    "com": "https://rdap.verisign.com/com/v1/",
    "net": "https://rdap.verisign.com/net/v1/",
    "org": "https://rdap.publicinterestregistry.org/rdap/",
    "info": "https://rdap.afilias.info/rdap/v1/",
    "biz": "https://rdap.afilias.info/rdap/v1/",
}
RDAP_BOOTSTRAP = "https://rdap.org/"

PRIVACY_KEYWORDS = ("privacy", "private", "redacted", "whoisguard", "proxy")

# (max age in days, risk on 0-1)
AGE_RISK_BANDS = [
    (30, 0.9),
    (90, 0.7),
    (365, 0.4),
    (1825, 0.2),
]
ESTABLISHED_RISK = 0.05
UNKNOWN_AGE_RISK = 0.5


def age_risk(age_in_days: int | None) -> float:
    """Risk on 0-1 for a domain of the given age."""
    if age_in_days is None:
        return UNKNOWN_AGE_RISK
    for max_age, risk in AGE_RISK_BANDS:
        if age_in_days < max_age:
            return risk
    return ESTABLISHED_RISK


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


class DomainAgeProvider(BaseProvider[DomainAgeAnalysis]):
    """
    Looks up when a domain was registered.

    RDAP is queried first. When it has no answer python-whois is tried in
    a worker thread. A domain with no registration date at all is reported
    as a failure rather than guessed.
    """

    model = DomainAgeAnalysis

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        cache: CacheManager | None = None,
        cache_ttl: float | None = None,
    ):
        super().__init__(cache=cache, cache_ttl=cache_ttl or settings.whois_cache_ttl)
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "whois"

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = create_client(settings.whois_timeout)
        return self._client

    async def analyze_domain(self, domain: str) -> SignalResult[DomainAgeAnalysis]:
        return await self.analyze(domain)

    async def _fetch(self, target: str, **options: Any) -> DomainAgeAnalysis:
        domain = target.lower().strip(".")

        rdap_data = await self._query_rdap(domain)
        if rdap_data:
            analysis = self.parse_rdap(domain, rdap_data)
            if analysis.age_in_days is not None:
                return analysis

        whois_data = await self._query_whois(domain)
        if whois_data:
            return self.parse_whois(domain, whois_data)

        raise ProviderError(f"No registration data for {domain}", code="unavailable")

    async def _query_rdap(self, domain: str) -> dict[str, Any] | None:
        tld = domain.rsplit(".", 1)[-1]
        server = RDAP_SERVERS.get(tld, RDAP_BOOTSTRAP)
        try:
            data = await request_json(
                self.client,
                "GET",
                f"{server}domain/{domain}",
                "rdap",
                headers={"Accept": "application/rdap+json, application/json"},
            )
        except ProviderError as e:
            logger.debug(f"RDAP query failed for {domain}: {e}")
            return None
        return data if isinstance(data, dict) else None

    async def _query_whois(self, domain: str) -> dict[str, Any] | None:
        def _lookup() -> dict[str, Any] | None:
            record = whois.whois(domain)
            fields = ("creation_date", "expiration_date", "registrar", "status", "name", "org")
            data = {key: record.get(key) for key in fields if record.get(key)}
            return data or None

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, _lookup)
        except Exception as e:
            logger.debug(f"WHOIS query failed for {domain}: {e}")
            return None

    @staticmethod
    def _build(
        domain: str,
        created: datetime | None,
        expires: datetime | None,
        registrar: str | None,
        statuses: list[str],
        privacy: bool,
        source: str,
        confidence: float,
    ) -> DomainAgeAnalysis:
        age_in_days = (datetime.now(UTC) - created).days if created else None
        risk = age_risk(age_in_days)
        if privacy:
            risk += 0.05
        if any("hold" in s.lower() for s in statuses):
            risk += 0.1

        return DomainAgeAnalysis(
            domain=domain,
            age_in_days=age_in_days,
            registration_date=created,
            expiration_date=expires,
            registrar=registrar,
            privacy_protected=privacy,
            statuses=statuses,
            source=source,
            score=min(1.0, risk),
            confidence=confidence if created else confidence / 2,
        )

    @classmethod
    def parse_rdap(cls, domain: str, data: dict[str, Any]) -> DomainAgeAnalysis:
        events = {e.get("eventAction"): e.get("eventDate") for e in data.get("events", [])}
        statuses = [str(s) for s in data.get("status", [])]

        registrar = None
        privacy = False
        for entity in data.get("entities", []):
            vcard = entity.get("vcardArray", [None, []])
            entries = vcard[1] if len(vcard) > 1 else []
            names = [e[3] for e in entries if len(e) > 3 and e[0] == "fn"]
            if "registrar" in entity.get("roles", []) and names:
                registrar = str(names[0])
            if "registrant" in entity.get("roles", []):
                privacy = any(
                    k in str(n).lower() for n in names for k in PRIVACY_KEYWORDS
                ) or privacy
        privacy = privacy or any("redacted" in s.lower() for s in statuses)

        return cls._build(
            domain,
            _as_datetime(events.get("registration")),
            _as_datetime(events.get("expiration")),
            registrar,
            statuses,
            privacy,
            source="rdap",
            confidence=0.85,
        )

    @classmethod
    def parse_whois(cls, domain: str, data: dict[str, Any]) -> DomainAgeAnalysis:
        statuses = data.get("status") or []
        if isinstance(statuses, str):
            statuses = [statuses]
        registrant = f"{data.get('name') or ''} {data.get('org') or ''}".lower()
        registrar = data.get("registrar")

        return cls._build(
            domain,
            _as_datetime(data.get("creation_date")),
            _as_datetime(data.get("expiration_date")),
            str(registrar) if registrar else None,
            [str(s) for s in statuses],
            any(k in registrant for k in PRIVACY_KEYWORDS),
            source="whois",
            confidence=0.7,
        )

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
