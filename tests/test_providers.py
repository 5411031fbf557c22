"""Tests for the signal providers."""

import json
import socket
import ssl
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from phishlens.cache import CacheManager, MemoryCache
from phishlens.exceptions import ProviderError
from phishlens.providers.certificate import TlsCertificateProvider, hostname_matches
from phishlens.providers.content_ai import ContentAnalysisProvider, parse_model_output
from phishlens.providers.domain_age import DomainAgeProvider, age_risk
from phishlens.providers.http import check_response
from phishlens.providers.reputation import SafeBrowsingReputationProvider


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_handler(payload, status_code: int = 200, seen: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)

    return handler


class TestHttpErrors:
    @pytest.mark.parametrize(
        "status,code,retryable",
        [
            (401, "auth", False),
            (403, "auth", False),
            (429, "rate_limit", True),
            (503, "unavailable", True),
            (400, "parsing", False),
        ],
    )
    def test_status_mapping(self, status, code, retryable):
        response = httpx.Response(status, request=httpx.Request("GET", "https://x.test"))

        with pytest.raises(ProviderError) as exc_info:
            check_response(response, "test")

        assert exc_info.value.code == code
        assert exc_info.value.retryable is retryable


class TestReputationProvider:
    @pytest.mark.asyncio
    async def test_clean_url(self):
        seen: list[httpx.Request] = []
        provider = SafeBrowsingReputationProvider(
            api_key="key", client=mock_client(json_handler({}, seen=seen))
        )

        result = await provider.analyze_url("https://example.com/")

        assert result.success
        assert result.data.is_clean
        assert result.data.score == 0
        assert result.data.confidence == 0.95
        body = json.loads(seen[0].content)
        assert body["threatInfo"]["threatEntries"] == [{"url": "https://example.com/"}]
        assert seen[0].url.params["key"] == "key"

    @pytest.mark.asyncio
    async def test_flagged_url_takes_highest_threat(self):
        payload = {
            "matches": [
                {"threatType": "UNWANTED_SOFTWARE", "threat": {"url": "https://bad.test/"}},
                {"threatType": "MALWARE", "threat": {"url": "https://bad.test/"}},
            ]
        }
        provider = SafeBrowsingReputationProvider(
            api_key="key", client=mock_client(json_handler(payload))
        )

        result = await provider.analyze_url("https://bad.test/")

        assert not result.data.is_clean
        assert result.data.score == 90
        assert result.data.risk_level == "high"
        assert len(result.data.threat_matches) == 2

    def test_unknown_threat_type(self):
        analysis = SafeBrowsingReputationProvider.parse_response(
            {"matches": [{"threatType": "SOMETHING_NEW"}]}
        )
        assert analysis.score == 50
        assert analysis.risk_level == "medium"

    @pytest.mark.asyncio
    async def test_missing_api_key_is_auth_failure(self):
        provider = SafeBrowsingReputationProvider(api_key="", client=mock_client(json_handler({})))

        result = await provider.analyze_url("https://example.com/")

        assert not result.success
        assert result.error.code == "auth"

    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable(self):
        provider = SafeBrowsingReputationProvider(
            api_key="key", client=mock_client(json_handler({}, status_code=429))
        )

        result = await provider.analyze_url("https://example.com/")

        assert result.error.code == "rate_limit"
        assert result.error.retryable

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = SafeBrowsingReputationProvider(api_key="key", client=mock_client(handler))

        result = await provider.analyze_url("https://example.com/")

        assert result.error.code == "network"

    @pytest.mark.asyncio
    async def test_results_are_cached(self, clock):
        seen: list[httpx.Request] = []
        cache = CacheManager(MemoryCache(clock=clock), "reputation", clock=clock)
        provider = SafeBrowsingReputationProvider(
            api_key="key", client=mock_client(json_handler({}, seen=seen)), cache=cache
        )

        first = await provider.analyze_url("https://example.com/")
        clock.advance(5)
        second = await provider.analyze_url("https://EXAMPLE.com/")

        assert not first.from_cache
        assert second.from_cache
        assert second.cache_age_ms == pytest.approx(5000)
        assert second.data == first.data
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, clock):
        cache = CacheManager(MemoryCache(clock=clock), "reputation", clock=clock)
        provider = SafeBrowsingReputationProvider(
            api_key="key", client=mock_client(json_handler({}, status_code=500)), cache=cache
        )

        await provider.analyze_url("https://example.com/")

        assert await cache.size() == 0

    @pytest.mark.asyncio
    async def test_clear_cache_for_target(self, clock):
        cache = CacheManager(MemoryCache(clock=clock), "reputation", clock=clock)
        provider = SafeBrowsingReputationProvider(
            api_key="key", client=mock_client(json_handler({})), cache=cache
        )
        await provider.analyze_url("https://a.test/")
        await provider.analyze_url("https://b.test/")

        await provider.clear_cache("https://a.test/")

        assert await cache.keys() == ["https://b.test/"]


class TestDomainAgeProvider:
    def rdap_payload(self, registered: datetime, registrant: str = "Example Corp"):
        return {
            "events": [
                {"eventAction": "registration", "eventDate": registered.isoformat()},
                {"eventAction": "expiration", "eventDate": "2030-01-01T00:00:00Z"},
            ],
            "status": ["client transfer prohibited"],
            "entities": [
                {"roles": ["registrar"], "vcardArray": ["vcard", [["fn", {}, "text", "Registrar Inc"]]]},
                {"roles": ["registrant"], "vcardArray": ["vcard", [["fn", {}, "text", registrant]]]},
            ],
        }

    @pytest.mark.parametrize(
        "days,risk",
        [(None, 0.5), (5, 0.9), (60, 0.7), (200, 0.4), (1000, 0.2), (4000, 0.05)],
    )
    def test_age_risk_bands(self, days, risk):
        assert age_risk(days) == risk

    def test_parse_rdap(self):
        registered = datetime.now(UTC) - timedelta(days=10)
        analysis = DomainAgeProvider.parse_rdap("new.test", self.rdap_payload(registered))

        assert analysis.age_in_days == 10
        assert analysis.score == 0.9
        assert analysis.registrar == "Registrar Inc"
        assert analysis.source == "rdap"
        assert analysis.confidence == 0.85
        assert not analysis.privacy_protected

    def test_privacy_adds_risk(self):
        registered = datetime.now(UTC) - timedelta(days=200)
        analysis = DomainAgeProvider.parse_rdap(
            "hidden.test", self.rdap_payload(registered, registrant="Privacy Service")
        )

        assert analysis.privacy_protected
        assert analysis.score == pytest.approx(0.45)

    def test_parse_whois(self):
        data = {
            "creation_date": [datetime(2001, 5, 1), datetime(2001, 5, 2)],
            "registrar": "Old Registrar",
            "status": "clientHold",
        }
        analysis = DomainAgeProvider.parse_whois("old.test", data)

        assert analysis.age_in_days > 365 * 20
        assert analysis.score == pytest.approx(0.15)
        assert analysis.source == "whois"
        assert analysis.confidence == 0.7

    @pytest.mark.asyncio
    async def test_rdap_lookup(self):
        registered = datetime.now(UTC) - timedelta(days=4000)
        seen: list[httpx.Request] = []
        provider = DomainAgeProvider(
            client=mock_client(json_handler(self.rdap_payload(registered), seen=seen))
        )

        result = await provider.analyze_domain("example.com")

        assert result.success
        assert result.data.score == 0.05
        assert str(seen[0].url) == "https://rdap.verisign.com/com/v1/domain/example.com"

    @pytest.mark.asyncio
    async def test_falls_back_to_whois(self):
        provider = DomainAgeProvider(client=mock_client(json_handler({}, status_code=404)))
        whois_data = {"creation_date": datetime.now(UTC) - timedelta(days=100)}

        with patch.object(provider, "_query_whois", AsyncMock(return_value=whois_data)):
            result = await provider.analyze_domain("example.xyz")

        assert result.success
        assert result.data.source == "whois"
        assert result.data.score == 0.4

    @pytest.mark.asyncio
    async def test_no_data_is_a_failure(self):
        provider = DomainAgeProvider(client=mock_client(json_handler({}, status_code=404)))

        with patch.object(provider, "_query_whois", AsyncMock(return_value=None)):
            result = await provider.analyze_domain("ghost.test")

        assert not result.success
        assert result.error.code == "unavailable"


class TestTlsCertificateProvider:
    @pytest.fixture
    def provider(self):
        return TlsCertificateProvider(timeout=1)

    def cert_info(self, **overrides):
        now = datetime.now(UTC)
        info = {
            "not_before": now - timedelta(days=200),
            "not_after": now + timedelta(days=100),
            "common_name": "example.com",
            "subject_org": "",
            "issuer_cn": "R3",
            "issuer_org": "Let's Encrypt",
            "is_self_signed": False,
            "sans": ["example.com", "*.example.com"],
            "policies": ["2.23.140.1.2.1"],
            "key_type": "RSA",
            "key_size": 2048,
            "signature_algorithm": "sha256",
            "chain_valid": True,
            "protocol_version": "TLSv1.3",
        }
        info.update(overrides)
        return info

    def test_healthy_certificate(self, provider):
        analysis = provider.build_analysis(self.cert_info(), "www.example.com")

        assert analysis.validation.is_valid
        assert analysis.certificate_type == "DV"
        assert analysis.security.encryption_strength == "moderate"
        assert analysis.score == 0
        assert analysis.confidence == 1.0

    def test_expired_certificate(self, provider):
        now = datetime.now(UTC)
        analysis = provider.build_analysis(
            self.cert_info(not_before=now - timedelta(days=400), not_after=now - timedelta(days=1)),
            "example.com",
        )

        assert analysis.validation.is_expired
        assert not analysis.validation.is_valid
        assert analysis.score == 50

    def test_self_signed_mismatch(self, provider):
        analysis = provider.build_analysis(
            self.cert_info(is_self_signed=True, common_name="other.test", sans=[]),
            "example.com",
        )

        assert analysis.certificate_type == "self-signed"
        assert not analysis.validation.domain_match
        # self-signed 35 + mismatch 40
        assert analysis.score == 75
        assert analysis.confidence == 0.8

    def test_chain_verification_ignores_hostname(self):
        context = TlsCertificateProvider.verification_context()

        assert context.check_hostname is False
        assert context.verify_mode == ssl.CERT_REQUIRED

    def test_trusted_certificate_for_other_host(self, provider):
        analysis = provider.build_analysis(
            self.cert_info(common_name="other.test", sans=["other.test"]), "example.com"
        )

        assert analysis.validation.chain_valid
        assert not analysis.validation.domain_match
        # mismatch counted once
        assert analysis.score == 40

    def test_weak_crypto_and_unknown_issuer(self, provider):
        analysis = provider.build_analysis(
            self.cert_info(key_size=1024, issuer_org="Shady CA", issuer_cn="Shady"),
            "example.com",
        )

        assert analysis.security.encryption_strength == "weak"
        assert analysis.score == 25

    def test_new_certificate_adds_risk(self, provider):
        now = datetime.now(UTC)
        analysis = provider.build_analysis(
            self.cert_info(not_before=now - timedelta(days=2)), "example.com"
        )
        assert analysis.score == 10

    @pytest.mark.parametrize(
        "hostname,expected",
        [
            ("example.com", True),
            ("www.example.com", True),
            ("a.b.example.com", False),
            ("example.org", False),
        ],
    )
    def test_hostname_matching(self, hostname, expected):
        assert hostname_matches(hostname, "example.com", ["*.example.com"]) is expected

    @pytest.mark.asyncio
    async def test_analyze_certificate(self, provider):
        with patch.object(
            provider, "_get_certificate", AsyncMock(return_value=self.cert_info())
        ) as get_cert:
            result = await provider.analyze_certificate("example.com", port=8443)

        get_cert.assert_awaited_once_with("example.com", 8443)
        assert result.success
        assert result.data.port == 8443

    @pytest.mark.asyncio
    async def test_dns_failure(self, provider):
        with patch.object(
            provider, "_get_certificate", AsyncMock(side_effect=socket.gaierror("no such host"))
        ):
            result = await provider.analyze_certificate("nowhere.test")

        assert result.error.code == "network"

    @pytest.mark.asyncio
    async def test_handshake_timeout_is_retryable(self, provider):
        with patch.object(provider, "_get_certificate", AsyncMock(side_effect=TimeoutError())):
            result = await provider.analyze_certificate("slow.test")

        assert result.error.code == "timeout"
        assert result.error.retryable


class TestContentAnalysisProvider:
    def completion(self, content: str) -> dict:
        return {"model": "test-model", "choices": [{"message": {"content": content}}]}

    @pytest.mark.asyncio
    async def test_analyze_url(self):
        seen: list[httpx.Request] = []
        answer = json.dumps(
            {
                "risk_score": 85,
                "confidence": 80,
                "scam_category": "phishing",
                "primary_risks": ["brand impersonation"],
                "indicators": ["login path"],
                "explanation": "Looks like a fake bank login.",
            }
        )
        provider = ContentAnalysisProvider(
            api_key="sk-test",
            base_url="https://llm.test/v1/",
            model_name="test-model",
            client=mock_client(json_handler(self.completion(answer), seen=seen)),
        )

        result = await provider.analyze_url(
            "https://bank-login.test/verify", context={"domain": "bank-login.test"}
        )

        assert result.success
        assert result.data.risk_score == 85
        assert result.data.confidence == 80
        assert result.data.scam_category == "phishing"
        assert result.data.model == "test-model"
        assert str(seen[0].url) == "https://llm.test/v1/chat/completions"
        assert seen[0].headers["Authorization"] == "Bearer sk-test"
        body = json.loads(seen[0].content)
        assert "bank-login.test" in body["messages"][0]["content"]

    def test_parse_fenced_output(self):
        result = parse_model_output('```json\n{"risk_score": 150, "confidence": -5, "scam_category": "Shopping"}\n```')

        assert result.risk_score == 100
        assert result.confidence == 0
        assert result.scam_category == "ecommerce"

    @pytest.mark.parametrize("raw,expected", [(0.85, 85), (1, 1), (80, 80), ("high", 50)])
    def test_confidence_read_as_percent(self, raw, expected):
        result = parse_model_output(json.dumps({"risk_score": 10, "confidence": raw}))
        assert result.confidence == pytest.approx(expected)

    def test_unknown_category_maps_to_other(self):
        result = parse_model_output('{"risk_score": 40, "confidence": 50, "scam_category": "lottery"}')
        assert result.scam_category == "other"

    def test_invalid_json(self):
        with pytest.raises(ProviderError) as exc_info:
            parse_model_output("I think this site is fine")
        assert exc_info.value.code == "parsing"

    @pytest.mark.asyncio
    async def test_missing_content_is_parsing_error(self):
        provider = ContentAnalysisProvider(
            api_key="sk-test", client=mock_client(json_handler({"choices": []}))
        )

        result = await provider.analyze_url("https://example.com/")

        assert result.error.code == "parsing"

    @pytest.mark.asyncio
    async def test_cache_ignores_context(self, clock):
        seen: list[httpx.Request] = []
        answer = json.dumps({"risk_score": 5, "confidence": 90, "scam_category": "legitimate"})
        provider = ContentAnalysisProvider(
            api_key="sk-test",
            client=mock_client(json_handler(self.completion(answer), seen=seen)),
            cache=CacheManager(MemoryCache(clock=clock), "ai", clock=clock),
        )

        await provider.analyze_url("https://example.com/", context={"path_depth": 0})
        second = await provider.analyze_url("https://example.com/", context={"path_depth": 1})

        assert second.from_cache
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_detected_patterns_join_indicators(self):
        seen: list[httpx.Request] = []
        answer = json.dumps(
            {
                "risk_score": 90,
                "confidence": 85,
                "scam_category": "phishing",
                "indicators": ["login path", "typosquatting"],
            }
        )
        provider = ContentAnalysisProvider(
            api_key="sk-test",
            client=mock_client(json_handler(self.completion(answer), seen=seen)),
        )

        result = await provider.analyze_url("https://paypal-secure.tk/signin.php")

        assert result.data.indicators == [
            "login path",
            "typosquatting",
            "suspicious_tld",
            "phishing_patterns",
            "brand_impersonation:paypal",
            "suspicious_tld:.tk",
        ]
        prompt = json.loads(seen[0].content)["messages"][0]["content"]
        assert "possible impersonation of paypal" in prompt
        assert "suspicious score 100/100" in prompt

    @pytest.mark.asyncio
    async def test_context_pattern_analysis_is_used(self):
        answer = json.dumps({"risk_score": 70, "confidence": 60, "indicators": []})
        provider = ContentAnalysisProvider(
            api_key="sk-test", client=mock_client(json_handler(self.completion(answer)))
        )
        patterns = {"suspicious_score": 40, "detected_patterns": ["homograph_attack"]}

        result = await provider.analyze_url(
            "https://example.com/", context={"pattern_analysis": patterns}
        )

        assert result.data.indicators == ["homograph_attack"]
