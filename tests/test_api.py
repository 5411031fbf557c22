"""Tests for API endpoints."""

import pytest
from conftest import FakeProvider, failed_signal
from fastapi.testclient import TestClient

from phishlens.api.dependencies import get_orchestrator
from phishlens.api.main import app
from phishlens.orchestration.orchestrator import (
    AnalysisOrchestrator,
    OrchestrationConfig,
    SignalProviders,
)


@pytest.fixture
def orchestrator(good_signals):
    providers = SignalProviders(**{key: FakeProvider(signal) for key, signal in good_signals.items()})
    return AnalysisOrchestrator(providers, OrchestrationConfig(retry_wait_ms=0))


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    def test_simple_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "timestamp" in data

    def test_metrics_endpoint(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text


class TestAnalyzeEndpoint:
    """Tests for URL analysis endpoint."""

    def test_analyze_clean_url(self, client):
        response = client.post("/api/v1/analyze", json={"url": "https://example.com/"})

        assert response.status_code == 200
        data = response.json()
        assert data["final_score"] == pytest.approx(95.55)
        assert data["risk_level"] == "low"
        assert data["confidence_level"] == "high"
        assert data["fallback"] is False
        assert data["normalized_url"] == "https://example.com/"
        assert len(data["risk_factors"]) == 4
        assert data["service_results"]["reputation"]["success"] is True
        assert data["orchestration_metrics"]["final_state"] == "done"

    def test_invalid_url_rejected(self, client, orchestrator):
        response = client.post("/api/v1/analyze", json={"url": "javascript:alert(1)"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == 400
        assert error["type"] == "validation_error"
        assert "security-risk" in error["message"]
        assert orchestrator.get_statistics()["total_analyses"] == 0

    def test_missing_url_field(self, client):
        response = client.post("/api/v1/analyze", json={})

        assert response.status_code == 422
        assert response.json()["error"]["type"] == "validation_error"

    def test_fallback_is_flagged(self, good_signals):
        providers = SignalProviders(
            reputation=FakeProvider(good_signals["reputation"]),
            whois=FakeProvider(failed_signal()),
        )
        degraded = AnalysisOrchestrator(providers, OrchestrationConfig(retry_wait_ms=0))
        app.dependency_overrides[get_orchestrator] = lambda: degraded
        try:
            response = TestClient(app).post(
                "/api/v1/analyze", json={"url": "https://example.com/"}
            )
        finally:
            app.dependency_overrides.clear()

        data = response.json()
        assert data["fallback"] is True
        assert data["final_score"] == 50
        assert data["risk_level"] == "medium"


class TestStatisticsEndpoints:
    def test_statistics(self, client):
        client.post("/api/v1/analyze", json={"url": "https://example.com/"})

        response = client.get("/api/v1/statistics")

        assert response.status_code == 200
        data = response.json()
        assert data["orchestration"]["total_analyses"] == 1
        assert data["scoring"]["total_calculations"] == 1

    def test_update_configuration(self, client, orchestrator):
        response = client.put(
            "/api/v1/configuration",
            json={"settings": {"service_timeout_ms": 2000}, "scoring": {"thresholds": {"safe_min": 80}}},
        )

        assert response.status_code == 200
        assert response.json()["scoring"]["thresholds"]["safe_min"] == 80
        assert orchestrator.config.service_timeout_ms == 2000

    def test_invalid_configuration_rejected(self, client):
        response = client.put(
            "/api/v1/configuration",
            json={"scoring": {"weights": {"reputation": 0.9}}},
        )

        assert response.status_code == 422
        assert response.json()["error"]["message"]["errors"]

    def test_clear_history_and_cache(self, client, orchestrator):
        client.post("/api/v1/analyze", json={"url": "https://example.com/"})

        assert client.delete("/api/v1/history").status_code == 204
        assert client.delete("/api/v1/cache").status_code == 204
        assert orchestrator.get_statistics()["total_analyses"] == 0
        assert orchestrator.providers.reputation.cleared == [((None,), {})]
