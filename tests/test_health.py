"""
Tests for health, metrics and root endpoints
"""

from fastapi.testclient import TestClient

from app.core.health_checks import HealthChecker
from app.services.model_cache import InMemoryModelCache


class TestHealthEndpoints:
    def test_basic_health(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "contractflow-api"

    def test_detailed_health(self, client: TestClient):
        response = client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["overall_status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["model_cache"]["backend"] == "memory"
        assert data["checks"]["escalation_monitor"]["status"] == "disabled"

    def test_metrics_exposed(self, client: TestClient):
        client.get("/health")
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")

    def test_root(self, client: TestClient):
        response = client.get("/")
        assert response.json()["docs"] == "/docs"


class TestHealthChecker:
    def test_unconfigured_cache(self, db_session):
        checker = HealthChecker()
        result = checker.perform_comprehensive_health_check(db_session)

        assert result["checks"]["model_cache"]["status"] == "not_configured"
        assert result["overall_status"] == "healthy"

    def test_ai_provider_reports_breaker(self):
        checker = HealthChecker(model_cache=InMemoryModelCache())
        result = checker.check_ai_provider()

        assert result["status"] == "configured"
        assert result["provider"] == "lm-studio"
