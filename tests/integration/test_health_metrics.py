"""Integration tests for /health, /healthz and /metrics endpoints."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY
from prometheus_client.parser import text_string_to_metric_families
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from backend.app.config import Settings
from backend.app.main import create_app
from backend.app.utils.metrics import PrometheusChatMetrics


@pytest.fixture
def client(api_client: TestClient) -> TestClient:
    return api_client


class TestHealthEndpoint:
    """Test /health and /healthz endpoints."""

    def test_health_always_ok(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    @patch("backend.app.api.routes.health.check_db", new_callable=AsyncMock)
    def test_healthz_returns_200_when_db_ok(
        self, mock_check_db: AsyncMock, client: TestClient
    ) -> None:
        """Test /healthz returns 200 and reports the warmed document cache."""
        mock_check_db.return_value = (True, "ok")

        response = client.get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["components"]["db"] == "ok"
        assert data["components"]["document_cache"] == "loaded"

    @patch("backend.app.api.routes.health.check_db", new_callable=AsyncMock)
    def test_healthz_returns_503_when_db_fails(
        self, mock_check_db: AsyncMock, client: TestClient
    ) -> None:
        mock_check_db.return_value = (False, "error: OperationalError")

        response = client.get("/healthz")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["components"]["db"] == "error: OperationalError"

    def test_healthz_checks_real_database(self, chat_settings: Settings) -> None:
        """Without the lifespan there is no document cache, but the DB still answers."""
        app = create_app(chat_settings)
        app.state.engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=NullPool)

        response = TestClient(app).get("/healthz")

        assert response.status_code == 200
        assert response.json()["components"] == {
            "db": "ok",
            "document_cache": "not_configured",
        }


class TestMetricsEndpoint:
    """Test /metrics endpoint."""

    def test_metrics_returns_prometheus_format(self, client: TestClient) -> None:
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "text/plain" in response.headers["content-type"]
        assert "# HELP" in response.text

    def test_metrics_includes_chat_metrics(self, client: TestClient) -> None:
        """Counters recorded through PrometheusChatMetrics show up in the scrape."""
        metrics = PrometheusChatMetrics()
        metrics.inc_request("guest", "answered")
        metrics.record_llm_latency("generate", 120.0)
        metrics.observe_retrieved_chunks(4)
        metrics.inc_cache_refresh("success")
        metrics.set_guest_sessions(2)

        text = client.get("/metrics").text

        assert "chat_requests_total" in text
        assert "llm_latency_ms" in text
        assert "retrieved_chunks" in text
        assert "document_cache_refresh_total" in text
        assert "guest_sessions" in text

    def test_chat_request_is_counted(self, client: TestClient) -> None:
        labels = {"path": "guest", "outcome": "greeting"}
        before = REGISTRY.get_sample_value("chat_requests_total", labels) or 0.0

        client.post(
            "/api/v1/chatbot/chat", json={"message": "xin chào"}, headers={"X-Guest-ID": "g1"}
        )

        assert REGISTRY.get_sample_value("chat_requests_total", labels) == before + 1
        families = text_string_to_metric_families(client.get("/metrics").text)
        samples = {sample.name for family in families for sample in family.samples}
        assert "chat_requests_total" in samples

    def test_metrics_can_be_scraped_multiple_times(self, client: TestClient) -> None:
        response1 = client.get("/metrics")
        response2 = client.get("/metrics")

        assert response1.status_code == 200
        assert response2.status_code == 200


class TestRootEndpoint:
    """Test root endpoint."""

    def test_root_returns_api_info(self, client: TestClient) -> None:
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Traffic Law Assistant API"
        assert data["version"] == "0.1.0"
