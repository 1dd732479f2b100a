"""
Unit tests for the Render service HTTP surface.
"""

import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import ServiceConfig
from shared.errors import RenderTimeoutError
from service_renderer.app.caching.keys import derive_cache_key
from service_renderer.app.caching.redis_store import RedisCacheStore
from service_renderer.app.caching.store import InMemoryCacheStore
from service_renderer.app.main import RendererService, create_app
from service_renderer.app.notifications.slack import SlackNotifier
from service_renderer.app.rendering.renderer import PlaywrightRenderer
from service_renderer.testing import ManualClock, RecordingNotifier, StubRenderer


URL = "https://example.com"
GENERIC_ERROR = {
    "trace_id": None,
    "code": "INTERNAL_ERROR",
    "message": "Internal server error",
    "details": {},
}


class TestRendererService:
    """Test cases for RendererService."""

    @pytest.fixture
    def config(self):
        return ServiceConfig(store_backend="memory", env="test", cors_origins="https://app.example.com")

    @pytest.fixture
    def clock(self):
        return ManualClock()

    @pytest.fixture
    def store(self):
        return InMemoryCacheStore()

    @pytest.fixture
    def renderer(self):
        return StubRenderer("<html><body>hello</body></html>")

    @pytest.fixture
    def notifier(self):
        return RecordingNotifier()

    @pytest.fixture
    def service(self, config, store, renderer, notifier, clock):
        return RendererService(config, store=store, renderer=renderer, notifier=notifier, clock=clock)

    @pytest.fixture
    def client(self, service):
        return TestClient(service.app)

    def test_service_initialization(self, service, store, renderer):
        assert service.service_name == "renderer"
        assert service.port == 8080
        assert service.store is store
        assert service.pipeline.store is store
        assert service.pipeline.renderer is renderer
        assert service.pipeline.render_timeout == 9.0
        assert service.pipeline.request_deadline == 10.0
        assert service.pipeline.default_ttl == timedelta(minutes=5)

    def test_default_components(self):
        service = RendererService(ServiceConfig(env="test"))
        assert isinstance(service.store, RedisCacheStore)
        assert isinstance(service.renderer, PlaywrightRenderer)
        assert isinstance(service.notifier, SlackNotifier)

    def test_memory_backend(self):
        service = RendererService(ServiceConfig(env="test", store_backend="memory"))
        assert isinstance(service.store, InMemoryCacheStore)

    def test_ping(self, client):
        response = client.get("/ping")
        assert response.status_code == 200
        assert response.json() == "pong"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "renderer"
        assert data["status"] == "ok"
        assert data["dependencies"] == {"store": "ok"}

    def test_health_degraded_when_store_down(self, client, store):
        with patch.object(store, 'health_check', new_callable=AsyncMock) as mock_health:
            mock_health.return_value = False
            response = client.get("/health")

        assert response.json()["status"] == "degraded"
        assert response.json()["dependencies"]["store"] == "error"

    def test_render_cold_cache(self, client, renderer):
        response = client.get("/api/v1/html", params={"url": URL})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "OK"
        assert body["data"]["key"] == derive_cache_key({"url": URL})
        assert body["data"]["url"] == URL
        assert body["data"]["html"] == "<html><body>hello</body></html>"
        assert body["data"]["timestamp"].startswith("2024-01-01T12:00:00")
        assert renderer.call_count == 1

    def test_render_warm_cache(self, client, renderer, clock):
        first = client.get("/api/v1/html", params={"url": URL}).json()
        clock.advance(minutes=2)

        second = client.get("/api/v1/html", params={"url": URL}).json()

        assert second == first
        assert renderer.call_count == 1

    def test_ttl_query_parameter(self, client, renderer, clock):
        client.get("/api/v1/html", params={"url": URL})
        clock.advance(minutes=2)

        client.get("/api/v1/html", params={"url": URL, "ttl": "60000"})

        assert renderer.call_count == 2

    def test_cache_ttl_alias(self, client, renderer, clock):
        client.get("/api/v1/html", params={"url": URL})
        clock.advance(minutes=2)

        client.get("/api/v1/html", params={"url": URL, "cacheTTL": "60000"})

        assert renderer.call_count == 2

    def test_post_body(self, client, renderer):
        response = client.post("/api/v1/html", json={"url": URL, "ttl": 1000})

        assert response.status_code == 200
        assert response.json()["data"]["url"] == URL
        assert renderer.call_count == 1

    def test_oversized_ttl_uses_default(self, client, renderer, clock):
        client.post("/api/v1/html", json={"url": URL})
        clock.advance(minutes=4)

        response = client.post("/api/v1/html", json={"url": URL, "ttl": int("9" * 400)})

        assert response.status_code == 200
        assert response.json()["status"] == "OK"
        assert renderer.call_count == 1

    def test_missing_url_is_generic_failure(self, client, renderer, notifier):
        response = client.get("/api/v1/html")

        assert response.status_code == 500
        assert response.json() == GENERIC_ERROR
        assert renderer.call_count == 0
        assert notifier.dispatched == [{
            "method": "GET",
            "path": "/api/v1/html",
            "payload": {},
            "error": "Missing url",
        }]

    def test_malformed_post_body(self, client, renderer):
        response = client.post(
            "/api/v1/html", content=b"{url:", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 500
        assert response.json() == GENERIC_ERROR
        assert renderer.call_count == 0

    def test_render_failure_is_generic_failure(self, client, renderer, notifier, store):
        renderer.error = RenderTimeoutError("Timeout 9000ms exceeded.")

        response = client.get("/api/v1/html", params={"url": URL, "ttl": "5"})

        assert response.status_code == 500
        assert response.json() == GENERIC_ERROR
        assert len(store) == 0
        assert notifier.dispatched[0]["payload"] == {"url": URL, "ttl": "5"}
        assert notifier.dispatched[0]["error"] == "Timeout 9000ms exceeded."

    def test_store_failure_is_generic_failure(self, client, store):
        with patch.object(store, 'get', new_callable=AsyncMock) as mock_get:
            mock_get.side_effect = ConnectionError("refused")
            response = client.get("/api/v1/html", params={"url": URL})

        assert response.status_code == 500
        assert response.json() == GENERIC_ERROR

    def test_failures_are_counted_by_cause(self, client, service, renderer):
        client.get("/api/v1/html")
        renderer.error = RenderTimeoutError()
        client.get("/api/v1/html", params={"url": URL})

        assert service.metrics.get_sample_value(
            "errors_total", {"error_type": "INVALID_REQUEST", "service": "renderer"}
        ) == 1.0
        assert service.metrics.get_sample_value(
            "errors_total", {"error_type": "RENDER_TIMEOUT", "service": "renderer"}
        ) == 1.0

    def test_notifier_failure_does_not_change_response(self, config, store, renderer, clock):
        notifier = RecordingNotifier(error=RuntimeError("slack down"))
        service = RendererService(config, store=store, renderer=renderer, notifier=notifier, clock=clock)
        client = TestClient(service.app)

        response = client.get("/api/v1/html")

        assert response.status_code == 500
        assert response.json() == GENERIC_ERROR
        assert len(notifier.dispatched) == 1

    def test_api_responses_are_not_cacheable(self, client):
        ok = client.get("/api/v1/html", params={"url": URL})
        failed = client.get("/api/v1/html")
        ping = client.get("/ping")

        assert ok.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        assert failed.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        assert "cache-control" not in ping.headers

    def test_request_id_header(self, client):
        response = client.get("/ping", headers={"X-Request-ID": "req-123"})
        assert response.headers["x-request-id"] == "req-123"

        generated = client.get("/ping")
        assert generated.headers["x-request-id"]

    def test_cors_allowed_origin(self, client):
        response = client.get("/ping", headers={"Origin": "https://app.example.com"})
        assert response.headers["access-control-allow-origin"] == "https://app.example.com"

    def test_cors_other_origin(self, client):
        response = client.get("/ping", headers={"Origin": "https://evil.example.com"})
        assert "access-control-allow-origin" not in response.headers

    def test_metrics_endpoint(self, client):
        client.get("/api/v1/html", params={"url": URL})
        response = client.get("/metrics")

        assert response.status_code == 200
        assert 'cache_lookups_total{result="miss"} 1.0' in response.text
        assert 'renders_total{outcome="success"} 1.0' in response.text

    def test_lifespan_starts_and_stops_components(self, config, renderer, notifier):
        store = InMemoryCacheStore()
        with patch.object(store, 'start', new_callable=AsyncMock) as mock_start, \
                patch.object(store, 'stop', new_callable=AsyncMock) as mock_stop:
            app = create_app(config, store=store, renderer=renderer, notifier=notifier)
            with TestClient(app) as client:
                assert client.get("/ping").status_code == 200
                mock_start.assert_awaited_once()
            mock_stop.assert_awaited_once()
