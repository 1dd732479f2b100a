"""
Integration tests for the render-and-cache flow through the HTTP app.
"""

import asyncio
import pytest
import httpx

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import ServiceConfig
from service_renderer.app.caching.store import InMemoryCacheStore
from service_renderer.app.main import RendererService
from service_renderer.testing import ManualClock, RecordingNotifier, StubRenderer


URL = "https://example.com"


class SlowPutStore(InMemoryCacheStore):
    """In-memory store whose writes stall."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    async def put(self, entry):
        await asyncio.sleep(self.delay)
        return await super().put(entry)


class TestRenderFlow:
    """Integration tests for the render service flow."""

    @pytest.fixture
    def clock(self):
        return ManualClock()

    @pytest.fixture
    def store(self):
        return InMemoryCacheStore()

    @pytest.fixture
    def renderer(self):
        return StubRenderer()

    @pytest.fixture
    def notifier(self):
        return RecordingNotifier()

    def _client(self, service):
        transport = httpx.ASGITransport(app=service.app)
        return httpx.AsyncClient(transport=transport, base_url="http://renderer.test")

    def _service(self, store, renderer, notifier, clock, **overrides):
        config = ServiceConfig(store_backend="memory", env="test", **overrides)
        return RendererService(config, store=store, renderer=renderer, notifier=notifier, clock=clock)

    @pytest.mark.asyncio
    async def test_cache_lifecycle(self, store, renderer, notifier, clock):
        """Cold render, warm hit, stale re-render, overwrite."""
        service = self._service(store, renderer, notifier, clock)

        async with self._client(service) as client:
            cold = (await client.get("/api/v1/html", params={"url": URL})).json()["data"]

            clock.advance(minutes=2)
            warm = (await client.get("/api/v1/html", params={"url": URL})).json()["data"]

            clock.advance(minutes=4)
            stale = (await client.get("/api/v1/html", params={"url": URL})).json()["data"]

        assert warm == cold
        assert renderer.call_count == 2
        assert stale["key"] == cold["key"]
        assert stale["html"] != cold["html"]
        assert stale["timestamp"] > cold["timestamp"]
        assert (await store.get(cold["key"])).html == stale["html"]
        assert notifier.dispatched == []

    @pytest.mark.asyncio
    async def test_ttl_is_per_request(self, store, renderer, notifier, clock):
        """Different TTLs share one entry; each request judges freshness itself."""
        service = self._service(store, renderer, notifier, clock)

        async with self._client(service) as client:
            await client.post("/api/v1/html", json={"url": URL, "ttl": 600000})
            clock.advance(minutes=3)

            long_ttl = await client.post("/api/v1/html", json={"url": URL, "ttl": 600000})
            short_ttl = await client.post("/api/v1/html", json={"url": URL, "ttl": 60000})

        assert long_ttl.status_code == 200
        assert short_ttl.status_code == 200
        assert renderer.call_count == 2
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_concurrent_requests_for_different_urls(self, store, notifier, clock):
        renderer = StubRenderer(delay=0.01)
        service = self._service(store, renderer, notifier, clock)
        urls = [f"https://example.com/page/{n}" for n in range(5)]

        async with self._client(service) as client:
            responses = await asyncio.gather(
                *(client.get("/api/v1/html", params={"url": url}) for url in urls)
            )

        assert [r.json()["data"]["url"] for r in responses] == urls
        assert len(store) == 5

    @pytest.mark.asyncio
    async def test_coalesced_concurrent_misses(self, store, notifier, clock):
        renderer = StubRenderer(delay=0.05)
        service = self._service(store, renderer, notifier, clock, coalesce_renders=True)

        async with self._client(service) as client:
            responses = await asyncio.gather(
                *(client.get("/api/v1/html", params={"url": URL}) for _ in range(3))
            )

        assert renderer.call_count == 1
        assert len({r.json()["data"]["html"] for r in responses}) == 1

    @pytest.mark.asyncio
    async def test_render_timeout_returns_generic_failure(self, store, notifier, clock):
        renderer = StubRenderer(delay=1.0)
        service = self._service(
            store, renderer, notifier, clock,
            render_timeout_seconds=0.05, request_deadline_seconds=0.5,
        )

        async with self._client(service) as client:
            response = await client.get("/api/v1/html", params={"url": URL})

        assert response.status_code == 500
        assert response.json()["message"] == "Internal server error"
        assert len(store) == 0
        assert service.metrics.get_sample_value(
            "errors_total", {"error_type": "RENDER_TIMEOUT", "service": "renderer"}
        ) == 1.0
        assert notifier.dispatched[0]["payload"] == {"url": URL}

    @pytest.mark.asyncio
    async def test_request_deadline_bounds_slow_store(self, renderer, notifier, clock):
        store = SlowPutStore(delay=1.0)
        service = self._service(
            store, renderer, notifier, clock,
            render_timeout_seconds=0.05, request_deadline_seconds=0.1,
        )

        async with self._client(service) as client:
            response = await client.get("/api/v1/html", params={"url": URL})

        assert response.status_code == 500
        assert service.metrics.get_sample_value(
            "errors_total", {"error_type": "DEADLINE_EXCEEDED", "service": "renderer"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_invalid_url_never_reaches_store(self, renderer, notifier, clock):
        store = InMemoryCacheStore()
        service = self._service(store, renderer, notifier, clock)

        async with self._client(service) as client:
            response = await client.get("/api/v1/html", params={"url": "ftp://example.com/file"})

        assert response.status_code == 500
        assert renderer.call_count == 0
        assert service.metrics.get_sample_value("cache_lookups_total", {"result": "miss"}) is None
