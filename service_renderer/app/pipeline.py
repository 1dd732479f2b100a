"""
Cache-aware render pipeline.

A request flows through three stages, strictly in this order:

1. Lookup: fetch the entry stored under the request's cache key and judge
   its freshness against the requested TTL. A fresh entry is returned as-is
   and nothing else runs.
2. Render: on a miss or a stale hit, render the URL within the render
   timeout and stamp the result with the current UTC time.
3. Persist: upsert the rendered entry; the store's returned form is the
   result.

Every failure leaves the pipeline as a RenderProxyException subclass so the
HTTP layer can log the precise cause and still answer with one generic error.
"""

import asyncio
import time
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import AnyHttpUrl, TypeAdapter, ValidationError

from shared.logging import get_logger, set_cache_key
from shared.errors import (
    DeadlineExceededError,
    InvalidRequestError,
    RenderFailure,
    RenderTimeoutError,
    StoreFailure,
)
from shared.metrics import MetricsCollector
from shared.tracing import trace_operation

from .caching.freshness import DEFAULT_TTL, is_fresh, parse_ttl
from .caching.keys import derive_cache_key
from .caching.models import CacheEntry, RenderRequest, utc_now
from .caching.store import CacheStore
from .rendering.renderer import Renderer


DEFAULT_RENDER_TIMEOUT = 9.0
DEFAULT_REQUEST_DEADLINE = 10.0

_http_url = TypeAdapter(AnyHttpUrl)


class RenderPipeline:
    """Lookup -> render -> persist for a single page request."""

    def __init__(
        self,
        store: CacheStore,
        renderer: Renderer,
        *,
        default_ttl: timedelta = DEFAULT_TTL,
        render_timeout: float = DEFAULT_RENDER_TIMEOUT,
        request_deadline: float = DEFAULT_REQUEST_DEADLINE,
        clock: Callable[[], datetime] = utc_now,
        metrics: Optional[MetricsCollector] = None,
        coalesce_renders: bool = False,
    ):
        if render_timeout >= request_deadline:
            raise ValueError("render_timeout must be lower than request_deadline")

        self.store = store
        self.renderer = renderer
        self.default_ttl = default_ttl
        self.render_timeout = render_timeout
        self.request_deadline = request_deadline
        self.clock = clock
        self.metrics = metrics
        self.coalesce_renders = coalesce_renders
        self.logger = get_logger("renderer.pipeline")

        # key -> shared render+persist task, only used when coalescing
        self._inflight: Dict[str, asyncio.Task] = {}

    async def handle(self, request: RenderRequest) -> CacheEntry:
        """Return a fresh entry for ``request``, rendering it if needed."""
        try:
            return await asyncio.wait_for(self._handle(request), timeout=self.request_deadline)
        except asyncio.TimeoutError:
            raise DeadlineExceededError(
                details={"url": request.url, "deadline": self.request_deadline}
            )

    async def _handle(self, request: RenderRequest) -> CacheEntry:
        key = derive_cache_key(request.identity())
        set_cache_key(key)
        self.logger.debug("hash", hash=key)

        url = self._require_url(request.url)
        ttl = parse_ttl(request.ttl, self.default_ttl)

        cached = await self._lookup(key, ttl)
        if cached is not None:
            return cached

        if self.coalesce_renders:
            return await self._render_and_persist_once(key, url)
        return await self._render_and_persist(key, url)

    def _require_url(self, url: Optional[str]) -> str:
        if url is None or not url.strip():
            raise InvalidRequestError("Missing url")
        try:
            _http_url.validate_python(url)
        except ValidationError:
            raise InvalidRequestError("Invalid url", {"url": url})
        return url

    async def _lookup(self, key: str, ttl: timedelta) -> Optional[CacheEntry]:
        ttl_ms = ttl / timedelta(milliseconds=1)

        with trace_operation("pipeline.lookup", cache_key=key):
            entry = await self._store_call("get", self.store.get, key)

            if entry is None:
                self.logger.debug("not in cache")
                self._record_lookup("miss")
                return None

            if is_fresh(entry, self.clock(), ttl):
                self.logger.debug("cache exist", ttl=ttl_ms)
                self._record_lookup("hit")
                return entry

            self.logger.debug("cache expired", ttl=ttl_ms)
            self._record_lookup("stale")
            return None

    async def _render_and_persist(self, key: str, url: str) -> CacheEntry:
        entry = await self._render(key, url)
        return await self._persist(entry)

    async def _render_and_persist_once(self, key: str, url: str) -> CacheEntry:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._render_and_persist(key, url))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._finish_inflight(key, t))
        else:
            self.logger.debug("joining in-flight render", url=url)

        # One caller giving up must not cancel the render for the others.
        return await asyncio.shield(task)

    def _finish_inflight(self, key: str, task: asyncio.Task) -> None:
        self._inflight.pop(key, None)
        # Retrieve the outcome even when every waiter has gone away.
        if not task.cancelled() and task.exception() is not None:
            self.logger.debug("shared render failed", error=str(task.exception()))

    async def _render(self, key: str, url: str) -> CacheEntry:
        with trace_operation("pipeline.render", url=url):
            started = time.monotonic()
            try:
                html = await asyncio.wait_for(
                    self.renderer.render(url, self.render_timeout),
                    timeout=self.render_timeout,
                )
            except RenderTimeoutError:
                self._record_render("timeout")
                raise
            except asyncio.TimeoutError:
                self._record_render("timeout")
                raise RenderTimeoutError(details={"url": url, "timeout": self.render_timeout})
            except RenderFailure:
                self._record_render("error")
                raise
            except Exception as e:
                self._record_render("error")
                raise RenderFailure(str(e) or type(e).__name__, {"url": url}) from e

            if not isinstance(html, str):
                self._record_render("error")
                raise RenderFailure("Renderer returned no HTML", {"url": url})

            self._record_render("success", time.monotonic() - started)
            return CacheEntry(key=key, url=url, html=html, timestamp=self.clock())

    async def _persist(self, entry: CacheEntry) -> CacheEntry:
        with trace_operation("pipeline.persist", cache_key=entry.key):
            self.logger.debug("caching response")
            stored = await self._store_call("put", self.store.put, entry)
            self.logger.debug("caching successful")
            return stored

    async def _store_call(self, operation: str, call: Callable[..., Awaitable[Any]], *args):
        try:
            result = await call(*args)
        except StoreFailure:
            self._record_store(operation, "error")
            raise
        except Exception as e:
            self._record_store(operation, "error")
            raise StoreFailure(operation, str(e) or type(e).__name__) from e

        self._record_store(operation, "ok")
        return result

    def _record_lookup(self, result: str) -> None:
        if self.metrics is not None:
            self.metrics.record_cache_lookup(result)

    def _record_render(self, outcome: str, duration: Optional[float] = None) -> None:
        if self.metrics is not None:
            self.metrics.record_render(outcome, duration)

    def _record_store(self, operation: str, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_store_operation(operation, status)
