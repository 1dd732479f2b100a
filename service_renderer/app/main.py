"""
Render service for the Render Cache Proxy.
"""

import json
import re
from typing import Any, Dict, Optional

from fastapi import Request

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import InvalidRequestError, RenderProxyException

from .caching.freshness import parse_ttl, DEFAULT_TTL
from .caching.models import RenderResponse, coerce_request
from .caching.redis_store import RedisCacheStore
from .caching.store import CacheStore, InMemoryCacheStore
from .notifications.slack import FailureNotifier, SlackNotifier
from .pipeline import RenderPipeline
from .rendering.renderer import PlaywrightRenderer, Renderer


NO_CACHE = "no-cache, no-store, must-revalidate"
API_PATH = re.compile(r"^/api/")


class RendererService(BaseService):
    """Render service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[CacheStore] = None,
        renderer: Optional[Renderer] = None,
        notifier: Optional[FailureNotifier] = None,
        clock=None,
    ):
        super().__init__(config or get_config())

        self.store = store if store is not None else self._build_store()
        self.renderer = renderer if renderer is not None else PlaywrightRenderer(
            headless=self.config.browser_headless,
            browser_args=self.config.browser_arg_list,
            wait_until=self.config.render_wait_until,
            ignore_https_errors=self.config.ignore_https_errors,
        )
        self.notifier = notifier if notifier is not None else SlackNotifier(
            self.config.slack_webhook_url,
            timeout=self.config.notification_timeout_seconds,
            metrics=self.metrics,
        )

        pipeline_options: Dict[str, Any] = {
            "default_ttl": parse_ttl(self.config.default_cache_ttl_ms, DEFAULT_TTL),
            "render_timeout": self.config.render_timeout_seconds,
            "request_deadline": self.config.request_deadline_seconds,
            "metrics": self.metrics,
            "coalesce_renders": self.config.coalesce_renders,
        }
        if clock is not None:
            pipeline_options["clock"] = clock
        self.pipeline = RenderPipeline(self.store, self.renderer, **pipeline_options)

        self._setup_render_routes()

    def _build_store(self) -> CacheStore:
        if self.config.store_backend == "memory":
            return InMemoryCacheStore()
        return RedisCacheStore(self.config.redis_url, key_prefix=self.config.redis_key_prefix)

    def _setup_render_routes(self):
        """Set up render-specific routes."""

        @self.app.middleware("http")
        async def disable_api_caching(request: Request, call_next):
            # No 304s for API responses.
            response = await call_next(request)
            if API_PATH.match(request.url.path):
                response.headers["Cache-Control"] = NO_CACHE
            return response

        @self.app.get("/ping")
        async def ping():
            """Status check."""
            return "pong"

        @self.app.get("/api/v1/html", response_model=RenderResponse)
        async def get_html(request: Request):
            """Render a page, or serve it from cache while fresh."""
            params = dict(request.query_params)
            request.state.payload = params
            entry = await self.pipeline.handle(coerce_request(params))
            return RenderResponse(data=entry)

        @self.app.post("/api/v1/html", response_model=RenderResponse)
        async def post_html(request: Request):
            """Same as GET, parameters in a JSON body."""
            body = await self._read_json_body(request)
            request.state.payload = body
            entry = await self.pipeline.handle(coerce_request(body))
            return RenderResponse(data=entry)

    @staticmethod
    async def _read_json_body(request: Request) -> Dict[str, Any]:
        raw = await request.body()
        if not raw:
            return {}
        try:
            body = json.loads(raw)
        except ValueError:
            raise InvalidRequestError("Malformed JSON body")
        if not isinstance(body, dict):
            raise InvalidRequestError("JSON body must be an object")
        return body

    async def _on_request_failure(self, request: Request, exc: Exception) -> None:
        """Report the failed request; never affects the response."""
        payload = getattr(request.state, "payload", None)
        if payload is None:
            payload = dict(request.query_params)
        message = exc.message if isinstance(exc, RenderProxyException) else str(exc)
        try:
            self.notifier.dispatch(
                method=request.method,
                path=request.url.path,
                payload=payload,
                error=message,
            )
        except Exception as e:
            self.logger.warning("Failure notification dispatch failed", error=str(e))

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check render service dependencies."""
        dependencies = {}

        try:
            dependencies["store"] = "ok" if await self.store.health_check() else "error"
        except Exception:
            dependencies["store"] = "error"

        return dependencies

    async def start(self):
        """Start render service components."""
        start = getattr(self.store, "start", None)
        if start is not None:
            await start()
        self.logger.info("Render service started", store=type(self.store).__name__)

    async def stop(self):
        """Stop render service components."""
        for component in (self.renderer, self.notifier):
            aclose = getattr(component, "aclose", None)
            if aclose is not None:
                await aclose()

        stop = getattr(self.store, "stop", None)
        if stop is not None:
            await stop()
        self.logger.info("Render service stopped")


def create_app(config: Optional[ServiceConfig] = None, **components):
    """Create render service application."""
    service = RendererService(config, **components)
    return service.app


def main():
    """Run the render service with configuration from the environment."""
    service = RendererService()
    service.run()


if __name__ == "__main__":
    main()
