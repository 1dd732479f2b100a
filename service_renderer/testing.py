"""
Test doubles and factories for the Render Service.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Union

from service_renderer.app.caching.keys import derive_cache_key
from service_renderer.app.caching.models import CacheEntry


T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: Union[timedelta, None] = None, **kwargs) -> datetime:
        self.now = self.now + (delta if delta is not None else timedelta(**kwargs))
        return self.now


class StubRenderer:
    """Renderer double that records calls and serves canned HTML.

    ``delay`` makes each render wait (to exercise timeouts and overlap);
    ``error`` is raised instead of returning HTML.
    """

    def __init__(self, html: Optional[str] = None, *, delay: float = 0.0,
                 error: Optional[BaseException] = None):
        self.html = html
        self.delay = delay
        self.error = error
        self.calls: List[Dict[str, object]] = []

    async def render(self, url: str, timeout: float) -> str:
        self.calls.append({"url": url, "timeout": timeout})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.html is not None:
            return self.html
        return f"<html><head></head><body>render {len(self.calls)} of {url}</body></html>"

    @property
    def call_count(self) -> int:
        return len(self.calls)


class RecordingNotifier:
    """Notifier double that keeps dispatched failures."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.dispatched: List[Dict[str, object]] = []

    def dispatch(self, *, method: str, path: str, payload: Dict[str, object], error: str) -> None:
        self.dispatched.append({"method": method, "path": path, "payload": payload, "error": error})
        if self.error is not None:
            raise self.error


class EntryFactory:
    """Factory for cache entries."""

    @staticmethod
    def create_entry(url: str = "https://example.com", html: str = "<html></html>",
                     timestamp: datetime = T0) -> CacheEntry:
        return CacheEntry(
            key=derive_cache_key({"url": url}),
            url=url,
            html=html,
            timestamp=timestamp,
        )

    @staticmethod
    def create_test_urls() -> List[str]:
        return [
            "https://example.com",
            "https://example.com/",
            "https://example.com/about",
            "https://example.org/?q=1",
        ]
