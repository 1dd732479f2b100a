"""
Slack failure notifications for the Render Service.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol, Set

import httpx

from shared.logging import get_logger
from shared.errors import NotificationFailure
from shared.metrics import MetricsCollector


class FailureNotifier(Protocol):
    """One-way sink for request failures."""

    def dispatch(self, *, method: str, path: str, payload: Dict[str, Any], error: str) -> None:
        ...


class SlackNotifier:
    """Posts failed requests to a Slack incoming webhook.

    ``dispatch`` returns immediately; delivery runs as a background task and
    any delivery error is logged and counted, never raised.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout: float = 5.0,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.metrics = metrics
        self.transport = transport
        self.logger = get_logger("renderer.notifications.slack")
        self._pending: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def build_message(self, *, method: str, path: str, payload: Dict[str, Any], error: str) -> Dict[str, Any]:
        """Slack attachment describing a failed request."""
        return {
            "attachments": [
                {
                    "fallback": "Exception: Something went wrong!",
                    "author_name": f"{method} {path} - 500",
                    "title": "Exception: Something went wrong!",
                    "fields": [
                        {
                            "title": "Received",
                            "value": json.dumps(payload, default=str),
                            "short": False
                        }
                    ],
                    "text": f"*Message*: {error}",
                    "ts": int(datetime.now(timezone.utc).timestamp() * 1000),
                    "color": "#E03E2F"
                }
            ]
        }

    def dispatch(self, *, method: str, path: str, payload: Dict[str, Any], error: str) -> None:
        if not self.enabled:
            return

        message = self.build_message(method=method, path=path, payload=payload, error=error)
        task = asyncio.get_running_loop().create_task(self.notify(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def notify(self, message: Dict[str, Any]) -> bool:
        """Deliver ``message``; returns whether Slack accepted it."""
        try:
            await self._send(message)
        except NotificationFailure as e:
            self.logger.warning("Failure notification not delivered", error=e.message)
            self._record("error")
            return False

        self._record("sent")
        return True

    async def _send(self, message: Dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.webhook_url, json=message)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NotificationFailure(str(e) or type(e).__name__)

        if response.status_code >= 400:
            raise NotificationFailure(
                f"Slack responded with {response.status_code}",
                {"body": response.text}
            )

    def _record(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.record_notification(status)

    async def aclose(self) -> None:
        """Wait for notifications still in flight."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
