"""
Headless browser rendering using Playwright.
"""

import asyncio
from typing import List, Optional, Protocol, Set

from playwright.async_api import (
    Browser,
    Error as PlaywrightError,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from shared.logging import get_logger
from shared.errors import RenderFailure, RenderTimeoutError


SERIALIZE_DOCUMENT = "() => document.documentElement.outerHTML"


class Renderer(Protocol):
    """Produces the serialized DOM of a URL.

    Must raise RenderTimeoutError when ``timeout`` (seconds) elapses and
    RenderFailure for any other problem.
    """

    async def render(self, url: str, timeout: float) -> str:
        ...


class PlaywrightRenderer:
    """Renders pages in a fresh Chromium instance per call.

    Browser shutdown is scheduled as a background task once the HTML is
    in hand, so closing the browser never delays the response.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        browser_args: Optional[List[str]] = None,
        wait_until: str = "networkidle",
        ignore_https_errors: bool = True,
    ):
        self.headless = headless
        self.browser_args = list(browser_args or [])
        self.wait_until = wait_until
        self.ignore_https_errors = ignore_https_errors
        self.logger = get_logger("renderer.rendering.playwright")
        self._teardowns: Set[asyncio.Task] = set()

    async def render(self, url: str, timeout: float) -> str:
        playwright: Optional[Playwright] = None
        browser: Optional[Browser] = None
        timeout_ms = timeout * 1000

        try:
            playwright = await async_playwright().start()
            browser = await playwright.chromium.launch(
                headless=self.headless,
                args=self.browser_args,
                timeout=timeout_ms,
            )
            self.logger.debug("browser initialized")

            context = await browser.new_context(ignore_https_errors=self.ignore_https_errors)
            page = await context.new_page()

            self.logger.debug("loading page", url=url)
            await page.goto(url, wait_until=self.wait_until, timeout=timeout_ms)
            self.logger.debug("page loaded", url=url)

            html = await page.evaluate(SERIALIZE_DOCUMENT)
            self.logger.debug("getting html", url=url, size=len(html))
            return html

        except PlaywrightTimeoutError as e:
            raise RenderTimeoutError(str(e), {"url": url, "timeout": timeout})
        except PlaywrightError as e:
            raise RenderFailure(str(e), {"url": url})
        finally:
            if playwright is not None:
                self._spawn_teardown(playwright, browser)

    def _spawn_teardown(self, playwright: Playwright, browser: Optional[Browser]) -> None:
        task = asyncio.get_running_loop().create_task(self._teardown(playwright, browser))
        self._teardowns.add(task)
        task.add_done_callback(self._teardowns.discard)

    async def _teardown(self, playwright: Playwright, browser: Optional[Browser]) -> None:
        try:
            if browser is not None:
                await browser.close()
            await playwright.stop()
            self.logger.debug("browser closed")
        except Exception as e:
            self.logger.warning("Browser teardown failed", error=str(e))

    @property
    def pending_teardowns(self) -> int:
        return len(self._teardowns)

    async def aclose(self) -> None:
        """Wait for outstanding browser shutdowns."""
        if self._teardowns:
            await asyncio.gather(*list(self._teardowns), return_exceptions=True)
