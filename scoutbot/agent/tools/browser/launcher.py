"""Playwright lifecycle: one shared browser, one context and page per session."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from loguru import logger

from scoutbot.agent.tools.browser.installer import install_browser, is_missing_browser_error
from scoutbot.agent.tools.browser.safety import request_block_reason
from scoutbot.errors import NavigationFailureKind

if TYPE_CHECKING:
    from scoutbot.config.schema import BrowserToolConfig

_DNS_MARKERS = (
    "err_name_not_resolved",
    "ns_error_unknown_host",
    "could not resolve host",
    "getaddrinfo",
    "name or service not known",
)
_BLOCKED_MARKERS = ("err_blocked_by_client", "blockedbyclient")
_PAGE_LOST_MARKERS = ("target closed", "has been closed", "target page, context or browser has been closed")


@dataclass(slots=True)
class PageSnapshot:
    """Rendered state of a page at one point in time."""

    url: str
    title: str
    html: str


class PageHandle(ABC):
    """A single live page exclusively owned by one session."""

    @abstractmethod
    async def goto(self, url: str, *, wait_until: str, timeout_ms: int) -> int | None:
        """Navigate and return the main response status, if any."""

    @abstractmethod
    async def snapshot(self) -> PageSnapshot:
        """Current URL, title and serialized DOM."""

    @abstractmethod
    async def scroll(self, passes: int, delay_ms: int) -> None:
        """Scroll to the bottom ``passes`` times to trigger lazy loading."""

    @abstractmethod
    async def close(self) -> None:
        """Release the page and everything it holds."""


class Launcher(ABC):
    @abstractmethod
    async def open_page(self) -> PageHandle:
        """Open a fresh isolated page."""

    @abstractmethod
    async def close(self) -> None:
        """Shut the browser down."""


def classify_navigation_error(exc: BaseException) -> NavigationFailureKind:
    """Map a Playwright/asyncio failure onto a navigation failure kind."""
    if isinstance(exc, asyncio.TimeoutError) or type(exc).__name__ == "TimeoutError":
        return "timeout"
    text = str(exc).lower()
    if any(marker in text for marker in _DNS_MARKERS):
        return "dns"
    if any(marker in text for marker in _BLOCKED_MARKERS):
        return "blocked"
    if any(marker in text for marker in _PAGE_LOST_MARKERS):
        return "page_lost"
    if "timeout" in text and "exceeded" in text:
        return "timeout"
    return "browser"


class PlaywrightPage(PageHandle):
    def __init__(self, context: Any, page: Any):
        self._context = context
        self._page = page
        self._closed = False

    async def goto(self, url: str, *, wait_until: str, timeout_ms: int) -> int | None:
        response = await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        return response.status if response else None

    async def snapshot(self) -> PageSnapshot:
        return PageSnapshot(
            url=self._page.url,
            title=await self._page.title(),
            html=await self._page.content(),
        )

    async def scroll(self, passes: int, delay_ms: int) -> None:
        for _ in range(max(0, passes)):
            await self._page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
            await self._page.wait_for_timeout(delay_ms)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._context.close()


class PlaywrightLauncher(Launcher):
    """Starts Playwright and the configured browser lazily, on first page."""

    def __init__(self, config: "BrowserToolConfig | None" = None):
        from scoutbot.config.schema import BrowserToolConfig

        self.config = config or BrowserToolConfig()
        self._lock = asyncio.Lock()
        self._playwright: Any = None
        self._browser: Any = None

    async def open_page(self) -> PageHandle:
        browser = await self._ensure_browser()
        context = await browser.new_context(accept_downloads=False)
        try:
            await context.route("**/*", self._apply_network_guard)
            page = await context.new_page()
            page.set_default_timeout(self.config.timeout_ms)
        except Exception:
            await context.close()
            raise
        return PlaywrightPage(context, page)

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except Exception as e:
                    logger.warning("Browser close failed: {}", e)
                self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    async def _ensure_browser(self) -> Any:
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser

            if self._playwright is None:
                from playwright.async_api import async_playwright

                self._playwright = await async_playwright().start()

            browser_type = getattr(self._playwright, self.config.default_browser)
            try:
                self._browser = await browser_type.launch(headless=self.config.headless)
            except Exception as first_error:
                if not self.config.auto_install_browsers or not is_missing_browser_error(first_error):
                    raise
                ok, details = await install_browser(self.config.default_browser)
                if not ok:
                    raise RuntimeError(f"Playwright browser install failed: {details}") from first_error
                self._browser = await browser_type.launch(headless=self.config.headless)

            logger.info("Launched {} (headless={})", self.config.default_browser, self.config.headless)
            return self._browser

    async def _apply_network_guard(self, route: Any, request: Any) -> None:
        reason = request_block_reason(
            request.url,
            allow_private_network=self.config.allow_private_network,
            block_file_scheme=self.config.block_file_scheme,
        )
        if reason:
            logger.debug("Blocked request {}: {}", request.url, reason)
            await route.abort("blockedbyclient")
            return
        await route.continue_()
