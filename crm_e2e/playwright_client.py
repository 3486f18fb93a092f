"""
Direct Playwright Client
========================

Launches Playwright in-process and hands out pages sized for Lightning
Experience (wide viewport, extended timeouts, HTTPS errors ignored for
scratch orgs).

Usage:
    from crm_e2e.playwright_client import playwright_session

    async with playwright_session() as page:
        await page.goto("https://example.my.salesforce.com")
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from playwright.async_api import async_playwright, Browser, BrowserContext, Page, Playwright

from crm_e2e.config import Timeouts, settings

logger = logging.getLogger(__name__)


class PlaywrightClient:
    """
    Direct Playwright client with full API access.

    Example:
        async with PlaywrightClient() as client:
            await client.page.goto("https://example.com")
            other = await client.new_context()
    """

    def __init__(
        self,
        browser_type: Optional[str] = None,
        headless: Optional[bool] = None,
        timeouts: Optional[Timeouts] = None,
        base_url: Optional[str] = None,
    ):
        """
        Initialize Playwright client.

        Args:
            browser_type: Browser to use (chromium, firefox, webkit)
            headless: Run in headless mode (None = PLAYWRIGHT_HEADLESS setting)
            timeouts: Wait budgets; action/navigation become context defaults
            base_url: Base URL for relative navigation
        """
        self.browser_type = browser_type or settings.browser_type
        self.headless = settings.playwright_headless if headless is None else headless
        self.timeouts = timeouts or settings.timeouts
        self.base_url = base_url

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def context_options(self, **overrides) -> dict:
        """Default options for every context this client creates."""
        options = {
            "viewport": {"width": settings.viewport_width, "height": settings.viewport_height},
            "ignore_https_errors": True,
        }
        if self.base_url:
            options["base_url"] = self.base_url
        options.update(overrides)
        return options

    def _apply_timeouts(self, context: BrowserContext) -> None:
        context.set_default_timeout(self.timeouts.action)
        context.set_default_navigation_timeout(self.timeouts.navigation)

    async def connect(self):
        """Launch the browser and create the default context and page."""
        self._playwright = await async_playwright().start()

        if self.browser_type == 'firefox':
            self._browser = await self._playwright.firefox.launch(headless=self.headless)
        elif self.browser_type == 'webkit':
            self._browser = await self._playwright.webkit.launch(headless=self.headless)
        else:
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
        logger.debug(f"Launched {self.browser_type} (headless={self.headless})")

        self._context = await self._browser.new_context(**self.context_options())
        self._apply_timeouts(self._context)

        self._page = await self._context.new_page()

    async def new_context(self, **kwargs) -> BrowserContext:
        """Create an isolated browser context (own cookies, own session)."""
        if not self._browser:
            raise RuntimeError("Client not connected. Use 'async with' or call connect()")

        context = await self._browser.new_context(**self.context_options(**kwargs))
        self._apply_timeouts(context)
        return context

    async def close(self):
        """Close all connections and cleanup resources."""
        if self._page:
            await self._page.close()
            self._page = None

        if self._context:
            await self._context.close()
            self._context = None

        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

    @property
    def page(self) -> Page:
        if not self._page:
            raise RuntimeError("Client not connected or page not created")
        return self._page


@asynccontextmanager
async def playwright_session(
    browser_type: Optional[str] = None,
    headless: Optional[bool] = None,
    base_url: Optional[str] = None,
):
    """
    Context manager yielding a fresh page in its own browser.

    Args:
        browser_type: Browser to use (chromium, firefox, webkit)
        headless: Run headless (None = PLAYWRIGHT_HEADLESS setting)
        base_url: Optional base URL for relative navigation
    """
    client = PlaywrightClient(browser_type=browser_type, headless=headless, base_url=base_url)
    await client.connect()

    try:
        yield client.page
    finally:
        await client.close()
