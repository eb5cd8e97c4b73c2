"""
Headless-render backend built on Playwright chromium.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeout

from app.scraping.base import ScraperBackend
from app.scraping.config.models import AcquisitionSettings, BackendId
from app.scraping.logging_utils import log_event
from app.scraping.parsing.html_parsers import HTMLParsingLayer
from app.scraping.types import PageResult

logger = logging.getLogger(__name__)

NETWORK_IDLE_TIMEOUT_MS = 8000


class HeadlessRenderScraper(ScraperBackend):
    """
    Renders pages in chromium so client-side content is present.

    URL discovery is delegated to a cheaper backend when one is supplied.
    """

    backend_id = BackendId.RENDER.value
    tier = 1

    def __init__(
        self,
        *,
        settings: AcquisitionSettings,
        discovery_backend: ScraperBackend | None = None,
    ) -> None:
        self.settings = settings
        self._discovery_backend = discovery_backend
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._launch_lock = asyncio.Lock()

    async def discover_urls(self, domain: str) -> list[str]:
        if self._discovery_backend is not None:
            return await self._discovery_backend.discover_urls(domain)
        origin = self.origin_for(domain)
        pages = await self.scrape([origin])
        return [origin, *pages[0].links] if pages and pages[0].success else []

    async def scrape(self, urls: Sequence[str]) -> list[PageResult]:
        browser = await self._ensure_browser()
        return [await self._render(browser, url) for url in urls]

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def _ensure_browser(self) -> Browser:
        async with self._launch_lock:
            if self._browser is None:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=True,
                    args=["--disable-gpu", "--no-sandbox", "--disable-dev-shm-usage"],
                )
                log_event(logger, logging.INFO, "render_browser_started")
            return self._browser

    async def _render(self, browser: Browser, url: str) -> PageResult:
        context = await browser.new_context(user_agent=self.settings.user_agent)
        try:
            page = await context.new_page()
            response = await page.goto(
                url,
                timeout=self.settings.call_timeout_seconds * 1000,
                wait_until="load",
            )
            if response is None or response.status >= 400:
                status = response.status if response is not None else None
                log_event(logger, logging.WARNING, "render_status", url=url, status_code=status)
                return PageResult.failure(
                    url,
                    f"HTTP {status if status is not None else 'no response'}",
                    status_code=status,
                    backend_id=self.backend_id,
                )

            try:
                await page.wait_for_load_state("networkidle", timeout=NETWORK_IDLE_TIMEOUT_MS)
            except PlaywrightTimeout:
                log_event(logger, logging.DEBUG, "render_network_idle_timeout", url=url)

            html = await page.content()
        finally:
            await context.close()

        result = HTMLParsingLayer.parse_page(
            page_url=url,
            html=html,
            status_code=response.status,
            backend_id=self.backend_id,
        )
        log_event(
            logger,
            logging.INFO,
            "page_rendered",
            url=url,
            content_length=len(result.content),
        )
        return result
