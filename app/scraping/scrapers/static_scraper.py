"""
Static fetch backend: requests + BeautifulSoup, no JavaScript execution.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import requests

from app.acquisition.recovery import parse_retry_after
from app.scraping.base import ScraperBackend
from app.scraping.config.models import AcquisitionSettings, BackendId
from app.scraping.discovery import SitemapDiscovery
from app.scraping.logging_utils import log_event
from app.scraping.parsing.html_parsers import HTMLParsingLayer
from app.scraping.rate_limiter import DomainRateLimiter
from app.scraping.robots import RobotsPolicyManager
from app.scraping.types import PageResult

logger = logging.getLogger(__name__)


class StaticFetchScraper(ScraperBackend):
    """
    Cheapest tier. Honors robots.txt and per-domain rate limits.
    """

    backend_id = BackendId.STATIC.value
    tier = 0

    def __init__(
        self,
        *,
        settings: AcquisitionSettings,
        session: requests.Session | None = None,
        robots_policy: RobotsPolicyManager | None = None,
        rate_limiter: DomainRateLimiter | None = None,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self.robots_policy = robots_policy or RobotsPolicyManager(
            session=self.session,
            user_agent=settings.user_agent,
            timeout_seconds=settings.call_timeout_seconds,
            allow_when_unreachable=settings.allow_when_robots_unreachable,
        )
        self.rate_limiter = rate_limiter or DomainRateLimiter(
            default_rate_limit_per_second=settings.rate_limit_per_second,
        )
        self.request_headers = {"User-Agent": settings.user_agent}
        self._discovery = SitemapDiscovery(
            session=self.session,
            robots_policy=self.robots_policy,
            user_agent=settings.user_agent,
            timeout_seconds=settings.call_timeout_seconds,
            max_urls=settings.max_sitemap_urls,
        )

    async def discover_urls(self, domain: str) -> list[str]:
        return await asyncio.to_thread(self._discovery.discover, self.origin_for(domain))

    async def before_call(self, url: str) -> None:
        crawl_delay = await asyncio.to_thread(
            self.robots_policy.crawl_delay, url=url, user_agent=self.settings.user_agent
        )
        await self.rate_limiter.wait(url=url, crawl_delay_seconds=crawl_delay)

    async def scrape(self, urls: Sequence[str]) -> list[PageResult]:
        return [await self._fetch(url) for url in urls]

    async def close(self) -> None:
        self.session.close()

    async def _fetch(self, url: str) -> PageResult:
        user_agent = self.settings.user_agent
        allowed = await asyncio.to_thread(self.robots_policy.can_fetch, url=url, user_agent=user_agent)
        if not allowed:
            log_event(logger, logging.WARNING, "page_blocked_by_robots", url=url)
            return PageResult.failure(
                url,
                "Blocked by robots.txt",
                status_code=403,
                backend_id=self.backend_id,
            )

        response = await asyncio.to_thread(
            self.session.get,
            url,
            headers=self.request_headers,
            timeout=self.settings.call_timeout_seconds,
            allow_redirects=True,
        )
        if response.status_code >= 400:
            log_event(logger, logging.WARNING, "page_fetch_status", url=url, status_code=response.status_code)
            return PageResult.failure(
                url,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
                backend_id=self.backend_id,
            )

        page = HTMLParsingLayer.parse_page(
            page_url=url,
            html=response.text,
            status_code=response.status_code,
            backend_id=self.backend_id,
        )
        log_event(
            logger,
            logging.INFO,
            "page_scraped",
            backend=self.backend_id,
            url=url,
            content_length=len(page.content),
        )
        return page
