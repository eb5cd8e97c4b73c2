"""
Sitemap and homepage based URL discovery.

Blocking helpers built on requests; async backends call them via
``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from app.scraping.logging_utils import log_event
from app.scraping.parsing.html_parsers import HTMLParsingLayer
from app.scraping.robots import RobotsPolicyManager

logger = logging.getLogger(__name__)

DEFAULT_SITEMAP_PATHS = ["/sitemap.xml", "/sitemap_index.xml"]
MAX_SITEMAP_DEPTH = 2


class SitemapDiscovery:
    """
    Collects same-host page URLs from sitemaps, falling back to homepage links.
    """

    def __init__(
        self,
        *,
        session: requests.Session,
        robots_policy: RobotsPolicyManager,
        user_agent: str,
        timeout_seconds: float = 15.0,
        max_urls: int = 500,
    ) -> None:
        self._session = session
        self._robots_policy = robots_policy
        self._user_agent = user_agent
        self._timeout_seconds = timeout_seconds
        self._max_urls = max(1, max_urls)

    def discover(self, origin: str) -> list[str]:
        host = urlparse(origin).netloc.lower()
        sitemap_urls = self._robots_policy.sitemaps(url=origin) or [
            urljoin(origin, path) for path in DEFAULT_SITEMAP_PATHS
        ]

        found: list[str] = [origin.rstrip("/") + "/"]
        for sitemap_url in sitemap_urls:
            found.extend(self._read_sitemap(sitemap_url, depth=0))
            if len(found) >= self._max_urls:
                break

        if len(found) == 1:
            found.extend(self._homepage_links(origin))

        same_host = [url for url in dict.fromkeys(found) if self._same_host(url, host)]
        log_event(
            logger,
            logging.INFO,
            "urls_discovered",
            origin=origin,
            sitemap_count=len(sitemap_urls),
            url_count=len(same_host),
        )
        return same_host[: self._max_urls]

    def _read_sitemap(self, sitemap_url: str, *, depth: int) -> list[str]:
        try:
            response = self._session.get(
                sitemap_url,
                headers={"User-Agent": self._user_agent},
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            log_event(logger, logging.WARNING, "sitemap_fetch_failed", sitemap_url=sitemap_url, error=str(exc))
            return []
        if not response.ok or not response.text:
            log_event(
                logger,
                logging.INFO,
                "sitemap_unavailable",
                sitemap_url=sitemap_url,
                status_code=response.status_code,
            )
            return []

        soup = BeautifulSoup(response.text, "html.parser")
        locations = [node.get_text(strip=True) for node in soup.find_all("loc")]
        if soup.find("sitemapindex") is None:
            return [loc for loc in locations if loc]

        if depth >= MAX_SITEMAP_DEPTH:
            return []
        urls: list[str] = []
        for child in locations:
            urls.extend(self._read_sitemap(child, depth=depth + 1))
            if len(urls) >= self._max_urls:
                break
        return urls

    def _homepage_links(self, origin: str) -> list[str]:
        try:
            response = self._session.get(
                origin,
                headers={"User-Agent": self._user_agent},
                timeout=self._timeout_seconds,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            log_event(logger, logging.WARNING, "homepage_fetch_failed", origin=origin, error=str(exc))
            return []
        soup = BeautifulSoup(response.text, "html.parser")
        return HTMLParsingLayer.extract_links(soup=soup, page_url=origin)

    @staticmethod
    def _same_host(url: str, host: str) -> bool:
        candidate = urlparse(url).netloc.lower()
        return candidate == host or candidate.removeprefix("www.") == host.removeprefix("www.")
