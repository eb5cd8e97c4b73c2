"""
Managed scraping API backend (Firecrawl-compatible JSON endpoints).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

import requests

from app.acquisition.errors import BackendHTTPError
from app.acquisition.recovery import parse_retry_after
from app.scraping.base import ScraperBackend
from app.scraping.config.models import AcquisitionSettings, BackendId
from app.scraping.logging_utils import log_event
from app.scraping.parsing.html_parsers import HTMLParsingLayer
from app.scraping.types import PageResult

logger = logging.getLogger(__name__)


class ManagedApiScraper(ScraperBackend):
    """
    Highest tier: the provider renders, proxies and unblocks on our behalf.
    """

    backend_id = BackendId.MANAGED_API.value
    tier = 2

    def __init__(
        self,
        *,
        settings: AcquisitionSettings,
        session: requests.Session | None = None,
    ) -> None:
        if not settings.managed_api_key:
            raise ValueError("MANAGED_SCRAPER_API_KEY is required for the managed_api backend.")
        self.settings = settings
        self.session = session or requests.Session()
        self.base_url = settings.managed_api_url.rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {settings.managed_api_key}",
            "Content-Type": "application/json",
        }

    async def discover_urls(self, domain: str) -> list[str]:
        payload = await asyncio.to_thread(self._post, "/map", {"url": self.origin_for(domain)})
        links = payload.get("links") or []
        return [str(link) for link in links if isinstance(link, str)]

    async def scrape(self, urls: Sequence[str]) -> list[PageResult]:
        return [await self._scrape_one(url) for url in urls]

    async def close(self) -> None:
        self.session.close()

    async def _scrape_one(self, url: str) -> PageResult:
        try:
            payload = await asyncio.to_thread(
                self._post,
                "/scrape",
                {"url": url, "formats": ["markdown", "html", "links"], "onlyMainContent": False},
            )
        except BackendHTTPError as exc:
            return PageResult.failure(
                url,
                str(exc),
                status_code=exc.status_code,
                retry_after=exc.retry_after,
                backend_id=self.backend_id,
            )

        data: dict[str, Any] = payload.get("data") or {}
        metadata: dict[str, Any] = data.get("metadata") or {}
        status_code = metadata.get("statusCode")
        if isinstance(status_code, int) and status_code >= 400:
            return PageResult.failure(
                url,
                f"HTTP {status_code}",
                status_code=status_code,
                backend_id=self.backend_id,
            )

        html = data.get("html") or ""
        page = HTMLParsingLayer.parse_page(
            page_url=url,
            html=html,
            status_code=status_code if isinstance(status_code, int) else None,
            backend_id=self.backend_id,
        )
        markdown = data.get("markdown")
        links = [link for link in data.get("links") or [] if isinstance(link, str)]
        page = replace(
            page,
            content=markdown if isinstance(markdown, str) and len(markdown) > len(page.content) else page.content,
            links=links or page.links,
            title=metadata.get("title") or page.title,
        )
        log_event(logger, logging.INFO, "page_scraped", backend=self.backend_id, url=url)
        return page

    def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        response = self.session.post(
            f"{self.base_url}{path}",
            json=body,
            headers=self.headers,
            timeout=self.settings.call_timeout_seconds,
        )
        if response.status_code >= 400:
            raise BackendHTTPError(
                f"Managed API {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        payload = response.json()
        if not isinstance(payload, dict) or payload.get("success") is False:
            raise BackendHTTPError(f"Managed API {path} reported failure: {payload!r:.200}")
        return payload
