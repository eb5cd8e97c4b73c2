"""
Base scraper backend abstraction for acquisition.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import ClassVar

from app.scraping.types import PageResult


class ScraperBackend(ABC):
    """
    Uniform async interface over backends of increasing cost and capability.

    HTTP error statuses come back as failed PageResults; transport faults
    (timeouts, refused connections, DNS) propagate to the caller so they can
    be classified and retried.
    """

    backend_id: ClassVar[str]
    tier: ClassVar[int]

    @abstractmethod
    async def discover_urls(self, domain: str) -> list[str]:
        """
        Return candidate page URLs for ``domain`` in discovery order.
        """

    @abstractmethod
    async def scrape(self, urls: Sequence[str]) -> list[PageResult]:
        """
        Extract each URL and return one PageResult per input URL.
        """

    async def before_call(self, url: str) -> None:
        """
        Politeness wait before ``url`` is fetched (rate limits, crawl delay).

        Callers time only ``scrape``; time spent here does not count against
        the per-call timeout.
        """

    async def close(self) -> None:
        """
        Release long-lived resources such as browsers or HTTP sessions.
        """

    @staticmethod
    def origin_for(domain: str) -> str:
        stripped = domain.strip().rstrip("/")
        if stripped.startswith(("http://", "https://")):
            return stripped
        return f"https://{stripped}"
