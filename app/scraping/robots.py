"""
Per-origin robots.txt policies for outbound fetches.

Everything here blocks on HTTP; async callers go through ``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import requests

from app.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

POLICY_TTL_SECONDS = 3600.0

_ALLOW_ALL = ["User-agent: *", "Allow: /"]
_DENY_ALL = ["User-agent: *", "Disallow: /"]


@dataclass(frozen=True)
class OriginPolicy:
    """
    Parsed rules for one origin.

    source -- "robots" when rules came from the site, otherwise the
              fallback that produced them ("missing", "restricted",
              "unreachable")
    """

    origin: str
    parser: RobotFileParser
    source: str
    loaded_at: float

    def expired(self, now: float, ttl: float) -> bool:
        return now - self.loaded_at >= ttl


class RobotsPolicyManager:
    """
    Loads, caches and answers robots.txt questions per origin.

    A missing robots.txt (4xx other than 401/403) allows everything; 401 and
    403 deny everything; server errors and transport failures follow
    ``allow_when_unreachable``. Policies are refreshed after ``ttl_seconds``.
    """

    def __init__(
        self,
        *,
        session: requests.Session,
        user_agent: str | None = None,
        timeout_seconds: float = 10.0,
        allow_when_unreachable: bool = True,
        ttl_seconds: float = POLICY_TTL_SECONDS,
    ) -> None:
        self._session = session
        self._user_agent = user_agent
        self._timeout_seconds = timeout_seconds
        self._allow_when_unreachable = allow_when_unreachable
        self._ttl_seconds = ttl_seconds
        self._policies: dict[str, OriginPolicy] = {}
        self._lock = threading.Lock()

    def can_fetch(self, *, url: str, user_agent: str) -> bool:
        return self.policy_for(url).parser.can_fetch(user_agent, url)

    def crawl_delay(self, *, url: str, user_agent: str) -> float | None:
        parser = self.policy_for(url).parser
        delay = parser.crawl_delay(user_agent)
        if delay is None:
            delay = parser.crawl_delay("*")
        return float(delay) if delay is not None else None

    def sitemaps(self, *, url: str) -> list[str]:
        """
        Sitemap URLs advertised by the origin's robots.txt, if any.
        """

        return list(self.policy_for(url).parser.site_maps() or [])

    def policy_for(self, url: str) -> OriginPolicy:
        origin = self._origin(url)
        now = time.monotonic()
        with self._lock:
            cached = self._policies.get(origin)
        if cached is not None and not cached.expired(now, self._ttl_seconds):
            return cached

        policy = self._load(origin)
        with self._lock:
            self._policies[origin] = policy
        return policy

    def invalidate(self, url: str | None = None) -> None:
        with self._lock:
            if url is None:
                self._policies.clear()
            else:
                self._policies.pop(self._origin(url), None)

    def _load(self, origin: str) -> OriginPolicy:
        robots_url = f"{origin}/robots.txt"
        headers = {"User-Agent": self._user_agent} if self._user_agent else None
        try:
            response = self._session.get(robots_url, headers=headers, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            log_event(
                logger,
                logging.WARNING,
                "robots_fetch_failed",
                origin=origin,
                allow=self._allow_when_unreachable,
                error=str(exc),
            )
            return self._fallback(origin, "unreachable", self._allow_when_unreachable)

        status_code = response.status_code
        if response.ok:
            parser = RobotFileParser(robots_url)
            parser.parse(response.text.splitlines())
            log_event(logger, logging.INFO, "robots_loaded", origin=origin)
            return OriginPolicy(origin=origin, parser=parser, source="robots", loaded_at=time.monotonic())

        if status_code in {401, 403}:
            source, allow = "restricted", False
        elif status_code >= 500:
            source, allow = "unreachable", self._allow_when_unreachable
        else:
            source, allow = "missing", True
        log_event(
            logger,
            logging.INFO if allow else logging.WARNING,
            "robots_unavailable",
            origin=origin,
            status_code=status_code,
            source=source,
            allow=allow,
        )
        return self._fallback(origin, source, allow)

    @staticmethod
    def _fallback(origin: str, source: str, allow: bool) -> OriginPolicy:
        parser = RobotFileParser()
        parser.parse(_ALLOW_ALL if allow else _DENY_ALL)
        return OriginPolicy(origin=origin, parser=parser, source=source, loaded_at=time.monotonic())

    @staticmethod
    def _origin(url: str) -> str:
        parsed = urlparse(url if "://" in url else f"https://{url}")
        return f"{parsed.scheme or 'https'}://{parsed.netloc.lower()}"
