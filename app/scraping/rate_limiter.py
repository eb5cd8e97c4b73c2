"""
Per-domain request pacing for async backends.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from urllib.parse import urlparse


class DomainRateLimiter:
    """
    Spaces requests to the same host by at least ``1 / rate`` seconds, or by
    the robots.txt crawl delay when that is longer.

    Each caller reserves the next free slot for its host under a short lock
    and sleeps outside it, so different hosts never wait on each other.
    """

    def __init__(
        self,
        *,
        default_rate_limit_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._default_rps = max(0.1, default_rate_limit_per_second)
        self._clock = clock
        self._sleep = sleep
        self._next_slot: dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def wait(
        self,
        *,
        url: str,
        rate_limit_per_second: float | None = None,
        crawl_delay_seconds: float | None = None,
    ) -> float:
        """
        Block until ``url``'s host may be hit again; returns the time slept.
        """

        host = self._host(url)
        if not host:
            return 0.0

        interval = 1.0 / max(0.1, rate_limit_per_second or self._default_rps)
        if crawl_delay_seconds:
            interval = max(interval, crawl_delay_seconds)

        async with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot.get(host, now))
            self._next_slot[host] = slot + interval

        delay = slot - now
        if delay > 0:
            await self._sleep(delay)
        return max(0.0, delay)

    def reset(self, url: str | None = None) -> None:
        if url is None:
            self._next_slot.clear()
        else:
            self._next_slot.pop(self._host(url), None)

    @staticmethod
    def _host(url: str) -> str:
        parsed = urlparse(url)
        return (parsed.netloc or parsed.path).lower()
