"""
app/acquisition/recovery.py

Fault classification and retry/skip/abort decisions for backend calls.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any

import requests

from app.acquisition.errors import BackendHTTPError
from app.scraping.config.models import FallbackStrategy
from app.scraping.logging_utils import log_event

logger = logging.getLogger(__name__)

NETWORK_RETRY_CAP = 2
RECENT_ERRORS_LIMIT = 10


class FaultClass(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    SERVER_ERROR = "SERVER_ERROR"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    NETWORK = "NETWORK"
    UNCLASSIFIED = "UNCLASSIFIED"


_USER_MESSAGES = {
    FaultClass.RATE_LIMITED: "The site is rate limiting requests; backing off.",
    FaultClass.SERVER_ERROR: "The site returned a server error.",
    FaultClass.FORBIDDEN: "Access to this page is forbidden.",
    FaultClass.UNAUTHORIZED: "This page requires authentication.",
    FaultClass.NOT_FOUND: "The page does not exist.",
    FaultClass.NETWORK: "The site could not be reached.",
    FaultClass.UNCLASSIFIED: "Unexpected error while fetching this page.",
}

_MESSAGE_HINTS: list[tuple[tuple[str, ...], FaultClass]] = [
    (("rate limit", "too many requests"), FaultClass.RATE_LIMITED),
    (("unauthorized",), FaultClass.UNAUTHORIZED),
    (("forbidden", "blocked", "captcha"), FaultClass.FORBIDDEN),
    (("not found",), FaultClass.NOT_FOUND),
    (("server error", "bad gateway", "service unavailable", "gateway timeout"), FaultClass.SERVER_ERROR),
    (
        ("timeout", "timed out", "net::err_", "connection refused", "connection reset", "name resolution"),
        FaultClass.NETWORK,
    ),
]


@dataclass(frozen=True)
class RecoveryOptions:
    max_retries: int = 3
    retry_delay: float = 1.0
    fallback_strategy: FallbackStrategy = FallbackStrategy.SKIP
    max_delay: float = 60.0


@dataclass(frozen=True)
class ClassifiedFault:
    fault_class: FaultClass
    status_code: int | None
    signature: str
    message: str
    retry_after: float | None = None


@dataclass(frozen=True)
class RecoveryDecision:
    should_retry: bool
    should_skip: bool
    should_abort: bool
    delay_seconds: float
    user_message: str
    fault_class: FaultClass
    attempt: int


def classify_status(status_code: int) -> FaultClass:
    if status_code == 429:
        return FaultClass.RATE_LIMITED
    if status_code == 401:
        return FaultClass.UNAUTHORIZED
    if status_code == 403:
        return FaultClass.FORBIDDEN
    if status_code in {404, 410}:
        return FaultClass.NOT_FOUND
    if status_code == 408:
        return FaultClass.NETWORK
    if 500 <= status_code <= 599:
        return FaultClass.SERVER_ERROR
    return FaultClass.UNCLASSIFIED


def parse_retry_after(value: str | None) -> float | None:
    """
    Parse a Retry-After header given as seconds or as an HTTP date.
    """

    if not value:
        return None
    stripped = value.strip()
    try:
        return max(0.0, float(stripped))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(stripped)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def classify_fault(fault: BaseException) -> ClassifiedFault:
    status_code: int | None = None
    retry_after: float | None = None

    if isinstance(fault, BackendHTTPError):
        status_code = fault.status_code
        retry_after = fault.retry_after
    elif isinstance(fault, requests.HTTPError) and fault.response is not None:
        status_code = fault.response.status_code
        retry_after = parse_retry_after(fault.response.headers.get("Retry-After"))

    if status_code is not None:
        fault_class = classify_status(status_code)
    elif isinstance(fault, (asyncio.TimeoutError, TimeoutError, requests.Timeout, requests.ConnectionError)):
        fault_class = FaultClass.NETWORK
    elif isinstance(fault, (ConnectionError, OSError)):
        fault_class = FaultClass.NETWORK
    else:
        fault_class = _classify_message(str(fault))

    signature_detail = str(status_code) if status_code is not None else type(fault).__name__
    return ClassifiedFault(
        fault_class=fault_class,
        status_code=status_code,
        signature=f"{fault_class.value}:{signature_detail}",
        message=str(fault) or type(fault).__name__,
        retry_after=retry_after,
    )


def _classify_message(message: str) -> FaultClass:
    lowered = message.lower()
    for needles, fault_class in _MESSAGE_HINTS:
        if any(needle in lowered for needle in needles):
            return fault_class
    return FaultClass.UNCLASSIFIED


class RecoveryHandler:
    """
    Turns raw faults into retry/skip/abort decisions.

    Attempt counters are keyed by (url, fault signature). A key is dropped as
    soon as its retries are exhausted, so one URL never accumulates more
    than ``max_retries`` retry recommendations for the same fault.
    """

    def __init__(self) -> None:
        self._attempts: dict[tuple[str, str], int] = {}
        self._counts: Counter[str] = Counter()
        self._recent: deque[dict[str, Any]] = deque(maxlen=RECENT_ERRORS_LIMIT)

    def handle(
        self,
        fault: BaseException,
        url: str,
        options: RecoveryOptions | None = None,
    ) -> RecoveryDecision:
        options = options or RecoveryOptions()
        classified = classify_fault(fault)
        self._track(classified, url)

        fault_class = classified.fault_class
        if fault_class in {FaultClass.FORBIDDEN, FaultClass.UNAUTHORIZED, FaultClass.NOT_FOUND}:
            return self._skip(classified, url, attempt=0)
        if fault_class == FaultClass.UNCLASSIFIED:
            log_event(
                logger,
                logging.ERROR,
                "unclassified_fault",
                url=url,
                error_type=type(fault).__name__,
                error=classified.message,
            )
            return self._skip(classified, url, attempt=0)

        limit = self._retry_limit(fault_class, options)
        key = (url, classified.signature)
        attempt = self._attempts.get(key, 0)

        if attempt >= limit:
            self._attempts.pop(key, None)
            abort = (
                fault_class == FaultClass.SERVER_ERROR
                and options.fallback_strategy == FallbackStrategy.ABORT
            )
            log_event(
                logger,
                logging.WARNING,
                "retries_exhausted",
                url=url,
                fault_class=fault_class.value,
                attempts=attempt,
                max_retries=limit,
                fallback=options.fallback_strategy.value,
            )
            if abort:
                return RecoveryDecision(
                    should_retry=False,
                    should_skip=False,
                    should_abort=True,
                    delay_seconds=0.0,
                    user_message=f"{_USER_MESSAGES[fault_class]} Giving up after {attempt} retries.",
                    fault_class=fault_class,
                    attempt=attempt,
                )
            return self._skip(classified, url, attempt=attempt)

        self._attempts[key] = attempt + 1
        delay = self._delay(classified, options, attempt)
        log_event(
            logger,
            logging.INFO,
            "retry_scheduled",
            url=url,
            fault_class=fault_class.value,
            attempt=attempt + 1,
            max_retries=limit,
            delay_seconds=delay,
        )
        return RecoveryDecision(
            should_retry=True,
            should_skip=False,
            should_abort=False,
            delay_seconds=delay,
            user_message=f"{_USER_MESSAGES[fault_class]} Retrying ({attempt + 1}/{limit}).",
            fault_class=fault_class,
            attempt=attempt + 1,
        )

    def clear(self, url: str | None = None) -> None:
        if url is None:
            self._attempts.clear()
            return
        for key in [key for key in self._attempts if key[0] == url]:
            del self._attempts[key]

    def pending_keys(self) -> list[tuple[str, str]]:
        return list(self._attempts)

    def statistics(self) -> dict[str, Any]:
        return {
            "total_errors": sum(self._counts.values()),
            "by_fault_class": dict(self._counts),
            "active_retry_keys": len(self._attempts),
            "recent_errors": list(self._recent),
        }

    def clear_history(self) -> None:
        self._counts.clear()
        self._recent.clear()

    def _track(self, classified: ClassifiedFault, url: str) -> None:
        self._counts[classified.fault_class.value] += 1
        self._recent.append(
            {
                "url": url,
                "fault_class": classified.fault_class.value,
                "status_code": classified.status_code,
                "message": classified.message,
                "at": datetime.now(timezone.utc).isoformat(),
            }
        )

    @staticmethod
    def _retry_limit(fault_class: FaultClass, options: RecoveryOptions) -> int:
        limit = max(0, options.max_retries)
        if fault_class == FaultClass.NETWORK:
            return min(NETWORK_RETRY_CAP, limit)
        return limit

    @staticmethod
    def _delay(classified: ClassifiedFault, options: RecoveryOptions, attempt: int) -> float:
        base = max(0.0, options.retry_delay)
        if classified.fault_class == FaultClass.RATE_LIMITED:
            if classified.retry_after is not None:
                delay = classified.retry_after
            else:
                delay = base * (attempt + 1)
        else:
            delay = base * (2 ** attempt)
        return min(delay, max(0.0, options.max_delay))

    @staticmethod
    def _skip(classified: ClassifiedFault, url: str, *, attempt: int) -> RecoveryDecision:
        return RecoveryDecision(
            should_retry=False,
            should_skip=True,
            should_abort=False,
            delay_seconds=0.0,
            user_message=f"{_USER_MESSAGES[classified.fault_class]} Skipping {url}.",
            fault_class=classified.fault_class,
            attempt=attempt,
        )
