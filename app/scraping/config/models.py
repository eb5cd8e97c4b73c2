"""
Acquisition configuration models.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any


class BackendId(str, Enum):
    """
    Built-in scraper backends, ordered by rendering capability and cost.
    """

    STATIC = "static"
    RENDER = "render"
    MANAGED_API = "managed_api"


class Depth(str, Enum):
    """
    How much of a discovered site to process.
    """

    QUICK = "quick"
    STANDARD = "standard"
    DEEP = "deep"

    @property
    def page_limit(self) -> int:
        return _DEPTH_PAGE_LIMITS[self]


_DEPTH_PAGE_LIMITS: dict[Depth, int] = {
    Depth.QUICK: 10,
    Depth.STANDARD: 25,
    Depth.DEEP: 50,
}


class FallbackStrategy(str, Enum):
    """
    What to do with a page once server-error retries are exhausted.

    skip    -- drop the page, continue the job
    partial -- keep whatever other pages produced, drop this one
    abort   -- abort the whole session
    """

    SKIP = "skip"
    PARTIAL = "partial"
    ABORT = "abort"


@dataclass(frozen=True)
class ScrapePreset:
    """
    Closed per-job scraping configuration.

    backend         -- starting (cheapest acceptable) backend for rapid extraction
    depth           -- page limit and cost multiplier
    extract_schema  -- request structured extraction, adds a per-page surcharge
    premium         -- premium proxying/rendering, multiplies cost
    """

    backend: BackendId = BackendId.STATIC
    depth: Depth = Depth.STANDARD
    extract_schema: bool = False
    premium: bool = False

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "ScrapePreset":
        """
        Build a preset from loosely-typed input, rejecting unknown keys.
        """

        if not raw:
            return cls()

        allowed = {item.name for item in fields(cls)}
        unknown = sorted(set(raw) - allowed)
        if unknown:
            raise ValueError(
                f"Unknown scrape preset option(s): {', '.join(unknown)}. "
                f"Allowed options: {', '.join(sorted(allowed))}."
            )

        return cls(
            backend=_coerce_enum(BackendId, raw.get("backend", BackendId.STATIC), "backend"),
            depth=_coerce_enum(Depth, raw.get("depth", Depth.STANDARD), "depth"),
            extract_schema=_coerce_bool(raw.get("extract_schema", False), "extract_schema"),
            premium=_coerce_bool(raw.get("premium", False), "premium"),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "backend": self.backend.value,
            "depth": self.depth.value,
            "extract_schema": self.extract_schema,
            "premium": self.premium,
        }


def _coerce_enum(enum_type: type[Enum], value: Any, name: str) -> Any:
    if isinstance(value, enum_type):
        return value
    if isinstance(value, str):
        try:
            return enum_type(value.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(item.value for item in enum_type)
    raise ValueError(f"Invalid {name}={value!r}. Allowed values: {allowed}.")


def _coerce_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"Option '{name}' must be a boolean, got {type(value).__name__}.")


@dataclass(frozen=True)
class AcquisitionSettings:
    """
    Runtime settings for the acquisition pipeline.
    """

    concurrency_limit: int = 5
    call_timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    max_retry_delay_seconds: float = 60.0
    fallback_strategy: FallbackStrategy = FallbackStrategy.SKIP
    stage_window: int = 2
    run_history_limit: int = 20
    version_conflict_retries: int = 3
    user_agent: str = "SiteIntelBot/1.0 (+https://example.com/bot)"
    rate_limit_per_second: float = 2.0
    allow_when_robots_unreachable: bool = True
    max_sitemap_urls: int = 500
    stale_session_minutes: int = 60
    render_enabled: bool = True
    managed_api_url: str = "https://api.firecrawl.dev/v1"
    managed_api_key: str | None = None
