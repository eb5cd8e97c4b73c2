"""
Environment loader for acquisition settings.
"""

from __future__ import annotations

import os
from functools import lru_cache

from db.config import load_env_files

from app.scraping.config.models import AcquisitionSettings, FallbackStrategy


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    stripped = raw.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    stripped = raw.strip()
    return stripped or None


def _get_fallback_env(name: str, default: FallbackStrategy) -> FallbackStrategy:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return FallbackStrategy(raw.strip().lower())
    except ValueError:
        return default


@lru_cache(maxsize=1)
def get_acquisition_settings() -> AcquisitionSettings:
    """
    Return cached acquisition settings from environment variables.
    """

    load_env_files()
    return AcquisitionSettings(
        concurrency_limit=max(1, _get_int_env("ACQ_CONCURRENCY_LIMIT", 5)),
        call_timeout_seconds=max(1.0, _get_float_env("ACQ_CALL_TIMEOUT_SECONDS", 30.0)),
        max_retries=max(0, _get_int_env("ACQ_MAX_RETRIES", 3)),
        retry_delay_seconds=max(0.0, _get_float_env("ACQ_RETRY_DELAY_SECONDS", 1.0)),
        max_retry_delay_seconds=max(0.0, _get_float_env("ACQ_MAX_RETRY_DELAY_SECONDS", 60.0)),
        fallback_strategy=_get_fallback_env("ACQ_FALLBACK_STRATEGY", FallbackStrategy.SKIP),
        stage_window=max(1, _get_int_env("ACQ_STAGE_WINDOW", 2)),
        run_history_limit=max(1, _get_int_env("ACQ_RUN_HISTORY_LIMIT", 20)),
        version_conflict_retries=max(1, _get_int_env("ACQ_VERSION_CONFLICT_RETRIES", 3)),
        user_agent=_get_str_env(
            "ACQ_USER_AGENT",
            "SiteIntelBot/1.0 (+https://example.com/bot)",
        ),
        rate_limit_per_second=max(0.1, _get_float_env("ACQ_RATE_LIMIT_PER_SECOND", 2.0)),
        allow_when_robots_unreachable=_get_bool_env("ACQ_ALLOW_WHEN_ROBOTS_UNREACHABLE", True),
        max_sitemap_urls=max(1, _get_int_env("ACQ_MAX_SITEMAP_URLS", 500)),
        stale_session_minutes=max(1, _get_int_env("ACQ_STALE_SESSION_MINUTES", 60)),
        render_enabled=_get_bool_env("ACQ_RENDER_ENABLED", True),
        managed_api_url=_get_str_env("MANAGED_SCRAPER_API_URL", "https://api.firecrawl.dev/v1"),
        managed_api_key=_get_optional_str_env("MANAGED_SCRAPER_API_KEY"),
    )
