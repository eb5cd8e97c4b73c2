"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


@dataclass(frozen=True)
class AppSettings:
    """
    Process-level settings for the API and its scheduler.
    """

    title: str = "Site Intelligence API"
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    stale_reaper_interval_minutes: int = 15
    check_schema_on_startup: bool = True


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """
    Return cached application settings from environment variables.
    """

    return AppSettings(
        title=_get_str_env("APP_TITLE", "Site Intelligence API"),
        log_level=_get_str_env("LOG_LEVEL", "INFO").upper(),
        scheduler_enabled=_get_bool_env("SCHEDULER_ENABLED", True),
        stale_reaper_interval_minutes=max(1, _get_int_env("STALE_REAPER_INTERVAL_MINUTES", 15)),
        check_schema_on_startup=_get_bool_env("CHECK_SCHEMA_ON_STARTUP", True),
    )
