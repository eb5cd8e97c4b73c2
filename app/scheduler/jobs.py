"""
app/scheduler/jobs.py

APScheduler jobs for acquisition housekeeping.

Schedule
--------
  stale_session_reaper - every ``STALE_REAPER_INTERVAL_MINUTES`` minutes,
  aborts sessions stuck in a non-terminal phase for longer than
  ``ACQ_STALE_SESSION_MINUTES``.

Lifecycle
---------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import asyncio
import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import get_app_settings
from app.services.intelligence_service import IntelligenceService, get_intelligence_service

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job: stale session reaper
# ---------------------------------------------------------------------------


def run_stale_session_reaper(service: IntelligenceService | None = None) -> int:
    """
    Abort stale sessions. Runs on a scheduler worker thread with its own loop.
    """

    logger.info("Scheduler: stale_session_reaper starting")
    service = service or get_intelligence_service()
    try:
        aborted = asyncio.run(service.reap_stale_sessions())
    except Exception as exc:  # noqa: BLE001
        logger.warning("Scheduler: stale_session_reaper failed: %s", exc)
        return 0
    logger.info("Scheduler: stale_session_reaper complete aborted=%d", aborted)
    return aborted


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler() -> BackgroundScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    """

    settings = get_app_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_stale_session_reaper,
        trigger="interval",
        minutes=settings.stale_reaper_interval_minutes,
        id="stale_session_reaper",
        name="Stale acquisition session reaper",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=600,
    )

    return scheduler
