from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from app.config import get_app_settings


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    database_url = os.getenv("DATABASE_URL", "").strip()
    has_parts = bool(os.getenv("POSTGRES_HOST", "").strip() and os.getenv("POSTGRES_DB", "").strip())
    if not database_url and not has_parts:
        errors.append("No database URL configured. Set DATABASE_URL, or POSTGRES_HOST and POSTGRES_DB.")

    fallback = os.getenv("ACQ_FALLBACK_STRATEGY", "skip").strip().lower()
    if fallback not in {"skip", "partial", "abort"}:
        errors.append(
            f"ACQ_FALLBACK_STRATEGY='{fallback}' is not valid. Allowed values: ['abort', 'partial', 'skip']."
        )

    managed_url = os.getenv("MANAGED_SCRAPER_API_URL", "").strip()
    if managed_url and not managed_url.startswith(("http://", "https://")):
        errors.append("MANAGED_SCRAPER_API_URL must be an http(s) URL.")

    if errors:
        raise RuntimeError(
            "Startup validation failed: missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = get_app_settings().log_level
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except SQLAlchemyError as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Every table registered on Base.metadata must exist in the database.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    missing = set(Base.metadata.tables.keys()) - set(inspector.get_table_names())

    if missing:
        logging.getLogger(__name__).critical(
            "Schema mismatch: %d table(s) absent from the database: %s. "
            "Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate the database, start the scheduler on boot; release backends and the pool on exit."""
    log = logging.getLogger(__name__)
    settings = get_app_settings()

    _check_db()
    log.info("Database connectivity confirmed")
    if settings.check_schema_on_startup:
        _check_schema()
        log.info("Database schema validated")

    scheduler = None
    if settings.scheduler_enabled:
        from app.scheduler.jobs import build_scheduler

        scheduler = build_scheduler()
        scheduler.start()
        log.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=True)
            log.info("Scheduler shut down")

        from app.services.intelligence_service import get_intelligence_service
        from db.session import dispose_engine

        await get_intelligence_service().orchestrator.close()
        dispose_engine()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title=get_app_settings().title,
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import intelligence_router

    application.include_router(intelligence_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
