"""
Repository for scraper runs and extraction snapshots.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from db.models.extraction_snapshot import ExtractionSnapshotRecord
from db.models.scraper_run import ScraperRunRecord


class AcquisitionRunRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def add_scraper_run(
        self,
        *,
        run_id: uuid.UUID,
        session_id: uuid.UUID,
        scraper_id: str,
        pages_scraped: int,
        data_points: int,
        discovered_links: int,
        duration_ms: int,
        status: str,
        extracted_data: dict[str, Any] | None,
    ) -> ScraperRunRecord:
        row = ScraperRunRecord(
            id=run_id,
            session_id=session_id,
            scraper_id=scraper_id,
            pages_scraped=pages_scraped,
            data_points=data_points,
            discovered_links=discovered_links,
            duration_ms=duration_ms,
            status=status,
            extracted_data=extracted_data,
        )
        self._session.add(row)
        self._session.flush()
        return row

    def list_scraper_runs(self, session_id: uuid.UUID, *, limit: int = 20) -> list[ScraperRunRecord]:
        stmt: Select[tuple[ScraperRunRecord]] = (
            select(ScraperRunRecord)
            .where(ScraperRunRecord.session_id == session_id)
            .order_by(ScraperRunRecord.created_at.desc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def add_snapshot(
        self,
        *,
        session_id: uuid.UUID,
        session_version: int,
        domain: str,
        payload: dict[str, Any],
    ) -> ExtractionSnapshotRecord:
        row = ExtractionSnapshotRecord(
            session_id=session_id,
            session_version=session_version,
            domain=domain,
            payload=payload,
        )
        self._session.add(row)
        self._session.flush()
        return row
