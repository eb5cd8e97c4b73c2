"""
SQLAlchemy-backed implementations of the acquisition storage interfaces.

The ORM stack is synchronous; each call runs in a worker thread inside its
own transaction so the event loop is never blocked on the database.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.domain.intelligence import (
    ExtractionSnapshot,
    ScraperRun,
    SessionPhase,
    SessionRecord,
    empty_merged_data,
)
from app.scraping.logging_utils import log_event
from app.scraping.storage.base import BillingStore, DocumentSink, SessionStore
from db.models.intelligence_session import IntelligenceSession
from db.repositories import (
    AcquisitionRunRepository,
    CreditRepository,
    IntelligenceSessionRepository,
)
from db.session import get_session_factory

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PATCH_COLUMNS = {"phase", "merged_data", "error_message"}


def to_session_record(row: IntelligenceSession) -> SessionRecord:
    return SessionRecord(
        id=row.id,
        user_id=row.user_id,
        domain=row.domain,
        phase=SessionPhase(row.phase),
        merged_data=dict(row.merged_data or {}),
        version=int(row.version),
        error_message=row.error_message,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class _TransactionalStore:
    def __init__(self, *, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory

    def _transaction(self, work: Callable[[Session], T]) -> T:
        factory = self._session_factory or get_session_factory()
        session = factory()
        try:
            result = work(session)
            session.commit()
            return result
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    async def _run(self, work: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._transaction, work)


class SQLAlchemySessionStore(_TransactionalStore, SessionStore):
    """
    Session records persisted in ``intelligence_sessions``.
    """

    async def get_session(self, session_id: uuid.UUID) -> SessionRecord | None:
        def work(session: Session) -> SessionRecord | None:
            row = IntelligenceSessionRepository(session).get_session(session_id)
            return to_session_record(row) if row is not None else None

        return await self._run(work)

    async def create_session(self, domain: str, user_id: str) -> SessionRecord:
        def work(session: Session) -> SessionRecord:
            row = IntelligenceSessionRepository(session).create_session(
                domain=domain,
                user_id=user_id,
                merged_data=empty_merged_data(),
            )
            return to_session_record(row)

        try:
            return await self._run(work)
        except IntegrityError:
            # Lost the race against another process creating the same active session.
            existing = await self.find_active_session(domain, user_id)
            if existing is None:
                raise
            log_event(
                logger,
                logging.INFO,
                "session_create_race_resolved",
                domain=domain,
                session_id=existing.id,
            )
            return existing

    async def update_session(
        self,
        session_id: uuid.UUID,
        patch: dict[str, Any],
        expected_version: int,
    ) -> SessionRecord | None:
        unknown = set(patch) - _PATCH_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported session patch keys: {sorted(unknown)}")

        values: dict[str, Any] = dict(patch)
        if isinstance(values.get("phase"), SessionPhase):
            values["phase"] = values["phase"].value

        def work(session: Session) -> SessionRecord | None:
            row = IntelligenceSessionRepository(session).compare_and_swap(
                session_id=session_id,
                expected_version=expected_version,
                values=values,
            )
            return to_session_record(row) if row is not None else None

        return await self._run(work)

    async def find_active_session(self, domain: str, user_id: str) -> SessionRecord | None:
        def work(session: Session) -> SessionRecord | None:
            row = IntelligenceSessionRepository(session).find_active(domain=domain, user_id=user_id)
            return to_session_record(row) if row is not None else None

        return await self._run(work)

    async def record_scraper_run(self, run: ScraperRun) -> None:
        def work(session: Session) -> None:
            AcquisitionRunRepository(session).add_scraper_run(
                run_id=run.id,
                session_id=run.session_id,
                scraper_id=run.scraper_id,
                pages_scraped=run.pages_scraped,
                data_points=run.data_points,
                discovered_links=run.discovered_links,
                duration_ms=run.duration_ms,
                status=run.status.value,
                extracted_data=run.extracted_data,
            )

        await self._run(work)

    async def list_stale_sessions(self, older_than: datetime) -> list[SessionRecord]:
        def work(session: Session) -> list[SessionRecord]:
            rows = IntelligenceSessionRepository(session).list_stale(older_than=older_than)
            return [to_session_record(row) for row in rows]

        return await self._run(work)


class SQLAlchemyBillingStore(_TransactionalStore, BillingStore):
    """
    Credit balances in ``credit_accounts`` with a ``credit_transactions`` log.
    """

    async def get_user_balance(self, user_id: str) -> int:
        return await self._run(lambda session: CreditRepository(session).get_balance(user_id))

    async def record_transaction(
        self,
        user_id: str,
        amount: int,
        reason: str,
        metadata: dict[str, Any],
    ) -> int | None:
        def work(session: Session) -> int | None:
            return CreditRepository(session).apply_transaction(
                user_id=user_id,
                amount=amount,
                reason=reason,
                metadata=metadata,
            )

        return await self._run(work)


class SQLAlchemyDocumentSink(_TransactionalStore, DocumentSink):
    """
    Stores completed extraction snapshots for downstream document generation.
    """

    async def handoff(self, snapshot: ExtractionSnapshot) -> None:
        def work(session: Session) -> None:
            AcquisitionRunRepository(session).add_snapshot(
                session_id=snapshot.session_id,
                session_version=snapshot.session_version,
                domain=snapshot.domain,
                payload=snapshot.payload,
            )

        await self._run(work)
        log_event(
            logger,
            logging.INFO,
            "snapshot_handed_off",
            session_id=snapshot.session_id,
            version=snapshot.session_version,
        )
