"""
app/services/intelligence_service.py

Composition root for the acquisition pipeline and the operations the API
and scheduler call into.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Protocol

from fastapi import BackgroundTasks

from app.acquisition.credits import CreditLedger
from app.acquisition.errors import SessionConflictError
from app.acquisition.orchestrator import ProgressiveEnhancementOrchestrator
from app.acquisition.session_state import RequestDeduplicator
from app.acquisition.validator import ContentValidator
from app.domain.intelligence import SessionDescriptor, SessionPhase, SessionRecord
from app.scraping.config import AcquisitionSettings, ScrapePreset, get_acquisition_settings
from app.scraping.logging_utils import log_event
from app.scraping.registry import BackendRegistry
from app.scraping.storage import (
    BillingStore,
    DocumentSink,
    SessionStore,
    SQLAlchemyBillingStore,
    SQLAlchemyDocumentSink,
    SQLAlchemySessionStore,
)

logger = logging.getLogger(__name__)


class AcquisitionTaskExecutor(Protocol):
    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        ...


class FastAPIBackgroundTaskExecutor:
    def __init__(self, background_tasks: BackgroundTasks) -> None:
        self._background_tasks = background_tasks

    def submit(self, task: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self._background_tasks.add_task(task, *args, **kwargs)


class IntelligenceService:
    """
    Starts, inspects, aborts and deletes acquisition sessions.
    """

    def __init__(
        self,
        *,
        settings: AcquisitionSettings | None = None,
        store: SessionStore | None = None,
        billing: BillingStore | None = None,
        document_sink: DocumentSink | None = None,
        registry: BackendRegistry | None = None,
        orchestrator: ProgressiveEnhancementOrchestrator | None = None,
    ) -> None:
        self._settings = settings or get_acquisition_settings()
        self._store = store or SQLAlchemySessionStore()
        if orchestrator is None:
            orchestrator = ProgressiveEnhancementOrchestrator(
                store=self._store,
                registry=registry or BackendRegistry.build_default(self._settings),
                validator=ContentValidator(),
                ledger=CreditLedger(billing or SQLAlchemyBillingStore()),
                settings=self._settings,
                deduplicator=RequestDeduplicator(),
                document_sink=document_sink or SQLAlchemyDocumentSink(),
            )
        self._orchestrator = orchestrator

    @property
    def orchestrator(self) -> ProgressiveEnhancementOrchestrator:
        return self._orchestrator

    async def start_session(
        self,
        *,
        user_id: str,
        domain: str,
        preset: Mapping[str, Any] | None,
        executor: AcquisitionTaskExecutor,
    ) -> tuple[SessionDescriptor, bool]:
        """
        Resolve the session for (user, domain) and schedule a job for it.

        Returns the descriptor and whether a new job was scheduled; a session
        that already has a running job is returned as-is.
        """

        resolved = ScrapePreset.from_mapping(preset or {})
        descriptor = await self._orchestrator.prepare(user_id, domain)
        if self._orchestrator.is_running(descriptor.session_id):
            return descriptor, False

        executor.submit(self._run_job, user_id, descriptor.domain, resolved)
        log_event(
            logger,
            logging.INFO,
            "acquisition_scheduled",
            session_id=descriptor.session_id,
            domain=descriptor.domain,
            user_id=user_id,
        )
        return descriptor, True

    async def _run_job(self, user_id: str, domain: str, preset: ScrapePreset) -> None:
        try:
            await self._orchestrator.run(user_id, domain, preset)
        except SessionConflictError as exc:
            log_event(logger, logging.WARNING, "acquisition_not_started", domain=domain, error=str(exc))

    async def get_session(self, session_id: uuid.UUID) -> SessionRecord | None:
        return await self._store.get_session(session_id)

    def is_running(self, session_id: uuid.UUID) -> bool:
        return self._orchestrator.is_running(session_id)

    async def abort_session(self, session_id: uuid.UUID, reason: str | None = None) -> SessionRecord:
        return await self._orchestrator.abort(session_id, reason)

    async def delete_session(self, session_id: uuid.UUID) -> SessionRecord:
        return await self._orchestrator.delete(session_id)

    async def reap_stale_sessions(self, *, now: datetime | None = None) -> int:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(
            minutes=self._settings.stale_session_minutes
        )
        return await self._orchestrator.abort_stale_sessions(cutoff)

    @staticmethod
    def is_visible(record: SessionRecord) -> bool:
        return record.phase != SessionPhase.DELETED


@lru_cache(maxsize=1)
def get_intelligence_service() -> IntelligenceService:
    """
    Build and cache the acquisition service.
    """

    return IntelligenceService()
