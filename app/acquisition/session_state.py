"""
app/acquisition/session_state.py

Bounded in-memory working state for one acquisition session, synchronized
to the session store through versioned compare-and-swap updates.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from collections import deque
from collections.abc import Awaitable, Callable, Hashable, Mapping
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, TypeVar
from urllib.parse import urlparse

from app.acquisition.errors import (
    SessionAbortedError,
    SessionConflictError,
    SessionNotFoundError,
)
from app.domain.intelligence import (
    PHASE_ORDINALS,
    ScraperRun,
    SessionDescriptor,
    SessionPhase,
    SessionRecord,
)
from app.scraping.logging_utils import log_event
from app.scraping.storage.base import SessionStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mutator = Callable[[SessionRecord], dict[str, Any]]
PhaseHandler = Callable[[dict[str, Any]], Awaitable[Any]]

STAGE_HISTORY_LIMIT = 20


def normalize_domain(domain: str) -> str:
    """
    Reduce user input such as ``https://www.Example.com/about`` to ``example.com``.
    """

    raw = (domain or "").strip().lower()
    if "://" not in raw:
        raw = f"//{raw}"
    host = (urlparse(raw).hostname or "").strip(".")
    if host.startswith("www."):
        host = host[4:]
    if not host or "." not in host:
        raise ValueError(f"Invalid domain: {domain!r}")
    return host


class RequestDeduplicator:
    """
    Per-key registry of in-flight operations.

    A second caller for a key that is already running awaits the same
    future instead of starting a duplicate. Entries are removed as soon as
    the operation finishes, whether it succeeded or failed.
    """

    def __init__(self) -> None:
        self._in_flight: dict[Hashable, asyncio.Future[Any]] = {}

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        future = self._in_flight.get(key)
        if future is None:
            future = asyncio.ensure_future(factory())
            self._in_flight[key] = future
            future.add_done_callback(lambda _done, key=key: self._in_flight.pop(key, None))
        else:
            log_event(logger, logging.DEBUG, "request_deduplicated", key=repr(key))
        return await asyncio.shield(future)

    def __len__(self) -> int:
        return len(self._in_flight)


class SessionStateManager:
    """
    Working state for one (user, domain) session.

    Stage data is cached in a sliding window of ``stage_window`` stages. When
    the window overflows, the lowest stage ordinal is evicted from memory;
    every stage is also persisted under ``merged_data["stages"]`` so evicted
    stages remain readable.
    """

    def __init__(
        self,
        *,
        store: SessionStore,
        user_id: str,
        deduplicator: RequestDeduplicator | None = None,
        stage_window: int = 2,
        run_history_limit: int = 20,
        conflict_retries: int = 3,
        phase_handlers: Mapping[SessionPhase, PhaseHandler] | None = None,
    ) -> None:
        self._store = store
        self.user_id = user_id
        self._deduplicator = deduplicator or RequestDeduplicator()
        self._stage_window = max(1, stage_window)
        self._conflict_retries = max(1, conflict_retries)
        self._phase_handlers: dict[SessionPhase, PhaseHandler] = dict(phase_handlers or {})

        self._stages: dict[str, tuple[int, Any]] = {}
        self._stage_history: deque[dict[str, Any]] = deque(maxlen=STAGE_HISTORY_LIMIT)
        self._run_history: deque[ScraperRun] = deque(maxlen=max(1, run_history_limit))
        self._write_lock = asyncio.Lock()

        self.domain: str | None = None
        self._descriptor: SessionDescriptor | None = None
        self._record: SessionRecord | None = None

    # ------------------------------------------------------------------
    # Session binding
    # ------------------------------------------------------------------

    @property
    def session_id(self) -> uuid.UUID:
        if self._descriptor is None:
            raise SessionNotFoundError("Session state manager is not bound to a session.")
        return self._descriptor.session_id

    @property
    def descriptor(self) -> SessionDescriptor | None:
        return self._descriptor

    @property
    def record(self) -> SessionRecord | None:
        return self._record

    async def initialize_domain(self, domain: str) -> SessionDescriptor:
        normalized = normalize_domain(domain)
        if normalized != self.domain:
            self._stages.clear()
            self._stage_history.clear()
        self.domain = normalized
        descriptor = await self.fetch_or_create_session(normalized)
        log_event(
            logger,
            logging.INFO,
            "session_initialized",
            domain=normalized,
            session_id=descriptor.session_id,
            created=descriptor.created,
            phase=descriptor.phase.value,
        )
        return descriptor

    def bind(self, record: SessionRecord) -> SessionDescriptor:
        """
        Attach to an already-known session record.
        """

        self.domain = record.domain
        self._record = record
        self._descriptor = SessionDescriptor.from_record(record)
        return self._descriptor

    async def fetch_or_create_session(self, domain: str) -> SessionDescriptor:
        normalized = normalize_domain(domain)
        key = (self.user_id, normalized)
        record, created = await self._deduplicator.run(key, lambda: self._fetch_or_create(normalized))
        self.domain = normalized
        self._record = record
        self._descriptor = SessionDescriptor.from_record(record, created=created)
        return self._descriptor

    async def _fetch_or_create(self, domain: str) -> tuple[SessionRecord, bool]:
        existing = await self._store.find_active_session(domain, self.user_id)
        if existing is not None:
            return existing, False
        created = await self._store.create_session(domain, self.user_id)
        log_event(
            logger,
            logging.INFO,
            "session_created",
            domain=domain,
            session_id=created.id,
            user_id=self.user_id,
        )
        return created, True

    # ------------------------------------------------------------------
    # Versioned updates
    # ------------------------------------------------------------------

    async def refresh(self) -> SessionRecord:
        record = await self._store.get_session(self.session_id)
        if record is None:
            raise SessionNotFoundError(f"Session {self.session_id} not found.")
        self._record = record
        return record

    async def update_session(self, mutator: Mutator) -> SessionRecord:
        """
        Read the current version, compute a patch, write it with that version.

        The mutator receives a record whose ``merged_data`` is a private deep
        copy and returns the patch to apply. On a version conflict the whole
        cycle is repeated, up to ``conflict_retries`` times.
        """

        async with self._write_lock:
            for attempt in range(1, self._conflict_retries + 1):
                current = await self.refresh()
                working = replace(current, merged_data=copy.deepcopy(current.merged_data))
                patch = mutator(working)
                updated = await self._store.update_session(current.id, patch, current.version)
                if updated is not None:
                    self._record = updated
                    if self._descriptor is not None:
                        self._descriptor = replace(
                            self._descriptor,
                            phase=updated.phase,
                            version=updated.version,
                        )
                    return updated
                log_event(
                    logger,
                    logging.WARNING,
                    "session_version_conflict",
                    session_id=current.id,
                    expected_version=current.version,
                    attempt=attempt,
                )

        raise SessionConflictError(
            f"Session {self.session_id} update lost {self._conflict_retries} version races."
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def register_phase_handler(self, phase: SessionPhase, handler: PhaseHandler) -> None:
        self._phase_handlers[phase] = handler

    async def execute_phase(
        self,
        phase: SessionPhase,
        params: dict[str, Any] | None = None,
        *,
        merge: Callable[[dict[str, Any]], None] | None = None,
    ) -> Any:
        """
        Record the transition into ``phase`` and run its registered handler.

        ``merge`` folds the caller's accumulated results into merged_data as
        part of the same versioned write.
        """

        await self.transition(phase, merge=merge)
        handler = self._phase_handlers.get(phase)
        if handler is None:
            return None
        return await handler(dict(params or {}))

    async def transition(
        self,
        phase: SessionPhase,
        *,
        error_message: str | None = None,
        merge: Callable[[dict[str, Any]], None] | None = None,
    ) -> SessionRecord:
        def mutator(record: SessionRecord) -> dict[str, Any]:
            movable = phase == SessionPhase.DELETED or record.phase == phase
            if record.phase.is_terminal and not movable:
                if record.phase == SessionPhase.ABORTED:
                    raise SessionAbortedError(record.error_message)
                raise SessionConflictError(
                    f"Session {record.id} is {record.phase.value}; cannot move to {phase.value}."
                )
            merged = record.merged_data
            counts = merged.setdefault("stats", {}).setdefault("phaseCounts", {})
            if not (record.phase == phase and phase.is_terminal):
                counts[phase.value] = int(counts.get(phase.value, 0)) + 1
            if merge is not None:
                merge(merged)
            patch: dict[str, Any] = {"phase": phase, "merged_data": merged}
            if error_message is not None:
                patch["error_message"] = error_message
            return patch

        updated = await self.update_session(mutator)
        log_event(
            logger,
            logging.INFO,
            "session_phase_changed",
            session_id=updated.id,
            phase=phase.value,
            version=updated.version,
        )
        return updated

    # ------------------------------------------------------------------
    # Stage data
    # ------------------------------------------------------------------

    async def set_stage_data(self, stage: int | str | SessionPhase, data: Any) -> None:
        key, ordinal = self._stage_key(stage)
        self._stages[key] = (ordinal, data)
        self._remember("set", key)

        while len(self._stages) > self._stage_window:
            evicted = min(self._stages, key=lambda item: self._stages[item][0])
            del self._stages[evicted]
            self._remember("evict", evicted)
            log_event(logger, logging.DEBUG, "stage_evicted", stage=evicted, window=self._stage_window)

        def mutator(record: SessionRecord) -> dict[str, Any]:
            merged = record.merged_data
            merged.setdefault("stages", {})[key] = data
            return {"merged_data": merged}

        await self.update_session(mutator)

    async def get_stage_data(self, stage: int | str | SessionPhase) -> Any:
        key, _ = self._stage_key(stage)
        cached = self._stages.get(key)
        if cached is not None:
            return cached[1]
        record = await self.refresh()
        return (record.merged_data.get("stages") or {}).get(key)

    def clear_stage_data(self, stage: int | str | SessionPhase | None = None) -> None:
        """
        Drop cached stage data; persisted copies are untouched.
        """

        if stage is None:
            self._stages.clear()
            self._remember("clear", "*")
            return
        key, _ = self._stage_key(stage)
        self._stages.pop(key, None)
        self._remember("clear", key)

    def cached_stages(self) -> list[str]:
        return sorted(self._stages, key=lambda item: self._stages[item][0])

    @property
    def stage_history(self) -> list[dict[str, Any]]:
        return list(self._stage_history)

    @staticmethod
    def _stage_key(stage: int | str | SessionPhase) -> tuple[str, int]:
        if isinstance(stage, SessionPhase):
            return stage.value, PHASE_ORDINALS.get(stage, len(PHASE_ORDINALS) + 1)
        if isinstance(stage, bool):
            raise ValueError(f"Invalid stage: {stage!r}")
        if isinstance(stage, int):
            return str(stage), stage
        text = str(stage).strip()
        digits = "".join(char for char in text if char.isdigit())
        if digits:
            return text, int(digits)
        try:
            phase = SessionPhase(text.lower())
        except ValueError:
            raise ValueError(f"Invalid stage: {stage!r}") from None
        return phase.value, PHASE_ORDINALS.get(phase, len(PHASE_ORDINALS) + 1)

    def _remember(self, action: str, stage: str) -> None:
        self._stage_history.append(
            {
                "action": action,
                "stage": stage,
                "at": datetime.now(timezone.utc).isoformat(),
            }
        )

    # ------------------------------------------------------------------
    # Scraper runs
    # ------------------------------------------------------------------

    async def record_run(self, run: ScraperRun) -> None:
        self._run_history.append(run)
        await self._store.record_scraper_run(run)
        log_event(
            logger,
            logging.INFO,
            "scraper_run_recorded",
            session_id=run.session_id,
            scraper_id=run.scraper_id,
            status=run.status.value,
            pages_scraped=run.pages_scraped,
            duration_ms=run.duration_ms,
        )

    @property
    def history(self) -> list[ScraperRun]:
        return list(self._run_history)
