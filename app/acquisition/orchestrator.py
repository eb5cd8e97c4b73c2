"""
app/acquisition/orchestrator.py

Progressive enhancement orchestrator.

Drives one session through discovering -> extracting -> validating ->
(enhancing) -> complete, or to aborted from any phase. Pages are extracted
with the preset backend first; only pages the validator flags are re-run on
the next backend tier, and only when the ledger can reserve the cost.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.acquisition.credits import CreditLedger, calculate_cost
from app.acquisition.errors import (
    BackendHTTPError,
    DiscoveryError,
    ExtractionFailedError,
    InsufficientCreditsError,
    SessionAbortedError,
    SessionConflictError,
    SessionNotFoundError,
)
from app.acquisition.recovery import RecoveryDecision, RecoveryHandler, RecoveryOptions
from app.acquisition.session_state import RequestDeduplicator, SessionStateManager
from app.acquisition.url_categorizer import CategorizedUrl, prioritize_urls
from app.acquisition.validator import (
    BatchValidation,
    ContentValidator,
    EnhancementCandidate,
    ValidationResult,
)
from app.domain.intelligence import (
    AcquisitionResult,
    ExtractionSnapshot,
    ScraperRun,
    ScraperRunStatus,
    SessionDescriptor,
    SessionPhase,
    SessionRecord,
)
from app.scraping.base import ScraperBackend
from app.scraping.config.models import AcquisitionSettings, ScrapePreset
from app.scraping.logging_utils import log_event
from app.scraping.registry import BackendRegistry
from app.scraping.storage.base import DocumentSink, SessionStore
from app.scraping.types import PageResult

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

DEFAULT_ABORT_REASON = "Session aborted"


@dataclass
class _ActiveJob:
    session_id: uuid.UUID
    user_id: str
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    abort_reason: str | None = None
    reserved: int = 0
    charged: int = 0

    def cancel(self, reason: str | None) -> None:
        if not self.cancel_event.is_set():
            self.abort_reason = reason or DEFAULT_ABORT_REASON
            self.cancel_event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise SessionAbortedError(self.abort_reason)


@dataclass(frozen=True)
class _UrlOutcome:
    url: str
    page: PageResult | None = None
    decision: RecoveryDecision | None = None
    error: str | None = None


@dataclass
class _JobContext:
    job: _ActiveJob
    manager: SessionStateManager
    recovery: RecoveryHandler
    preset: ScrapePreset
    options: RecoveryOptions
    domain: str
    discovery: dict[str, Any] = field(default_factory=dict)
    selected: list[CategorizedUrl] = field(default_factory=list)
    pages: dict[str, PageResult] = field(default_factory=dict)
    validation: dict[str, ValidationResult] = field(default_factory=dict)
    validation_stats: dict[str, Any] = field(default_factory=dict)
    enhanced_urls: set[str] = field(default_factory=set)
    skipped: list[dict[str, str]] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    audit: list[dict[str, Any]] = field(default_factory=list)
    costs_by_backend: dict[str, int] = field(default_factory=lambda: defaultdict(int))


class ProgressiveEnhancementOrchestrator:
    """
    Runs acquisition jobs and owns their cancellation handles.
    """

    def __init__(
        self,
        *,
        store: SessionStore,
        registry: BackendRegistry,
        validator: ContentValidator,
        ledger: CreditLedger,
        settings: AcquisitionSettings,
        deduplicator: RequestDeduplicator | None = None,
        document_sink: DocumentSink | None = None,
        recovery_factory: Callable[[], RecoveryHandler] = RecoveryHandler,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._store = store
        self._registry = registry
        self._validator = validator
        self._ledger = ledger
        self._settings = settings
        self._deduplicator = deduplicator or RequestDeduplicator()
        self._document_sink = document_sink
        self._recovery_factory = recovery_factory
        self._sleep = sleep
        self._jobs: dict[uuid.UUID, _ActiveJob] = {}

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def new_manager(self, user_id: str) -> SessionStateManager:
        return SessionStateManager(
            store=self._store,
            user_id=user_id,
            deduplicator=self._deduplicator,
            stage_window=self._settings.stage_window,
            run_history_limit=self._settings.run_history_limit,
            conflict_retries=self._settings.version_conflict_retries,
        )

    def is_running(self, session_id: uuid.UUID) -> bool:
        return session_id in self._jobs

    async def prepare(self, user_id: str, domain: str) -> SessionDescriptor:
        """
        Fetch or create the session a subsequent ``run`` will drive.
        """

        return await self.new_manager(user_id).initialize_domain(domain)

    async def run(
        self,
        user_id: str,
        domain: str,
        preset: ScrapePreset | None = None,
        *,
        recovery_options: RecoveryOptions | None = None,
    ) -> AcquisitionResult:
        preset = preset or ScrapePreset()
        manager = self.new_manager(user_id)
        descriptor = await manager.initialize_domain(domain)
        session_id = descriptor.session_id
        if session_id in self._jobs:
            raise SessionConflictError(f"Session {session_id} already has a running job.")

        job = _ActiveJob(session_id=session_id, user_id=user_id)
        self._jobs[session_id] = job
        ctx = _JobContext(
            job=job,
            manager=manager,
            recovery=self._recovery_factory(),
            preset=preset,
            options=recovery_options or RecoveryOptions(
                max_retries=self._settings.max_retries,
                retry_delay=self._settings.retry_delay_seconds,
                fallback_strategy=self._settings.fallback_strategy,
                max_delay=self._settings.max_retry_delay_seconds,
            ),
            domain=manager.domain or domain,
        )
        log_event(
            logger,
            logging.INFO,
            "acquisition_started",
            session_id=session_id,
            domain=ctx.domain,
            user_id=user_id,
            preset=preset.as_dict(),
        )

        try:
            return await self._drive(ctx)
        except SessionAbortedError as exc:
            return await self._finish_aborted(ctx, job.abort_reason or exc.reason)
        except (DiscoveryError, ExtractionFailedError, InsufficientCreditsError) as exc:
            return await self._finish_aborted(ctx, str(exc))
        except SessionConflictError as exc:
            log_event(logger, logging.ERROR, "acquisition_conflict", session_id=session_id, error=str(exc))
            await self._release_reservation(ctx, "version conflict")
            raise
        finally:
            ctx.recovery.clear()
            self._jobs.pop(session_id, None)

    async def abort(self, session_id: uuid.UUID, reason: str | None = None) -> SessionRecord:
        """
        Cancel a session. A running job stops issuing backend calls and
        refunds its outstanding reservation when it unwinds.
        """

        reason = reason or DEFAULT_ABORT_REASON
        job = self._jobs.get(session_id)
        if job is not None:
            job.cancel(reason)

        manager = await self._bound_manager(session_id)
        record = await manager.transition(
            SessionPhase.ABORTED,
            error_message=reason,
            merge=lambda merged: merged.__setitem__("abortReason", reason),
        )
        log_event(logger, logging.WARNING, "session_aborted", session_id=session_id, reason=reason)
        return record

    async def delete(self, session_id: uuid.UUID) -> SessionRecord:
        job = self._jobs.get(session_id)
        if job is not None:
            job.cancel("Session deleted")
        manager = await self._bound_manager(session_id)
        record = await manager.transition(SessionPhase.DELETED)
        log_event(logger, logging.INFO, "session_deleted", session_id=session_id)
        return record

    async def abort_stale_sessions(self, older_than: datetime) -> int:
        aborted = 0
        for record in await self._store.list_stale_sessions(older_than):
            if self.is_running(record.id):
                continue
            try:
                await self.abort(record.id, "Stale session reaped")
            except (SessionConflictError, SessionAbortedError, SessionNotFoundError) as exc:
                log_event(logger, logging.WARNING, "stale_session_skipped", session_id=record.id, error=str(exc))
                continue
            aborted += 1
        return aborted

    async def close(self) -> None:
        for job in list(self._jobs.values()):
            job.cancel("Service shutting down")
        await self._registry.close()

    # ------------------------------------------------------------------
    # Phase machine
    # ------------------------------------------------------------------

    async def _drive(self, ctx: _JobContext) -> AcquisitionResult:
        manager = ctx.manager
        manager.register_phase_handler(SessionPhase.DISCOVERING, lambda params: self._discover_phase(ctx))
        manager.register_phase_handler(SessionPhase.EXTRACTING, lambda params: self._extract_phase(ctx))
        manager.register_phase_handler(SessionPhase.VALIDATING, lambda params: self._validate_phase(ctx))
        manager.register_phase_handler(
            SessionPhase.ENHANCING,
            lambda params: self._enhance_phase(ctx, params["backend"], params["candidates"], params["reserved"]),
        )
        merge = self._merge_into(ctx)

        await manager.execute_phase(SessionPhase.DISCOVERING, {"domain": ctx.domain}, merge=merge)
        await manager.set_stage_data(SessionPhase.DISCOVERING, ctx.discovery)

        await manager.execute_phase(SessionPhase.EXTRACTING, {"urls": len(ctx.selected)}, merge=merge)

        batch: BatchValidation = await manager.execute_phase(SessionPhase.VALIDATING, {}, merge=merge)
        await manager.set_stage_data(SessionPhase.VALIDATING, ctx.validation_stats)

        escalation = await self._plan_escalation(ctx, batch)
        if escalation is not None:
            backend, reserved = escalation
            await manager.execute_phase(
                SessionPhase.ENHANCING,
                {"backend": backend, "candidates": batch.needs_enhancement, "reserved": reserved},
                merge=merge,
            )

        ctx.job.raise_if_cancelled()
        record = await manager.transition(SessionPhase.COMPLETE, merge=merge)
        await self._handoff(ctx, record)

        result = AcquisitionResult(
            session_id=record.id,
            domain=record.domain,
            phase=record.phase,
            success=True,
            partial_success=bool(ctx.failed or ctx.skipped),
            pages_scraped=len(ctx.pages),
            enhanced_pages=len(ctx.enhanced_urls),
            credits_charged=ctx.job.charged,
            skipped_urls=list(ctx.skipped),
            failed_urls=list(ctx.failed),
            stats=dict(record.merged_data.get("stats") or {}),
        )
        log_event(
            logger,
            logging.INFO,
            "acquisition_complete",
            session_id=record.id,
            pages_scraped=result.pages_scraped,
            enhanced_pages=result.enhanced_pages,
            failed=len(result.failed_urls),
            credits_charged=result.credits_charged,
        )
        return result

    async def _discover_phase(self, ctx: _JobContext) -> list[CategorizedUrl]:
        backend = self._registry.cheapest()
        urls = await self._discover_with_recovery(ctx, backend)
        ordered = prioritize_urls(urls)
        if not ordered:
            raise DiscoveryError(f"No URLs discovered for {ctx.domain}.")

        limit = ctx.preset.depth.page_limit
        ctx.selected = ordered[:limit]
        deferred = ordered[limit:]
        categories: dict[str, int] = defaultdict(int)
        for item in ordered:
            categories[item.category.value] += 1
        ctx.discovery = {
            "total": len(ordered),
            "categories": dict(categories),
            "selected": [{"url": item.url, "category": item.category.value} for item in ctx.selected],
            "deferred": [item.url for item in deferred],
        }
        log_event(
            logger,
            logging.INFO,
            "discovery_complete",
            session_id=ctx.job.session_id,
            total=len(ordered),
            selected=len(ctx.selected),
            deferred=len(deferred),
        )
        return ctx.selected

    async def _extract_phase(self, ctx: _JobContext) -> list[PageResult]:
        backend = self._registry.get(ctx.preset.backend)
        urls = [item.url for item in ctx.selected]

        required = self._cost(ctx, backend, len(urls))
        reserved = 0
        if required > 0:
            check = await self._ledger.check_sufficient_credits(ctx.job.user_id, required)
            if not check.sufficient:
                raise InsufficientCreditsError(required=required, balance=check.balance)
            reserved = await self._reserve(ctx, backend, len(urls), "extraction")
            if reserved is None:
                raise InsufficientCreditsError(required=required, balance=check.balance)

        outcomes = await self._run_batch(ctx, backend, urls, SessionPhase.EXTRACTING)
        pages = [outcome.page for outcome in outcomes if outcome.page is not None]
        await self._settle(ctx, backend, reserved or 0, len(pages), "extraction")

        for outcome in outcomes:
            if outcome.page is not None:
                ctx.pages[outcome.url] = outcome.page
                continue
            ctx.failed.append(outcome.url)
            if outcome.decision is not None and outcome.decision.should_skip:
                ctx.skipped.append(
                    {
                        "url": outcome.url,
                        "reason": outcome.decision.user_message,
                        "faultClass": outcome.decision.fault_class.value,
                    }
                )

        if not pages:
            raise ExtractionFailedError(
                f"All {len(urls)} pages failed extraction with backend '{backend.backend_id}'."
            )
        return pages

    async def _validate_phase(self, ctx: _JobContext) -> BatchValidation:
        batch = self._validator.validate_batch(list(ctx.pages.values()))
        ctx.validation.update(batch.results)
        ctx.validation_stats = dict(batch.stats)
        return batch

    async def _plan_escalation(
        self,
        ctx: _JobContext,
        batch: BatchValidation,
    ) -> tuple[ScraperBackend, int] | None:
        """
        Decide whether flagged pages can be escalated, reserving the cost.

        When escalation does not run, every flagged page keeps its
        enhancement reason in the audit trail with the reason it was skipped.
        """

        candidates = batch.needs_enhancement
        if not candidates:
            return None

        current = self._registry.get(ctx.preset.backend)
        backend = self._registry.next_tier(current.backend_id)
        skipped_reason: str | None = None
        reserved: int | None = None

        if backend is None:
            skipped_reason = f"No backend above '{current.backend_id}' is available"
        else:
            required = self._cost(ctx, backend, len(candidates))
            check = await self._ledger.check_sufficient_credits(ctx.job.user_id, required)
            if not check.sufficient:
                skipped_reason = f"Insufficient credits: required {required}, balance {check.balance}"
            else:
                reserved = await self._reserve(ctx, backend, len(candidates), "enhancement")
                if reserved is None:
                    skipped_reason = "Credit debit failed"

        if skipped_reason is not None:
            for candidate in candidates:
                ctx.audit.append(
                    {
                        "url": candidate.page.url,
                        "reason": candidate.reason,
                        "executed": False,
                        "skippedReason": skipped_reason,
                    }
                )
            log_event(
                logger,
                logging.WARNING,
                "enhancement_skipped",
                session_id=ctx.job.session_id,
                flagged=len(candidates),
                reason=skipped_reason,
            )
            return None
        return backend, reserved or 0

    async def _enhance_phase(
        self,
        ctx: _JobContext,
        backend: ScraperBackend,
        candidates: Sequence[EnhancementCandidate],
        reserved: int,
    ) -> int:
        urls = [candidate.page.url for candidate in candidates]
        reasons = {candidate.page.url: candidate.reason for candidate in candidates}
        outcomes = await self._run_batch(ctx, backend, urls, SessionPhase.ENHANCING)
        enhanced = [outcome for outcome in outcomes if outcome.page is not None]
        await self._settle(ctx, backend, reserved, len(enhanced), "enhancement")

        for outcome in outcomes:
            entry: dict[str, Any] = {
                "url": outcome.url,
                "reason": reasons[outcome.url],
                "backend": backend.backend_id,
            }
            if outcome.page is None:
                entry.update(executed=False, skippedReason=f"Enhancement failed: {outcome.error}")
            else:
                ctx.pages[outcome.url] = outcome.page
                ctx.validation[outcome.url] = self._validator.validate(outcome.page)
                ctx.enhanced_urls.add(outcome.url)
                entry.update(executed=True, score=round(ctx.validation[outcome.url].score, 3))
            ctx.audit.append(entry)

        log_event(
            logger,
            logging.INFO,
            "enhancement_complete",
            session_id=ctx.job.session_id,
            backend=backend.backend_id,
            requested=len(urls),
            enhanced=len(enhanced),
        )
        return len(enhanced)

    # ------------------------------------------------------------------
    # Backend calls
    # ------------------------------------------------------------------

    async def _discover_with_recovery(self, ctx: _JobContext, backend: ScraperBackend) -> list[str]:
        key = f"discovery:{ctx.domain}"
        while True:
            ctx.job.raise_if_cancelled()
            try:
                return await asyncio.wait_for(
                    backend.discover_urls(ctx.domain),
                    timeout=self._settings.call_timeout_seconds,
                )
            except SessionAbortedError:
                raise
            except Exception as exc:
                decision = ctx.recovery.handle(exc, key, ctx.options)
                if decision.should_retry:
                    await self._until_cancelled(ctx.job, self._sleep(decision.delay_seconds))
                    continue
                raise DiscoveryError(
                    f"URL discovery failed for {ctx.domain}: {decision.user_message}"
                ) from exc

    async def _run_batch(
        self,
        ctx: _JobContext,
        backend: ScraperBackend,
        urls: Sequence[str],
        phase: SessionPhase,
    ) -> list[_UrlOutcome]:
        semaphore = asyncio.Semaphore(self._settings.concurrency_limit)
        started = time.monotonic()
        gathered = await asyncio.gather(
            *(self._scrape_with_recovery(ctx, backend, url, semaphore) for url in urls),
            return_exceptions=True,
        )
        ctx.job.raise_if_cancelled()

        outcomes: list[_UrlOutcome] = []
        for url, item in zip(urls, gathered):
            if isinstance(item, BaseException):
                raise item
            outcomes.append(item)

        pages = [outcome.page for outcome in outcomes if outcome.page is not None]
        run = ScraperRun(
            session_id=ctx.job.session_id,
            scraper_id=backend.backend_id,
            pages_scraped=len(pages),
            data_points=sum(page.data_points for page in pages),
            discovered_links=sum(len(page.links) for page in pages),
            duration_ms=int((time.monotonic() - started) * 1000),
            status=ScraperRunStatus.COMPLETE if pages or not urls else ScraperRunStatus.FAILED,
            extracted_data={
                "phase": phase.value,
                "urls": list(urls),
                "failed": [outcome.url for outcome in outcomes if outcome.page is None],
            },
        )
        await ctx.manager.record_run(run)
        return outcomes

    async def _scrape_with_recovery(
        self,
        ctx: _JobContext,
        backend: ScraperBackend,
        url: str,
        semaphore: asyncio.Semaphore,
    ) -> _UrlOutcome:
        while True:
            ctx.job.raise_if_cancelled()
            try:
                async with semaphore:
                    await self._until_cancelled(ctx.job, backend.before_call(url))
                    results = await asyncio.wait_for(
                        backend.scrape([url]),
                        timeout=self._settings.call_timeout_seconds,
                    )
                page = results[0] if results else PageResult.failure(url, "Backend returned no result")
                if page.success:
                    if page.backend_id is None:
                        page = page.with_backend(backend.backend_id)
                    return _UrlOutcome(url=url, page=page)
                fault: BaseException = BackendHTTPError(
                    page.error or f"Extraction failed for {url}",
                    status_code=page.status_code,
                    retry_after=page.retry_after,
                )
            except SessionAbortedError:
                raise
            except Exception as exc:
                fault = exc

            decision = ctx.recovery.handle(fault, url, ctx.options)
            if decision.should_retry:
                await self._until_cancelled(ctx.job, self._sleep(decision.delay_seconds))
                continue
            if decision.should_abort:
                ctx.job.cancel(f"Aborted after repeated failures on {url}: {decision.user_message}")
            log_event(
                logger,
                logging.WARNING,
                "page_extraction_failed",
                session_id=ctx.job.session_id,
                backend=backend.backend_id,
                url=url,
                fault_class=decision.fault_class.value,
                error=str(fault),
            )
            return _UrlOutcome(url=url, decision=decision, error=str(fault))

    @staticmethod
    async def _until_cancelled(job: _ActiveJob, awaitable: Awaitable[Any]) -> None:
        """
        Await an untimed wait (backoff, politeness) but give up as soon as
        the job is aborted.
        """

        work = asyncio.ensure_future(awaitable)
        aborted = asyncio.ensure_future(job.cancel_event.wait())
        try:
            await asyncio.wait({work, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (work, aborted):
                if not task.done():
                    task.cancel()
        job.raise_if_cancelled()
        work.result()

    # ------------------------------------------------------------------
    # Credits
    # ------------------------------------------------------------------

    def _cost(self, ctx: _JobContext, backend: ScraperBackend, pages: int) -> int:
        return calculate_cost(
            backend.backend_id,
            pages,
            depth=ctx.preset.depth,
            premium=ctx.preset.premium,
            extract_schema=ctx.preset.extract_schema,
        )

    async def _reserve(self, ctx: _JobContext, backend: ScraperBackend, pages: int, step: str) -> int | None:
        amount = self._cost(ctx, backend, pages)
        if amount == 0:
            return 0
        ok = await self._ledger.deduct_credits(
            ctx.job.user_id,
            amount,
            f"{step} with {backend.backend_id} for {ctx.domain}",
            {"session_id": str(ctx.job.session_id), "backend": backend.backend_id, "pages": pages, "step": step},
        )
        if not ok:
            return None
        ctx.job.reserved += amount
        return amount

    async def _settle(self, ctx: _JobContext, backend: ScraperBackend, reserved: int, succeeded: int, step: str) -> None:
        """
        Keep the cost of confirmed successes and refund the rest of a reservation.
        """

        if reserved <= 0:
            return
        actual = min(reserved, self._cost(ctx, backend, succeeded))
        refund = reserved - actual
        if refund > 0:
            await self._ledger.refund_credits(
                ctx.job.user_id,
                refund,
                f"{step} failures",
                {"session_id": str(ctx.job.session_id), "backend": backend.backend_id, "step": step},
            )
        ctx.job.reserved -= reserved
        ctx.job.charged += actual
        ctx.costs_by_backend[backend.backend_id] += actual

    async def _release_reservation(self, ctx: _JobContext, reason: str) -> None:
        outstanding = ctx.job.reserved
        if outstanding <= 0:
            return
        refunded = await self._ledger.refund_credits(
            ctx.job.user_id,
            outstanding,
            reason,
            {"session_id": str(ctx.job.session_id)},
        )
        if refunded:
            ctx.job.reserved = 0
        log_event(
            logger,
            logging.INFO,
            "reservation_released",
            session_id=ctx.job.session_id,
            amount=outstanding,
            refunded=refunded,
        )

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    async def _finish_aborted(self, ctx: _JobContext, reason: str | None) -> AcquisitionResult:
        reason = reason or DEFAULT_ABORT_REASON
        await self._release_reservation(ctx, "session aborted")
        merge = self._merge_into(ctx, include_pages=False)

        def abort_merge(merged: dict[str, Any]) -> None:
            merge(merged)
            merged["abortReason"] = reason

        record = await ctx.manager.refresh()
        if record.phase != SessionPhase.DELETED:
            record = await ctx.manager.transition(SessionPhase.ABORTED, error_message=reason, merge=abort_merge)
        log_event(logger, logging.WARNING, "acquisition_aborted", session_id=record.id, reason=reason)
        return AcquisitionResult(
            session_id=record.id,
            domain=record.domain,
            phase=record.phase,
            success=False,
            credits_charged=ctx.job.charged,
            skipped_urls=list(ctx.skipped),
            failed_urls=list(ctx.failed),
            stats=dict(record.merged_data.get("stats") or {}),
            error=reason,
        )

    async def _handoff(self, ctx: _JobContext, record: SessionRecord) -> None:
        if self._document_sink is None:
            return
        snapshot = ExtractionSnapshot(
            session_id=record.id,
            session_version=record.version,
            domain=record.domain,
            payload={
                "pages": record.merged_data.get("pages") or {},
                "stats": record.merged_data.get("stats") or {},
                "extractedData": record.merged_data.get("extractedData") or {},
            },
        )
        try:
            await self._document_sink.handoff(snapshot)
        except Exception:
            logger.exception("Snapshot hand-off failed for session %s", record.id)
            return
        log_event(
            logger,
            logging.INFO,
            "snapshot_handed_off",
            session_id=record.id,
            session_version=record.version,
        )

    def _merge_into(self, ctx: _JobContext, *, include_pages: bool = True) -> Callable[[dict[str, Any]], None]:
        def merge(merged: dict[str, Any]) -> None:
            if include_pages:
                merged["pages"] = {url: self._page_entry(ctx, url, page) for url, page in ctx.pages.items()}
                stats = merged.setdefault("stats", {})
                stats["totalPages"] = len(ctx.pages)
                stats["dataPoints"] = sum(page.data_points for page in ctx.pages.values())
                stats["totalLinks"] = sum(len(page.links) for page in ctx.pages.values())
                stats["enhancedPages"] = len(ctx.enhanced_urls)
            extracted = merged.setdefault("extractedData", {})
            if ctx.discovery:
                extracted["discovery"] = ctx.discovery
            if ctx.validation_stats:
                extracted["validation"] = ctx.validation_stats
            merged.setdefault("audit", {})["enhancement"] = list(ctx.audit)
            merged["skipped"] = list(ctx.skipped)
            merged["failed"] = list(ctx.failed)
            merged["costs"] = {"total": ctx.job.charged, "byBackend": dict(ctx.costs_by_backend)}

        return merge

    @staticmethod
    def _page_entry(ctx: _JobContext, url: str, page: PageResult) -> dict[str, Any]:
        entry = page.as_merged_entry()
        result = ctx.validation.get(url)
        if result is not None:
            entry["validation"] = {
                "score": round(result.score, 3),
                "isValid": result.is_valid,
                "needsEnhancement": result.needs_enhancement,
                "enhancementReason": result.enhancement_reason,
                "issues": [issue.type for issue in result.issues],
            }
        entry["enhanced"] = url in ctx.enhanced_urls
        return entry

    async def _bound_manager(self, session_id: uuid.UUID) -> SessionStateManager:
        record = await self._store.get_session(session_id)
        if record is None:
            raise SessionNotFoundError(f"Session {session_id} not found.")
        manager = self.new_manager(record.user_id)
        manager.bind(record)
        return manager
