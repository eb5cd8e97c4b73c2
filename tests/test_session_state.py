"""
tests/test_session_state.py

Unit tests for SessionStateManager and RequestDeduplicator.

Coverage
--------
- Concurrent fetch-or-create produces exactly one session
- Versioned updates retry on conflict and give up after the limit
- Stage window eviction with persisted fallback
- Terminal phase rules
- Phase handler execution
- Bounded scraper run history
- Domain normalization
"""

from __future__ import annotations

import asyncio
import uuid

import pytest

from app.acquisition.errors import SessionAbortedError, SessionConflictError, SessionNotFoundError
from app.acquisition.session_state import RequestDeduplicator, SessionStateManager, normalize_domain
from app.domain.intelligence import ScraperRun, ScraperRunStatus, SessionPhase
from tests.fakes import InMemorySessionStore


def _manager(store: InMemorySessionStore, **kwargs) -> SessionStateManager:
    return SessionStateManager(store=store, user_id="user-1", **kwargs)


# ---------------------------------------------------------------------------
# Domain normalization
# ---------------------------------------------------------------------------


class TestNormalizeDomain:
    @pytest.mark.parametrize(
        "raw",
        ["acme.com", "ACME.com", "https://www.acme.com/about", "http://acme.com/", " www.acme.com "],
    )
    def test_variants_collapse_to_bare_host(self, raw: str) -> None:
        assert normalize_domain(raw) == "acme.com"

    @pytest.mark.parametrize("raw", ["", "localhost", "   "])
    def test_invalid_domains_raise(self, raw: str) -> None:
        with pytest.raises(ValueError):
            normalize_domain(raw)


# ---------------------------------------------------------------------------
# Fetch or create
# ---------------------------------------------------------------------------


class TestFetchOrCreate:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_creation(self) -> None:
        store = InMemorySessionStore()
        dedup = RequestDeduplicator()
        managers = [_manager(store, deduplicator=dedup) for _ in range(8)]

        descriptors = await asyncio.gather(*(m.initialize_domain("acme.com") for m in managers))

        assert store.create_calls == 1
        assert len({descriptor.session_id for descriptor in descriptors}) == 1
        assert len(dedup) == 0

    @pytest.mark.asyncio
    async def test_existing_active_session_is_reused(self) -> None:
        store = InMemorySessionStore()
        first = await _manager(store).initialize_domain("acme.com")
        second = await _manager(store).initialize_domain("https://www.acme.com")

        assert first.created is True
        assert second.created is False
        assert second.session_id == first.session_id

    @pytest.mark.asyncio
    async def test_terminal_session_is_not_reused(self) -> None:
        store = InMemorySessionStore()
        manager = _manager(store)
        first = await manager.initialize_domain("acme.com")
        await manager.transition(SessionPhase.COMPLETE)

        second = await _manager(store).initialize_domain("acme.com")

        assert second.session_id != first.session_id
        assert store.create_calls == 2

    @pytest.mark.asyncio
    async def test_failed_operation_is_not_cached(self) -> None:
        dedup = RequestDeduplicator()

        async def boom() -> None:
            raise RuntimeError("store down")

        with pytest.raises(RuntimeError):
            await dedup.run("key", boom)
        assert len(dedup) == 0

    def test_unbound_manager_has_no_session_id(self) -> None:
        with pytest.raises(SessionNotFoundError):
            _ = _manager(InMemorySessionStore()).session_id


# ---------------------------------------------------------------------------
# Versioned updates
# ---------------------------------------------------------------------------


class TestVersionedUpdates:
    @pytest.mark.asyncio
    async def test_conflict_is_retried_with_fresh_version(self) -> None:
        store = InMemorySessionStore()
        manager = _manager(store)
        await manager.initialize_domain("acme.com")
        store.conflicts_to_inject = 1

        updated = await manager.update_session(lambda record: {"error_message": "note"})

        assert updated.error_message == "note"
        # One bump from the competing writer, one from ours.
        assert updated.version == 3
        assert store.update_calls == 2

    @pytest.mark.asyncio
    async def test_conflict_retries_are_bounded(self) -> None:
        store = InMemorySessionStore()
        manager = _manager(store, conflict_retries=3)
        await manager.initialize_domain("acme.com")
        store.conflicts_to_inject = 10

        with pytest.raises(SessionConflictError):
            await manager.update_session(lambda record: {"error_message": "never"})
        assert store.update_calls == 3

    @pytest.mark.asyncio
    async def test_mutator_gets_a_private_copy(self) -> None:
        store = InMemorySessionStore()
        manager = _manager(store)
        descriptor = await manager.initialize_domain("acme.com")
        store.conflicts_to_inject = 1

        def mutator(record):
            record.merged_data.setdefault("notes", []).append("x")
            return {"merged_data": record.merged_data}

        updated = await manager.update_session(mutator)

        assert updated.merged_data["notes"] == ["x"]
        assert store.sessions[descriptor.session_id].merged_data["notes"] == ["x"]


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------


class TestPhases:
    @pytest.mark.asyncio
    async def test_transition_counts_phases(self) -> None:
        store = InMemorySessionStore()
        manager = _manager(store)
        await manager.initialize_domain("acme.com")

        await manager.transition(SessionPhase.EXTRACTING)
        record = await manager.transition(SessionPhase.VALIDATING)

        assert record.phase == SessionPhase.VALIDATING
        assert record.merged_data["stats"]["phaseCounts"] == {"extracting": 1, "validating": 1}

    @pytest.mark.asyncio
    async def test_completed_session_rejects_further_phases(self) -> None:
        manager = _manager(InMemorySessionStore())
        await manager.initialize_domain("acme.com")
        await manager.transition(SessionPhase.COMPLETE)

        with pytest.raises(SessionConflictError):
            await manager.transition(SessionPhase.EXTRACTING)

    @pytest.mark.asyncio
    async def test_aborted_session_raises_aborted(self) -> None:
        manager = _manager(InMemorySessionStore())
        await manager.initialize_domain("acme.com")
        await manager.transition(SessionPhase.ABORTED, error_message="user cancelled")

        with pytest.raises(SessionAbortedError) as excinfo:
            await manager.transition(SessionPhase.ENHANCING)
        assert excinfo.value.reason == "user cancelled"

    @pytest.mark.asyncio
    async def test_any_session_can_be_deleted(self) -> None:
        manager = _manager(InMemorySessionStore())
        await manager.initialize_domain("acme.com")
        await manager.transition(SessionPhase.COMPLETE)

        record = await manager.transition(SessionPhase.DELETED)

        assert record.phase == SessionPhase.DELETED

    @pytest.mark.asyncio
    async def test_execute_phase_transitions_then_runs_handler(self) -> None:
        store = InMemorySessionStore()
        manager = _manager(store)
        descriptor = await manager.initialize_domain("acme.com")
        seen: list[tuple[SessionPhase, dict]] = []

        async def handler(params: dict) -> str:
            seen.append((store.sessions[descriptor.session_id].phase, params))
            return "done"

        manager.register_phase_handler(SessionPhase.EXTRACTING, handler)
        result = await manager.execute_phase(SessionPhase.EXTRACTING, {"urls": 3})

        assert result == "done"
        assert seen == [(SessionPhase.EXTRACTING, {"urls": 3})]

    @pytest.mark.asyncio
    async def test_execute_phase_without_handler_only_transitions(self) -> None:
        manager = _manager(InMemorySessionStore())
        await manager.initialize_domain("acme.com")

        assert await manager.execute_phase(SessionPhase.VALIDATING) is None
        assert manager.record.phase == SessionPhase.VALIDATING


# ---------------------------------------------------------------------------
# Stage data
# ---------------------------------------------------------------------------


class TestStageWindow:
    @pytest.mark.asyncio
    async def test_window_of_two_evicts_lowest_stage(self) -> None:
        store = InMemorySessionStore()
        manager = _manager(store, stage_window=2)
        await manager.initialize_domain("acme.com")

        await manager.set_stage_data(1, {"urls": 10})
        await manager.set_stage_data(2, {"pages": 8})
        await manager.set_stage_data(3, {"valid": 7})

        assert manager.cached_stages() == ["2", "3"]
        assert {"action": "evict", "stage": "1"}.items() <= manager.stage_history[-1].items()

    @pytest.mark.asyncio
    async def test_evicted_stage_is_read_back_from_the_store(self) -> None:
        manager = _manager(InMemorySessionStore(), stage_window=2)
        await manager.initialize_domain("acme.com")
        for stage in (1, 2, 3):
            await manager.set_stage_data(stage, {"stage": stage})

        assert await manager.get_stage_data(1) == {"stage": 1}
        assert await manager.get_stage_data(3) == {"stage": 3}

    @pytest.mark.asyncio
    async def test_phase_and_named_stages_share_keys(self) -> None:
        manager = _manager(InMemorySessionStore())
        await manager.initialize_domain("acme.com")

        await manager.set_stage_data(SessionPhase.DISCOVERING, {"total": 4})

        assert await manager.get_stage_data("discovering") == {"total": 4}

    @pytest.mark.asyncio
    async def test_clear_only_drops_the_cache(self) -> None:
        manager = _manager(InMemorySessionStore())
        await manager.initialize_domain("acme.com")
        await manager.set_stage_data("stage2", {"pages": 2})

        manager.clear_stage_data()

        assert manager.cached_stages() == []
        assert await manager.get_stage_data("stage2") == {"pages": 2}

    @pytest.mark.asyncio
    async def test_changing_domain_resets_stage_cache(self) -> None:
        manager = _manager(InMemorySessionStore())
        await manager.initialize_domain("acme.com")
        await manager.set_stage_data(1, {"urls": 1})

        await manager.initialize_domain("globex.com")

        assert manager.cached_stages() == []

    def test_unknown_stage_name_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            SessionStateManager._stage_key("whatever")


# ---------------------------------------------------------------------------
# Scraper run history
# ---------------------------------------------------------------------------


class TestRunHistory:
    @pytest.mark.asyncio
    async def test_history_is_bounded_but_every_run_is_persisted(self) -> None:
        store = InMemorySessionStore()
        manager = _manager(store, run_history_limit=2)
        descriptor = await manager.initialize_domain("acme.com")

        for index in range(3):
            await manager.record_run(
                ScraperRun(
                    session_id=descriptor.session_id,
                    scraper_id="static",
                    id=uuid.UUID(int=index + 1),
                    pages_scraped=index,
                    status=ScraperRunStatus.COMPLETE,
                )
            )

        assert [run.pages_scraped for run in manager.history] == [1, 2]
        assert len(store.runs) == 3
