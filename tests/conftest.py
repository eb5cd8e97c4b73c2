"""
tests/conftest.py

Shared fixtures wiring the acquisition core to in-memory fakes.
"""

from __future__ import annotations

from typing import Any

import pytest

from app.acquisition.credits import CreditLedger
from app.acquisition.orchestrator import ProgressiveEnhancementOrchestrator
from app.acquisition.validator import ContentValidator
from app.scraping.base import ScraperBackend
from app.scraping.config.models import AcquisitionSettings
from app.scraping.registry import BackendRegistry
from tests.fakes import InMemoryBillingStore, InMemorySessionStore, RecordingSink, SleepRecorder


@pytest.fixture()
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def billing() -> InMemoryBillingStore:
    return InMemoryBillingStore()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture()
def settings() -> AcquisitionSettings:
    return AcquisitionSettings(call_timeout_seconds=5.0, retry_delay_seconds=1.0, max_retries=3)


@pytest.fixture()
def build_orchestrator(store, billing, sink, sleeper, settings):
    """Factory: orchestrator over the given backends and the shared fakes."""

    def _build(*backends: ScraperBackend, **overrides: Any) -> ProgressiveEnhancementOrchestrator:
        return ProgressiveEnhancementOrchestrator(
            store=overrides.get("store", store),
            registry=BackendRegistry(backends),
            validator=ContentValidator(),
            ledger=CreditLedger(overrides.get("billing", billing)),
            settings=overrides.get("settings", settings),
            document_sink=overrides.get("sink", sink),
            sleep=overrides.get("sleep", sleeper),
        )

    return _build
