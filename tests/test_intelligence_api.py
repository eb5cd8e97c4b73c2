"""
tests/test_intelligence_api.py

HTTP tests for the /intelligence session endpoints, with the service wired
to in-memory fakes through a dependency override.

Coverage
--------
- Caller identity header required
- Start returns 202, runs the job in the background, joins existing sessions
- Invalid presets and domains map to 400
- Ownership (403) and visibility (404)
- Abort (200, then 409 on a completed session) and delete (204)
"""

from __future__ import annotations

import asyncio
import uuid

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.acquisition.credits import CreditLedger
from app.acquisition.orchestrator import ProgressiveEnhancementOrchestrator
from app.acquisition.validator import ContentValidator
from app.api.routers import intelligence_router
from app.scraping.config.models import AcquisitionSettings
from app.scraping.registry import BackendRegistry
from app.services.intelligence_service import IntelligenceService, get_intelligence_service
from tests.fakes import FakeBackend, InMemoryBillingStore, InMemorySessionStore, RecordingSink, SleepRecorder

OWNER = {"X-User-Id": "user-1"}
STRANGER = {"X-User-Id": "user-2"}


@pytest.fixture()
def api_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def client(api_store: InMemorySessionStore):
    settings = AcquisitionSettings(call_timeout_seconds=5.0)
    backend = FakeBackend("static", 0, urls=["https://acme.com/", "https://acme.com/about"])
    orchestrator = ProgressiveEnhancementOrchestrator(
        store=api_store,
        registry=BackendRegistry([backend]),
        validator=ContentValidator(),
        ledger=CreditLedger(InMemoryBillingStore()),
        settings=settings,
        document_sink=RecordingSink(),
        sleep=SleepRecorder(),
    )
    service = IntelligenceService(settings=settings, store=api_store, orchestrator=orchestrator)

    app = FastAPI()
    app.include_router(intelligence_router)
    app.dependency_overrides[get_intelligence_service] = lambda: service

    with TestClient(app) as test_client:
        yield test_client


def _start(client: TestClient, domain: str = "acme.com", **extra) -> dict:
    response = client.post("/intelligence/sessions", json={"domain": domain, **extra}, headers=OWNER)
    assert response.status_code == 202, response.text
    return response.json()


# ---------------------------------------------------------------------------
# Identity and validation
# ---------------------------------------------------------------------------


class TestRequestValidation:
    def test_missing_identity_is_unauthorized(self, client: TestClient) -> None:
        response = client.post("/intelligence/sessions", json={"domain": "acme.com"})

        assert response.status_code == 401

    def test_unknown_preset_option_is_bad_request(self, client: TestClient) -> None:
        response = client.post(
            "/intelligence/sessions",
            json={"domain": "acme.com", "preset": {"turbo": True}},
            headers=OWNER,
        )

        assert response.status_code == 400
        assert "turbo" in response.json()["detail"]

    def test_invalid_domain_is_bad_request(self, client: TestClient, api_store: InMemorySessionStore) -> None:
        response = client.post("/intelligence/sessions", json={"domain": "localhost"}, headers=OWNER)

        assert response.status_code == 400
        assert api_store.sessions == {}

    def test_extra_body_fields_are_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/intelligence/sessions",
            json={"domain": "acme.com", "priority": "high"},
            headers=OWNER,
        )

        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


class TestSessionLifecycle:
    def test_start_runs_job_to_completion(self, client: TestClient) -> None:
        accepted = _start(client, domain="https://www.Acme.com/about")

        assert accepted["domain"] == "acme.com"
        assert accepted["created"] is True
        assert accepted["scheduled"] is True

        status = client.get(f"/intelligence/sessions/{accepted['session_id']}", headers=OWNER)

        assert status.status_code == 200
        body = status.json()
        assert body["phase"] == "complete"
        assert body["running"] is False
        assert body["skipped"] == []

    def test_restart_after_completion_creates_a_new_session(self, client: TestClient) -> None:
        first = _start(client)
        second = _start(client)

        assert second["created"] is True
        assert second["session_id"] != first["session_id"]

    def test_other_users_cannot_read_a_session(self, client: TestClient) -> None:
        accepted = _start(client)

        response = client.get(f"/intelligence/sessions/{accepted['session_id']}", headers=STRANGER)

        assert response.status_code == 403

    def test_unknown_session_is_not_found(self, client: TestClient) -> None:
        response = client.get(f"/intelligence/sessions/{uuid.uuid4()}", headers=OWNER)

        assert response.status_code == 404

    def test_abort_active_session(self, client: TestClient, api_store: InMemorySessionStore) -> None:
        record = asyncio.run(api_store.create_session("globex.com", "user-1"))

        response = client.post(
            f"/intelligence/sessions/{record.id}/abort",
            json={"reason": "changed my mind"},
            headers=OWNER,
        )

        assert response.status_code == 200
        assert response.json()["phase"] == "aborted"
        assert response.json()["error_message"] == "changed my mind"

    def test_abort_completed_session_conflicts(self, client: TestClient) -> None:
        accepted = _start(client)

        response = client.post(f"/intelligence/sessions/{accepted['session_id']}/abort", headers=OWNER)

        assert response.status_code == 409

    def test_delete_hides_the_session(self, client: TestClient) -> None:
        accepted = _start(client)
        path = f"/intelligence/sessions/{accepted['session_id']}"

        assert client.delete(path, headers=STRANGER).status_code == 403
        assert client.delete(path, headers=OWNER).status_code == 204
        assert client.get(path, headers=OWNER).status_code == 404
