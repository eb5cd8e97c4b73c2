"""
app/domain/intelligence.py

Domain models for web-intelligence acquisition sessions.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class SessionPhase(str, Enum):
    """
    Lifecycle phases of an acquisition session.
    """

    DISCOVERING = "discovering"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    ENHANCING = "enhancing"
    COMPLETE = "complete"
    ABORTED = "aborted"
    DELETED = "deleted"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


TERMINAL_PHASES = frozenset({SessionPhase.COMPLETE, SessionPhase.ABORTED, SessionPhase.DELETED})

PHASE_ORDINALS: dict[SessionPhase, int] = {
    SessionPhase.DISCOVERING: 1,
    SessionPhase.EXTRACTING: 2,
    SessionPhase.VALIDATING: 3,
    SessionPhase.ENHANCING: 4,
    SessionPhase.COMPLETE: 5,
}


class ScraperRunStatus(str, Enum):
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


def empty_merged_data() -> dict[str, Any]:
    """
    Initial shape of a session's merged data blob.
    """

    return {
        "stats": {
            "totalPages": 0,
            "dataPoints": 0,
            "totalLinks": 0,
            "phaseCounts": {},
        },
        "pages": {},
        "extractedData": {},
    }


@dataclass(frozen=True)
class SessionRecord:
    """
    Persisted session row as seen by the acquisition core.
    """

    id: uuid.UUID
    user_id: str
    domain: str
    phase: SessionPhase
    merged_data: dict[str, Any]
    version: int
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class SessionDescriptor:
    """
    Lightweight handle returned to callers that start or look up a session.
    """

    session_id: uuid.UUID
    domain: str
    phase: SessionPhase
    version: int
    created: bool = False

    @classmethod
    def from_record(cls, record: SessionRecord, *, created: bool = False) -> "SessionDescriptor":
        return cls(
            session_id=record.id,
            domain=record.domain,
            phase=record.phase,
            version=record.version,
            created=created,
        )


@dataclass
class ScraperRun:
    """
    One backend invocation against a batch of URLs.
    """

    session_id: uuid.UUID
    scraper_id: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    pages_scraped: int = 0
    data_points: int = 0
    discovered_links: int = 0
    duration_ms: int = 0
    status: ScraperRunStatus = ScraperRunStatus.RUNNING
    extracted_data: dict[str, Any] | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class CreditTransaction:
    """
    One append-only credit ledger entry. Positive amounts are debits.
    """

    user_id: str
    amount: int
    reason: str
    balance: int
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class CreditCheck:
    sufficient: bool
    balance: int


@dataclass(frozen=True)
class ExtractionSnapshot:
    """
    Versioned hand-off of a completed session's merged extraction.
    """

    session_id: uuid.UUID
    session_version: int
    domain: str
    payload: dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class AcquisitionResult:
    """
    Outcome of one acquisition job, as reported to callers.
    """

    session_id: uuid.UUID
    domain: str
    phase: SessionPhase
    success: bool
    partial_success: bool = False
    pages_scraped: int = 0
    enhanced_pages: int = 0
    credits_charged: int = 0
    skipped_urls: list[dict[str, str]] = field(default_factory=list)
    failed_urls: list[str] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
