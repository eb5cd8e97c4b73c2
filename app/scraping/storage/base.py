"""
Storage layer interfaces used by the acquisition core.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from app.domain.intelligence import ExtractionSnapshot, ScraperRun, SessionRecord


class SessionStore(ABC):
    """
    Persistent session records with optimistic concurrency.
    """

    @abstractmethod
    async def get_session(self, session_id: uuid.UUID) -> SessionRecord | None:
        """
        Return the session or None when it does not exist.
        """

    @abstractmethod
    async def create_session(self, domain: str, user_id: str) -> SessionRecord:
        """
        Create a fresh session in the discovering phase at version 1.
        """

    @abstractmethod
    async def update_session(
        self,
        session_id: uuid.UUID,
        patch: dict[str, Any],
        expected_version: int,
    ) -> SessionRecord | None:
        """
        Apply ``patch`` only if the stored version equals ``expected_version``.

        Returns the updated record, or None on a version conflict.
        Supported patch keys: phase, merged_data, error_message.
        """

    @abstractmethod
    async def find_active_session(self, domain: str, user_id: str) -> SessionRecord | None:
        """
        Return the newest non-terminal session for a user and domain.
        """

    @abstractmethod
    async def record_scraper_run(self, run: ScraperRun) -> None:
        """
        Durably persist one scraper run.
        """

    @abstractmethod
    async def list_stale_sessions(self, older_than: datetime) -> list[SessionRecord]:
        """
        Return non-terminal sessions not updated since ``older_than``.
        """


class BillingStore(ABC):
    """
    Credit balances and the append-only transaction log.
    """

    @abstractmethod
    async def get_user_balance(self, user_id: str) -> int:
        """
        Return the current balance, 0 for users without an account.
        """

    @abstractmethod
    async def record_transaction(
        self,
        user_id: str,
        amount: int,
        reason: str,
        metadata: dict[str, Any],
    ) -> int | None:
        """
        Atomically apply ``amount`` (positive debits, negative refunds) and log it.

        Returns the resulting balance, or None when a debit would overdraw or
        the user has no account.
        """


class DocumentSink(ABC):
    """
    Receives finalized extraction snapshots for document generation.
    """

    @abstractmethod
    async def handoff(self, snapshot: ExtractionSnapshot) -> None:
        """
        Accept one versioned snapshot of a completed session.
        """
