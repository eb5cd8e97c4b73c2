"""
Repository for versioned acquisition session persistence.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Select, func, select, update
from sqlalchemy.orm import Session

from db.models.intelligence_session import IntelligenceSession, SessionPhaseValue


class IntelligenceSessionRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_session(
        self,
        *,
        domain: str,
        user_id: str,
        merged_data: dict[str, Any],
    ) -> IntelligenceSession:
        row = IntelligenceSession(
            domain=domain,
            user_id=user_id,
            phase=SessionPhaseValue.DISCOVERING,
            merged_data=merged_data,
            version=1,
        )
        self._session.add(row)
        self._session.flush()
        self._session.refresh(row)
        return row

    def get_session(self, session_id: uuid.UUID) -> IntelligenceSession | None:
        return self._session.get(IntelligenceSession, session_id)

    def find_active(self, *, domain: str, user_id: str) -> IntelligenceSession | None:
        stmt: Select[tuple[IntelligenceSession]] = (
            select(IntelligenceSession)
            .where(IntelligenceSession.domain == domain)
            .where(IntelligenceSession.user_id == user_id)
            .where(IntelligenceSession.phase.not_in(SessionPhaseValue.TERMINAL))
            .order_by(IntelligenceSession.created_at.desc())
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def compare_and_swap(
        self,
        *,
        session_id: uuid.UUID,
        expected_version: int,
        values: dict[str, Any],
    ) -> IntelligenceSession | None:
        """
        Update only when the stored version matches; None means a conflict.
        """

        stmt = (
            update(IntelligenceSession)
            .where(IntelligenceSession.id == session_id)
            .where(IntelligenceSession.version == expected_version)
            .values(
                **values,
                version=IntelligenceSession.version + 1,
                updated_at=func.now(),
            )
            .returning(IntelligenceSession)
            .execution_options(synchronize_session=False)
        )
        return self._session.scalars(stmt).first()

    def list_stale(self, *, older_than: datetime, limit: int = 100) -> list[IntelligenceSession]:
        stmt: Select[tuple[IntelligenceSession]] = (
            select(IntelligenceSession)
            .where(IntelligenceSession.phase.not_in(SessionPhaseValue.TERMINAL))
            .where(IntelligenceSession.updated_at < older_than)
            .order_by(IntelligenceSession.updated_at.asc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())
