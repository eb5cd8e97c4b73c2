"""
db/models/intelligence_session.py

Versioned acquisition session records.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class SessionPhaseValue:
    DISCOVERING = "discovering"
    EXTRACTING = "extracting"
    VALIDATING = "validating"
    ENHANCING = "enhancing"
    COMPLETE = "complete"
    ABORTED = "aborted"
    DELETED = "deleted"

    TERMINAL = (COMPLETE, ABORTED, DELETED)


class IntelligenceSession(Base, TimestampMixin):
    __tablename__ = "intelligence_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    phase: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=SessionPhaseValue.DISCOVERING,
        comment="discovering, extracting, validating, enhancing, complete, aborted, deleted",
    )
    merged_data: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        comment="stats, pages, extractedData, audit trail and costs",
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Optimistic concurrency counter, incremented on every update",
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_intelligence_sessions_user_domain", "user_id", "domain"),
        Index("ix_intelligence_sessions_phase_updated_at", "phase", "updated_at"),
        Index(
            "uq_intelligence_sessions_active_user_domain",
            "user_id",
            "domain",
            unique=True,
            postgresql_where=text("phase NOT IN ('complete', 'aborted', 'deleted')"),
        ),
    )
