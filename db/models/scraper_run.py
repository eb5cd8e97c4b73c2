"""
db/models/scraper_run.py

One backend invocation against a batch of URLs.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, CreatedAtMixin


class ScraperRunRecord(Base, CreatedAtMixin):
    __tablename__ = "scraper_runs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("intelligence_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    scraper_id: Mapped[str] = mapped_column(String(64), nullable=False)
    pages_scraped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    data_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    discovered_links: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="running, complete, failed",
    )
    extracted_data: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)

    __table_args__ = (
        Index("ix_scraper_runs_session_id", "session_id"),
        Index("ix_scraper_runs_scraper_id_status", "scraper_id", "status"),
    )
