"""
app/schemas/intelligence.py

Request and response schemas for acquisition session endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class StartSessionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    domain: str = Field(..., min_length=3, max_length=255)
    preset: dict[str, Any] = Field(
        default_factory=dict,
        description="backend, depth, extract_schema, premium",
    )


class AbortSessionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(default=None, max_length=500)


class SessionAcceptedResponse(BaseModel):
    session_id: UUID
    domain: str
    phase: str
    version: int = Field(..., ge=1)
    created: bool
    scheduled: bool


class SessionStatusResponse(BaseModel):
    """
    Status, stats and outcome lists for one session.
    """

    session_id: UUID
    domain: str
    phase: str
    version: int = Field(..., ge=1)
    running: bool
    stats: dict[str, Any] = Field(default_factory=dict)
    skipped: list[dict[str, Any]] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    costs: dict[str, Any] = Field(default_factory=dict)
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
