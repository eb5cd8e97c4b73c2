"""
app/api/dependencies.py

Shared FastAPI dependencies for caller identity and session ownership.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status

from app.domain.intelligence import SessionRecord
from app.services.intelligence_service import IntelligenceService, get_intelligence_service


def get_caller_identity(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    """
    Resolve the calling user from the X-User-Id header.
    """

    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required.",
        )
    if len(user_id) > 128:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Id must be at most 128 characters.",
        )
    return user_id


async def require_session_access(
    session_id: UUID,
    caller: str = Depends(get_caller_identity),
    service: IntelligenceService = Depends(get_intelligence_service),
) -> SessionRecord:
    """
    Load a session and ensure it belongs to the caller.
    """

    record = await service.get_session(session_id)
    if record is None or not service.is_visible(record):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found.",
        )
    if record.user_id != caller:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Session belongs to another user.",
        )
    return record
