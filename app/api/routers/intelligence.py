"""
app/api/routers/intelligence.py

Acquisition session endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, status

from app.acquisition.errors import (
    SessionAbortedError,
    SessionConflictError,
    SessionNotFoundError,
)
from app.api.dependencies import get_caller_identity, require_session_access
from app.domain.intelligence import SessionRecord
from app.schemas.intelligence import (
    AbortSessionRequest,
    SessionAcceptedResponse,
    SessionStatusResponse,
    StartSessionRequest,
)
from app.services.intelligence_service import (
    FastAPIBackgroundTaskExecutor,
    IntelligenceService,
    get_intelligence_service,
)

router = APIRouter(prefix="/intelligence", tags=["intelligence"])


def _status_response(record: SessionRecord, service: IntelligenceService) -> SessionStatusResponse:
    merged = record.merged_data or {}
    return SessionStatusResponse(
        session_id=record.id,
        domain=record.domain,
        phase=record.phase.value,
        version=record.version,
        running=service.is_running(record.id),
        stats=merged.get("stats") or {},
        skipped=merged.get("skipped") or [],
        failed=merged.get("failed") or [],
        costs=merged.get("costs") or {},
        error_message=record.error_message,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.post(
    "/sessions",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SessionAcceptedResponse,
)
async def start_session(
    payload: StartSessionRequest,
    background_tasks: BackgroundTasks,
    caller: str = Depends(get_caller_identity),
    service: IntelligenceService = Depends(get_intelligence_service),
) -> SessionAcceptedResponse:
    """
    Start (or join) the acquisition job for a domain.
    """

    try:
        descriptor, scheduled = await service.start_session(
            user_id=caller,
            domain=payload.domain,
            preset=payload.preset,
            executor=FastAPIBackgroundTaskExecutor(background_tasks),
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return SessionAcceptedResponse(
        session_id=descriptor.session_id,
        domain=descriptor.domain,
        phase=descriptor.phase.value,
        version=descriptor.version,
        created=descriptor.created,
        scheduled=scheduled,
    )


@router.get("/sessions/{session_id}", response_model=SessionStatusResponse)
async def get_session(
    record: SessionRecord = Depends(require_session_access),
    service: IntelligenceService = Depends(get_intelligence_service),
) -> SessionStatusResponse:
    return _status_response(record, service)


@router.post("/sessions/{session_id}/abort", response_model=SessionStatusResponse)
async def abort_session(
    payload: AbortSessionRequest | None = Body(default=None),
    record: SessionRecord = Depends(require_session_access),
    service: IntelligenceService = Depends(get_intelligence_service),
) -> SessionStatusResponse:
    reason = payload.reason if payload is not None else None
    try:
        updated = await service.abort_session(record.id, reason)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (SessionConflictError, SessionAbortedError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _status_response(updated, service)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    record: SessionRecord = Depends(require_session_access),
    service: IntelligenceService = Depends(get_intelligence_service),
) -> None:
    try:
        await service.delete_session(record.id)
    except SessionNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SessionConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
