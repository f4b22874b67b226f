"""Operator endpoints for stuck and partially failed sessions."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from app.config.dependencies import PipelineContainer
from app.controllers.dependencies import ContainerDep
from app.domain.exceptions import AudioFileNotFoundError, SessionNotFoundError
from app.domain.models import SessionDiagnostics
from app.pipelines.audio import InvalidTransitionError
from app.views import (
    AudioFileResponse,
    CleanupResponse,
    CountResponse,
    RetryFileRequest,
    ThresholdRequest,
)

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


def _not_found(exc: LookupError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _ensure_idle(container: PipelineContainer, session_id: UUID) -> None:
    """Reject writes to a session whose run holds its own copy of the document."""

    if container.runs.is_running(session_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Session {session_id} is already processing",
        )


@router.post("/stuck", response_model=CountResponse)
async def detect_stuck_sessions(
    container: ContainerDep,
    payload: Optional[ThresholdRequest] = None,
) -> CountResponse:
    threshold = payload.as_timedelta() if payload else None
    count = await container.maintenance.detect_stuck_sessions(threshold)
    return CountResponse(count=count, message=f"Repaired {count} abandoned sessions")


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_abandoned_sessions(
    container: ContainerDep,
    payload: Optional[ThresholdRequest] = None,
) -> CleanupResponse:
    threshold = payload.as_timedelta() if payload else None
    summary = await container.maintenance.cleanup_abandoned_sessions(threshold)
    return CleanupResponse(**summary.model_dump())


@router.post("/stuck-processing", response_model=CountResponse)
async def reset_stuck_processing(
    container: ContainerDep,
    payload: Optional[ThresholdRequest] = None,
) -> CountResponse:
    threshold = payload.as_timedelta() if payload else None
    count = await container.maintenance.reset_stuck_processing(threshold)
    return CountResponse(count=count, message=f"Reset {count} stuck sessions")


@router.post("/fix-analyzing", response_model=CountResponse)
async def fix_stuck_analyzing(container: ContainerDep) -> CountResponse:
    count = await container.maintenance.fix_stuck_analyzing()
    return CountResponse(count=count, message=f"Fixed {count} sessions stuck in analysis")


@router.post("/sessions/{session_id}/recover", response_model=CountResponse)
async def recover_failed_files(session_id: UUID, container: ContainerDep) -> CountResponse:
    _ensure_idle(container, session_id)
    try:
        count = await container.maintenance.recover_failed_files(session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc) from None
    return CountResponse(count=count, message=f"Reset {count} failed audio files for retry")


@router.post("/sessions/{session_id}/files/{file_name}/retry", response_model=AudioFileResponse)
async def retry_file(
    session_id: UUID,
    file_name: str,
    container: ContainerDep,
    payload: Optional[RetryFileRequest] = None,
) -> AudioFileResponse:
    request = payload or RetryFileRequest()
    _ensure_idle(container, session_id)
    try:
        audio_file = await container.maintenance.retry_file(session_id, file_name, request.state)
    except (SessionNotFoundError, AudioFileNotFoundError) as exc:
        raise _not_found(exc) from None
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None
    return AudioFileResponse.from_domain(audio_file)


@router.post("/sessions/{session_id}/redownload", response_model=CountResponse)
async def redownload_transcripts(session_id: UUID, container: ContainerDep) -> CountResponse:
    _ensure_idle(container, session_id)
    try:
        count = await container.maintenance.redownload_transcripts(session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc) from None
    return CountResponse(count=count, message=f"Re-downloaded {count} transcripts")


@router.get("/sessions/{session_id}/diagnose", response_model=SessionDiagnostics)
async def diagnose_session(session_id: UUID, container: ContainerDep) -> SessionDiagnostics:
    return await container.maintenance.diagnose(session_id)


__all__ = ["router"]
