"""Endpoints to register, process and inspect recording sessions."""

from __future__ import annotations

import asyncio
import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, HTTPException, Response, status

from app.config.dependencies import PipelineContainer
from app.controllers.dependencies import ContainerDep, SessionRecordDep
from app.domain.exceptions import PipelineCancelledError, SessionNotFoundError, SessionValidationError
from app.pipelines.audio import AttributionError, AudioSessionPipeline
from app.services.llm_client import LlmInvocationError
from app.services.session_runs import SessionAlreadyRunningError
from app.services.transcription import TranscriptionError
from app.views import (
    PipelineStageResponse,
    ProcessAcceptedResponse,
    SessionCreateRequest,
    SessionDetailResponse,
    SessionProgressResponse,
    SessionSummaryResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _conflict(session_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Session {session_id} is already processing",
    )


async def _run_session(container: PipelineContainer, session_id: UUID, cancel_event: asyncio.Event) -> None:
    try:
        session = await container.repository.get(session_id)
        if session is None:
            logger.warning("Session %s disappeared before processing started", session_id)
            return
        await container.orchestrator.run_enhanced(
            session,
            progress=lambda message, percent: container.runs.report(session_id, message, percent),
            cancel_event=cancel_event,
        )
    except PipelineCancelledError:
        logger.info("Session %s processing cancelled", session_id)
    except Exception:
        logger.exception("Session %s processing failed", session_id)
    finally:
        container.runs.finish(session_id)


@router.post(
    "",
    response_model=SessionDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_session(payload: SessionCreateRequest, container: ContainerDep) -> SessionDetailResponse:
    try:
        session = await container.metadata.prepare(
            payload.folderPath,
            mic_assignments=payload.micAssignments,
            title=payload.title,
        )
    except SessionValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None

    session = await container.repository.insert(session)
    return SessionDetailResponse.from_session(session)


@router.get("", response_model=List[SessionSummaryResponse])
async def list_sessions(container: ContainerDep) -> List[SessionSummaryResponse]:
    sessions = await container.repository.get_all()
    return [SessionSummaryResponse.from_domain(session) for session in sessions]


@router.get("/pipeline", response_model=List[PipelineStageResponse])
async def describe_pipeline() -> List[PipelineStageResponse]:
    return [
        PipelineStageResponse(
            order=stage.order,
            name=stage.name,
            module=stage.module,
            summary=stage.summary,
            perFile=stage.per_file,
        )
        for stage in AudioSessionPipeline.describe()
    ]


@router.get("/{session_id}", response_model=SessionDetailResponse)
async def get_session(session: SessionRecordDep, container: ContainerDep) -> SessionDetailResponse:
    return SessionDetailResponse.from_session(session, is_processing=container.runs.is_running(session.id))


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: UUID, container: ContainerDep) -> Response:
    if container.runs.is_running(session_id):
        raise _conflict(session_id)
    deleted = await container.repository.delete(session_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    container.runs.forget(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{session_id}/process",
    response_model=ProcessAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def process_session(
    session: SessionRecordDep,
    background_tasks: BackgroundTasks,
    container: ContainerDep,
) -> ProcessAcceptedResponse:
    try:
        cancel_event = container.runs.begin(session.id)
    except SessionAlreadyRunningError:
        raise _conflict(session.id) from None

    logger.info("Queued session %s for processing", session.id)
    background_tasks.add_task(_run_session, container, session.id, cancel_event)
    return ProcessAcceptedResponse(sessionId=session.id)


@router.get("/{session_id}/progress", response_model=SessionProgressResponse)
async def session_progress(session: SessionRecordDep, container: ContainerDep) -> SessionProgressResponse:
    run_status = container.runs.status(session.id)
    if run_status is None:
        return SessionProgressResponse(
            sessionId=session.id,
            running=False,
            message=session.error_message,
            percent=100 if session.processed_at else 0,
        )
    return SessionProgressResponse(
        sessionId=session.id,
        running=container.runs.is_running(session.id),
        message=run_status.message,
        percent=run_status.percent,
        updatedAt=run_status.updated_at,
    )


@router.post("/{session_id}/cancel", status_code=status.HTTP_202_ACCEPTED)
async def cancel_session(session_id: UUID, container: ContainerDep) -> dict[str, str]:
    if not container.runs.cancel(session_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Session {session_id} is not processing",
        )
    return {"status": "cancelling"}


@router.post("/{session_id}/reanalyze", response_model=SessionDetailResponse)
async def reanalyze_session(session_id: UUID, container: ContainerDep) -> SessionDetailResponse:
    if container.runs.is_running(session_id):
        raise _conflict(session_id)

    try:
        rerun = await container.orchestrator.rerun_analysis(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found") from None
    except SessionValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None
    except (AttributionError, TranscriptionError, LlmInvocationError) as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from None

    if not rerun:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session has no transcripts to analyze",
        )
    session = await container.repository.get(session_id)
    return SessionDetailResponse.from_session(session)


__all__ = ["router"]
