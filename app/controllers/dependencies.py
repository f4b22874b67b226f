"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status

from app.config.dependencies import PipelineContainer
from app.domain.models import Session


def get_container(request: Request) -> PipelineContainer:
    """Return the pipeline container attached to the running application."""

    return request.app.state.container


ContainerDep = Annotated[PipelineContainer, Depends(get_container)]


async def get_session_or_404(session_id: UUID, container: ContainerDep) -> Session:
    session = await container.repository.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
    return session


SessionRecordDep = Annotated[Session, Depends(get_session_or_404)]


__all__ = ["ContainerDep", "SessionRecordDep", "get_container", "get_session_or_404"]
