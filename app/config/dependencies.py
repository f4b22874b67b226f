"""Application container: builds the pipeline collaborators once per app."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from app.application.interfaces import (
    AnalysisProviderInterface,
    AudioConverterInterface,
    SessionRepositoryInterface,
    TranscriptionProviderInterface,
)
from app.pipelines.audio import (
    FileStateMachine,
    SessionBarrier,
    SessionOrchestrator,
    SpeakerAttributionService,
    StageExecutors,
)
from app.services.maintenance import MaintenanceService
from app.services.roster_cache import ParticipantRosterCache
from app.services.session_metadata import SessionMetadataService
from app.services.session_runs import SessionRunRegistry
from app.services.transcript_store import TranscriptStore

from .settings import Settings, settings

logger = logging.getLogger(__name__)


@dataclass
class PipelineContainer:
    settings: Settings
    repository: SessionRepositoryInterface
    transcription: TranscriptionProviderInterface
    roster: ParticipantRosterCache
    metadata: SessionMetadataService
    orchestrator: SessionOrchestrator
    maintenance: MaintenanceService
    runs: SessionRunRegistry

    async def startup(self) -> None:
        await self.roster.initialize()

    async def shutdown(self) -> None:
        cancelled = self.runs.cancel_all()
        if cancelled:
            logger.info("Cancelled %d running sessions on shutdown", cancelled)
        aclose = getattr(self.transcription, "aclose", None)
        if aclose is not None:
            await aclose()


def build_container(
    app_settings: Settings = settings,
    *,
    repository: Optional[SessionRepositoryInterface] = None,
    converter: Optional[AudioConverterInterface] = None,
    transcription: Optional[TranscriptionProviderInterface] = None,
    analysis: Optional[AnalysisProviderInterface] = None,
    roster: Optional[ParticipantRosterCache] = None,
) -> PipelineContainer:
    """Wire the pipeline; any collaborator can be replaced, which tests rely on."""

    if repository is None:
        from app.database import session_scope
        from app.infrastructure.persistence.repositories_sqlalchemy import SQLAlchemySessionRepository

        repository = SQLAlchemySessionRepository(session_scope)
    if converter is None:
        from app.services.converter import FfmpegConverter

        converter = FfmpegConverter(app_settings.pipeline)
    if transcription is None:
        from app.services.transcription import GladiaTranscriptionClient

        transcription = GladiaTranscriptionClient(app_settings.transcription)
    if analysis is None:
        from app.services.analysis import SessionAnalysisService
        from app.services.llm_client import BedrockLlmClient

        analysis = SessionAnalysisService(BedrockLlmClient(app_settings.bedrock))

    roster = roster or ParticipantRosterCache(app_settings.pipeline.roster_file)
    store = TranscriptStore()
    executors = StageExecutors(converter, transcription, store)
    pipeline = app_settings.pipeline

    orchestrator = SessionOrchestrator(
        repository=repository,
        machine=FileStateMachine(executors),
        barrier=SessionBarrier(
            poll_interval=pipeline.barrier_poll_interval_seconds,
            timeout=pipeline.barrier_timeout_seconds,
        ),
        attribution=SpeakerAttributionService(store),
        analysis=analysis,
    )
    runs = SessionRunRegistry()
    maintenance = MaintenanceService(
        repository=repository,
        transcription=transcription,
        executors=executors,
        store=store,
        default_threshold=timedelta(minutes=pipeline.stuck_threshold_minutes),
        is_running=runs.is_running,
    )
    return PipelineContainer(
        settings=app_settings,
        repository=repository,
        transcription=transcription,
        roster=roster,
        metadata=SessionMetadataService(roster, pipeline),
        orchestrator=orchestrator,
        maintenance=maintenance,
        runs=runs,
    )


__all__ = ["PipelineContainer", "build_container"]
