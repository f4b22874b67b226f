"""Pytest fixtures wiring the pipeline with in-memory fakes."""

from __future__ import annotations

from pathlib import Path

import pytest

from fakes import ROSTER, FakeAnalysis, FakeConverter, FakeTranscription, write_recordings

from app.config.dependencies import PipelineContainer, build_container
from app.config.settings import PipelineConfig, Settings
from app.infrastructure.persistence.repositories_memory import InMemorySessionRepository
from app.services.roster_cache import ParticipantRosterCache


@pytest.fixture
def session_folder(tmp_path: Path) -> Path:
    return write_recordings(tmp_path / "2024-March-Dune_Part_Two", ["MIC1.wav", "MIC2.wav", "MASTER_MIX.wav"])


@pytest.fixture
def repository() -> InMemorySessionRepository:
    return InMemorySessionRepository()


@pytest.fixture
def converter() -> FakeConverter:
    return FakeConverter()


@pytest.fixture
def transcription() -> FakeTranscription:
    return FakeTranscription()


@pytest.fixture
def analysis() -> FakeAnalysis:
    return FakeAnalysis()


@pytest.fixture
def app_settings() -> Settings:
    return Settings(pipeline=PipelineConfig(barrier_poll_interval_seconds=0.01, stuck_threshold_minutes=30))


@pytest.fixture
def container(
    app_settings: Settings,
    repository: InMemorySessionRepository,
    converter: FakeConverter,
    transcription: FakeTranscription,
    analysis: FakeAnalysis,
) -> PipelineContainer:
    return build_container(
        app_settings,
        repository=repository,
        converter=converter,
        transcription=transcription,
        analysis=analysis,
        roster=ParticipantRosterCache(roster=dict(ROSTER)),
    )
