"""Pydantic schemas for session endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from app.domain.models import (
    AttributionSummary,
    AudioFile,
    CategorizedHighlights,
    FileProcessingState,
    Session,
    SessionProcessingState,
    SessionStats,
)


class SessionCreateRequest(BaseModel):
    """Payload to register a session folder."""

    folderPath: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("folderPath", "folder_path"),
    )
    title: Optional[str] = Field(None, max_length=200)
    micAssignments: Optional[Dict[int, str]] = Field(
        None,
        validation_alias=AliasChoices("micAssignments", "mic_assignments"),
        description="0-based mic index to participant name; defaults to the roster.",
    )


class AudioFileResponse(BaseModel):
    fileName: str
    state: FileProcessingState
    currentStep: str
    progress: int
    errorMessage: Optional[str] = None
    canRetry: bool
    isMasterRecording: bool
    speakerNumber: Optional[int] = None
    hasTranscript: bool

    @classmethod
    def from_domain(cls, audio_file: AudioFile) -> "AudioFileResponse":
        return cls(
            fileName=audio_file.file_name,
            state=audio_file.state,
            currentStep=audio_file.current_step,
            progress=audio_file.progress,
            errorMessage=audio_file.error_message,
            canRetry=audio_file.can_retry,
            isMasterRecording=audio_file.is_master_recording,
            speakerNumber=audio_file.speaker_number,
            hasTranscript=audio_file.has_transcript,
        )


class SessionSummaryResponse(BaseModel):
    id: UUID
    title: str
    folderPath: str
    state: SessionProcessingState
    recordingDate: Optional[datetime] = None
    fileCount: int
    errorMessage: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime
    processedAt: Optional[datetime] = None

    @classmethod
    def from_domain(cls, session: Session) -> "SessionSummaryResponse":
        return cls(
            id=session.id,
            title=session.title,
            folderPath=session.folder_path,
            state=session.state,
            recordingDate=session.recording_date,
            fileCount=len(session.audio_files),
            errorMessage=session.error_message,
            createdAt=session.created_at,
            updatedAt=session.updated_at,
            processedAt=session.processed_at,
        )


class SessionDetailResponse(SessionSummaryResponse):
    micAssignments: Dict[int, str] = Field(default_factory=dict)
    participantsPresent: List[str] = Field(default_factory=list)
    participantsAbsent: List[str] = Field(default_factory=list)
    audioFiles: List[AudioFileResponse] = Field(default_factory=list)
    mergedTranscript: Optional[str] = None
    attribution: Optional[AttributionSummary] = None
    highlights: Optional[CategorizedHighlights] = None
    stats: Optional[SessionStats] = None
    isProcessing: bool = False

    @classmethod
    def from_session(cls, session: Session, *, is_processing: bool = False) -> "SessionDetailResponse":
        summary = SessionSummaryResponse.from_domain(session)
        return cls(
            **summary.model_dump(),
            micAssignments=dict(session.mic_assignments),
            participantsPresent=list(session.participants_present),
            participantsAbsent=list(session.participants_absent),
            audioFiles=[AudioFileResponse.from_domain(item) for item in session.audio_files],
            mergedTranscript=session.merged_transcript,
            attribution=session.attribution,
            highlights=session.highlights,
            stats=session.stats,
            isProcessing=is_processing,
        )


class ProcessAcceptedResponse(BaseModel):
    sessionId: UUID
    status: str = "accepted"


class SessionProgressResponse(BaseModel):
    sessionId: UUID
    running: bool
    message: Optional[str] = None
    percent: int = 0
    updatedAt: Optional[datetime] = None


class PipelineStageResponse(BaseModel):
    order: int
    name: str
    module: str
    summary: str
    perFile: bool


__all__ = [
    "AudioFileResponse",
    "PipelineStageResponse",
    "ProcessAcceptedResponse",
    "SessionCreateRequest",
    "SessionDetailResponse",
    "SessionProgressResponse",
    "SessionSummaryResponse",
]
