"""Service layer helpers for external integrations."""

from .analysis import SessionAnalysisService, fallback_highlights
from .converter import ConversionError, FfmpegConverter
from .llm_client import BedrockLlmClient, LlmInvocationError
from .roster_cache import ParticipantRosterCache
from .session_metadata import SessionMetadataService
from .transcript_store import TranscriptStore, TranscriptStoreError
from .transcription import GladiaTranscriptionClient, TranscriptionError, TranscriptionJobFailedError

__all__ = [
    "BedrockLlmClient",
    "ConversionError",
    "FfmpegConverter",
    "GladiaTranscriptionClient",
    "LlmInvocationError",
    "ParticipantRosterCache",
    "SessionAnalysisService",
    "SessionMetadataService",
    "TranscriptStore",
    "TranscriptStoreError",
    "TranscriptionError",
    "TranscriptionJobFailedError",
    "fallback_highlights",
]
