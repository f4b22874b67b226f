"""Pydantic schemas used as views in the MVC architecture."""

from .maintenance import CleanupResponse, CountResponse, RetryFileRequest, ThresholdRequest
from .sessions import (
    AudioFileResponse,
    PipelineStageResponse,
    ProcessAcceptedResponse,
    SessionCreateRequest,
    SessionDetailResponse,
    SessionProgressResponse,
    SessionSummaryResponse,
)

__all__ = [
    "AudioFileResponse",
    "CleanupResponse",
    "CountResponse",
    "PipelineStageResponse",
    "ProcessAcceptedResponse",
    "RetryFileRequest",
    "SessionCreateRequest",
    "SessionDetailResponse",
    "SessionProgressResponse",
    "SessionSummaryResponse",
    "ThresholdRequest",
]
