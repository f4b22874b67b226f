"""Telemetry helpers and metrics."""

from .metrics import (
    ANALYSIS_FALLBACKS,
    ERROR_COUNTER,
    FILE_FAILURES,
    FILE_TRANSITIONS,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    SESSION_OUTCOMES,
    STAGE_DURATION,
    observe_request,
    observe_stage,
    record_analysis_fallback,
    record_file_failure,
    record_session_outcome,
    record_transition,
)

__all__ = [
    "ANALYSIS_FALLBACKS",
    "ERROR_COUNTER",
    "FILE_FAILURES",
    "FILE_TRANSITIONS",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "SESSION_OUTCOMES",
    "STAGE_DURATION",
    "observe_request",
    "observe_stage",
    "record_analysis_fallback",
    "record_file_failure",
    "record_session_outcome",
    "record_transition",
]
