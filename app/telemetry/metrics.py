"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests processed",
    ("method", "route", "status"),
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ("method", "route"),
    buckets=(
        0.005,
        0.01,
        0.025,
        0.05,
        0.1,
        0.25,
        0.5,
        1.0,
        2.5,
        5.0,
        10.0,
    ),
)

ERROR_COUNTER = Counter(
    "app_internal_errors_total",
    "Number of requests ending in internal server error responses",
    ("method", "route"),
)

FILE_TRANSITIONS = Counter(
    "pipeline_file_transitions_total",
    "Per-file state transitions applied by the pipeline",
    ("from_state", "to_state"),
)

FILE_FAILURES = Counter(
    "pipeline_file_failures_total",
    "Audio files that ended a stage in the failed state",
    ("stage",),
)

SESSION_OUTCOMES = Counter(
    "pipeline_session_outcomes_total",
    "Sessions that reached a terminal state",
    ("outcome",),
)

STAGE_DURATION = Histogram(
    "pipeline_stage_duration_seconds",
    "Time spent executing one per-file stage",
    ("stage",),
    buckets=(0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0),
)

ANALYSIS_FALLBACKS = Counter(
    "pipeline_analysis_fallbacks_total",
    "Analyses that fell back to placeholder highlights",
)


def observe_request(
    method: str,
    route: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record metrics for a completed HTTP request."""

    safe_route = route or "unknown"
    safe_method = method or "UNKNOWN"
    status_label = str(status_code)
    observed_duration = duration_seconds if duration_seconds >= 0 else 0

    REQUEST_COUNT.labels(
        method=safe_method,
        route=safe_route,
        status=status_label,
    ).inc()
    REQUEST_LATENCY.labels(
        method=safe_method,
        route=safe_route,
    ).observe(observed_duration)

    if status_code >= 500:
        ERROR_COUNTER.labels(
            method=safe_method,
            route=safe_route,
        ).inc()


def record_transition(from_state: str, to_state: str) -> None:
    FILE_TRANSITIONS.labels(from_state=from_state, to_state=to_state).inc()


def record_file_failure(stage: str) -> None:
    FILE_FAILURES.labels(stage=stage or "unknown").inc()


def record_session_outcome(outcome: str) -> None:
    SESSION_OUTCOMES.labels(outcome=outcome).inc()


def observe_stage(stage: str, duration_seconds: float) -> None:
    STAGE_DURATION.labels(stage=stage).observe(max(duration_seconds, 0.0))


def record_analysis_fallback() -> None:
    """Increment the fallback analysis counter."""

    ANALYSIS_FALLBACKS.inc()
