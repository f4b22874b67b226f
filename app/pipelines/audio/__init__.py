"""Session audio pipeline package.

Modules follow the order in which a session is processed:

1. `file_state` – transition table and one handler per file state.
2. `executors` – the collaborator call behind each per-file stage.
3. `driver` – loop that walks one file to the barrier.
4. `barrier` – all-or-nothing synchronization point.
5. `attribution` / `statistics` – collective stages over all transcripts.
6. `orchestrator` – fan-out, fan-in and persistence checkpoints.
7. `flow` – human-readable description of the stages.
"""

from .attribution import AttributionError, AttributionResult, SpeakerAttributionService
from .barrier import BarrierStatus, SessionBarrier, SessionBarrierError, barrier_status
from .driver import FileDriver
from .executors import FileRun, StageExecutors
from .file_state import (
    FileStateMachine,
    InvalidTransitionError,
    UnsupportedAudioFormatError,
    can_retry_from,
    reset_to,
)
from .flow import AudioSessionPipeline, PipelineStage
from .orchestrator import SessionOrchestrator, SessionProgress
from .progress import FileProgress
from .statistics import build_session_stats

__all__ = [
    "AttributionError",
    "AttributionResult",
    "AudioSessionPipeline",
    "BarrierStatus",
    "FileDriver",
    "FileProgress",
    "FileRun",
    "FileStateMachine",
    "InvalidTransitionError",
    "PipelineStage",
    "SessionBarrier",
    "SessionBarrierError",
    "SessionOrchestrator",
    "SessionProgress",
    "SpeakerAttributionService",
    "StageExecutors",
    "UnsupportedAudioFormatError",
    "barrier_status",
    "build_session_stats",
    "can_retry_from",
    "reset_to",
]
