"""Per-file state machine.

The transition table lists every legal move. Handlers do one unit of work
and return the next state; the driver applies it. Collective states past the
barrier are only ever entered through `advance_collective`, which the session
orchestrator calls after fan-in.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Iterable, Mapping

from app.domain.models import AudioFile, FileProcessingState, utcnow
from app.telemetry import record_transition

from .executors import FileRun, StageExecutors

logger = logging.getLogger(__name__)

State = FileProcessingState
StateHandler = Callable[[FileRun], Awaitable[FileProcessingState]]

SUPPORTED_SOURCE_EXTENSIONS = {".wav": State.CONVERTING, ".mp3": State.UPLOADING}

TRANSITIONS: Mapping[State, frozenset] = {
    State.PENDING: frozenset({State.CONVERTING, State.UPLOADING}),
    State.CONVERTING: frozenset({State.CONVERTED_READY}),
    State.CONVERTED_READY: frozenset({State.UPLOADING}),
    State.UPLOADING: frozenset({State.UPLOADED}),
    State.UPLOADED: frozenset({State.AWAITING_TRANSCRIPT}),
    State.AWAITING_TRANSCRIPT: frozenset({State.TRANSCRIPT_DOWNLOADED}),
    State.TRANSCRIPT_DOWNLOADED: frozenset({State.WAITING_FOR_SIBLINGS}),
    State.WAITING_FOR_SIBLINGS: frozenset({State.MERGING_ATTRIBUTION}),
    State.MERGING_ATTRIBUTION: frozenset({State.READY_FOR_ANALYSIS}),
    State.READY_FOR_ANALYSIS: frozenset({State.ANALYZING_WITH_AI}),
    State.ANALYZING_WITH_AI: frozenset({State.COMPLETE}),
    State.COMPLETE: frozenset(),
    State.FAILED: frozenset({State.PENDING}),
}

COLLECTIVE_ORDER = (
    State.WAITING_FOR_SIBLINGS,
    State.MERGING_ATTRIBUTION,
    State.READY_FOR_ANALYSIS,
    State.ANALYZING_WITH_AI,
    State.COMPLETE,
)

STAGE_LABELS: Mapping[State, str] = {
    State.PENDING: "Checking file type",
    State.CONVERTING: "Converting to MP3",
    State.CONVERTED_READY: "Conversion complete",
    State.UPLOADING: "Uploading audio",
    State.UPLOADED: "Starting transcription",
    State.AWAITING_TRANSCRIPT: "Waiting for transcript",
    State.TRANSCRIPT_DOWNLOADED: "Transcript downloaded",
    State.WAITING_FOR_SIBLINGS: "Waiting for other files",
    State.MERGING_ATTRIBUTION: "Merging speaker attribution",
    State.READY_FOR_ANALYSIS: "Ready for analysis",
    State.ANALYZING_WITH_AI: "Analyzing with AI",
    State.COMPLETE: "Complete",
    State.FAILED: "Failed",
}

_RETRYABLE_STATES = frozenset(
    {State.FAILED, State.PENDING, State.CONVERTING, State.UPLOADING, State.AWAITING_TRANSCRIPT}
)

_RESET_LABELS = {
    State.PENDING: "Ready to process",
    State.CONVERTING: "Ready for conversion",
    State.UPLOADING: "Ready for upload",
    State.AWAITING_TRANSCRIPT: "Ready for transcription",
}


class UnsupportedAudioFormatError(RuntimeError):
    """Raised when a recording has an extension the pipeline cannot process."""


class InvalidTransitionError(RuntimeError):
    """Raised when a handler or caller asks for a move the table forbids."""


def is_allowed(current: State, target: State) -> bool:
    if target == State.FAILED:
        return current not in (State.COMPLETE, State.FAILED)
    return target in TRANSITIONS.get(current, frozenset())


def apply_transition(audio_file: AudioFile, target: State) -> None:
    current = audio_file.state
    if not is_allowed(current, target):
        raise InvalidTransitionError(
            f"{audio_file.file_name}: illegal transition {current.value} -> {target.value}"
        )
    audio_file.state = target
    audio_file.updated_at = utcnow()
    record_transition(current.value, target.value)
    logger.debug("%s: %s -> %s", audio_file.file_name, current.value, target.value)


def mark_failed(audio_file: AudioFile, message: str, *, can_retry: bool = True) -> None:
    previous = audio_file.state
    audio_file.state = State.FAILED
    audio_file.error_message = message
    audio_file.can_retry = can_retry
    audio_file.current_step = f"Failed: {message}"
    audio_file.updated_at = utcnow()
    record_transition(previous.value, State.FAILED.value)


def advance_collective(files: Iterable[AudioFile], target: State) -> int:
    """Move every file that passed the barrier forward to `target`.

    Files already at or beyond `target` are left alone, so the call is safe
    to repeat when a session run resumes.
    """

    target_index = COLLECTIVE_ORDER.index(target)
    moved = 0
    for audio_file in files:
        if audio_file.state not in COLLECTIVE_ORDER:
            continue
        while COLLECTIVE_ORDER.index(audio_file.state) < target_index:
            next_state = COLLECTIVE_ORDER[COLLECTIVE_ORDER.index(audio_file.state) + 1]
            apply_transition(audio_file, next_state)
            audio_file.current_step = STAGE_LABELS[next_state]
            audio_file.progress = 100 if next_state == State.COMPLETE else audio_file.progress
            moved += 1
    return moved


def can_retry_from(state: State) -> bool:
    return state in _RETRYABLE_STATES


def reset_to(audio_file: AudioFile, state: State) -> None:
    """Put a file back into `state` so the next run picks it up from there."""

    if not can_retry_from(state):
        raise InvalidTransitionError(f"Cannot reset {audio_file.file_name} to {state.value}")
    if state == State.AWAITING_TRANSCRIPT and not audio_file.transcript_id:
        # No live job to wait on; the upload stage reuses audio_url and starts a new one.
        state = State.UPLOADING
    audio_file.state = state
    audio_file.error_message = None
    audio_file.can_retry = True
    audio_file.progress = 0
    audio_file.current_step = _RESET_LABELS.get(state, "Ready to resume")
    audio_file.updated_at = utcnow()


class FileStateMachine:
    """Maps each per-file state to the handler that performs its work."""

    def __init__(self, executors: StageExecutors) -> None:
        self._executors = executors
        self._handlers: Dict[State, StateHandler] = {
            State.PENDING: self._pending,
            State.CONVERTING: self._converting,
            State.CONVERTED_READY: self._converted_ready,
            State.UPLOADING: self._uploading,
            State.UPLOADED: self._uploaded,
            State.AWAITING_TRANSCRIPT: self._awaiting_transcript,
            State.TRANSCRIPT_DOWNLOADED: self._transcript_downloaded,
        }

    def handles(self, state: State) -> bool:
        return state in self._handlers

    @staticmethod
    def label_for(state: State) -> str:
        return STAGE_LABELS.get(state, state.value)

    async def step(self, run: FileRun) -> State:
        """Run the handler for the file's current state and apply its result."""

        current = run.audio_file.state
        handler = self._handlers.get(current)
        if handler is None:
            raise InvalidTransitionError(f"No handler for state {current.value}")
        next_state = await handler(run)
        apply_transition(run.audio_file, next_state)
        return next_state

    async def _pending(self, run: FileRun) -> State:
        extension = run.audio_file.extension
        next_state = SUPPORTED_SOURCE_EXTENSIONS.get(extension)
        if next_state is None:
            raise UnsupportedAudioFormatError(f"Unsupported file type: {extension or '(none)'}")
        return next_state

    async def _converting(self, run: FileRun) -> State:
        await self._executors.convert(run)
        return State.CONVERTED_READY

    async def _converted_ready(self, run: FileRun) -> State:
        return State.UPLOADING

    async def _uploading(self, run: FileRun) -> State:
        await self._executors.upload(run)
        return State.UPLOADED

    async def _uploaded(self, run: FileRun) -> State:
        await self._executors.start_transcription(run)
        return State.AWAITING_TRANSCRIPT

    async def _awaiting_transcript(self, run: FileRun) -> State:
        await self._executors.download_transcript(run)
        return State.TRANSCRIPT_DOWNLOADED

    async def _transcript_downloaded(self, run: FileRun) -> State:
        return State.WAITING_FOR_SIBLINGS


__all__ = [
    "COLLECTIVE_ORDER",
    "FileStateMachine",
    "InvalidTransitionError",
    "STAGE_LABELS",
    "TRANSITIONS",
    "UnsupportedAudioFormatError",
    "advance_collective",
    "apply_transition",
    "can_retry_from",
    "is_allowed",
    "mark_failed",
    "reset_to",
]
