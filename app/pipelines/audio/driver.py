"""FileDriver: runs one audio file through its states until it must stop."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Mapping, Optional

from app.domain.models import PAST_BARRIER_STATES, AudioFile, FileProcessingState
from app.telemetry import observe_stage, record_file_failure

from .executors import FileRun
from .file_state import STAGE_LABELS, FileStateMachine, UnsupportedAudioFormatError, mark_failed
from .progress import FileProgress, ProgressObserver

logger = logging.getLogger(__name__)

STOP_STATES = frozenset(PAST_BARRIER_STATES | {FileProcessingState.FAILED})


class FileDriver:
    """Explicit loop over the state machine; failures end in `failed`, never raise."""

    def __init__(self, machine: FileStateMachine, observer: Optional[ProgressObserver] = None) -> None:
        self._machine = machine
        self._observer = observer

    async def drive(
        self,
        audio_file: AudioFile,
        *,
        mic_assignments: Optional[Mapping[int, str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AudioFile:
        progress = FileProgress(audio_file, self._observer)
        run = FileRun(
            audio_file=audio_file,
            progress=progress,
            mic_assignments=dict(mic_assignments or {}),
            cancel_event=cancel_event,
        )

        while audio_file.state not in STOP_STATES:
            stage = audio_file.state
            started = time.monotonic()
            try:
                progress.start_stage(self._machine.label_for(stage))
                next_state = await self._machine.step(run)
            except UnsupportedAudioFormatError as exc:
                self._fail(audio_file, stage, str(exc), can_retry=False)
                break
            except Exception as exc:
                logger.warning("%s failed in %s: %s", audio_file.file_name, stage.value, exc, exc_info=True)
                self._fail(audio_file, stage, str(exc) or exc.__class__.__name__, can_retry=True)
                break

            observe_stage(stage.value, time.monotonic() - started)
            progress.finish(STAGE_LABELS.get(next_state))
            logger.info("%s: %s -> %s", audio_file.file_name, stage.value, next_state.value)

        return audio_file

    def _fail(self, audio_file: AudioFile, stage: FileProcessingState, message: str, *, can_retry: bool) -> None:
        mark_failed(audio_file, message, can_retry=can_retry)
        record_file_failure(stage.value)
        if self._observer is not None:
            self._observer(audio_file)


__all__ = ["FileDriver", "STOP_STATES"]
