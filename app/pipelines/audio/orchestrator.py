"""Session orchestration: fan-out per-file drivers, barrier, collective stages.

Checkpoints are written to the repository at the start of a run, after the
barrier, after the merge, after the analysis and when the run ends. Merge
and analysis results are built completely before they are attached to the
session, so a failure never leaves half of a collective result behind.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from app.application.interfaces import AnalysisProviderInterface, SessionRepositoryInterface
from app.domain.exceptions import PipelineCancelledError, SessionNotFoundError, SessionValidationError
from app.domain.models import (
    PAST_BARRIER_STATES,
    AudioFile,
    CategorizedHighlights,
    FileProcessingState,
    Session,
    SessionProcessingState,
    utcnow,
)
from app.telemetry import observe_stage, record_session_outcome

from .attribution import AttributionResult, SpeakerAttributionService
from .barrier import SessionBarrier
from .driver import FileDriver
from .file_state import FileStateMachine, advance_collective
from .statistics import build_session_stats

logger = logging.getLogger(__name__)

SessionProgress = Callable[[str, int], None]
"""(message, percent) reported at phase boundaries and on throttled file updates."""

_TRANSCRIBE_START = 5
_TRANSCRIBE_SPAN = 75
_FILE_REPORT_STEP = 10

_PER_FILE_ORDER = {
    FileProcessingState.PENDING: 0,
    FileProcessingState.CONVERTING: 1,
    FileProcessingState.CONVERTED_READY: 2,
    FileProcessingState.UPLOADING: 3,
    FileProcessingState.UPLOADED: 4,
    FileProcessingState.AWAITING_TRANSCRIPT: 5,
    FileProcessingState.TRANSCRIPT_DOWNLOADED: 6,
}
_FINISHED_STATES = PAST_BARRIER_STATES | {FileProcessingState.FAILED}


class _ProgressRelay:
    """Turn per-file updates into throttled session progress callbacks.

    Reported percentages never decrease within one run.
    """

    def __init__(self, session: Session, callback: Optional[SessionProgress]) -> None:
        self._session = session
        self._callback = callback
        self._last: Dict[int, tuple[int, str]] = {}
        self._reported = 0

    def report(self, message: str, percent: int) -> None:
        if self._callback is None:
            return
        self._reported = max(self._reported, max(0, min(100, percent)))
        self._callback(message, self._reported)

    def on_file(self, audio_file: AudioFile) -> None:
        if self._callback is None:
            return
        key = id(audio_file)
        last_progress, last_step = self._last.get(key, (-_FILE_REPORT_STEP, ""))
        step_changed = audio_file.current_step != last_step
        if not step_changed and audio_file.progress - last_progress < _FILE_REPORT_STEP:
            return
        self._last[key] = (audio_file.progress, audio_file.current_step)
        self.report(f"{audio_file.file_name}: {audio_file.current_step}", self._overall())

    def _overall(self) -> int:
        files = self._session.audio_files
        if not files:
            return _TRANSCRIBE_START
        average = sum(self._file_fraction(item) for item in files) / len(files)
        return _TRANSCRIBE_START + int(average * _TRANSCRIBE_SPAN)

    @staticmethod
    def _file_fraction(audio_file: AudioFile) -> float:
        if audio_file.state in _FINISHED_STATES:
            return 1.0
        order = _PER_FILE_ORDER.get(audio_file.state, 0)
        return (order + audio_file.progress / 100) / len(_PER_FILE_ORDER)


def analysis_metadata(session: Session) -> Dict[str, Any]:
    return {
        "session_id": str(session.id),
        "title": session.title,
        "recording_date": session.recording_date.date().isoformat() if session.recording_date else None,
        "mic_assignments": dict(session.mic_assignments),
        "participants_present": list(session.participants_present),
        "participants_absent": list(session.participants_absent),
    }


class SessionOrchestrator:
    def __init__(
        self,
        repository: SessionRepositoryInterface,
        machine: FileStateMachine,
        barrier: SessionBarrier,
        attribution: SpeakerAttributionService,
        analysis: AnalysisProviderInterface,
    ) -> None:
        self._repository = repository
        self._machine = machine
        self._barrier = barrier
        self._attribution = attribution
        self._analysis = analysis

    async def run_enhanced(
        self,
        session: Session,
        progress: Optional[SessionProgress] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Session:
        """Process every file of `session` and produce its analysis."""

        relay = _ProgressRelay(session, progress)
        try:
            session.state = SessionProcessingState.VALIDATING
            session.error_message = None
            relay.report("Validating session", 0)
            if not session.audio_files:
                raise SessionValidationError("No audio files found in session")
            await self._checkpoint(session)

            session.state = SessionProcessingState.TRANSCRIBING
            relay.report(f"Processing {len(session.audio_files)} audio files", _TRANSCRIBE_START)
            driver = FileDriver(self._machine, observer=relay.on_file)
            await asyncio.gather(
                *(
                    driver.drive(
                        audio_file,
                        mic_assignments=session.mic_assignments,
                        cancel_event=cancel_event,
                    )
                    for audio_file in session.audio_files
                )
            )
            await self._barrier.wait(
                session.audio_files,
                cancel_event=cancel_event,
                on_progress=lambda message: relay.report(message, _TRANSCRIBE_START + _TRANSCRIBE_SPAN),
            )
            await self._checkpoint(session)

            relay.report("Merging speaker attribution", 82)
            if session.attribution is None or session.merged_transcript is None:
                await self.merge_attribution(session)
            else:
                logger.info("Session %s already merged; skipping attribution", session.id)
            await self._checkpoint(session)

            session.state = SessionProcessingState.ANALYZING
            relay.report("Analyzing with AI", 90)
            if session.highlights is None or session.highlights.is_empty():
                await self.analyze_with_ai(session, cancel_event=cancel_event)
            await self._checkpoint(session)

            self._validate_results(session)
            advance_collective(session.audio_files, FileProcessingState.COMPLETE)
            session.state = SessionProcessingState.COMPLETE
            session.processed_at = utcnow()
            await self._checkpoint(session)
        except PipelineCancelledError as exc:
            await self._fail(session, str(exc), outcome="cancelled")
            raise
        except Exception as exc:
            await self._fail(session, str(exc) or exc.__class__.__name__, outcome="failed")
            raise

        record_session_outcome("complete")
        relay.report("Processing complete", 100)
        logger.info("Session %s complete (fallback=%s)", session.id, session.highlights.is_fallback)
        return session

    async def merge_attribution(self, session: Session) -> AttributionResult:
        """Run the speaker merge once and attach transcript, summary and stats together."""

        advance_collective(session.audio_files, FileProcessingState.MERGING_ATTRIBUTION)
        started = time.monotonic()
        result = await self._attribution.merge(session)
        stats = build_session_stats(result.lines)
        observe_stage("merge_attribution", time.monotonic() - started)

        master = session.master_file
        if result.success and master is not None:
            master.transcript_text = result.transcript
        session.merged_transcript = result.transcript
        session.attribution = result.to_summary()
        session.stats = stats
        advance_collective(session.audio_files, FileProcessingState.READY_FOR_ANALYSIS)
        return result

    async def analyze_with_ai(
        self,
        session: Session,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CategorizedHighlights:
        advance_collective(session.audio_files, FileProcessingState.ANALYZING_WITH_AI)
        if cancel_event is not None and cancel_event.is_set():
            raise PipelineCancelledError("Analysis cancelled by operator")

        started = time.monotonic()
        highlights = await self._analysis.analyze(session.merged_transcript or "", analysis_metadata(session))
        observe_stage("analyze_with_ai", time.monotonic() - started)
        session.highlights = highlights
        return highlights

    async def rerun_analysis(self, session_id: UUID) -> bool:
        """Redo merge and analysis from stored transcripts; False when there are none."""

        session = await self._repository.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if not session.has_transcripts:
            logger.warning("Session %s has no transcripts to re-analyze", session_id)
            return False

        # Results are rebuilt on a copy; the stored session keeps its previous
        # highlights until the new ones pass validation.
        rebuilt = session.model_copy(deep=True)
        rebuilt.clear_analysis()
        rebuilt.error_message = None
        try:
            await self.merge_attribution(rebuilt)
            await self.analyze_with_ai(rebuilt)
            self._validate_results(rebuilt)
        except Exception as exc:
            logger.error("Re-analysis of session %s failed: %s", session_id, str(exc) or exc.__class__.__name__)
            record_session_outcome("failed")
            raise

        advance_collective(rebuilt.audio_files, FileProcessingState.COMPLETE)
        rebuilt.state = SessionProcessingState.COMPLETE
        rebuilt.processed_at = utcnow()
        await self._checkpoint(rebuilt)
        record_session_outcome("complete")
        return True

    @staticmethod
    def _validate_results(session: Session) -> None:
        total = len(session.audio_files)
        transcribed = sum(1 for audio_file in session.audio_files if audio_file.has_transcript)
        if transcribed == 0:
            raise SessionValidationError(f"No successful transcripts generated from {total} audio files")
        if transcribed < total:
            logger.warning(
                "Session %s: only %d of %d files produced transcript text",
                session.id,
                transcribed,
                total,
            )
        if session.highlights is None or session.highlights.is_empty():
            raise SessionValidationError("AI analysis produced no highlights")

    async def _checkpoint(self, session: Session) -> None:
        session.updated_at = utcnow()
        await self._repository.upsert(session)

    async def _fail(self, session: Session, message: str, *, outcome: str) -> None:
        logger.error("Session %s failed: %s", session.id, message)
        session.state = SessionProcessingState.FAILED
        session.error_message = message
        record_session_outcome(outcome)
        await self._checkpoint(session)


__all__ = ["SessionOrchestrator", "SessionProgress", "SessionValidationError", "analysis_metadata"]
