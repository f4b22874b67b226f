"""Operator tooling for stuck, abandoned or partially failed sessions."""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Callable, List, Optional
from uuid import UUID

from app.application.interfaces import SessionRepositoryInterface, TranscriptionProviderInterface
from app.domain.exceptions import AudioFileNotFoundError, SessionNotFoundError
from app.domain.models import (
    ACTIVE_SESSION_STATES,
    TERMINAL_SESSION_STATES,
    AudioFile,
    CleanupSummary,
    DiagnosticIssue,
    FileProcessingState,
    Session,
    SessionDiagnostics,
    SessionProcessingState,
    utcnow,
)
from app.pipelines.audio.executors import StageExecutors
from app.pipelines.audio.file_state import InvalidTransitionError, can_retry_from, reset_to
from app.services.transcription import TranscriptionError
from app.services.transcript_store import TranscriptStore, TranscriptStoreError

logger = logging.getLogger(__name__)

STUCK_ACTIVE_AFTER = timedelta(hours=1)
_ISSUE_PENALTY = 10

_REDOWNLOAD_PROMOTES = frozenset(
    {
        FileProcessingState.FAILED,
        FileProcessingState.UPLOADED,
        FileProcessingState.AWAITING_TRANSCRIPT,
    }
)


class MaintenanceService:
    def __init__(
        self,
        repository: SessionRepositoryInterface,
        transcription: TranscriptionProviderInterface,
        executors: StageExecutors,
        store: TranscriptStore,
        default_threshold: timedelta = timedelta(minutes=30),
        is_running: Optional[Callable[[UUID], bool]] = None,
    ) -> None:
        self._repository = repository
        self._transcription = transcription
        self._executors = executors
        self._store = store
        self._default_threshold = default_threshold
        self._is_running = is_running or (lambda session_id: False)

    async def detect_stuck_sessions(self, threshold: Optional[timedelta] = None) -> int:
        """Repair abandoned sessions; returns how many were recovered or failed."""

        summary = await self.cleanup_abandoned_sessions(threshold)
        return summary.repaired

    async def cleanup_abandoned_sessions(self, threshold: Optional[timedelta] = None) -> CleanupSummary:
        cutoff = utcnow() - (threshold or self._default_threshold)
        summary = CleanupSummary()

        for session in await self._repository.get_all():
            if session.state in TERMINAL_SESSION_STATES or session.created_at >= cutoff:
                continue
            if self._is_running(session.id):
                continue
            summary.processed += 1
            try:
                if session.has_transcripts:
                    session.state = SessionProcessingState.TRANSCRIBING
                    session.error_message = (
                        f"Session was abandoned and recovered (created: {session.created_at:%Y-%m-%d %H:%M})"
                    )
                    summary.recovered += 1
                else:
                    hours = (utcnow() - session.created_at).total_seconds() / 3600
                    session.state = SessionProcessingState.FAILED
                    session.error_message = f"Session abandoned after {hours:.1f} hours without progress"
                    summary.failed += 1
                await self._repository.upsert(session)
            except Exception:
                summary.errors += 1
                logger.exception("Failed to clean up session %s", session.id)

        logger.info(
            "Abandoned session cleanup: processed=%d recovered=%d failed=%d errors=%d",
            summary.processed,
            summary.recovered,
            summary.failed,
            summary.errors,
        )
        return summary

    async def reset_stuck_processing(self, threshold: Optional[timedelta] = None) -> int:
        window = threshold or self._default_threshold
        cutoff = utcnow() - window
        minutes = int(window.total_seconds() // 60)
        reset = 0
        for session in await self._repository.get_all():
            if session.state not in ACTIVE_SESSION_STATES or session.updated_at >= cutoff:
                continue
            if self._is_running(session.id):
                continue
            previous = session.state.value
            session.state = SessionProcessingState.PENDING
            session.error_message = (
                f"Session was stuck in {previous} status for over {minutes} minutes and has been reset"
            )
            await self._repository.upsert(session)
            reset += 1
        if reset:
            logger.info("Reset %d stuck sessions", reset)
        return reset

    async def fix_stuck_analyzing(self) -> int:
        fixed = 0
        for session in await self._repository.get_all():
            if session.state != SessionProcessingState.ANALYZING or self._is_running(session.id):
                continue
            if session.highlights is not None and not session.highlights.is_empty():
                session.state = SessionProcessingState.COMPLETE
                session.processed_at = session.processed_at or utcnow()
                session.error_message = None
            elif session.has_transcripts:
                session.state = SessionProcessingState.TRANSCRIBING
                session.error_message = "Analysis was interrupted; transcripts kept for re-analysis"
            else:
                continue
            await self._repository.upsert(session)
            fixed += 1
        return fixed

    async def recover_failed_files(self, session_id: UUID) -> int:
        session = await self._require(session_id)
        recovered = 0
        for audio_file in session.audio_files:
            if audio_file.state != FileProcessingState.FAILED:
                continue
            reset_to(audio_file, FileProcessingState.PENDING)
            audio_file.current_step = "Ready for retry"
            recovered += 1

        if recovered:
            session.state = SessionProcessingState.PENDING
            session.error_message = f"Reset {recovered} failed audio files for retry"
            await self._repository.upsert(session)
            logger.info("Session %s: reset %d failed files", session_id, recovered)
        return recovered

    async def retry_file(
        self,
        session_id: UUID,
        file_name: str,
        state: FileProcessingState = FileProcessingState.PENDING,
    ) -> AudioFile:
        session = await self._require(session_id)
        audio_file = session.find_file(file_name)
        if audio_file is None:
            raise AudioFileNotFoundError(session_id, file_name)
        if not can_retry_from(state):
            raise InvalidTransitionError(f"Cannot retry {file_name} from state {state.value}")

        reset_to(audio_file, state)
        if session.state in TERMINAL_SESSION_STATES:
            session.state = SessionProcessingState.PENDING
        await self._repository.upsert(session)
        return audio_file

    async def diagnose(self, session_id: UUID) -> SessionDiagnostics:
        session = await self._repository.get(session_id)
        if session is None:
            return SessionDiagnostics(
                session_id=session_id,
                session_found=False,
                issues=[
                    DiagnosticIssue(
                        issue="Session not found",
                        recommendation="Check the session id or recreate the session from its folder",
                    )
                ],
                health_score=0,
            )

        issues = self._collect_issues(session)
        return SessionDiagnostics(
            session_id=session.id,
            state=session.state,
            issues=issues,
            health_score=max(0, 100 - _ISSUE_PENALTY * len(issues)),
        )

    async def redownload_transcripts(self, session_id: UUID) -> int:
        """Fetch finished transcripts again for files whose text or document is missing."""

        session = await self._require(session_id)
        downloaded = 0
        for audio_file in session.audio_files:
            if not audio_file.transcript_id:
                continue
            if audio_file.has_transcript and self._store.exists(audio_file.json_file_path):
                continue
            try:
                document = await self._transcription.fetch_result(audio_file.transcript_id)
                if not document.succeeded:
                    logger.warning(
                        "Transcript %s for %s is not ready (status=%s)",
                        audio_file.transcript_id,
                        audio_file.file_name,
                        document.status,
                    )
                    continue
                await self._executors.store_document(
                    audio_file, document, session.mic_assignments, keep_existing_text=True
                )
            except (TranscriptionError, TranscriptStoreError) as exc:
                logger.warning("Re-download failed for %s: %s", audio_file.file_name, exc)
                continue

            if audio_file.state in _REDOWNLOAD_PROMOTES:
                audio_file.state = FileProcessingState.TRANSCRIPT_DOWNLOADED
                audio_file.error_message = None
                audio_file.can_retry = True
                audio_file.current_step = "Transcript downloaded"
            downloaded += 1

        if downloaded:
            await self._repository.upsert(session)
        logger.info("Session %s: re-downloaded %d transcripts", session_id, downloaded)
        return downloaded

    async def _require(self, session_id: UUID) -> Session:
        session = await self._repository.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @staticmethod
    def _collect_issues(session: Session) -> List[DiagnosticIssue]:
        issues: List[DiagnosticIssue] = []
        if not Path(session.folder_path).is_dir():
            issues.append(
                DiagnosticIssue(
                    issue=f"Session folder missing: {session.folder_path}",
                    recommendation="Restore the folder or update the session folder path",
                )
            )

        for audio_file in session.audio_files:
            if not Path(audio_file.file_path).exists():
                issues.append(
                    DiagnosticIssue(
                        issue=f"Audio file missing: {audio_file.file_name}",
                        recommendation="Restore the recording or remove it from the session",
                    )
                )
            if audio_file.state == FileProcessingState.FAILED:
                issues.append(
                    DiagnosticIssue(
                        issue=f"File {audio_file.file_name} failed: {audio_file.error_message or 'unknown error'}",
                        recommendation="Recover failed files and process the session again"
                        if audio_file.can_retry
                        else "Replace the file with a supported format",
                    )
                )
            if audio_file.transcript_id and not audio_file.has_transcript:
                issues.append(
                    DiagnosticIssue(
                        issue=f"Transcript {audio_file.transcript_id} for {audio_file.file_name} was never downloaded",
                        recommendation="Re-download transcripts for this session",
                    )
                )

        if session.state == SessionProcessingState.COMPLETE:
            if session.highlights is None or session.highlights.is_empty():
                issues.append(
                    DiagnosticIssue(
                        issue="Session is complete but has no analysis",
                        recommendation="Re-run the analysis",
                    )
                )
            if not session.has_transcripts:
                issues.append(
                    DiagnosticIssue(
                        issue="Session is complete but has no transcript text",
                        recommendation="Re-download transcripts, then re-run the analysis",
                    )
                )

        if session.state in ACTIVE_SESSION_STATES and utcnow() - session.updated_at > STUCK_ACTIVE_AFTER:
            issues.append(
                DiagnosticIssue(
                    issue=f"Session stuck in {session.state.value} for over an hour",
                    recommendation="Reset stuck sessions or recover failed files",
                )
            )
        return issues


__all__ = ["MaintenanceService"]
