"""Stage executors: one collaborator call per per-file stage.

Each executor checks whether its side effect already happened before calling
out, so replaying a stage after a crash or a manual reset is harmless.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from fastapi.concurrency import run_in_threadpool

from app.application.interfaces import AudioConverterInterface, TranscriptionProviderInterface
from app.domain.models import AudioFile, utcnow
from app.domain.services import SpeakerDomainService
from app.domain.transcripts import TranscriptDocument
from app.services.transcript_store import TranscriptStore
from app.services.transcription import TranscriptionJobFailedError

from .progress import FileProgress, conversion_percent, polling_percent

logger = logging.getLogger(__name__)


@dataclass
class FileRun:
    """Everything a handler needs while driving one audio file."""

    audio_file: AudioFile
    progress: FileProgress
    mic_assignments: Mapping[int, str] = field(default_factory=dict)
    cancel_event: Optional[asyncio.Event] = None


def transcript_text_for(
    document: TranscriptDocument,
    file_name: str,
    mic_assignments: Mapping[int, str],
) -> str:
    """Speaker-labelled text for a finished transcription job."""

    text = SpeakerDomainService.format_utterances(document.utterances) or document.full_transcript
    return SpeakerDomainService.map_speaker_labels(text, mic_assignments, file_name)


def _remove_file(path: Path) -> None:
    path.unlink(missing_ok=True)


class StageExecutors:
    def __init__(
        self,
        converter: AudioConverterInterface,
        transcription: TranscriptionProviderInterface,
        store: TranscriptStore,
    ) -> None:
        self._converter = converter
        self._transcription = transcription
        self._store = store

    async def convert(self, run: FileRun) -> None:
        audio_file = run.audio_file
        source = Path(audio_file.file_path)
        target = source.with_suffix(".mp3")

        if target.exists() and (target == source or not source.exists()):
            logger.info("Conversion already done for %s", audio_file.file_name)
        else:
            def _on_progress(step: str, current: float, total: float) -> None:
                run.progress.advance(conversion_percent(current, total), step)

            await self._converter.convert(str(source), str(target), _on_progress)
            if target != source:
                await run_in_threadpool(_remove_file, source)

        audio_file.file_path = str(target)
        audio_file.file_name = target.name
        if target.exists():
            audio_file.size_bytes = target.stat().st_size
        audio_file.converted_at = audio_file.converted_at or utcnow()

    async def upload(self, run: FileRun) -> None:
        audio_file = run.audio_file
        if audio_file.audio_url:
            logger.info("Upload already done for %s", audio_file.file_name)
            return
        run.progress.advance(10, "Uploading to transcription service")
        audio_file.audio_url = await self._transcription.upload(audio_file.file_path)
        audio_file.uploaded_at = utcnow()

    async def start_transcription(self, run: FileRun) -> None:
        audio_file = run.audio_file
        if audio_file.transcript_id:
            logger.info("Transcription already started for %s", audio_file.file_name)
            return
        if not audio_file.audio_url:
            raise RuntimeError(f"{audio_file.file_name} has no uploaded audio URL")

        expected = SpeakerDomainService.expected_speakers(audio_file.file_name, run.mic_assignments)
        audio_file.transcript_id = await self._transcription.start_job(
            audio_file.audio_url,
            expected_speakers=expected,
            enable_diarization=expected > 1,
            label=audio_file.file_name,
        )

    async def download_transcript(self, run: FileRun) -> None:
        audio_file = run.audio_file
        if audio_file.has_transcript and self._store.exists(audio_file.json_file_path):
            logger.info("Transcript already downloaded for %s", audio_file.file_name)
            return
        if not audio_file.transcript_id:
            raise RuntimeError(f"{audio_file.file_name} has no transcription job")

        def _on_poll(attempt: int) -> None:
            run.progress.advance(polling_percent(attempt), f"Waiting for transcript (check {attempt})")

        try:
            document = await self._transcription.poll_until_done(
                audio_file.transcript_id,
                cancel_event=run.cancel_event,
                on_poll=_on_poll,
            )
        except TranscriptionJobFailedError:
            # The uploaded audio stays reusable; only the dead job is dropped.
            logger.warning(
                "Transcription job %s for %s ended in error", audio_file.transcript_id, audio_file.file_name
            )
            audio_file.transcript_id = None
            raise
        await self.store_document(audio_file, document, run.mic_assignments)

    async def store_document(
        self,
        audio_file: AudioFile,
        document: TranscriptDocument,
        mic_assignments: Mapping[int, str],
        *,
        keep_existing_text: bool = False,
    ) -> None:
        """Save a finished document beside the audio and attach its text to the file.

        With `keep_existing_text` a file that already has transcript text (for
        the master, the speaker-attributed merge) keeps it; only the document
        is restored.
        """

        if keep_existing_text and audio_file.has_transcript:
            text = audio_file.transcript_text
        else:
            text = transcript_text_for(document, audio_file.file_name, mic_assignments)
        audio_file.json_file_path = await self._store.save(audio_file.file_path, document, text)
        audio_file.transcript_text = text
        audio_file.processed_at = utcnow()


__all__ = ["FileRun", "StageExecutors", "transcript_text_for"]
