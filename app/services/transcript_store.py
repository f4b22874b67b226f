"""Local persistence of transcript documents next to their audio files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from fastapi.concurrency import run_in_threadpool

from app.domain.transcripts import TranscriptDocument

logger = logging.getLogger(__name__)
transcript_logger = logging.getLogger("app.logs.transcript")

TRANSCRIPT_SUFFIX = "_transcription"


class TranscriptStoreError(RuntimeError):
    """Raised when a transcript document cannot be written or read back."""


def transcript_paths(audio_path: str) -> tuple[Path, Path]:
    """Return the (json, txt) paths used for the transcript of `audio_path`."""

    source = Path(audio_path)
    base = source.with_name(f"{source.stem}{TRANSCRIPT_SUFFIX}")
    return base.with_suffix(".json"), base.with_suffix(".txt")


def _write(json_path: Path, text_path: Path, payload: Mapping[str, Any], text: str) -> None:
    json_path.parent.mkdir(parents=True, exist_ok=True)
    json_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    text_path.write_text(text, encoding="utf-8")


def _read(json_path: Path) -> Mapping[str, Any]:
    return json.loads(json_path.read_text(encoding="utf-8"))


class TranscriptStore:
    """Writes provider documents as `<stem>_transcription.json` plus a `.txt` copy."""

    async def save(self, audio_path: str, document: TranscriptDocument, text: str) -> str:
        json_path, text_path = transcript_paths(audio_path)
        payload = dict(document.raw) or {
            "id": document.job_id,
            "status": document.status,
            "result": {"transcription": {"full_transcript": document.full_transcript, "utterances": []}},
        }
        try:
            await run_in_threadpool(_write, json_path, text_path, payload, text)
        except OSError as exc:
            raise TranscriptStoreError(f"Failed to save transcript for {Path(audio_path).name}: {exc}") from exc

        transcript_logger.info(
            "Transcript saved file=%s job=%s utterances=%d chars=%d",
            Path(audio_path).name,
            document.job_id,
            len(document.utterances),
            len(text),
        )
        return str(json_path)

    async def load(self, json_path: str) -> TranscriptDocument:
        path = Path(json_path)
        try:
            payload = await run_in_threadpool(_read, path)
        except (OSError, ValueError) as exc:
            raise TranscriptStoreError(f"Unreadable transcript document {path.name}: {exc}") from exc
        if not isinstance(payload, Mapping):
            raise TranscriptStoreError(f"Transcript document {path.name} is not a JSON object")
        return TranscriptDocument.from_payload(payload)

    async def write_json(self, path: str, payload: Mapping[str, Any]) -> str:
        target = Path(path)
        try:
            await run_in_threadpool(
                target.write_text,
                json.dumps(payload, indent=2, ensure_ascii=False, default=str),
                "utf-8",
            )
        except OSError as exc:
            raise TranscriptStoreError(f"Failed to write {target.name}: {exc}") from exc
        logger.info("Wrote %s", target)
        return str(target)

    @staticmethod
    def exists(json_path: str | None) -> bool:
        return bool(json_path) and Path(json_path).exists()


__all__ = ["TranscriptStore", "TranscriptStoreError", "transcript_paths"]
