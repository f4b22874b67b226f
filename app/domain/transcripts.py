"""Typed view over transcription provider documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class Utterance:
    """One diarized segment of speech."""

    start: float
    end: float
    text: str
    speaker: int = 0
    confidence: float = 0.0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Utterance":
        return cls(
            start=float(payload.get("start") or 0.0),
            end=float(payload.get("end") or 0.0),
            text=str(payload.get("text") or ""),
            speaker=int(payload.get("speaker") or 0),
            confidence=float(payload.get("confidence") or 0.0),
        )


@dataclass(frozen=True)
class TranscriptDocument:
    """Provider response for one transcription job.

    `raw` keeps the untouched JSON so it can be written to disk verbatim.
    """

    job_id: str
    status: str
    full_transcript: str = ""
    utterances: tuple[Utterance, ...] = ()
    error: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "done" and not self.error

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TranscriptDocument":
        result = payload.get("result") or {}
        transcription = result.get("transcription") or {} if isinstance(result, Mapping) else {}
        raw_utterances = transcription.get("utterances") or []
        error = payload.get("error")
        if isinstance(error, Mapping):
            error = error.get("message") or str(dict(error))
        return cls(
            job_id=str(payload.get("id") or ""),
            status=str(payload.get("status") or ""),
            full_transcript=str(transcription.get("full_transcript") or ""),
            utterances=tuple(
                Utterance.from_payload(item)
                for item in raw_utterances
                if isinstance(item, Mapping)
            ),
            error=str(error) if error else None,
            raw=dict(payload),
        )


__all__ = ["TranscriptDocument", "Utterance"]
