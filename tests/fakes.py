"""Fake collaborators and payload builders shared by the pipeline tests."""

from __future__ import annotations

import asyncio
from pathlib import Path
import shutil
import sys
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from app.application.interfaces import (  # noqa: E402
    AnalysisProviderInterface,
    AudioConverterInterface,
    TranscriptionProviderInterface,
)
from app.domain.models import CategorizedHighlights, CategoryWinner, TopFiveEntry  # noqa: E402
from app.domain.transcripts import TranscriptDocument  # noqa: E402
from app.services.transcription import TranscriptionError, TranscriptionJobFailedError  # noqa: E402

ROSTER = {0: "Alice", 1: "Bob"}

Segment = Tuple[float, float, str, int]


def gladia_payload(job_id: str, segments: Sequence[Segment], status: str = "done") -> Dict[str, Any]:
    """Provider JSON for a finished job with the given (start, end, text, speaker) segments."""

    utterances = [
        {"start": start, "end": end, "text": text, "speaker": speaker, "confidence": 0.9}
        for start, end, text, speaker in segments
    ]
    return {
        "id": job_id,
        "status": status,
        "result": {
            "transcription": {
                "full_transcript": " ".join(item["text"] for item in utterances),
                "utterances": utterances,
            }
        },
    }


DEFAULT_SEGMENTS: Dict[str, List[Segment]] = {
    "MIC1": [(0.0, 2.0, "I loved the ending so much", 0)],
    "MIC2": [(3.0, 5.0, "No way the ending was terrible", 0)],
    "MASTER_MIX": [
        (0.0, 2.0, "I loved the ending so much", 0),
        (3.0, 5.0, "No way the ending was terrible", 1),
    ],
}


class FakeConverter(AudioConverterInterface):
    def __init__(self) -> None:
        self.calls: List[str] = []

    async def convert(self, source_path, target_path, progress=None) -> None:
        self.calls.append(Path(source_path).name)
        if progress is not None:
            progress("Encoding MP3", 0, 10)
            progress("Encoding MP3", 5, 10)
            progress("Encoding MP3", 10, 10)
        shutil.copyfile(source_path, target_path)


class FakeTranscription(TranscriptionProviderInterface):
    """Jobs are keyed by the upper-case stem of the uploaded file name."""

    def __init__(self, segments: Optional[Mapping[str, List[Segment]]] = None) -> None:
        self.segments = dict(segments or DEFAULT_SEGMENTS)
        self.uploads: List[str] = []
        self.jobs: List[Tuple[str, int, bool]] = []
        self.polls: List[str] = []
        self.fail_stems: set[str] = set()
        self.failed_jobs: set[str] = set()
        self.closed = False

    async def upload(self, file_path: str) -> str:
        name = Path(file_path).name
        self.uploads.append(name)
        return f"https://files.example/{name}"

    async def start_job(self, audio_url, *, expected_speakers, enable_diarization=True, label=None) -> str:
        stem = Path(label or audio_url).stem.upper()
        started = sum(1 for job in self.jobs if job[0] == stem)
        self.jobs.append((stem, expected_speakers, enable_diarization))
        return f"job-{stem}" if not started else f"job-{stem}-{started + 1}"

    async def poll_until_done(self, job_id, *, cancel_event=None, on_poll=None) -> TranscriptDocument:
        self.polls.append(job_id)
        if on_poll is not None:
            on_poll(1)
        stem = job_id.removeprefix("job-").split("-")[0]
        if job_id in self.failed_jobs:
            raise TranscriptionJobFailedError("Transcription failed: job ended in error")
        if stem in self.fail_stems:
            raise TranscriptionError(f"Transcription failed: provider error for {stem}")
        return await self.fetch_result(job_id)

    async def fetch_result(self, job_id: str) -> TranscriptDocument:
        stem = job_id.removeprefix("job-").split("-")[0]
        return TranscriptDocument.from_payload(gladia_payload(job_id, self.segments.get(stem, [])))

    async def aclose(self) -> None:
        self.closed = True


def sample_highlights() -> CategorizedHighlights:
    return CategorizedHighlights(
        best_joke=CategoryWinner(speaker="Alice", quote="I loved the ending so much", score=8.5),
        hottest_take=CategoryWinner(speaker="Bob", quote="No way the ending was terrible", score=7.0),
        funniest_sentences=[TopFiveEntry(rank=1, speaker="Alice", quote="I loved the ending so much")],
    )


class FakeAnalysis(AnalysisProviderInterface):
    def __init__(self, result: Optional[Callable[[], CategorizedHighlights]] = None) -> None:
        self.result_factory = result or sample_highlights
        self.calls: List[Tuple[str, Mapping[str, Any]]] = []
        self.error: Optional[Exception] = None

    async def analyze(self, transcript, metadata) -> CategorizedHighlights:
        self.calls.append((transcript, dict(metadata)))
        if self.error is not None:
            raise self.error
        return self.result_factory()


def run(coro):
    return asyncio.run(coro)


def write_recordings(folder: Path, names: Sequence[str]) -> Path:
    folder.mkdir(parents=True, exist_ok=True)
    for index, name in enumerate(names):
        # Larger payload for the master mix so size-based selection is deterministic.
        size = 4096 if "MASTER" in name.upper() else 1024 + index
        (folder / name).write_bytes(b"\x00" * size)
    return folder


