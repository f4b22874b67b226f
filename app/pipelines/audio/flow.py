"""High-level map of the session audio pipeline.

The execution order is fixed:

1. ``metadata`` – scan the session folder, classify files, pick the master mix.
2. ``file_state`` / ``driver`` – per file, concurrently: convert, upload,
   start transcription, download the transcript.
3. ``barrier`` – wait until every file finished its individual stages.
4. ``attribution`` – label master-mix utterances with participant names.
5. ``statistics`` – count words, questions, laughter and curse words.
6. ``analysis`` – categorized highlights from the AI provider (or fallback).

The ``/sessions/pipeline`` endpoint serves this list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List


@dataclass(frozen=True)
class PipelineStage:
    """Human-readable description of one stage in the audio pipeline."""

    order: int
    name: str
    module: str
    summary: str
    per_file: bool = False


class AudioSessionPipeline:
    """Utility wrapper for documenting the session processing flow."""

    _STAGES: List[PipelineStage] = [
        PipelineStage(
            1,
            "Session Metadata",
            "app.services.session_metadata",
            "Extract date and title from the folder, classify recordings, choose the master mix.",
        ),
        PipelineStage(
            2,
            "Conversion",
            "app.pipelines.audio.executors",
            "Convert WAV recordings to MP3 with ffmpeg; MP3 sources skip this stage.",
            per_file=True,
        ),
        PipelineStage(
            3,
            "Upload",
            "app.pipelines.audio.executors",
            "Upload the MP3 to the transcription provider and record its audio URL.",
            per_file=True,
        ),
        PipelineStage(
            4,
            "Transcription",
            "app.pipelines.audio.executors",
            "Start a diarized transcription job, poll until done, save the JSON and text documents.",
            per_file=True,
        ),
        PipelineStage(
            5,
            "Barrier",
            "app.pipelines.audio.barrier",
            "Wait for every file; abort the session if any file failed.",
        ),
        PipelineStage(
            6,
            "Speaker Attribution",
            "app.pipelines.audio.attribution",
            "Match master-mix utterances to individual mics and write master_mix_with_speakers.json.",
        ),
        PipelineStage(
            7,
            "Statistics",
            "app.pipelines.audio.statistics",
            "Per-speaker word, question, laughter and curse counts plus conversation tone.",
        ),
        PipelineStage(
            8,
            "AI Analysis",
            "app.services.analysis",
            "Call Bedrock for categorized highlights; fall back to labelled placeholders.",
        ),
    ]

    @classmethod
    def describe(cls) -> Iterable[PipelineStage]:
        """Expose the ordered list of stages for debugging and documentation."""

        return tuple(cls._STAGES)


__all__ = ["AudioSessionPipeline", "PipelineStage"]
