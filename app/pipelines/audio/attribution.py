"""Speaker attribution: label master-mix utterances with participant names.

Each master utterance is compared with the utterances of the individual mic
recordings. A mic utterance matches when it overlaps in time (with a
tolerance) and its text is similar. When no single utterance scores well the
master utterance is compared with the combined text of every overlapping
utterance from one mic, which catches the master mix merging several turns.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from app.domain.models import AttributionSummary, AudioFile, Session, utcnow
from app.domain.services import SpeakerDomainService
from app.domain.transcripts import Utterance
from app.services.transcript_store import TranscriptStore, TranscriptStoreError

logger = logging.getLogger(__name__)

OUTPUT_FILE_NAME = "master_mix_with_speakers.json"
UNKNOWN_SPEAKER = "Unknown"

_TIME_TOLERANCE = 3.0
_COMBINED_TIME_TOLERANCE = 5.0
_MATCH_THRESHOLD = 0.3
_COMBINED_THRESHOLD = 0.4
_COMBINED_TRIGGER = 0.5

_PUNCTUATION = re.compile(r"[,.!?;:\"']")
_WHITESPACE = re.compile(r"\s+")


class AttributionError(RuntimeError):
    """Raised when transcript documents needed for the merge are unreadable."""


@dataclass(frozen=True)
class AttributedUtterance:
    start: float
    end: float
    text: str
    speaker: str = UNKNOWN_SPEAKER
    speaker_number: Optional[int] = None
    confidence: float = 0.0
    matched_from_mic: Optional[int] = None
    match_score: float = 0.0

    @property
    def line(self) -> str:
        return f"{self.speaker}: {self.text.strip()}"


@dataclass(frozen=True)
class AttributionResult:
    """Typed outcome of `merge_attribution`; statistics are derived from `lines`."""

    success: bool
    lines: Tuple[str, ...] = ()
    reason: Optional[str] = None
    output_file_path: Optional[str] = None
    total_utterances: int = 0
    matched_utterances: int = 0
    unmatched_utterances: int = 0
    utterances_per_person: Mapping[str, int] = field(default_factory=dict)

    @property
    def transcript(self) -> str:
        return "\n".join(self.lines)

    def to_summary(self) -> AttributionSummary:
        return AttributionSummary(
            success=self.success,
            reason=self.reason,
            output_file_path=self.output_file_path,
            total_utterances=self.total_utterances,
            matched_utterances=self.matched_utterances,
            unmatched_utterances=self.unmatched_utterances,
            utterances_per_person=dict(self.utterances_per_person),
        )


def normalize_text(text: str) -> str:
    lowered = _PUNCTUATION.sub("", (text or "").lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def _substring_score(first: str, second: str) -> float:
    if not first or not second:
        return 0.0
    shorter, longer = (first, second) if len(first) <= len(second) else (second, first)
    if shorter in longer:
        return len(shorter) / len(longer)

    first_words = first.split()
    second_words = second.split()
    matching = sum(
        1 for word in first_words if any(word in other or other in word for other in second_words)
    )
    total = max(len(first_words), len(second_words))
    return matching / total if total else 0.0


def text_similarity(first: str, second: str) -> float:
    """Best of word-level Jaccard and substring containment, 0..1."""

    if not (first or "").strip() or not (second or "").strip():
        return 0.0
    left = normalize_text(first)
    right = normalize_text(second)
    if left == right:
        return 1.0

    left_words = {word for word in left.split() if len(word) > 1}
    right_words = {word for word in right.split() if len(word) > 1}
    if not left_words or not right_words:
        return _substring_score(left, right)

    union = left_words | right_words
    jaccard = len(left_words & right_words) / len(union) if union else 0.0
    return max(jaccard, _substring_score(left, right))


def spans_overlap(a: Utterance, b: Utterance, tolerance: float) -> bool:
    return a.start - tolerance <= b.end + tolerance and b.start - tolerance <= a.end + tolerance


def timing_overlap(a: Utterance, b: Utterance) -> float:
    """Overlap divided by the shorter duration, 0..1."""

    overlap = min(a.end, b.end) - max(a.start, b.start)
    if overlap <= 0:
        return 0.0
    shortest = min(a.end - a.start, b.end - b.start)
    if shortest <= 0:
        return 0.0
    return min(1.0, overlap / shortest)


def _timing_overlap_many(master: Utterance, candidates: Sequence[Utterance]) -> float:
    duration = master.end - master.start
    overlap = min(master.end, max(u.end for u in candidates)) - max(master.start, min(u.start for u in candidates))
    if overlap <= 0 or duration <= 0:
        return 0.0
    return min(1.0, overlap / duration)


def _coverage(master_text: str, candidates: Sequence[Utterance]) -> float:
    master_words = set(normalize_text(master_text).split())
    if not master_words:
        return 0.0
    covered = set()
    for candidate in candidates:
        covered.update(word for word in normalize_text(candidate.text).split() if word in master_words)
    return len(covered) / len(master_words)


def best_match(
    master: Utterance,
    mics: Mapping[int, Sequence[Utterance]],
) -> Tuple[Optional[int], float, Optional[Utterance]]:
    best_mic: Optional[int] = None
    best_score = 0.0
    best_utterance: Optional[Utterance] = None
    for mic, utterances in mics.items():
        for candidate in utterances:
            if not spans_overlap(master, candidate, _TIME_TOLERANCE):
                continue
            score = 0.8 * text_similarity(master.text, candidate.text) + 0.2 * timing_overlap(master, candidate)
            if score > best_score and score > _MATCH_THRESHOLD:
                best_mic, best_score, best_utterance = mic, score, candidate
    return best_mic, best_score, best_utterance


def best_combined_match(
    master: Utterance,
    mics: Mapping[int, Sequence[Utterance]],
) -> Tuple[Optional[int], float]:
    best_mic: Optional[int] = None
    best_score = 0.0
    for mic, utterances in mics.items():
        overlapping = [u for u in utterances if spans_overlap(master, u, _COMBINED_TIME_TOLERANCE)]
        if not overlapping:
            continue
        combined = " ".join(u.text.strip() for u in overlapping)
        score = (
            0.5 * text_similarity(master.text, combined)
            + 0.3 * _coverage(master.text, overlapping)
            + 0.2 * _timing_overlap_many(master, overlapping)
        )
        if score > best_score and score > _COMBINED_THRESHOLD:
            best_mic, best_score = mic, score
    return best_mic, best_score


def prefer_mic_text(master: Utterance, mic: Utterance, score: float) -> bool:
    """Whether the close-mic transcription is better than the master mix."""

    if score > 0.9:
        return True
    if mic.confidence > master.confidence + 0.1:
        return True
    if score > 0.7 and len(mic.text) > len(master.text) * 1.2:
        return True
    if master.confidence < 0.5 and mic.confidence > 0.7:
        return True
    return score > 0.6 and len(mic.text.split()) > len(master.text.split()) * 1.5


def attribute_utterances(
    master_utterances: Sequence[Utterance],
    mics: Mapping[int, Sequence[Utterance]],
    mic_assignments: Mapping[int, str],
) -> List[AttributedUtterance]:
    """Label each master utterance, then deduce the owner of leftover unknowns."""

    attributed: List[AttributedUtterance] = []
    for master in master_utterances:
        mic, score, mic_utterance = best_match(master, mics)
        if score < _COMBINED_TRIGGER:
            combined_mic, combined_score = best_combined_match(master, mics)
            if combined_score > score:
                mic, score, mic_utterance = combined_mic, combined_score, None

        name = mic_assignments.get(mic) if mic is not None else None
        if not name:
            attributed.append(
                AttributedUtterance(
                    start=master.start,
                    end=master.end,
                    text=master.text,
                    confidence=master.confidence,
                )
            )
            continue

        source = master
        if mic_utterance is not None and prefer_mic_text(master, mic_utterance, score):
            source = mic_utterance
        attributed.append(
            AttributedUtterance(
                start=source.start,
                end=source.end,
                text=source.text,
                speaker=name,
                speaker_number=mic,
                confidence=source.confidence,
                matched_from_mic=mic + 1,
                match_score=round(score, 3),
            )
        )

    return _deduce_missing_speaker(attributed, mic_assignments)


def _deduce_missing_speaker(
    attributed: List[AttributedUtterance],
    mic_assignments: Mapping[int, str],
) -> List[AttributedUtterance]:
    if not any(item.speaker == UNKNOWN_SPEAKER for item in attributed):
        return attributed

    assigned = {name for name in mic_assignments.values() if name and name.strip()}
    matched = {item.speaker for item in attributed if item.speaker != UNKNOWN_SPEAKER}
    missing = sorted(assigned - matched)
    if len(missing) != 1:
        return attributed

    name = missing[0]
    number = next((mic for mic, value in mic_assignments.items() if value == name), None)
    logger.info("Assigning unmatched utterances to the only silent participant %s", name)
    return [
        AttributedUtterance(
            start=item.start,
            end=item.end,
            text=item.text,
            speaker=name,
            speaker_number=number,
            confidence=item.confidence,
        )
        if item.speaker == UNKNOWN_SPEAKER
        else item
        for item in attributed
    ]


def _concatenated(session: Session, reason: str) -> AttributionResult:
    master = session.master_file
    if master is not None and master.has_transcript:
        sources = [master]
    else:
        sources = [audio_file for audio_file in session.audio_files if audio_file.has_transcript]

    lines = tuple(
        line.strip()
        for audio_file in sources
        for line in (audio_file.transcript_text or "").splitlines()
        if line.strip()
    )
    logger.warning("Speaker attribution skipped for session %s: %s", session.id, reason)
    return AttributionResult(success=False, lines=lines, reason=reason, total_utterances=len(lines))


class SpeakerAttributionService:
    def __init__(self, store: TranscriptStore) -> None:
        self._store = store

    async def merge(self, session: Session) -> AttributionResult:
        master = session.master_file
        if master is None or not master.json_file_path:
            return _concatenated(session, "Master transcript not available")
        assignments = {mic: name for mic, name in session.mic_assignments.items() if name and name.strip()}
        if not assignments:
            return _concatenated(session, "No mic assignments available")

        master_document = await self._load(master.json_file_path)
        if not master_document.utterances:
            return _concatenated(session, "Master transcript has no utterances")

        mics: Dict[int, Sequence[Utterance]] = {}
        for audio_file in session.audio_files:
            mic = self._mic_index(audio_file)
            if audio_file is master or mic is None or not audio_file.json_file_path:
                continue
            mics[mic] = (await self._load(audio_file.json_file_path)).utterances

        attributed = attribute_utterances(master_document.utterances, mics, assignments)
        per_person: Dict[str, int] = defaultdict(int)
        for item in attributed:
            if item.speaker != UNKNOWN_SPEAKER:
                per_person[item.speaker] += 1
        matched = sum(per_person.values())

        output_path = await self._write_output(session, master_document.job_id, master, attributed, assignments, mics)
        result = AttributionResult(
            success=True,
            lines=tuple(item.line for item in attributed if item.text.strip()),
            output_file_path=output_path,
            total_utterances=len(attributed),
            matched_utterances=matched,
            unmatched_utterances=len(attributed) - matched,
            utterances_per_person=dict(per_person),
        )
        logger.info(
            "Speaker attribution complete: %d matched, %d unmatched out of %d utterances",
            result.matched_utterances,
            result.unmatched_utterances,
            result.total_utterances,
        )
        return result

    @staticmethod
    def _mic_index(audio_file: AudioFile) -> Optional[int]:
        if audio_file.speaker_number is not None:
            return audio_file.speaker_number
        return SpeakerDomainService.mic_index(audio_file.file_name)

    async def _load(self, json_path: str):
        try:
            return await self._store.load(json_path)
        except TranscriptStoreError as exc:
            raise AttributionError(str(exc)) from exc

    async def _write_output(
        self,
        session: Session,
        job_id: str,
        master: AudioFile,
        attributed: Sequence[AttributedUtterance],
        assignments: Mapping[int, str],
        mics: Mapping[int, Sequence[Utterance]],
    ) -> Optional[str]:
        matched = sum(1 for item in attributed if item.speaker != UNKNOWN_SPEAKER)
        payload = {
            "id": job_id,
            "status": "done",
            "result": {
                "transcription": {
                    "utterances": [asdict(item) for item in attributed],
                    "full_transcript": " ".join(item.text.strip() for item in attributed),
                }
            },
            "metadata": {
                "original_file": Path(master.json_file_path or "").name,
                "processing_date": utcnow().isoformat(),
                "mic_mappings": {str(mic): name for mic, name in assignments.items()},
                "statistics": {
                    "total_utterances": len(attributed),
                    "matched_utterances": matched,
                    "unmatched_utterances": len(attributed) - matched,
                    "mic_files_used": sorted(mic + 1 for mic in mics),
                },
            },
        }
        target = Path(session.folder_path) / OUTPUT_FILE_NAME
        try:
            return await self._store.write_json(str(target), payload)
        except TranscriptStoreError as exc:
            logger.warning("Could not write %s: %s", target, exc)
            return None


__all__ = [
    "AttributedUtterance",
    "AttributionError",
    "AttributionResult",
    "SpeakerAttributionService",
    "attribute_utterances",
    "normalize_text",
    "text_similarity",
    "timing_overlap",
]
