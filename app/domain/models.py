"""Domain models for recording sessions and their audio files."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp used across the pipeline."""
    return datetime.now(timezone.utc)


class FileProcessingState(str, Enum):
    PENDING = "pending"
    CONVERTING = "converting"
    CONVERTED_READY = "converted_ready"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    AWAITING_TRANSCRIPT = "awaiting_transcript"
    TRANSCRIPT_DOWNLOADED = "transcript_downloaded"
    WAITING_FOR_SIBLINGS = "waiting_for_siblings"
    MERGING_ATTRIBUTION = "merging_attribution"
    READY_FOR_ANALYSIS = "ready_for_analysis"
    ANALYZING_WITH_AI = "analyzing_with_ai"
    COMPLETE = "complete"
    FAILED = "failed"


class SessionProcessingState(str, Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    TRANSCRIBING = "transcribing"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    FAILED = "failed"


# Files in these states have finished individual processing.
PAST_BARRIER_STATES = frozenset(
    {
        FileProcessingState.WAITING_FOR_SIBLINGS,
        FileProcessingState.MERGING_ATTRIBUTION,
        FileProcessingState.READY_FOR_ANALYSIS,
        FileProcessingState.ANALYZING_WITH_AI,
        FileProcessingState.COMPLETE,
    }
)

TERMINAL_SESSION_STATES = frozenset(
    {SessionProcessingState.COMPLETE, SessionProcessingState.FAILED}
)

ACTIVE_SESSION_STATES = frozenset(
    {
        SessionProcessingState.VALIDATING,
        SessionProcessingState.TRANSCRIBING,
        SessionProcessingState.ANALYZING,
    }
)


class AudioFile(BaseModel):
    """One recording inside a session folder."""

    file_name: str
    file_path: str
    size_bytes: int = 0
    duration_seconds: Optional[float] = None

    state: FileProcessingState = FileProcessingState.PENDING
    current_step: str = "Ready to process"
    progress: int = Field(default=0, ge=0, le=100)
    updated_at: datetime = Field(default_factory=utcnow)

    audio_url: Optional[str] = None
    transcript_id: Optional[str] = None
    json_file_path: Optional[str] = None
    transcript_text: Optional[str] = None

    error_message: Optional[str] = None
    can_retry: bool = True

    speaker_number: Optional[int] = None
    is_master_recording: bool = False

    converted_at: Optional[datetime] = None
    uploaded_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def extension(self) -> str:
        return Path(self.file_name).suffix.lower()

    @property
    def has_transcript(self) -> bool:
        return bool(self.transcript_text and self.transcript_text.strip())


class CategoryWinner(BaseModel):
    speaker: str = ""
    timestamp: str = ""
    quote: str = ""
    setup: str = ""
    group_reaction: str = ""
    why_its_great: str = ""
    score: float = Field(default=0.0, ge=0.0, le=10.0)
    runners_up: List[str] = Field(default_factory=list)


class TopFiveEntry(BaseModel):
    rank: int = Field(ge=1, le=5)
    speaker: str = ""
    timestamp: str = ""
    quote: str = ""
    context: str = ""
    score: float = 0.0
    reasoning: str = ""


CATEGORY_FIELDS = (
    "most_offensive_take",
    "hottest_take",
    "biggest_argument_starter",
    "best_joke",
    "best_roast",
    "funniest_random_tangent",
    "most_passionate_defense",
    "biggest_unanimous_reaction",
    "most_boring_statement",
    "best_plot_twist_revelation",
    "movie_snob_moment",
    "guilty_pleasure_admission",
    "quietest_person_best_moment",
)


class CategorizedHighlights(BaseModel):
    """Structured output of the AI analysis over a merged transcript."""

    most_offensive_take: Optional[CategoryWinner] = None
    hottest_take: Optional[CategoryWinner] = None
    biggest_argument_starter: Optional[CategoryWinner] = None
    best_joke: Optional[CategoryWinner] = None
    best_roast: Optional[CategoryWinner] = None
    funniest_random_tangent: Optional[CategoryWinner] = None
    most_passionate_defense: Optional[CategoryWinner] = None
    biggest_unanimous_reaction: Optional[CategoryWinner] = None
    most_boring_statement: Optional[CategoryWinner] = None
    best_plot_twist_revelation: Optional[CategoryWinner] = None
    movie_snob_moment: Optional[CategoryWinner] = None
    guilty_pleasure_admission: Optional[CategoryWinner] = None
    quietest_person_best_moment: Optional[CategoryWinner] = None

    funniest_sentences: List[TopFiveEntry] = Field(default_factory=list, max_length=5)
    most_bland_comments: List[TopFiveEntry] = Field(default_factory=list, max_length=5)

    is_fallback: bool = False

    def winners(self) -> Dict[str, CategoryWinner]:
        """Return the populated category winners keyed by category name."""
        result: Dict[str, CategoryWinner] = {}
        for name in CATEGORY_FIELDS:
            winner = getattr(self, name)
            if winner is not None:
                result[name] = winner
        return result

    def is_empty(self) -> bool:
        return not self.winners() and not self.funniest_sentences and not self.most_bland_comments


class SessionStats(BaseModel):
    word_counts: Dict[str, int] = Field(default_factory=dict)
    question_counts: Dict[str, int] = Field(default_factory=dict)
    laughter_counts: Dict[str, int] = Field(default_factory=dict)
    curse_counts: Dict[str, int] = Field(default_factory=dict)
    total_words: int = 0
    total_questions: int = 0
    total_laughter: int = 0
    total_curse_words: int = 0
    most_talkative: Optional[str] = None
    quietest: Optional[str] = None
    conversation_tone: str = ""


class AttributionSummary(BaseModel):
    """Persisted outcome of the speaker attribution merge."""

    success: bool = False
    reason: Optional[str] = None
    output_file_path: Optional[str] = None
    total_utterances: int = 0
    matched_utterances: int = 0
    unmatched_utterances: int = 0
    utterances_per_person: Dict[str, int] = Field(default_factory=dict)


class Session(BaseModel):
    """Aggregate root: one recorded discussion and all of its audio files."""

    id: UUID = Field(default_factory=uuid4)
    folder_path: str
    title: str = "Unknown Movie"
    recording_date: Optional[datetime] = None
    mic_assignments: Dict[int, str] = Field(default_factory=dict)
    audio_files: List[AudioFile] = Field(default_factory=list)

    state: SessionProcessingState = SessionProcessingState.PENDING
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None

    participants_present: List[str] = Field(default_factory=list)
    participants_absent: List[str] = Field(default_factory=list)

    merged_transcript: Optional[str] = None
    attribution: Optional[AttributionSummary] = None
    highlights: Optional[CategorizedHighlights] = None
    stats: Optional[SessionStats] = None

    class Config:
        from_attributes = True

    def find_file(self, file_name: str) -> Optional[AudioFile]:
        for audio_file in self.audio_files:
            if audio_file.file_name == file_name:
                return audio_file
        return None

    @property
    def master_file(self) -> Optional[AudioFile]:
        for audio_file in self.audio_files:
            if audio_file.is_master_recording:
                return audio_file
        return None

    @property
    def has_transcripts(self) -> bool:
        return any(audio_file.has_transcript for audio_file in self.audio_files)

    def clear_analysis(self) -> None:
        self.merged_transcript = None
        self.attribution = None
        self.highlights = None
        self.stats = None


class DiagnosticIssue(BaseModel):
    issue: str
    recommendation: str


class SessionDiagnostics(BaseModel):
    session_id: UUID
    session_found: bool = True
    state: Optional[SessionProcessingState] = None
    issues: List[DiagnosticIssue] = Field(default_factory=list)
    health_score: int = 100
    checked_at: datetime = Field(default_factory=utcnow)


class CleanupSummary(BaseModel):
    processed: int = 0
    recovered: int = 0
    failed: int = 0
    errors: int = 0

    @property
    def repaired(self) -> int:
        return self.recovered + self.failed


__all__ = [
    "ACTIVE_SESSION_STATES",
    "AttributionSummary",
    "AudioFile",
    "CATEGORY_FIELDS",
    "CategorizedHighlights",
    "CategoryWinner",
    "CleanupSummary",
    "DiagnosticIssue",
    "FileProcessingState",
    "PAST_BARRIER_STATES",
    "Session",
    "SessionDiagnostics",
    "SessionProcessingState",
    "SessionStats",
    "TERMINAL_SESSION_STATES",
    "TopFiveEntry",
    "utcnow",
]
