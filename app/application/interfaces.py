import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Mapping, Optional
from uuid import UUID

from app.domain.models import CategorizedHighlights, Session
from app.domain.transcripts import TranscriptDocument

ConversionProgress = Callable[[str, float, float], None]
"""(step, current, total) reported while a conversion runs."""


class SessionRepositoryInterface(ABC):
    """Persistence contract for session documents"""

    @abstractmethod
    async def get(self, session_id: UUID) -> Optional[Session]:
        ...

    @abstractmethod
    async def get_all(self) -> List[Session]:
        ...

    @abstractmethod
    async def insert(self, session: Session) -> Session:
        ...

    @abstractmethod
    async def upsert(self, session: Session) -> Session:
        ...

    @abstractmethod
    async def delete(self, session_id: UUID) -> bool:
        ...


class AudioConverterInterface(ABC):
    """Converts a local recording into the upload format."""

    @abstractmethod
    async def convert(
        self,
        source_path: str,
        target_path: str,
        progress: Optional[ConversionProgress] = None,
    ) -> None:
        ...


class TranscriptionProviderInterface(ABC):
    """Remote speech-to-text provider."""

    @abstractmethod
    async def upload(self, file_path: str) -> str:
        ...

    @abstractmethod
    async def start_job(
        self,
        audio_url: str,
        *,
        expected_speakers: int,
        enable_diarization: bool = True,
        label: str | None = None,
    ) -> str:
        ...

    @abstractmethod
    async def poll_until_done(
        self,
        job_id: str,
        *,
        cancel_event: asyncio.Event | None = None,
        on_poll: Callable[[int], None] | None = None,
    ) -> TranscriptDocument:
        ...

    @abstractmethod
    async def fetch_result(self, job_id: str) -> TranscriptDocument:
        ...


class AnalysisProviderInterface(ABC):
    """Generative analysis of a merged session transcript."""

    @abstractmethod
    async def analyze(
        self,
        transcript: str,
        metadata: Mapping[str, Any],
    ) -> CategorizedHighlights:
        ...
