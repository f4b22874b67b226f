"""Build a session record from a folder of recordings."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set

from fastapi.concurrency import run_in_threadpool

from app.config.settings import PipelineConfig
from app.domain.exceptions import SessionValidationError
from app.domain.models import AudioFile, Session, utcnow
from app.domain.services import SpeakerDomainService
from app.services.roster_cache import ParticipantRosterCache

logger = logging.getLogger(__name__)

MEDIA_EXTENSIONS = (
    ".mp3", ".wav", ".m4a", ".aac", ".ogg", ".flac",
    ".mp4", ".mov", ".avi", ".mkv", ".webm", ".m4v", ".3gp",
)
MASTER_MIX_STEM = "MASTER_MIX"
MAX_MICS = 9

_MONTH_DATE = re.compile(r"(\d{4})-([A-Za-z]+)-(.+)")
_ISO_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_NUMBERED_SPEAKER = re.compile(r"^(\d)_Speaker\d", re.IGNORECASE)
_TIMESTAMPED_MASTER = re.compile(r"^\d{4}_\d{4}_\d{4}\.(wav|mp3|m4a|aac|ogg|flac)$", re.IGNORECASE)
_MASTER_WORDS = ("master", "combined", "full", "group")
_NON_MASTER_STEMS = {"PHONE", "SOUND_PAD", "SOUNDPAD"}


def extract_recording_date(folder_name: str) -> datetime:
    """Date encoded in `YYYY-MonthName-Title` or `YYYY-MM-DD...`, otherwise now."""

    match = _MONTH_DATE.match(folder_name)
    if match:
        try:
            parsed = datetime.strptime(f"{match.group(2)} 1 {match.group(1)}", "%B %d %Y")
            return parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            logger.warning("Invalid month name %r in folder name", match.group(2))

    match = _ISO_DATE.search(folder_name)
    if match:
        try:
            year, month, day = (int(part) for part in match.groups())
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            logger.warning("Invalid ISO date in folder name %r", folder_name)

    return utcnow()


def suggest_title(folder_name: str) -> str:
    title = re.sub(r"^\d{4}-[A-Za-z]+-", "", folder_name)
    title = re.sub(r"^\d{4}-\d{2}-\d{2}-?", "", title)
    title = title.replace("_", " ").replace("-", " ")
    title = re.sub(r"\.(mp3|wav|m4a|aac|ogg|flac)$", "", title, flags=re.IGNORECASE)
    title = re.sub(r"\s+", " ", title).strip()
    return title.title() if title else "Unknown Movie"


def _scan(folder: Path) -> List[AudioFile]:
    entries = sorted(
        (path for path in folder.iterdir() if path.is_file() and path.suffix.lower() in MEDIA_EXTENSIONS),
        key=lambda path: path.name,
    )
    return [
        AudioFile(file_name=path.name, file_path=str(path), size_bytes=path.stat().st_size)
        for path in entries
    ]


def classify_files(files: List[AudioFile]) -> Optional[AudioFile]:
    """Set speaker numbers and mark exactly one master recording."""

    identified: Set[str] = set()
    masters: List[AudioFile] = []
    for audio_file in files:
        audio_file.is_master_recording = False
        stem = Path(audio_file.file_name).stem.upper()
        mic_index = SpeakerDomainService.mic_index(audio_file.file_name)
        numbered = _NUMBERED_SPEAKER.match(audio_file.file_name)

        if mic_index is not None:
            audio_file.speaker_number = mic_index
        elif numbered:
            audio_file.speaker_number = int(numbered.group(1)) - 1
        elif stem in _NON_MASTER_STEMS:
            pass
        elif _TIMESTAMPED_MASTER.match(audio_file.file_name) or stem == MASTER_MIX_STEM or any(
            word in audio_file.file_name.lower() for word in _MASTER_WORDS
        ):
            masters.append(audio_file)
        else:
            continue
        identified.add(audio_file.file_name)

    candidates = masters or [item for item in files if item.file_name not in identified]
    master = SpeakerDomainService.pick_master(candidates)
    if master is not None:
        master.is_master_recording = True
    else:
        logger.warning("No master mix file identified")
    return master


def _rename_master(master: AudioFile) -> None:
    source = Path(master.file_path)
    if source.stem.upper().startswith(MASTER_MIX_STEM):
        return
    target = source.with_name(f"{MASTER_MIX_STEM}{source.suffix}")
    if target.exists():
        logger.info("%s already exists; keeping %s", target.name, source.name)
        return
    source.rename(target)
    logger.info("Renamed master mix %s -> %s", source.name, target.name)
    master.file_name = target.name
    master.file_path = str(target)


def participants(files: List[AudioFile], mic_assignments: Mapping[int, str]) -> tuple[List[str], List[str]]:
    present = sorted({item.speaker_number for item in files if item.speaker_number is not None})

    def _label(mic: int) -> str:
        return mic_assignments.get(mic) or f"Mic {mic + 1}"

    absent = [mic for mic in range(MAX_MICS) if mic not in present]
    return [_label(mic) for mic in present], [_label(mic) for mic in absent]


class SessionMetadataService:
    def __init__(self, roster: ParticipantRosterCache, config: PipelineConfig) -> None:
        self._roster = roster
        self._rename_master = config.rename_master_mix

    async def prepare(
        self,
        folder_path: str,
        mic_assignments: Optional[Mapping[int, str]] = None,
        title: Optional[str] = None,
    ) -> Session:
        """Scan `folder_path` and return an unsaved session describing it."""

        folder = Path(folder_path)
        if not folder.is_dir():
            raise SessionValidationError(f"Session folder not found: {folder_path}")

        assignments: Dict[int, str] = dict(mic_assignments) if mic_assignments else await self._roster.assignments()
        files = await run_in_threadpool(_scan, folder)
        master = classify_files(files)
        if master is not None and self._rename_master:
            try:
                await run_in_threadpool(_rename_master, master)
            except OSError as exc:
                logger.error("Failed to rename master mix %s: %s", master.file_name, exc)

        present, absent = participants(files, assignments)
        session = Session(
            folder_path=str(folder),
            title=title or suggest_title(folder.name),
            recording_date=extract_recording_date(folder.name),
            mic_assignments=assignments,
            audio_files=files,
            participants_present=present,
            participants_absent=absent,
        )
        logger.info(
            "Prepared session %r from %s with %d audio files",
            session.title,
            folder,
            len(files),
        )
        return session


__all__ = [
    "MEDIA_EXTENSIONS",
    "SessionMetadataService",
    "classify_files",
    "extract_recording_date",
    "suggest_title",
]
