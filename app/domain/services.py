import re
from pathlib import Path
from typing import Iterable, Mapping, Optional

from .models import AudioFile

_MIC_STEM = re.compile(r"^MIC(\d+)$", re.IGNORECASE)
_SPEAKER_LABEL = re.compile(r"(?P<open>[\[(]?)\b[Ss]peaker (?P<number>\d+)(?P<close>[\])]?)\s*:")

PHONE_LABEL = "Phone Input"
SOUND_PAD_LABEL = "Sound Effects"
_SOUND_PAD_STEMS = {"SOUND_PAD", "SOUNDPAD"}


def _stem(file_name: str) -> str:
    return Path(file_name).stem.upper()


class SpeakerDomainService:
    """Domain rules for speaker counts and transcript speaker labels.

    File names are compared by stem so a `MIC1.WAV` keeps its meaning after
    conversion to `MIC1.mp3`.
    """

    @staticmethod
    def mic_index(file_name: str) -> Optional[int]:
        """0-based mic index for `MICn` recordings, otherwise None."""
        match = _MIC_STEM.match(_stem(file_name))
        if not match:
            return None
        return int(match.group(1)) - 1

    @staticmethod
    def expected_speakers(file_name: str, mic_assignments: Mapping[int, str]) -> int:
        """Number of voices the transcription provider should separate."""
        stem = _stem(file_name)
        if _MIC_STEM.match(stem) or "PHONE" in stem or "SOUND_PAD" in stem or "USB" in stem:
            return 1
        if "MIX" in stem or "MASTER" in stem:
            assigned = [name for name in mic_assignments.values() if name and name.strip()]
            return len(assigned) or 4
        return 2

    @staticmethod
    def format_utterances(utterances: Iterable[object]) -> str:
        """Render diarized utterances as `Speaker k: text` lines."""
        lines = []
        for utterance in utterances:
            text = (getattr(utterance, "text", "") or "").strip()
            if not text:
                continue
            lines.append(f"Speaker {getattr(utterance, 'speaker', 0)}: {text}")
        return "\n".join(lines)

    @staticmethod
    def map_speaker_labels(
        transcript: str,
        mic_assignments: Mapping[int, str],
        file_name: str,
    ) -> str:
        """Replace generic `Speaker k:` labels with participant names."""
        if not transcript:
            return transcript

        stem = _stem(file_name)
        owner: Optional[str] = None
        mic_index = SpeakerDomainService.mic_index(file_name)
        if mic_index is not None:
            owner = mic_assignments.get(mic_index) or None
            if owner is None:
                return transcript
        elif stem == "PHONE":
            owner = PHONE_LABEL
        elif stem in _SOUND_PAD_STEMS:
            owner = SOUND_PAD_LABEL

        def _replace(match: re.Match) -> str:
            name = owner or mic_assignments.get(int(match.group("number")))
            if not name:
                return match.group(0)
            return f"{match.group('open')}{name}{match.group('close')}:"

        if owner is None and not mic_assignments:
            return transcript
        return _SPEAKER_LABEL.sub(_replace, transcript)

    @staticmethod
    def pick_master(files: list[AudioFile]) -> Optional[AudioFile]:
        """Largest file wins; ties fall back to the file name for determinism."""
        if not files:
            return None
        return sorted(files, key=lambda item: (-item.size_bytes, item.file_name))[0]
