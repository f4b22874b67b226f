"""Per-file progress bookkeeping for the audio pipeline."""

from __future__ import annotations

from typing import Callable, Optional

from app.domain.models import AudioFile, utcnow

ProgressObserver = Callable[[AudioFile], None]
"""Notified with the file after every progress update."""


def conversion_percent(current: float, total: float) -> int:
    """Map ffmpeg progress onto 10..100 so the stage never looks idle."""
    if total <= 0:
        return 10
    ratio = max(0.0, min(1.0, current / total))
    return int(ratio * 90) + 10


def polling_percent(attempt: int) -> int:
    return min(90, 10 + attempt * 5)


class FileProgress:
    """Keep `progress` non-decreasing inside a stage and reset it between stages."""

    def __init__(self, audio_file: AudioFile, observer: Optional[ProgressObserver] = None) -> None:
        self._file = audio_file
        self._observer = observer

    @property
    def audio_file(self) -> AudioFile:
        return self._file

    def start_stage(self, step: str) -> None:
        self._file.current_step = step
        self._file.progress = 0
        self._touch()

    def advance(self, percent: int, step: Optional[str] = None) -> None:
        percent = max(0, min(100, int(percent)))
        if step:
            self._file.current_step = step
        self._file.progress = max(self._file.progress, percent)
        self._touch()

    def finish(self, step: Optional[str] = None) -> None:
        self.advance(100, step)

    def _touch(self) -> None:
        self._file.updated_at = utcnow()
        if self._observer is not None:
            self._observer(self._file)


__all__ = ["FileProgress", "ProgressObserver", "conversion_percent", "polling_percent"]
