"""Hard synchronization barrier between per-file and collective stages."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from app.domain.models import PAST_BARRIER_STATES, AudioFile, FileProcessingState
from app.utils import raise_if_cancelled, wait_or_cancel

logger = logging.getLogger(__name__)

BarrierProgress = Callable[[str], None]


class SessionBarrierError(RuntimeError):
    """Raised when the barrier can never release because files failed or time ran out."""


@dataclass(frozen=True)
class BarrierStatus:
    total: int
    at_barrier: int
    pending: int
    failed_files: tuple[str, ...]

    @property
    def failed(self) -> int:
        return len(self.failed_files)

    @property
    def released(self) -> bool:
        return self.at_barrier == self.total

    @property
    def aborted(self) -> bool:
        return self.failed > 0 and self.at_barrier + self.failed == self.total

    def abort_message(self) -> str:
        noun = "file" if self.failed == 1 else "files"
        return f"Cannot proceed: {self.failed} {noun} failed: {', '.join(self.failed_files)}"

    def waiting_message(self) -> str:
        return f"{self.at_barrier} waiting for {self.total}"


def barrier_status(files: Iterable[AudioFile]) -> BarrierStatus:
    total = at_barrier = pending = 0
    failed: list[str] = []
    for audio_file in files:
        total += 1
        if audio_file.state in PAST_BARRIER_STATES:
            at_barrier += 1
        elif audio_file.state == FileProcessingState.FAILED:
            failed.append(audio_file.file_name)
        else:
            pending += 1
    return BarrierStatus(total=total, at_barrier=at_barrier, pending=pending, failed_files=tuple(failed))


class SessionBarrier:
    """Poll the session's files until all of them reached the barrier."""

    def __init__(self, poll_interval: float = 2.0, timeout: Optional[float] = None) -> None:
        self._poll_interval = poll_interval
        self._timeout = timeout

    async def wait(
        self,
        files: list[AudioFile],
        *,
        cancel_event: Optional[asyncio.Event] = None,
        on_progress: Optional[BarrierProgress] = None,
    ) -> BarrierStatus:
        deadline = time.monotonic() + self._timeout if self._timeout else None
        while True:
            raise_if_cancelled(cancel_event, "Barrier wait")
            status = barrier_status(files)
            if status.released:
                logger.info("Barrier released: %d files ready", status.total)
                return status
            if status.aborted:
                message = status.abort_message()
                logger.warning(message)
                raise SessionBarrierError(message)

            if on_progress is not None:
                on_progress(status.waiting_message())
            if deadline is not None and time.monotonic() >= deadline:
                raise SessionBarrierError(
                    f"Timed out after {self._timeout:.0f}s: {status.waiting_message()}"
                )
            await wait_or_cancel(cancel_event, self._poll_interval)


__all__ = ["BarrierStatus", "SessionBarrier", "SessionBarrierError", "barrier_status"]
