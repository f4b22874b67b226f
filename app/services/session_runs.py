"""Bookkeeping for session runs executing in the background."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from app.domain.models import utcnow

logger = logging.getLogger(__name__)

MAX_FINISHED_STATUSES = 100


class SessionAlreadyRunningError(RuntimeError):
    """Raised when a session is started while a run for it is in flight."""


@dataclass
class RunStatus:
    message: str = "Queued"
    percent: int = 0
    updated_at: datetime = field(default_factory=utcnow)


class SessionRunRegistry:
    """Tracks one cancel event and the latest progress per running session.

    The status of finished runs is kept for the progress endpoint, oldest
    first out once more than `max_finished` have accumulated.
    """

    def __init__(self, max_finished: int = MAX_FINISHED_STATUSES) -> None:
        self._events: Dict[UUID, asyncio.Event] = {}
        self._status: Dict[UUID, RunStatus] = {}
        self._max_finished = max_finished

    def begin(self, session_id: UUID) -> asyncio.Event:
        if session_id in self._events:
            raise SessionAlreadyRunningError(f"Session {session_id} is already processing")
        event = asyncio.Event()
        self._events[session_id] = event
        self._status.pop(session_id, None)
        self._status[session_id] = RunStatus()
        return event

    def finish(self, session_id: UUID) -> None:
        self._events.pop(session_id, None)
        finished = [key for key in self._status if key not in self._events]
        for key in finished[: max(0, len(finished) - self._max_finished)]:
            del self._status[key]

    def forget(self, session_id: UUID) -> None:
        self._status.pop(session_id, None)

    def is_running(self, session_id: UUID) -> bool:
        return session_id in self._events

    def cancel(self, session_id: UUID) -> bool:
        event = self._events.get(session_id)
        if event is None:
            return False
        event.set()
        logger.info("Cancellation requested for session %s", session_id)
        return True

    def report(self, session_id: UUID, message: str, percent: int) -> None:
        status = self._status.get(session_id)
        if status is None:
            return
        status.message = message
        status.percent = percent
        status.updated_at = utcnow()

    def status(self, session_id: UUID) -> Optional[RunStatus]:
        return self._status.get(session_id)

    def cancel_all(self) -> int:
        for event in self._events.values():
            event.set()
        return len(self._events)


__all__ = ["RunStatus", "SessionAlreadyRunningError", "SessionRunRegistry"]
