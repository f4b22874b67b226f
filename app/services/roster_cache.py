"""Default mic-to-participant roster, loaded once per process."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, Optional

from fastapi.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


def _read_roster(path: Path) -> Dict[int, str]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, list):
        return {index: str(name) for index, name in enumerate(data) if name}
    if isinstance(data, dict):
        return {int(key): str(name) for key, name in data.items() if name}
    raise ValueError("Roster file must contain a JSON list or object")


class ParticipantRosterCache:
    """Holds the default 0-based mic assignments.

    `initialize()` reads the roster file at most once; concurrent callers wait
    on the same lock instead of loading it twice.
    """

    def __init__(self, roster_file: Optional[str] = None, roster: Optional[Dict[int, str]] = None) -> None:
        self._roster_file = roster_file
        self._roster: Dict[int, str] = dict(roster or {})
        self._loaded = roster is not None
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def initialize(self) -> None:
        async with self._lock:
            if self._loaded:
                return
            if self._roster_file:
                path = Path(self._roster_file)
                try:
                    self._roster = await run_in_threadpool(_read_roster, path)
                    logger.info("Loaded %d roster entries from %s", len(self._roster), path)
                except (OSError, ValueError) as exc:
                    logger.warning("Could not load roster file %s: %s", path, exc)
                    self._roster = {}
            self._loaded = True

    async def assignments(self) -> Dict[int, str]:
        await self.initialize()
        return dict(self._roster)

    async def update(self, roster: Dict[int, str]) -> None:
        async with self._lock:
            self._roster = {int(key): name for key, name in roster.items() if name}
            self._loaded = True


__all__ = ["ParticipantRosterCache"]
