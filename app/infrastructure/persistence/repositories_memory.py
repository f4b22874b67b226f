"""In-memory session store used for tests and database-less runs."""

from __future__ import annotations

import asyncio
from typing import List, Optional
from uuid import UUID

from app.application.interfaces import SessionRepositoryInterface
from app.domain.models import Session, utcnow


class InMemorySessionRepository(SessionRepositoryInterface):
    """Keeps JSON snapshots so callers never share mutable state with the store."""

    def __init__(self) -> None:
        self._store: dict[UUID, dict] = {}
        self._lock = asyncio.Lock()
        self.writes: list[Session] = []

    async def get(self, session_id: UUID) -> Optional[Session]:
        snapshot = self._store.get(session_id)
        return Session.model_validate(snapshot) if snapshot is not None else None

    async def get_all(self) -> List[Session]:
        sessions = [Session.model_validate(item) for item in self._store.values()]
        return sorted(sessions, key=lambda item: item.created_at, reverse=True)

    async def insert(self, session: Session) -> Session:
        async with self._lock:
            if session.id in self._store:
                raise ValueError(f"Session {session.id} already exists")
            self._save(session)
        return session

    async def upsert(self, session: Session) -> Session:
        session.updated_at = utcnow()
        async with self._lock:
            self._save(session)
        return session

    async def delete(self, session_id: UUID) -> bool:
        async with self._lock:
            return self._store.pop(session_id, None) is not None

    def _save(self, session: Session) -> None:
        self._store[session.id] = session.model_dump(mode="json")
        self.writes.append(session.model_copy(deep=True))


__all__ = ["InMemorySessionRepository"]
