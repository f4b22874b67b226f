from typing import Any, AsyncContextManager, Callable, List, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.interfaces import SessionRepositoryInterface
from app.domain.models import Session, utcnow
from app.models.session_record import SessionRecord


class SQLAlchemySessionRepository(SessionRepositoryInterface):
    """SQLAlchemy implementation of the session repository.

    Each session is stored as one JSONB document; the indexed columns mirror
    the fields maintenance scans filter on.
    """

    def __init__(self, session_scope: Callable[[], AsyncContextManager[AsyncSession]]):
        self._session_scope = session_scope

    async def get(self, session_id: UUID) -> Optional[Session]:
        async with self._session_scope() as db:
            record = await db.get(SessionRecord, session_id)
            return self._to_domain(record) if record else None

    async def get_all(self) -> List[Session]:
        async with self._session_scope() as db:
            result = await db.execute(
                select(SessionRecord).order_by(SessionRecord.created_at.desc())
            )
            return [self._to_domain(record) for record in result.scalars().all()]

    async def insert(self, session: Session) -> Session:
        async with self._session_scope() as db:
            db.add(self._to_record(session))
            await db.commit()
        return session

    async def upsert(self, session: Session) -> Session:
        session.updated_at = utcnow()
        async with self._session_scope() as db:
            record = await db.get(SessionRecord, session.id)
            if record is None:
                db.add(self._to_record(session))
            else:
                record.folder_path = session.folder_path
                record.state = session.state.value
                record.document = self._document(session)
                record.updated_at = session.updated_at
            await db.commit()
        return session

    async def delete(self, session_id: UUID) -> bool:
        async with self._session_scope() as db:
            result = await db.execute(
                delete(SessionRecord).where(SessionRecord.id == session_id)
            )
            await db.commit()
            return bool(result.rowcount)

    @staticmethod
    def _document(session: Session) -> dict[str, Any]:
        return session.model_dump(mode="json")

    def _to_record(self, session: Session) -> SessionRecord:
        return SessionRecord(
            id=session.id,
            folder_path=session.folder_path,
            state=session.state.value,
            document=self._document(session),
            created_at=session.created_at,
            updated_at=session.updated_at,
        )

    @staticmethod
    def _to_domain(record: SessionRecord) -> Session:
        return Session.model_validate(record.document)
