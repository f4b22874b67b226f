"""SQLAlchemy model for persisted recording sessions."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB, UUID

from app.models.base import Base


def get_utc_now() -> datetime:
    """Get current time in UTC."""
    return datetime.now(timezone.utc)


class SessionRecord(Base):
    __tablename__ = "recording_sessions"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        nullable=False,
    )
    folder_path = Column(
        String(1024),
        nullable=False,
        index=True,
    )
    state = Column(
        String(32),
        nullable=False,
        index=True,
    )
    document = Column(
        JSONB,
        nullable=False,
    )

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=get_utc_now,
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=get_utc_now,
        onupdate=get_utc_now,
    )
