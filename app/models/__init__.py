"""SQLAlchemy models for the MVC architecture."""

from .base import Base
from .session_record import SessionRecord  # noqa: F401

__all__ = [
    "Base",
    "SessionRecord",
]
