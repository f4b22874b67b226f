"""Exceptions shared by the pipeline, services and controllers."""

from __future__ import annotations

from uuid import UUID


class PipelineCancelledError(RuntimeError):
    """Raised when an operator cancels a running session."""


class SessionValidationError(RuntimeError):
    """Raised when a session cannot be processed or produced no usable output."""


class SessionNotFoundError(LookupError):
    """Raised when a session id does not exist in the repository."""

    def __init__(self, session_id: UUID) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class AudioFileNotFoundError(LookupError):
    """Raised when a session has no audio file with the requested name."""

    def __init__(self, session_id: UUID, file_name: str) -> None:
        super().__init__(f"Audio file {file_name} not found in session {session_id}")
        self.session_id = session_id
        self.file_name = file_name


__all__ = [
    "AudioFileNotFoundError",
    "PipelineCancelledError",
    "SessionNotFoundError",
    "SessionValidationError",
]
