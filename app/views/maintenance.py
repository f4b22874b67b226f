"""Pydantic schemas for maintenance endpoints."""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from app.domain.models import FileProcessingState


class ThresholdRequest(BaseModel):
    """Optional age threshold; the configured default applies when omitted."""

    thresholdMinutes: Optional[int] = Field(
        None,
        ge=1,
        validation_alias=AliasChoices("thresholdMinutes", "threshold_minutes"),
    )

    def as_timedelta(self) -> Optional[timedelta]:
        if self.thresholdMinutes is None:
            return None
        return timedelta(minutes=self.thresholdMinutes)


class RetryFileRequest(BaseModel):
    state: FileProcessingState = FileProcessingState.PENDING


class CountResponse(BaseModel):
    count: int
    message: str


class CleanupResponse(BaseModel):
    processed: int
    recovered: int
    failed: int
    errors: int


__all__ = ["CleanupResponse", "CountResponse", "RetryFileRequest", "ThresholdRequest"]
