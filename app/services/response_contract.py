"""Pydantic models for validating the analysis JSON returned by the LLM.

The model is asked for camelCase keys; these schemas accept either spelling
and normalise scores so downstream code receives type-safe objects.
"""

from __future__ import annotations

import json
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.domain.models import (
    CATEGORY_FIELDS,
    CategorizedHighlights,
    CategoryWinner,
    TopFiveEntry,
)


class ResponseContractError(RuntimeError):
    """Raised when the LLM response contract cannot be validated."""


class WinnerPayload(BaseModel):
    speaker: str = ""
    timestamp: str = ""
    quote: str = ""
    setup: str = ""
    group_reaction: str = Field(default="", alias="groupReaction")
    why_its_great: str = Field(default="", alias="whyItsGreat")
    score: float = Field(default=0.0, alias="entertainmentScore")
    runners_up: List[str] = Field(default_factory=list, alias="runnersUp")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("score", mode="before")
    @classmethod
    def clamp_score(cls, value: object) -> float:
        try:
            return max(0.0, min(10.0, float(value)))
        except (TypeError, ValueError):
            return 0.0

    @field_validator("runners_up", mode="before")
    @classmethod
    def coerce_runners_up(cls, value: object) -> list[str]:
        if not isinstance(value, list):
            return []
        names = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("speaker") or item.get("quote") or ""
            if item:
                names.append(str(item))
        return names

    def to_domain(self) -> CategoryWinner:
        return CategoryWinner.model_validate(self.model_dump())


class RankedPayload(BaseModel):
    rank: int = 0
    speaker: str = ""
    timestamp: str = ""
    quote: str = ""
    context: str = ""
    score: float = 0.0
    reasoning: str = ""

    model_config = {"populate_by_name": True, "extra": "ignore"}


class AnalysisResponse(BaseModel):
    most_offensive_take: Optional[WinnerPayload] = Field(default=None, alias="mostOffensiveTake")
    hottest_take: Optional[WinnerPayload] = Field(default=None, alias="hottestTake")
    biggest_argument_starter: Optional[WinnerPayload] = Field(default=None, alias="biggestArgumentStarter")
    best_joke: Optional[WinnerPayload] = Field(default=None, alias="bestJoke")
    best_roast: Optional[WinnerPayload] = Field(default=None, alias="bestRoast")
    funniest_random_tangent: Optional[WinnerPayload] = Field(default=None, alias="funniestRandomTangent")
    most_passionate_defense: Optional[WinnerPayload] = Field(default=None, alias="mostPassionateDefense")
    biggest_unanimous_reaction: Optional[WinnerPayload] = Field(default=None, alias="biggestUnanimousReaction")
    most_boring_statement: Optional[WinnerPayload] = Field(default=None, alias="mostBoringStatement")
    best_plot_twist_revelation: Optional[WinnerPayload] = Field(default=None, alias="bestPlotTwistRevelation")
    movie_snob_moment: Optional[WinnerPayload] = Field(default=None, alias="movieSnobMoment")
    guilty_pleasure_admission: Optional[WinnerPayload] = Field(default=None, alias="guiltyPleasureAdmission")
    quietest_person_best_moment: Optional[WinnerPayload] = Field(default=None, alias="quietestPersonBestMoment")
    funniest_sentences: List[RankedPayload] = Field(default_factory=list, alias="funniestSentences")
    most_bland_comments: List[RankedPayload] = Field(default_factory=list, alias="mostBlandComments")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @classmethod
    def from_json(cls, payload: str) -> "AnalysisResponse":
        cleaned = _clean_json_payload(payload)
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            raise ResponseContractError(f"Analysis response is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ResponseContractError("Analysis response must be a JSON object.")
        return cls.model_validate(data)

    def to_domain(self) -> CategorizedHighlights:
        """Convert to highlights, re-ranking each top-five list 1..5."""

        winners = {}
        for name in CATEGORY_FIELDS:
            value = getattr(self, name, None)
            if isinstance(value, WinnerPayload) and value.quote.strip():
                winners[name] = value.to_domain()

        return CategorizedHighlights(
            **winners,
            funniest_sentences=_ranked(self.funniest_sentences),
            most_bland_comments=_ranked(self.most_bland_comments),
        )


def _ranked(entries: List[RankedPayload]) -> list[TopFiveEntry]:
    usable = [entry for entry in entries if entry.quote.strip()]
    usable.sort(key=lambda entry: (entry.rank or 99, -entry.score))
    return [
        TopFiveEntry(
            rank=index,
            speaker=entry.speaker,
            timestamp=entry.timestamp,
            quote=entry.quote,
            context=entry.context,
            score=entry.score,
            reasoning=entry.reasoning,
        )
        for index, entry in enumerate(usable[:5], start=1)
    ]


def _clean_json_payload(payload: str) -> str:
    """Strip Markdown code blocks and find the first/last brace to extract JSON."""
    if not payload:
        return ""

    cleaned = payload.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]

    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]

    cleaned = cleaned.strip()

    start = cleaned.find("{")
    end = cleaned.rfind("}")

    if start != -1 and end != -1 and end > start:
        cleaned = cleaned[start : end + 1]

    return cleaned


__all__ = [
    "AnalysisResponse",
    "ResponseContractError",
]
