"""AI analysis of a merged session transcript.

Bedrock produces the categorized highlights; when it is unavailable or keeps
returning unusable JSON the service degrades to a deterministic fallback so
the pipeline can still finish the session.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from pydantic import ValidationError

from app.application.interfaces import AnalysisProviderInterface
from app.domain.models import CATEGORY_FIELDS, CategorizedHighlights, CategoryWinner
from app.services.llm_client import BedrockLlmClient, LlmInvocationError
from app.services.prompt_builder import PromptContext, build_prompt
from app.services.response_contract import AnalysisResponse, ResponseContractError
from app.telemetry import record_analysis_fallback

logger = logging.getLogger(__name__)

_MAX_JSON_RETRIES = 2  # Retries when the LLM returns invalid JSON.

FALLBACK_SPEAKER = "Analysis unavailable"
FALLBACK_QUOTE = "[Analysis unavailable - transcript processed but AI analysis failed]"


def fallback_highlights(reason: str) -> CategorizedHighlights:
    """Clearly labelled placeholder used when the AI provider cannot help."""

    winners = {
        name: CategoryWinner(
            speaker=FALLBACK_SPEAKER,
            quote=FALLBACK_QUOTE,
            why_its_great=reason,
        )
        for name in CATEGORY_FIELDS
    }
    return CategorizedHighlights(**winners, is_fallback=True)


def _truncate(value: str, max_length: int = 500) -> str:
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


class SessionAnalysisService(AnalysisProviderInterface):
    """Bedrock-backed implementation of the analysis provider."""

    def __init__(self, llm_client: BedrockLlmClient) -> None:
        self._llm = llm_client

    async def analyze(
        self,
        transcript: str,
        metadata: Mapping[str, Any],
    ) -> CategorizedHighlights:
        if not transcript or not transcript.strip():
            return self._fallback("No transcript text was available for analysis.")
        if not self._llm.available:
            return self._fallback("AI analysis is not configured.")

        prompt = build_prompt(transcript=transcript, context=_prompt_context(metadata))

        for attempt in range(_MAX_JSON_RETRIES + 1):
            try:
                raw_response = await self._llm.invoke(
                    system_prompt=prompt.system_prompt,
                    user_prompt=prompt.user_prompt,
                )
            except LlmInvocationError as exc:
                logger.warning("Bedrock analysis call failed: %s", exc)
                return self._fallback(f"AI provider error: {exc}")

            if not raw_response:
                return self._fallback("AI provider returned an empty response.")

            logger.info(
                "Raw analysis response attempt=%s: %s",
                attempt + 1,
                _truncate(raw_response),
            )

            try:
                highlights = AnalysisResponse.from_json(raw_response).to_domain()
            except (ResponseContractError, ValidationError) as exc:
                logger.warning("Analysis produced invalid JSON attempt=%s: %s", attempt + 1, exc)
                continue

            if highlights.is_empty():
                logger.warning("Analysis JSON had no usable entries attempt=%s", attempt + 1)
                continue
            return highlights

        return self._fallback("AI provider kept returning invalid JSON.")

    @staticmethod
    def _fallback(reason: str) -> CategorizedHighlights:
        logger.warning("Using fallback highlights: %s", reason)
        record_analysis_fallback()
        return fallback_highlights(reason)


def _prompt_context(metadata: Mapping[str, Any]) -> PromptContext:
    raw_assignments = metadata.get("mic_assignments") or {}
    assignments = {int(key): str(value) for key, value in dict(raw_assignments).items() if value}
    return PromptContext(
        title=str(metadata.get("title") or "Unknown Movie"),
        recording_date=metadata.get("recording_date"),
        participants=tuple(metadata.get("participants_present") or ()),
        absent=tuple(metadata.get("participants_absent") or ()),
        mic_assignments=assignments,
    )


__all__ = ["SessionAnalysisService", "fallback_highlights", "FALLBACK_QUOTE"]
