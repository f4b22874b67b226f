"""Prompt construction, response validation and the analysis fallback."""

from __future__ import annotations

import json

import pytest

from fakes import ROSTER, run

from app.services.analysis import FALLBACK_QUOTE, SessionAnalysisService
from app.services.llm_client import LlmInvocationError
from app.services.prompt_builder import MAX_TRANSCRIPT_CHARS, PromptContext, build_prompt
from app.services.response_contract import AnalysisResponse, ResponseContractError

VALID_RESPONSE = json.dumps(
    {
        "bestJoke": {
            "speaker": "Alice",
            "quote": "I loved the ending so much",
            "groupReaction": "Everyone laughed",
            "entertainmentScore": 12,
            "runnersUp": [{"speaker": "Bob", "quote": "No way"}, "Carol"],
        },
        "hottestTake": {"speaker": "Bob", "quote": ""},
        "funniestSentences": [
            {"rank": 2, "speaker": "Bob", "quote": "second"},
            {"rank": 1, "speaker": "Alice", "quote": "first"},
            {"rank": 3, "speaker": "Bob", "quote": "  "},
        ],
    }
)

METADATA = {
    "title": "Dune Part Two",
    "recording_date": "2024-03-01",
    "mic_assignments": {"0": "Alice", "1": "Bob"},
    "participants_present": ["Alice", "Bob"],
    "participants_absent": ["Mic 3"],
}


class FakeLlm:
    def __init__(self, responses=None, available: bool = True) -> None:
        self.responses = list(responses or [])
        self.available = available
        self.prompts: list[tuple[str, str]] = []

    async def invoke(self, *, system_prompt: str, user_prompt: str, **_: object):
        self.prompts.append((system_prompt, user_prompt))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_response_contract_accepts_fenced_camel_case_json():
    highlights = AnalysisResponse.from_json(f"Here you go:\n```json\n{VALID_RESPONSE}\n```").to_domain()

    assert highlights.best_joke.speaker == "Alice"
    assert highlights.best_joke.group_reaction == "Everyone laughed"
    assert highlights.best_joke.score == 10.0
    assert highlights.best_joke.runners_up == ["Bob", "Carol"]
    assert highlights.hottest_take is None
    assert [(entry.rank, entry.quote) for entry in highlights.funniest_sentences] == [(1, "first"), (2, "second")]
    assert highlights.is_fallback is False


def test_response_contract_rejects_non_json():
    with pytest.raises(ResponseContractError):
        AnalysisResponse.from_json("I could not find any highlights, sorry.")
    with pytest.raises(ResponseContractError):
        AnalysisResponse.from_json("[1, 2, 3]")


def test_prompt_includes_session_context_and_spelling_notes():
    context = PromptContext(
        title="Dune Part Two",
        recording_date="2024-03-01",
        participants=("Alice", "Bob"),
        absent=("Mic 3",),
        mic_assignments=ROSTER,
    )

    prompt = build_prompt(transcript="Alice: hello", context=context)

    assert "\"bestJoke\"" in prompt.system_prompt
    assert "\"funniestSentences\"" in prompt.system_prompt
    assert "Movie: Dune Part Two" in prompt.user_prompt
    assert "- Mic 1: Alice" in prompt.user_prompt
    assert "- Mic 2: Bob" in prompt.user_prompt
    assert prompt.user_prompt.rstrip().endswith("Pick the winners for every category and the two top-five lists.")


def test_prompt_trims_very_long_transcripts():
    transcript = "A" * MAX_TRANSCRIPT_CHARS + "B" * 1000

    prompt = build_prompt(transcript=transcript, context=PromptContext(title="Long"))

    assert "[... transcript trimmed ...]" in prompt.user_prompt
    assert len(prompt.user_prompt) < len(transcript) + 2000


def test_analysis_returns_validated_highlights():
    llm = FakeLlm([VALID_RESPONSE])

    highlights = run(SessionAnalysisService(llm).analyze("Alice: I loved the ending so much", METADATA))

    assert highlights.best_joke.quote == "I loved the ending so much"
    assert highlights.is_fallback is False
    assert "Mic 1: Alice" in llm.prompts[0][1]


def test_analysis_retries_invalid_json():
    llm = FakeLlm(["not json", "{}", VALID_RESPONSE])

    highlights = run(SessionAnalysisService(llm).analyze("Alice: hi", METADATA))

    assert highlights.is_fallback is False
    assert len(llm.prompts) == 3


def test_analysis_falls_back_after_repeated_invalid_json():
    llm = FakeLlm(["nope", "still nope", "never"])

    highlights = run(SessionAnalysisService(llm).analyze("Alice: hi", METADATA))

    assert highlights.is_fallback is True
    assert highlights.best_joke.quote == FALLBACK_QUOTE
    assert len(llm.prompts) == 3


def test_analysis_falls_back_on_provider_error():
    llm = FakeLlm([LlmInvocationError("throttled")])

    highlights = run(SessionAnalysisService(llm).analyze("Alice: hi", METADATA))

    assert highlights.is_fallback is True
    assert highlights.best_joke.speaker == "Analysis unavailable"
    assert "throttled" in highlights.best_joke.why_its_great
    assert not highlights.is_empty()


def test_analysis_without_provider_or_transcript_skips_the_call():
    unavailable = FakeLlm(available=False)
    assert run(SessionAnalysisService(unavailable).analyze("Alice: hi", METADATA)).is_fallback is True
    assert unavailable.prompts == []

    llm = FakeLlm([VALID_RESPONSE])
    assert run(SessionAnalysisService(llm).analyze("   ", METADATA)).is_fallback is True
    assert llm.prompts == []
