"""Helpers to construct system/user prompts for the session analysis LLM.

Given the merged transcript and session metadata, we emit:
* A system prompt describing the analyst persona and the strict JSON contract.
* A user prompt containing the movie, the participants, spelling guardrails
  and the transcript itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from app.domain.models import CATEGORY_FIELDS

# Transcripts beyond this size are trimmed from the middle.
MAX_TRANSCRIPT_CHARS = 120_000

CATEGORY_DESCRIPTIONS = {
    "most_offensive_take": "The most outrageous or offensive opinion about the movie.",
    "hottest_take": "The boldest opinion that others disagreed with.",
    "biggest_argument_starter": "The statement that triggered the longest back-and-forth.",
    "best_joke": "The line that got the biggest laugh.",
    "best_roast": "The sharpest good-natured jab at another participant.",
    "funniest_random_tangent": "The funniest detour away from the movie.",
    "most_passionate_defense": "Someone defending a scene, actor or choice with conviction.",
    "biggest_unanimous_reaction": "A moment the whole group reacted to together.",
    "most_boring_statement": "The flattest, least interesting remark.",
    "best_plot_twist_revelation": "A surprising insight or revelation about the plot.",
    "movie_snob_moment": "The most pretentious film-buff remark.",
    "guilty_pleasure_admission": "Someone admitting to enjoying something embarrassing.",
    "quietest_person_best_moment": "The best contribution from the least talkative person.",
}


@dataclass(frozen=True)
class PromptContext:
    title: str
    recording_date: str | None = None
    participants: Sequence[str] = field(default_factory=tuple)
    absent: Sequence[str] = field(default_factory=tuple)
    mic_assignments: Mapping[int, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PromptBundle:
    system_prompt: str
    user_prompt: str


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _trim_transcript(transcript: str) -> str:
    text = transcript.strip()
    if len(text) <= MAX_TRANSCRIPT_CHARS:
        return text
    half = MAX_TRANSCRIPT_CHARS // 2
    return f"{text[:half]}\n[... transcript trimmed ...]\n{text[-half:]}"


def _spelling_notes(mic_assignments: Mapping[int, str]) -> str:
    if not mic_assignments:
        return ""
    lines = ["Participant names (ALWAYS use this exact spelling):"]
    for mic, name in sorted(mic_assignments.items()):
        lines.append(f"- Mic {mic + 1}: {name}")
    lines.append(
        "Never invent variations or phonetic approximations of these names. "
        "Lines labelled 'Unknown' belong to one of them; make an educated guess."
    )
    return "\n".join(lines) + "\n\n"


def build_prompt(*, transcript: str, context: PromptContext) -> PromptBundle:
    """Compose system/user prompts for a categorized highlights analysis."""

    winner_shape = (
        "{\"speaker\": string, \"timestamp\": string, \"quote\": string, \"setup\": string, "
        "\"groupReaction\": string, \"whyItsGreat\": string, \"entertainmentScore\": number, "
        "\"runnersUp\": [string]}"
    )
    ranked_shape = (
        "{\"rank\": number, \"speaker\": string, \"timestamp\": string, \"quote\": string, "
        "\"context\": string, \"score\": number, \"reasoning\": string}"
    )
    category_lines = "\n".join(
        f"  \"{_camel(name)}\": {winner_shape} | null,  // {CATEGORY_DESCRIPTIONS[name]}"
        for name in CATEGORY_FIELDS
    )

    system_prompt = (
        "You analyse recorded conversations of a group of friends discussing a movie. "
        "You pick the most entertaining moments and quote them exactly as spoken. "
        "Respond only with valid JSON using exactly this structure:\n"
        "{\n"
        f"{category_lines}\n"
        f"  \"funniestSentences\": [{ranked_shape}],  // up to 5, rank 1 is best\n"
        f"  \"mostBlandComments\": [{ranked_shape}]   // up to 5, rank 1 is blandest\n"
        "}\n"
        "entertainmentScore ranges from 0 to 10. Use null for a category with no good candidate. "
        "Do not write any text before or after the JSON."
    )

    participants = ", ".join(context.participants) or "unknown"
    absent = ", ".join(context.absent) or "none"
    user_prompt = (
        f"Movie: {context.title}\n"
        f"Recorded: {context.recording_date or 'unknown'}\n"
        f"Participants present: {participants}\n"
        f"Participants absent: {absent}\n\n"
        f"{_spelling_notes(context.mic_assignments)}"
        "Transcript (one utterance per line, `Speaker: text`):\n"
        f"{_trim_transcript(transcript)}\n\n"
        "Pick the winners for every category and the two top-five lists."
    )

    return PromptBundle(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
    )


__all__ = ["PromptContext", "PromptBundle", "build_prompt"]
