"""Conversation statistics computed from an attributed transcript."""

from __future__ import annotations

import re
from collections import defaultdict
from typing import Iterable

from app.domain.models import SessionStats

_LINE = re.compile(r"^([^:]+):\s*(.+)$")
_LAUGHTER = re.compile(r"\b(haha|hahaha|lol|lmao|laughing|chuckle|giggle)\b", re.IGNORECASE)
_INTERRUPTION = re.compile(r"\b(wait|hold on|but|however)\b", re.IGNORECASE)

CURSE_WORDS = (
    "damn",
    "dammit",
    "hell",
    "crap",
    "shit",
    "bullshit",
    "fuck",
    "fucking",
    "ass",
    "asshole",
    "bitch",
    "bastard",
    "goddamn",
    "wtf",
    "piss",
    "pissed",
)
_CURSE = re.compile(r"\b(" + "|".join(CURSE_WORDS) + r")\b", re.IGNORECASE)

UNKNOWN_SPEAKER = "Unknown"


def conversation_tone(transcript: str) -> str:
    laughter = len(_LAUGHTER.findall(transcript))
    interruptions = len(_INTERRUPTION.findall(transcript))
    questions = transcript.count("?")

    if laughter > 10 and interruptions < 5:
        return "Light-hearted and fun"
    if interruptions > 10:
        return "Heated and passionate"
    if questions > 15:
        return "Analytical and thoughtful"
    if laughter > 5:
        return "Engaging with good humor"
    return "Calm and focused discussion"


def build_session_stats(lines: Iterable[str]) -> SessionStats:
    """Count words, questions, laughter and curse words per speaker."""

    words: dict[str, int] = defaultdict(int)
    questions: dict[str, int] = defaultdict(int)
    laughter: dict[str, int] = defaultdict(int)
    curses: dict[str, int] = defaultdict(int)
    kept: list[str] = []

    for line in lines:
        match = _LINE.match(line.strip())
        if not match:
            continue
        speaker = match.group(1).strip()
        text = match.group(2).strip()
        if not text:
            continue
        kept.append(text)

        words[speaker] += len(text.split())
        if "?" in text:
            questions[speaker] += text.count("?")
        found_laughter = len(_LAUGHTER.findall(text))
        if found_laughter:
            laughter[speaker] += found_laughter
        found_curses = len(_CURSE.findall(text))
        if found_curses:
            curses[speaker] += found_curses

    ranked = sorted(
        ((count, name) for name, count in words.items() if name != UNKNOWN_SPEAKER),
        key=lambda item: (-item[0], item[1]),
    )
    return SessionStats(
        word_counts=dict(words),
        question_counts=dict(questions),
        laughter_counts=dict(laughter),
        curse_counts=dict(curses),
        total_words=sum(words.values()),
        total_questions=sum(questions.values()),
        total_laughter=sum(laughter.values()),
        total_curse_words=sum(curses.values()),
        most_talkative=ranked[0][1] if ranked else None,
        quietest=ranked[-1][1] if ranked else None,
        conversation_tone=conversation_tone("\n".join(kept)),
    )


__all__ = ["CURSE_WORDS", "build_session_stats", "conversation_tone"]
