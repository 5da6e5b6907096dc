"""Emotional-intensity tagging of transcript chunks using the AFINN lexicon."""

from __future__ import annotations

import re
from functools import lru_cache

from afinn import Afinn

from src.ingestion.models import Chunk, SentimentTag

_WORD_RE = re.compile(r"[a-z']+")
_EXCLAMATION_RE = re.compile(r"[^.!?]*!")
_QUESTION_RE = re.compile(r"[^.!?]*\?")


@lru_cache(maxsize=1)
def _lexicon() -> Afinn:
    return Afinn(language="en")


def _count_terminated(pattern: re.Pattern[str], text: str) -> int:
    return sum(1 for m in pattern.finditer(text) if m.group(0).strip(" !?"))


def tag_sentiment(text: str) -> SentimentTag:
    """Score *text* and flag it as a highlight candidate when it is intense."""
    afinn = _lexicon()
    tokens = _WORD_RE.findall(text.lower())

    positive: list[str] = []
    negative: list[str] = []
    for token in tokens:
        value = afinn.score(token)
        if value > 0:
            positive.append(token)
        elif value < 0:
            negative.append(token)

    score = float(afinn.score(text))
    comparative = score / len(tokens) if tokens else 0.0
    exclamations = _count_terminated(_EXCLAMATION_RE, text)
    questions = _count_terminated(_QUESTION_RE, text)
    intensity = min(abs(comparative) * 2, 1.0)

    return SentimentTag(
        score=score,
        comparative=comparative,
        exclamation_count=exclamations,
        question_count=questions,
        emotional_intensity=intensity,
        is_highlight_candidate=(
            intensity > 0.3 or exclamations >= 2 or (score > 3 and exclamations >= 1)
        ),
        positive_words=tuple(positive),
        negative_words=tuple(negative),
    )


def top_emotional_chunks(chunks: list[Chunk], top_n: int = 5) -> list[Chunk]:
    """The *top_n* chunks by emotional intensity (stable for ties)."""

    def _intensity(chunk: Chunk) -> float:
        tag = chunk.sentiment or tag_sentiment(chunk.text)
        return tag.emotional_intensity

    return sorted(chunks, key=_intensity, reverse=True)[:top_n]
