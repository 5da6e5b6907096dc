"""Transcript text cleanup before chunking."""

from __future__ import annotations

import logging
import re

logger = logging.getLogger(__name__)

# Longest phrase, in words, checked for back-to-back repetition. Keeps the
# scan linear in transcript length.
MAX_REPEAT_WORDS = 40
MIN_DUPLICATE_CHARS = 10

_TIMESTAMP_RE = re.compile(r"\d+:\d{2}(?::\d{2})?")
_STAGE_DIRECTION_RE = re.compile(r"\[.*?\]")
_WHITESPACE_RE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def _repeat_length(words: list[str], start: int, max_words: int = MAX_REPEAT_WORDS) -> int:
    """Shortest phrase length ``n`` with ``words[start:start+n]`` repeated right after it.

    Returns 0 when no phrase of up to *max_words* words repeats at *start*.
    """
    limit = min(max_words, (len(words) - start) // 2)
    for n in range(1, limit + 1):
        if words[start] != words[start + n]:
            continue
        if words[start : start + n] == words[start + n : start + 2 * n]:
            return n
    return 0


def remove_repeated_phrases(text: str) -> str:
    """Collapse immediate phrase repetition and normalise whitespace.

    Some extractors emit each phrase twice back to back ("hello there hello there").
    """
    words = text.split()
    kept: list[str] = []
    i = 0
    while i < len(words):
        n = _repeat_length(words, i)
        if n:
            kept.extend(words[i : i + n])
            i += 2 * n
        else:
            kept.append(words[i])
            i += 1
    return " ".join(kept)


def find_duplicate_phrases(text: str) -> list[str]:
    """Back-to-back repeated phrases of at least ``MIN_DUPLICATE_CHARS`` characters."""
    words = text.split()
    found: list[str] = []
    i = 0
    while i < len(words):
        n = _repeat_length(words, i)
        phrase = " ".join(words[i : i + n]) if n else ""
        if len(phrase) >= MIN_DUPLICATE_CHARS:
            found.append(phrase)
            i += 2 * n
        else:
            i += 1
    return found


def clean_transcript(text: str) -> str:
    """Strip inline timestamps and ``[Music]``-style directions, collapse spaces."""
    cleaned = _TIMESTAMP_RE.sub("", text)
    cleaned = _STAGE_DIRECTION_RE.sub("", cleaned)
    cleaned = collapse_whitespace(cleaned)

    leftovers = find_duplicate_phrases(cleaned)
    if leftovers:
        logger.warning(
            "Potential transcript duplicates detected: %d (e.g. %r)",
            len(leftovers),
            leftovers[0][:50],
        )

    logger.debug("Transcript cleaned: %d -> %d chars", len(text), len(cleaned))
    return cleaned


def prepare_transcript_text(raw: str) -> str:
    """Full cleanup used by ingestion: de-duplicate, then clean."""
    return clean_transcript(remove_repeated_phrases(raw))
