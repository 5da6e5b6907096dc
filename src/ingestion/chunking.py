"""Chunking of cleaned transcript text into embeddable spans."""

from __future__ import annotations

import math
import re

from src.ingestion.alignment import SegmentIndex, align_chunk
from src.ingestion.models import Chunk, ContentType, TranscriptSegment
from src.ingestion.sentiment import tag_sentiment

MIN_INPUT_CHARS = 50
MIN_PIECE_CHARS = 10
MIN_WINDOW_CHARS = 50
MIN_CHUNK_CHARS = 100
MAX_CHUNK_CHARS = 2500
TOKEN_BUDGET_RATIO = 0.8

_SENTENCE_SPLIT_RE = re.compile(r"[.!?;]\s+|[\n\r]+")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")


def estimate_tokens(text: str) -> int:
    """Approximate token count as ``ceil(chars / 4)``.

    This is a heuristic for English text, not a tokenizer call; real counts
    for the embedding model may differ by a few percent either way.
    """
    return math.ceil(len(text) / 4)


def _word_windows(text: str, max_tokens: int) -> list[str]:
    """Fixed-size word windows with roughly 10 % overlap."""
    words = text.split()
    words_per_chunk = max(1, math.floor(max_tokens * 0.7))
    overlap = math.floor(words_per_chunk * 0.1)
    step = max(1, words_per_chunk - overlap)

    windows: list[str] = []
    for start in range(0, len(words), step):
        window = " ".join(words[start : start + words_per_chunk])
        if len(window) > MIN_WINDOW_CHARS:
            windows.append(window)
        if start + words_per_chunk >= len(words):
            break
    return windows


def _split_pieces(text: str) -> list[str] | None:
    """Split into sentences, else paragraphs. ``None`` means use word windows."""
    sentences = [s.strip() for s in _SENTENCE_SPLIT_RE.split(text)]
    sentences = [s for s in sentences if len(s) > MIN_PIECE_CHARS]
    if len(sentences) > 2:
        return sentences

    paragraphs = [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(text)]
    paragraphs = [p for p in paragraphs if len(p) > MIN_PIECE_CHARS]
    if len(paragraphs) > 1:
        return paragraphs
    return None


def chunk_text(text: str, max_tokens: int = 400) -> list[str]:
    """Split *text* into chunks of roughly ``0.8 * max_tokens`` tokens.

    Sentence boundaries are preferred; paragraph splitting and then fixed
    word windows are used when the text has too few sentences. Chunks of
    100 characters or fewer are dropped. Deterministic for identical input.
    """
    if not text or len(text.strip()) < MIN_INPUT_CHARS:
        return []

    pieces = _split_pieces(text)
    if pieces is None:
        pieces = _word_windows(text, max_tokens)

    token_limit = max_tokens * TOKEN_BUDGET_RATIO
    chunks: list[str] = []
    current = ""

    for piece in pieces:
        candidate = f"{current} {piece}".strip() if current else piece
        if estimate_tokens(candidate) < token_limit and len(candidate) < MAX_CHUNK_CHARS:
            current = candidate
            continue
        if len(current) > MIN_CHUNK_CHARS:
            chunks.append(current)
        current = piece

    if len(current) > MIN_CHUNK_CHARS:
        chunks.append(current)

    return chunks


def build_chunks(
    text: str,
    segments: list[TranscriptSegment],
    video_id: str,
    max_tokens: int = 400,
    video_title: str | None = None,
    video_url: str | None = None,
    thumbnail_url: str | None = None,
) -> list[Chunk]:
    """Chunk *text*, align each piece to *segments* and attach sentiment.

    Chunk indices follow transcript order.
    """
    pieces = chunk_text(text, max_tokens)
    index = SegmentIndex(segments)
    total = len(pieces)

    chunks: list[Chunk] = []
    for i, piece in enumerate(pieces):
        match = align_chunk(piece, index, i, total)
        chunks.append(
            Chunk(
                text=piece,
                index=i,
                source_video_id=video_id,
                start_seconds=match.start_time,
                end_seconds=match.end_time,
                matched=match.matched,
                sentiment=tag_sentiment(piece),
                content_type=ContentType.VIDEO_TRANSCRIPT,
                video_title=video_title,
                video_url=video_url,
                thumbnail_url=thumbnail_url,
            )
        )
    return chunks
