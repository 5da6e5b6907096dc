"""Data models for the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

CHANNEL_CONTEXT_VIDEO_ID = "CHANNEL_CONTEXT"


class ContentType(str, Enum):
    """What a stored chunk was derived from."""

    VIDEO_TRANSCRIPT = "video_transcript"
    CHANNEL_DESCRIPTION = "channel_description"
    CUSTOM_DESCRIPTION = "custom_description"
    BACKGROUND_SUMMARY = "background_summary"
    BACKGROUND_TOPICS = "background_topics"


@dataclass(frozen=True)
class TranscriptSegment:
    """One subtitle cue, ordered by start time within its video."""

    text: str
    display_timestamp: str
    start_seconds: float
    end_seconds: float


@dataclass(frozen=True)
class TranscriptData:
    """A fetched transcript: flat text plus timed segments when available."""

    text: str
    segments: list[TranscriptSegment] = field(default_factory=list)


@dataclass(frozen=True)
class SentimentTag:
    """Emotional-intensity signals for a chunk (metadata only)."""

    score: float
    comparative: float
    exclamation_count: int
    question_count: int
    emotional_intensity: float
    is_highlight_candidate: bool
    positive_words: tuple[str, ...] = ()
    negative_words: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "comparative": self.comparative,
            "exclamation_count": self.exclamation_count,
            "question_count": self.question_count,
            "emotional_intensity": self.emotional_intensity,
            "is_highlight_candidate": self.is_highlight_candidate,
            "positive_words": list(self.positive_words),
            "negative_words": list(self.negative_words),
        }


@dataclass(frozen=True)
class Chunk:
    """A bounded span of transcript text prepared for embedding."""

    text: str
    index: int
    source_video_id: str
    start_seconds: float | None = None
    end_seconds: float | None = None
    matched: bool = False
    sentiment: SentimentTag | None = None
    content_type: ContentType = ContentType.VIDEO_TRANSCRIPT
    video_title: str | None = None
    video_url: str | None = None
    thumbnail_url: str | None = None


@dataclass(frozen=True)
class EmbeddedChunk:
    """A chunk with its embedding, owned by one creator (tenant)."""

    creator_id: str
    chunk: Chunk
    vector: list[float]

    @property
    def record_id(self) -> str:
        return chunk_record_id(self.creator_id, self.chunk.source_video_id, self.chunk.index)


def chunk_record_id(creator_id: str, video_id: str, chunk_index: int) -> str:
    """Identity shared by the vector record and the metadata row."""
    return f"{creator_id}_{video_id}_{chunk_index}"
