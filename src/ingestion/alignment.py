"""Map free-text chunks back to subtitle timestamps.

Chunks are built from cleaned text with no character offsets into the
original cues, so alignment is approximate: each chunk and each segment is
reduced to a short word *fingerprint* and the first segment whose
fingerprint prefix overlaps the chunk's wins. When nothing matches the
chunk is placed proportionally along the video's duration.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

from src.ingestion.models import TranscriptSegment

FINGERPRINT_TOKENS = 20
PREFIX_CHARS = 50

_TIMESTAMP_RE = re.compile(r"\d+:\d+")
_DIGITS_RE = re.compile(r"\d+")


@dataclass(frozen=True)
class TimestampMatch:
    start_time: float
    end_time: float
    matched: bool
    display_timestamp: str | None = None


def fingerprint(text: str) -> str:
    """Lower-cased first 20 words longer than two characters, digits removed."""
    normalised = _DIGITS_RE.sub("", _TIMESTAMP_RE.sub("", text.lower()))
    tokens = [t for t in normalised.split() if len(t) > 2]
    return " ".join(tokens[:FINGERPRINT_TOKENS])


class SegmentIndex:
    """Segments of one video with their fingerprints computed once."""

    def __init__(self, segments: list[TranscriptSegment]) -> None:
        self.segments = list(segments)
        self.fingerprints = [fingerprint(s.text) for s in self.segments]

    def __len__(self) -> int:
        return len(self.segments)

    @property
    def total_duration(self) -> float:
        return self.segments[-1].end_seconds if self.segments else 0.0


def _prefix_match(chunk_fp: str, segment_fp: str) -> bool:
    if not chunk_fp or not segment_fp:
        return False
    return segment_fp[:PREFIX_CHARS] in chunk_fp or chunk_fp[:PREFIX_CHARS] in segment_fp


def align_chunk(
    chunk_text: str,
    segments: SegmentIndex | list[TranscriptSegment],
    chunk_index: int,
    total_chunks: int,
) -> TimestampMatch:
    """Return the time span for one chunk.

    Accepts a prebuilt :class:`SegmentIndex` or a plain segment list.
    """
    index = segments if isinstance(segments, SegmentIndex) else SegmentIndex(segments)
    if len(index) == 0:
        return TimestampMatch(start_time=0.0, end_time=0.0, matched=False)

    chunk_fp = fingerprint(chunk_text)
    for segment, segment_fp in zip(index.segments, index.fingerprints):
        if _prefix_match(chunk_fp, segment_fp):
            return TimestampMatch(
                start_time=segment.start_seconds,
                end_time=segment.end_seconds,
                matched=True,
                display_timestamp=segment.display_timestamp,
            )

    total = max(total_chunks, 1)
    duration = index.total_duration
    return TimestampMatch(
        start_time=float(math.floor(chunk_index / total * duration)),
        end_time=float(math.floor((chunk_index + 1) / total * duration)),
        matched=False,
    )
