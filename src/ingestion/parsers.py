"""Subtitle parsers: SRT cue blocks and inline ``M:SS`` timestamp markers."""

from __future__ import annotations

import html
import re

from src.ingestion.models import TranscriptSegment

# Seconds added to the final segment when the source gives no end time.
LAST_SEGMENT_PADDING = 10.0

_SRT_TIMING_RE = re.compile(
    r"(\d{1,2}):(\d{2}):(\d{2})[.,](\d{1,3})\s*-->\s*(\d{1,2}):(\d{2}):(\d{2})[.,](\d{1,3})"
)
_TAG_RE = re.compile(r"<[^>]*>")
_INLINE_TIMESTAMP_RE = re.compile(r"([^0-9]+?)(\d+:\d{2}(?::\d{2})?)")


def format_timestamp(seconds: float) -> str:
    """Format seconds for display: ``M:SS`` or ``H:MM:SS``."""
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def _parse_display_timestamp(ts: str) -> int:
    parts = [int(p) for p in ts.split(":")]
    if len(parts) == 3:
        return parts[0] * 3600 + parts[1] * 60 + parts[2]
    if len(parts) == 2:
        return parts[0] * 60 + parts[1]
    return 0


def _clean_cue_line(line: str) -> str:
    return html.unescape(_TAG_RE.sub("", line)).strip()


def parse_srt(content: str) -> list[TranscriptSegment]:
    """Parse SRT subtitle data into ordered transcript segments.

    Sequence-number lines are ignored, HTML tags and entities are stripped
    from cue text, and cue start/end times are truncated to whole seconds.
    Cues with no text are dropped.
    """
    segments: list[TranscriptSegment] = []
    start = end = 0
    text_lines: list[str] = []
    in_cue = False

    def _flush() -> None:
        text = " ".join(text_lines).strip()
        if in_cue and text:
            segments.append(
                TranscriptSegment(
                    text=text,
                    display_timestamp=format_timestamp(start),
                    start_seconds=float(start),
                    end_seconds=float(end),
                )
            )

    for raw in content.splitlines():
        line = raw.strip()
        timing = _SRT_TIMING_RE.search(line)
        if timing:
            _flush()
            text_lines = []
            g = [int(x) for x in timing.groups()]
            start = g[0] * 3600 + g[1] * 60 + g[2]
            end = g[4] * 3600 + g[5] * 60 + g[6]
            in_cue = True
            continue
        if not line:
            _flush()
            text_lines = []
            in_cue = False
            continue
        if line.isdigit() and not text_lines:
            continue
        cleaned = _clean_cue_line(line)
        if cleaned:
            text_lines.append(cleaned)

    _flush()
    segments.sort(key=lambda s: s.start_seconds)
    return segments


def extract_timestamp_segments(text: str) -> list[TranscriptSegment]:
    """Extract segments from text with inline markers (``"intro 0:00 more 0:02"``).

    Each segment ends where the next one starts; the last gets
    :data:`LAST_SEGMENT_PADDING` seconds.
    """
    starts: list[tuple[str, str, int]] = []
    for match in _INLINE_TIMESTAMP_RE.finditer(text):
        content = match.group(1).strip()
        display = match.group(2)
        if len(content) > 5:
            starts.append((content, display, _parse_display_timestamp(display)))

    segments: list[TranscriptSegment] = []
    for i, (content, display, seconds) in enumerate(starts):
        if i + 1 < len(starts):
            end = float(starts[i + 1][2])
        else:
            end = seconds + LAST_SEGMENT_PADDING
        segments.append(
            TranscriptSegment(
                text=content,
                display_timestamp=display,
                start_seconds=float(seconds),
                end_seconds=end,
            )
        )
    return segments


def segments_from_snippets(snippets: list[dict[str, float | str]]) -> list[TranscriptSegment]:
    """Build segments from ``{"text", "start", "duration"}`` snippet dicts."""
    segments: list[TranscriptSegment] = []
    for snip in snippets:
        text = _clean_cue_line(str(snip.get("text", "")))
        if not text:
            continue
        start = float(snip.get("start", 0.0))
        duration = float(snip.get("duration", 0.0))
        segments.append(
            TranscriptSegment(
                text=text,
                display_timestamp=format_timestamp(start),
                start_seconds=start,
                end_seconds=start + duration,
            )
        )
    segments.sort(key=lambda s: s.start_seconds)
    return segments
