"""Attach video citations (title, timestamped link) to search results."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from src.ingestion.parsers import format_timestamp
from src.ingestion.storage import ChunkDocumentStore
from src.retrieval.search import HybridSearchEngine, SearchResult
from src.sources.models import VideoInfo

logger = logging.getLogger(__name__)

HISTORY_TURNS = 3
HISTORY_MAX_TURN_CHARS = 200
HISTORY_MAX_CHARS = 300


@dataclass(frozen=True)
class VideoReference:
    video_id: str
    title: str
    url: str
    start_seconds: float
    timestamp: str
    timestamp_url: str
    relevant_text: str
    thumbnail_url: str | None = None
    title_match_score: int = 0


def timestamp_url(url: str, seconds: float) -> str:
    """Link that opens *url* at *seconds* (``&t=NNs``)."""
    return f"{url}&t={math.floor(seconds)}s"


def title_match_score(query: str, title: str) -> int:
    lowered = title.lower()
    return sum(1 for word in query.lower().split() if len(word) > 2 and word in lowered)


def enrich_query(query: str, history: Sequence[dict[str, str]] | None = None) -> str:
    """Append short recent conversation turns to *query*.

    The last entry of *history* is taken to be the current message and is
    skipped; of the three before it, only turns under 200 characters count.
    """
    if not history:
        return query
    recent = [m.get("content", "") for m in history[-(HISTORY_TURNS + 1) : -1]]
    context = " ".join(c for c in recent if c and len(c) < HISTORY_MAX_TURN_CHARS)
    if not context:
        return query
    return f"{query} [Context from conversation: {context[:HISTORY_MAX_CHARS]}]"


def _location(result: SearchResult, rows_by_text: dict[str, dict[str, Any]]) -> dict[str, Any]:
    if result.metadata.get("video_id"):
        return result.metadata
    return rows_by_text.get(result.text, {})


async def search_with_references(
    engine: HybridSearchEngine,
    documents: ChunkDocumentStore,
    creator_id: str,
    query: str,
    videos: list[VideoInfo],
    limit: int = 5,
    conversation_history: Sequence[dict[str, str]] | None = None,
) -> list[VideoReference]:
    """Search and return references to the creator's videos, best title match first.

    Results whose video is not in *videos* (channel context, deleted videos)
    are skipped.
    """
    enriched = enrich_query(query, conversation_history)
    hits = await engine.search(creator_id, enriched, limit * 2)

    missing = [r.text for r in hits.results if not r.metadata.get("video_id")]
    rows_by_text: dict[str, dict[str, Any]] = {}
    if missing:
        rows = await documents.find_by_texts(creator_id, missing)
        rows_by_text = {row["text"]: row for row in rows}

    by_id = {v.video_id: v for v in videos}
    references: list[VideoReference] = []
    for result in hits.results:
        location = _location(result, rows_by_text)
        video = by_id.get(str(location.get("video_id")))
        if video is None:
            continue
        start = float(location.get("start_seconds") or 0.0)
        references.append(
            VideoReference(
                video_id=video.video_id,
                title=video.title,
                url=video.url,
                start_seconds=start,
                timestamp=format_timestamp(start),
                timestamp_url=timestamp_url(video.url, start),
                relevant_text=result.text,
                thumbnail_url=video.thumbnail_url,
                title_match_score=title_match_score(query, video.title),
            )
        )
        if len(references) >= limit:
            break

    references.sort(key=lambda r: r.title_match_score, reverse=True)
    logger.info(
        "Built %d video references for %s from %d results",
        len(references),
        creator_id,
        hits.total_results,
    )
    return references
