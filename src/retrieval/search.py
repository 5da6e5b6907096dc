"""Hybrid retrieval: semantic and keyword search fused into one ranking."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from src.ingestion.embeddings import Embedder
from src.ingestion.storage import ChunkDocumentStore
from src.ingestion.vector_store import VectorMatch, VectorStore
from src.pipeline_config import PipelineConfig, QueryMode
from src.retrieval.query_preprocessing import extract_keywords, preprocess_query

logger = logging.getLogger(__name__)

DEDUP_PREFIX_CHARS = 100

Source = Literal["semantic", "keyword", "hybrid"]


@dataclass(frozen=True)
class SearchResult:
    text: str
    score: float
    source: Source
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HybridSearchResults:
    results: list[SearchResult]
    semantic_results: int = 0
    keyword_results: int = 0
    search_time_ms: float = 0.0
    original_query: str = ""
    processed_query: str = ""
    keywords: list[str] = field(default_factory=list)

    @property
    def total_results(self) -> int:
        return len(self.results)


def _result_metadata(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "video_id": data.get("video_id"),
        "video_title": data.get("video_title"),
        "chunk_index": data.get("chunk_index"),
        "start_seconds": data.get("start_seconds"),
        "end_seconds": data.get("end_seconds"),
        "video_url": data.get("video_url"),
        "thumbnail_url": data.get("thumbnail_url"),
        "content_type": data.get("content_type"),
    }


def semantic_result(match: VectorMatch) -> SearchResult:
    return SearchResult(
        text=match.text,
        score=match.score,
        source="semantic",
        metadata={"id": match.id, **_result_metadata(match.metadata)},
    )


def keyword_result(row: dict[str, Any]) -> SearchResult:
    return SearchResult(
        text=row.get("text") or "",
        score=float(row.get("rank") or 0.0),
        source="keyword",
        metadata=_result_metadata(row),
    )


def keyword_overlap(query: str, text: str) -> int:
    """How many query words longer than two characters appear in *text*."""
    lowered = text.lower()
    return sum(1 for word in query.lower().split() if len(word) > 2 and word in lowered)


def fuse_and_rank(
    semantic: list[SearchResult],
    keyword: list[SearchResult],
    query: str,
    limit: int = 5,
    config: PipelineConfig | None = None,
) -> list[SearchResult]:
    """Deduplicate, weight by source, boost literal overlap and rank.

    Semantic candidates come first, so they win deduplication. The sort is
    stable, so ties keep input order.
    """
    config = config or PipelineConfig()
    weights = {"semantic": config.semantic_weight, "keyword": config.keyword_weight}

    seen: set[str] = set()
    unique: list[SearchResult] = []
    for candidate in [*semantic, *keyword]:
        key = candidate.text[:DEDUP_PREFIX_CHARS]
        if key in seen:
            continue
        seen.add(key)
        unique.append(candidate)

    scored = []
    for candidate in unique:
        score = candidate.score * weights.get(candidate.source, 1.0)
        score *= 1 + config.overlap_boost * keyword_overlap(query, candidate.text)
        scored.append(replace(candidate, score=score, source="hybrid"))

    ranked = sorted(scored, key=lambda r: r.score, reverse=True)[:limit]
    logger.debug(
        "Fused %d candidates (%d unique) into %d results",
        len(semantic) + len(keyword),
        len(unique),
        len(ranked),
    )
    return ranked


class HybridSearchEngine:
    """Runs semantic and keyword search concurrently for one creator."""

    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        documents: ChunkDocumentStore,
        config: PipelineConfig | None = None,
    ) -> None:
        self.embedder = embedder
        self.vector_store = vector_store
        self.documents = documents
        self.config = config or PipelineConfig()

    def _plan_query(self, query: str) -> tuple[str, list[str]]:
        if self.config.query_mode is QueryMode.PREPROCESSED:
            processed = preprocess_query(query)
            return processed.contextual, processed.keywords
        return query, extract_keywords(query)

    async def semantic_search(self, creator_id: str, query: str, limit: int) -> list[SearchResult]:
        vector = await self.embedder.embed(query)
        matches = await self.vector_store.query(creator_id, vector, limit)
        return [semantic_result(m) for m in matches]

    async def keyword_search(
        self, creator_id: str, keywords: list[str], limit: int
    ) -> list[SearchResult]:
        if not keywords:
            return []
        rows = await self.documents.keyword_search(creator_id, keywords, limit)
        return [keyword_result(row) for row in rows]

    async def search(self, creator_id: str, query: str, limit: int = 5) -> HybridSearchResults:
        """Top *limit* fused results; empty on provider failure."""
        started = time.perf_counter()
        try:
            semantic_query, keywords = self._plan_query(query)
            candidates = max(limit * 2, self.config.min_candidates)
            semantic, keyword = await asyncio.gather(
                self.semantic_search(creator_id, semantic_query, candidates),
                self.keyword_search(creator_id, keywords, candidates),
            )
            fused = fuse_and_rank(semantic, keyword, semantic_query, limit, self.config)
        except Exception:
            logger.exception("Hybrid search failed for creator %s", creator_id)
            return HybridSearchResults(
                results=[],
                search_time_ms=(time.perf_counter() - started) * 1000,
                original_query=query,
                processed_query=query,
            )

        elapsed = (time.perf_counter() - started) * 1000
        logger.info(
            "Hybrid search for %s: %d semantic, %d keyword, %d fused in %.0fms",
            creator_id,
            len(semantic),
            len(keyword),
            len(fused),
            elapsed,
        )
        return HybridSearchResults(
            results=fused,
            semantic_results=len(semantic),
            keyword_results=len(keyword),
            search_time_ms=elapsed,
            original_query=query,
            processed_query=semantic_query,
            keywords=keywords[:10],
        )
