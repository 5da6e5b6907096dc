"""Search endpoint: hybrid retrieval over one creator's transcripts."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.dependencies import get_search_engine
from src.api.models import SearchHit, SearchRequest, SearchResponse
from src.retrieval.search import HybridSearchEngine

router = APIRouter()


@router.post("/api/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    engine: Annotated[HybridSearchEngine, Depends(get_search_engine)],
) -> SearchResponse:
    """Top fused results; an empty list when retrieval is unavailable."""
    found = await engine.search(request.creator_id, request.query, request.limit)
    return SearchResponse(
        results=[
            SearchHit(text=r.text, score=r.score, source=r.source, metadata=r.metadata)
            for r in found.results
        ],
        total_results=found.total_results,
        semantic_results=found.semantic_results,
        keyword_results=found.keyword_results,
        search_time_ms=found.search_time_ms,
        processed_query=found.processed_query,
        keywords=found.keywords,
    )
