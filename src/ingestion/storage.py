"""Supabase storage helpers for transcript chunk metadata and keyword search."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

from supabase import Client, create_client

from src.config import settings
from src.ingestion.models import Chunk, ContentType
from src.resilience import TIMEOUTS, with_timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHUNKS_TABLE = "transcript_chunks"


def get_supabase_client() -> Client:
    """Create and return a Supabase client from settings."""
    return create_client(settings.supabase_url, settings.supabase_key)


async def run_db(fn: Callable[[], T], context: str) -> T:
    """Run a blocking Supabase call in a thread under the database timeout."""
    return await with_timeout(lambda: asyncio.to_thread(fn), TIMEOUTS["database"], context)


def chunk_row(creator_id: str, chunk: Chunk) -> dict[str, Any]:
    """Metadata row for *chunk*, keyed like its vector record."""
    return {
        "creator_id": creator_id,
        "video_id": chunk.source_video_id,
        "chunk_index": chunk.index,
        "text": chunk.text,
        "content_type": chunk.content_type.value,
        "start_seconds": chunk.start_seconds,
        "end_seconds": chunk.end_seconds,
        "matched": chunk.matched,
        "video_title": chunk.video_title,
        "video_url": chunk.video_url,
        "thumbnail_url": chunk.thumbnail_url,
        "sentiment": chunk.sentiment.to_dict() if chunk.sentiment else None,
    }


class ChunkDocumentStore:
    """Tenant-scoped chunk metadata table with Postgres full-text search."""

    def __init__(self, client: Client | None = None) -> None:
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    async def upsert_chunks(self, creator_id: str, chunks: list[Chunk]) -> int:
        """Write chunk rows; re-running for the same chunk overwrites it."""
        if not chunks:
            return 0
        rows = [chunk_row(creator_id, c) for c in chunks]
        await run_db(
            lambda: self.client.table(CHUNKS_TABLE)
            .upsert(rows, on_conflict="creator_id,video_id,chunk_index")
            .execute(),
            f"upsert chunks for {creator_id}",
        )
        logger.info("Stored %d chunk rows for creator %s", len(rows), creator_id)
        return len(rows)

    async def find_chunks(
        self,
        creator_id: str,
        video_id: str | None = None,
        content_type: ContentType | str | None = None,
    ) -> list[dict[str, Any]]:
        def _query() -> Any:
            query = self.client.table(CHUNKS_TABLE).select("*").eq("creator_id", creator_id)
            if video_id is not None:
                query = query.eq("video_id", video_id)
            if content_type is not None:
                query = query.eq("content_type", ContentType(content_type).value)
            return query.order("chunk_index").execute()

        result = await run_db(_query, f"find chunks for {creator_id}")
        return cast(list[dict[str, Any]], result.data)

    async def find_by_texts(self, creator_id: str, texts: list[str]) -> list[dict[str, Any]]:
        """Rows whose text exactly matches one of *texts*."""
        if not texts:
            return []
        result = await run_db(
            lambda: self.client.table(CHUNKS_TABLE)
            .select("*")
            .eq("creator_id", creator_id)
            .in_("text", texts)
            .execute(),
            f"find chunks by text for {creator_id}",
        )
        return cast(list[dict[str, Any]], result.data)

    async def delete_video_chunks(self, creator_id: str, video_id: str) -> None:
        await run_db(
            lambda: self.client.table(CHUNKS_TABLE)
            .delete()
            .eq("creator_id", creator_id)
            .eq("video_id", video_id)
            .execute(),
            f"delete chunks for {creator_id}/{video_id}",
        )

    async def keyword_search(
        self,
        creator_id: str,
        keywords: list[str],
        limit: int,
    ) -> list[dict[str, Any]]:
        """Full-text search restricted to one creator.

        Rows carry a ``rank`` column (``ts_rank``); higher is better.
        """
        if not keywords:
            return []
        result = await run_db(
            lambda: self.client.rpc(
                "keyword_search_chunks",
                {
                    "query_text": " ".join(keywords),
                    "filter_creator_id": creator_id,
                    "match_count": limit,
                },
            ).execute(),
            f"keyword search for {creator_id}",
        )
        return cast(list[dict[str, Any]], result.data)
