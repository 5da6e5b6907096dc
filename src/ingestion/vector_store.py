"""Per-creator vector storage on Supabase pgvector."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, cast

from supabase import Client

from src.config import settings
from src.errors import DimensionMismatchError
from src.ingestion.models import EmbeddedChunk, chunk_record_id
from src.ingestion.storage import run_db
from src.resilience import call_external

logger = logging.getLogger(__name__)

VECTORS_TABLE = "chunk_vectors"
INDEXES_TABLE = "vector_indexes"


@dataclass(frozen=True)
class VectorRecord:
    id: str
    values: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VectorMatch:
    """A similarity hit with the index's own cosine score."""

    id: str
    score: float
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


class VectorIndex(Protocol):
    name: str
    dimension: int

    async def upsert(self, records: list[VectorRecord]) -> None: ...

    async def query(
        self,
        vector: list[float],
        top_k: int,
        filter: dict[str, Any],
        min_score: float,
    ) -> list[VectorMatch]: ...

    async def list_ids(self, filter: dict[str, Any]) -> list[str]: ...

    async def delete_many(self, ids: list[str]) -> None: ...


class SupabaseVectorIndex:
    """``chunk_vectors`` rows scoped to one named index."""

    def __init__(self, client: Client, name: str, dimension: int, metric: str = "cosine") -> None:
        self.client = client
        self.name = name
        self.dimension = dimension
        self.metric = metric

    async def upsert(self, records: list[VectorRecord]) -> None:
        rows = [
            {
                "id": r.id,
                "index_name": self.name,
                "creator_id": r.metadata.get("creator_id"),
                "video_id": r.metadata.get("video_id"),
                "chunk_index": r.metadata.get("chunk_index"),
                "text": r.metadata.get("text", ""),
                "embedding": r.values,
                "metadata": r.metadata,
            }
            for r in records
        ]
        await asyncio.to_thread(
            lambda: self.client.table(VECTORS_TABLE).upsert(rows, on_conflict="id").execute()
        )

    async def query(
        self,
        vector: list[float],
        top_k: int,
        filter: dict[str, Any],
        min_score: float,
    ) -> list[VectorMatch]:
        result = await asyncio.to_thread(
            lambda: self.client.rpc(
                "match_chunk_vectors",
                {
                    "query_embedding": vector,
                    "match_count": top_k,
                    "filter_index_name": self.name,
                    "filter_creator_id": filter.get("creator_id"),
                    "min_score": min_score,
                },
            ).execute()
        )
        rows = cast(list[dict[str, Any]], result.data)
        return [
            VectorMatch(
                id=row["id"],
                score=float(row["similarity"]),
                text=row.get("text") or "",
                metadata=row.get("metadata") or {},
            )
            for row in rows
        ]

    async def list_ids(self, filter: dict[str, Any]) -> list[str]:
        def _query() -> Any:
            query = self.client.table(VECTORS_TABLE).select("id").eq("index_name", self.name)
            for column, value in filter.items():
                query = query.eq(column, value)
            return query.execute()

        result = await asyncio.to_thread(_query)
        return [row["id"] for row in cast(list[dict[str, Any]], result.data)]

    async def delete_many(self, ids: list[str]) -> None:
        if not ids:
            return
        await asyncio.to_thread(
            lambda: self.client.table(VECTORS_TABLE)
            .delete()
            .eq("index_name", self.name)
            .in_("id", ids)
            .execute()
        )


async def get_or_create_index(
    client: Client,
    name: str | None = None,
    dimension: int | None = None,
    metric: str | None = None,
) -> SupabaseVectorIndex:
    """Return the named index, registering it on first use.

    Raises :class:`DimensionMismatchError` if the index already exists with
    another dimension.
    """
    name = name or settings.vector_index_name
    dimension = dimension or settings.embedding_dimensions
    metric = metric or settings.vector_metric

    result = await run_db(
        lambda: client.table(INDEXES_TABLE).select("*").eq("name", name).execute(),
        f"lookup vector index {name}",
    )
    rows = cast(list[dict[str, Any]], result.data)
    if rows:
        existing = int(rows[0]["dimension"])
        if existing != dimension:
            raise DimensionMismatchError(
                f"Index {name!r} has dimension {existing}, requested {dimension}"
            )
        return SupabaseVectorIndex(client, name, existing, rows[0].get("metric") or metric)

    logger.info("Creating vector index %s (dimension=%d, metric=%s)", name, dimension, metric)
    await run_db(
        lambda: client.table(INDEXES_TABLE)
        .insert({"name": name, "dimension": dimension, "metric": metric})
        .execute(),
        f"create vector index {name}",
    )
    return SupabaseVectorIndex(client, name, dimension, metric)


class VectorStore:
    """Tenant-scoped writes and similarity queries over a :class:`VectorIndex`.

    Writes fail hard; queries log provider errors and return ``[]``.
    """

    def __init__(
        self,
        index: VectorIndex,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        text_limit: int | None = None,
        min_score: float | None = None,
    ) -> None:
        self.index = index
        self.batch_size = batch_size or settings.upsert_batch_size
        self.batch_delay = settings.upsert_batch_delay_seconds if batch_delay is None else batch_delay
        self.text_limit = text_limit or settings.vector_text_limit
        self.min_score = settings.similarity_threshold if min_score is None else min_score

    def _check_dimension(self, vector: list[float]) -> None:
        if len(vector) != self.index.dimension:
            raise DimensionMismatchError(
                f"Vector has {len(vector)} dimensions, index {self.index.name!r} "
                f"expects {self.index.dimension}"
            )

    def _record(self, creator_id: str, video_id: str, item: EmbeddedChunk) -> VectorRecord:
        chunk = item.chunk
        self._check_dimension(item.vector)
        metadata: dict[str, Any] = {
            "creator_id": creator_id,
            "video_id": video_id,
            "chunk_index": chunk.index,
            "text": chunk.text[: self.text_limit],
            "content_type": chunk.content_type.value,
            "start_seconds": chunk.start_seconds,
            "end_seconds": chunk.end_seconds,
            "video_title": chunk.video_title,
            "video_url": chunk.video_url,
        }
        if chunk.sentiment is not None:
            metadata["emotional_intensity"] = chunk.sentiment.emotional_intensity
            metadata["is_highlight_candidate"] = chunk.sentiment.is_highlight_candidate
        return VectorRecord(
            id=chunk_record_id(creator_id, video_id, chunk.index),
            values=item.vector,
            metadata=metadata,
        )

    async def upsert(self, creator_id: str, video_id: str, chunks: list[EmbeddedChunk]) -> int:
        """Write *chunks* in batches; returns the number of records written."""
        records = [self._record(creator_id, video_id, c) for c in chunks]
        batches = [
            records[i : i + self.batch_size] for i in range(0, len(records), self.batch_size)
        ]
        for n, batch in enumerate(batches):
            if n > 0 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)
            await call_external(
                lambda batch=batch: self.index.upsert(batch),
                "vector_store",
                f"vector upsert {video_id} batch {n + 1}/{len(batches)}",
            )
        logger.info(
            "Upserted %d vectors for %s/%s in %d batches",
            len(records),
            creator_id,
            video_id,
            len(batches),
        )
        return len(records)

    async def query(self, creator_id: str, vector: list[float], top_k: int) -> list[VectorMatch]:
        """Top-*top_k* matches for one creator with score >= the threshold."""
        self._check_dimension(vector)
        try:
            matches = await call_external(
                lambda: self.index.query(vector, top_k, {"creator_id": creator_id}, self.min_score),
                "vector_store",
                f"vector query for {creator_id}",
            )
        except Exception:
            logger.exception("Vector query failed for creator %s", creator_id)
            return []
        kept = [m for m in matches if m.score >= self.min_score]
        logger.debug(
            "Vector query for %s: %d matches, %d above %.2f",
            creator_id,
            len(matches),
            len(kept),
            self.min_score,
        )
        return kept

    async def delete_by_video(self, creator_id: str, video_id: str) -> int:
        """Remove every vector for one video of one creator."""
        ids = await call_external(
            lambda: self.index.list_ids({"creator_id": creator_id, "video_id": video_id}),
            "vector_store",
            f"list vectors {creator_id}/{video_id}",
        )
        if not ids:
            logger.info("No vectors to delete for %s/%s", creator_id, video_id)
            return 0
        await call_external(
            lambda: self.index.delete_many(ids),
            "vector_store",
            f"delete vectors {creator_id}/{video_id}",
        )
        logger.info("Deleted %d vectors for %s/%s", len(ids), creator_id, video_id)
        return len(ids)
