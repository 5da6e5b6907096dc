"""Shared in-memory fakes for the collaborator interfaces (no network)."""

from __future__ import annotations

import math
import re
from typing import Any

import pytest

from src.ingestion.models import Chunk, TranscriptData
from src.ingestion.pipeline import IngestionPipeline
from src.ingestion.storage import chunk_row
from src.ingestion.vector_store import VectorMatch, VectorRecord, VectorStore
from src.jobs.entitlements import EntitlementStatus
from src.jobs.job_store import JobStore
from src.jobs.kv_store import InMemoryKeyValueStore
from src.sources.models import ChannelInfo, ChannelVideos, VideoInfo

DIMENSION = 256

_WORD_RE = re.compile(r"[a-z]+")


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class FakeEmbedder:
    """Hashes words into a small bag-of-words vector."""

    def __init__(self, dimension: int = DIMENSION) -> None:
        self.dimension = dimension
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        vector = [0.0] * self.dimension
        for word in _WORD_RE.findall(text.lower()):
            vector[sum(map(ord, word)) % self.dimension] += 1.0
        if not any(vector):
            vector[0] = 1.0
        return vector

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed(t) for t in texts]


class FakeVectorIndex:
    def __init__(self, name: str = "test-index", dimension: int = DIMENSION) -> None:
        self.name = name
        self.dimension = dimension
        self.records: dict[str, VectorRecord] = {}
        self.upsert_batches: list[int] = []
        self.fail_queries = False

    async def upsert(self, records: list[VectorRecord]) -> None:
        self.upsert_batches.append(len(records))
        for record in records:
            self.records[record.id] = record

    async def query(
        self, vector: list[float], top_k: int, filter: dict[str, Any], min_score: float
    ) -> list[VectorMatch]:
        if self.fail_queries:
            raise ValueError("index unavailable")
        matches = [
            VectorMatch(
                id=r.id,
                score=_cosine(vector, r.values),
                text=r.metadata.get("text", ""),
                metadata=r.metadata,
            )
            for r in self.records.values()
            if r.metadata.get("creator_id") == filter.get("creator_id")
        ]
        matches = [m for m in matches if m.score >= min_score]
        return sorted(matches, key=lambda m: m.score, reverse=True)[:top_k]

    async def list_ids(self, filter: dict[str, Any]) -> list[str]:
        return [
            r.id
            for r in self.records.values()
            if all(r.metadata.get(k) == v for k, v in filter.items())
        ]

    async def delete_many(self, ids: list[str]) -> None:
        for record_id in ids:
            self.records.pop(record_id, None)


class FakeDocumentStore:
    def __init__(self) -> None:
        self.rows: dict[tuple[str, str, int], dict[str, Any]] = {}

    async def upsert_chunks(self, creator_id: str, chunks: list[Chunk]) -> int:
        for chunk in chunks:
            self.rows[(creator_id, chunk.source_video_id, chunk.index)] = chunk_row(creator_id, chunk)
        return len(chunks)

    async def find_chunks(
        self, creator_id: str, video_id: str | None = None, content_type: Any = None
    ) -> list[dict[str, Any]]:
        rows = [r for (c, _, _), r in sorted(self.rows.items()) if c == creator_id]
        if video_id is not None:
            rows = [r for r in rows if r["video_id"] == video_id]
        if content_type is not None:
            rows = [r for r in rows if r["content_type"] == getattr(content_type, "value", content_type)]
        return rows

    async def find_by_texts(self, creator_id: str, texts: list[str]) -> list[dict[str, Any]]:
        return [r for r in await self.find_chunks(creator_id) if r["text"] in texts]

    async def delete_video_chunks(self, creator_id: str, video_id: str) -> None:
        for key in [k for k in self.rows if k[0] == creator_id and k[1] == video_id]:
            del self.rows[key]

    async def keyword_search(
        self, creator_id: str, keywords: list[str], limit: int
    ) -> list[dict[str, Any]]:
        hits = []
        for row in await self.find_chunks(creator_id):
            found = sum(1 for k in keywords if k in row["text"].lower())
            if found:
                hits.append({**row, "rank": found / len(keywords)})
        return sorted(hits, key=lambda r: r["rank"], reverse=True)[:limit]


class FakeVideoSource:
    def __init__(
        self,
        channel: ChannelInfo,
        videos: list[VideoInfo],
        transcripts: dict[str, TranscriptData | Exception | None] | None = None,
    ) -> None:
        self.channel = channel
        self.videos = videos
        self.transcripts = transcripts or {}
        self.transcript_requests: list[str] = []

    async def list_channel_videos(self, channel_ref: str, max_videos: int) -> ChannelVideos:
        return ChannelVideos(channel=self.channel, videos=self.videos[:max_videos])

    async def get_channel_info(self, channel_ref: str) -> ChannelInfo:
        return self.channel

    async def get_transcript(self, video_id: str) -> TranscriptData | None:
        self.transcript_requests.append(video_id)
        value = self.transcripts.get(video_id)
        if isinstance(value, Exception):
            raise value
        return value


class FakeEntitlements:
    """Returns queued statuses in order, then keeps returning the last one."""

    def __init__(self, *statuses: EntitlementStatus) -> None:
        self.statuses = list(statuses) or [EntitlementStatus(True)]
        self.calls = 0

    async def is_entitled(self, team_id: str, channel_id: str) -> EntitlementStatus:
        status = self.statuses[min(self.calls, len(self.statuses) - 1)]
        self.calls += 1
        return status


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def vector_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def vector_store(vector_index: FakeVectorIndex) -> VectorStore:
    return VectorStore(vector_index, batch_size=100, batch_delay=0, text_limit=5000, min_score=0.25)


@pytest.fixture
def documents() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def pipeline(
    embedder: FakeEmbedder, vector_store: VectorStore, documents: FakeDocumentStore
) -> IngestionPipeline:
    return IngestionPipeline(embedder, vector_store, documents)  # type: ignore[arg-type]


@pytest.fixture
def job_store() -> JobStore:
    return JobStore(InMemoryKeyValueStore(), prefix="test:", ttl_seconds=60)


@pytest.fixture
def make_source():
    return FakeVideoSource


@pytest.fixture
def make_entitlements():
    return FakeEntitlements


@pytest.fixture
def make_index():
    return FakeVectorIndex
