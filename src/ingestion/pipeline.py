"""End-to-end ingestion pipeline: clean -> chunk -> align -> tag -> embed -> store."""

from __future__ import annotations

import asyncio
import logging

from src.config import settings
from src.ingestion.chunking import build_chunks
from src.ingestion.cleaning import prepare_transcript_text
from src.ingestion.embeddings import Embedder
from src.ingestion.models import (
    CHANNEL_CONTEXT_VIDEO_ID,
    Chunk,
    ContentType,
    EmbeddedChunk,
    TranscriptData,
)
from src.ingestion.parsers import extract_timestamp_segments
from src.ingestion.sentiment import tag_sentiment
from src.ingestion.storage import ChunkDocumentStore
from src.ingestion.vector_store import VectorStore
from src.sources.models import ChannelInfo, VideoInfo

logger = logging.getLogger(__name__)

# Shorter descriptions carry too little signal to be worth retrieving.
MIN_DESCRIPTION_CHARS = 50


def is_usable_description(text: str | None) -> bool:
    return bool(text) and len(text or "") > MIN_DESCRIPTION_CHARS


def prepare_chunks(
    transcript: TranscriptData,
    video: VideoInfo,
    max_tokens: int | None = None,
) -> list[Chunk]:
    """Clean a fetched transcript and turn it into aligned, tagged chunks.

    When the source gave no timed segments, inline ``M:SS`` markers in the
    raw text are used instead.
    """
    segments = transcript.segments or extract_timestamp_segments(transcript.text)
    cleaned = prepare_transcript_text(transcript.text)
    return build_chunks(
        cleaned,
        segments,
        video.video_id,
        max_tokens=max_tokens or settings.chunk_max_tokens,
        video_title=video.title,
        video_url=video.url,
        thumbnail_url=video.thumbnail_url,
    )


def build_channel_context_chunks(
    channel: ChannelInfo | None,
    custom_description: str | None = None,
) -> list[Chunk]:
    """Synthetic chunks from channel, custom and background descriptions."""
    texts: list[tuple[str, ContentType]] = []
    if channel is not None and is_usable_description(channel.description):
        texts.append((f"Channel Description: {channel.description}", ContentType.CHANNEL_DESCRIPTION))
    if is_usable_description(custom_description):
        texts.append((f"About this channel: {custom_description}", ContentType.CUSTOM_DESCRIPTION))
    if channel is not None and is_usable_description(channel.background_summary):
        texts.append(
            (f"Background information: {channel.background_summary}", ContentType.BACKGROUND_SUMMARY)
        )
    if channel is not None and channel.background_topics:
        texts.append(
            (f"Related topics: {', '.join(channel.background_topics)}", ContentType.BACKGROUND_TOPICS)
        )

    return [
        Chunk(
            text=text,
            index=i,
            source_video_id=CHANNEL_CONTEXT_VIDEO_ID,
            sentiment=tag_sentiment(text),
            content_type=content_type,
            video_title=channel.title if channel else None,
        )
        for i, (text, content_type) in enumerate(texts)
    ]


class IngestionPipeline:
    """Embeds chunks and writes them to the vector and document stores."""

    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        documents: ChunkDocumentStore,
    ) -> None:
        self.embedder = embedder
        self.vector_store = vector_store
        self.documents = documents

    async def _embed(self, creator_id: str, chunks: list[Chunk]) -> list[EmbeddedChunk]:
        vectors = await self.embedder.embed_many([c.text for c in chunks])
        return [
            EmbeddedChunk(creator_id=creator_id, chunk=chunk, vector=vector)
            for chunk, vector in zip(chunks, vectors, strict=True)
        ]

    async def store_chunks(self, creator_id: str, video_id: str, chunks: list[Chunk]) -> int:
        embedded = await self._embed(creator_id, chunks)
        await self.vector_store.upsert(creator_id, video_id, embedded)
        await self.documents.upsert_chunks(creator_id, chunks)
        return len(chunks)

    async def index_video(
        self,
        creator_id: str,
        video: VideoInfo,
        transcript: TranscriptData,
    ) -> int:
        """Process one video's transcript. Returns the number of chunks stored.

        Cleaning and chunking are CPU-bound and run in a worker thread.
        """
        chunks = await asyncio.to_thread(prepare_chunks, transcript, video)
        if not chunks:
            logger.warning("Video %s produced no chunks", video.video_id)
            return 0
        matched = sum(1 for c in chunks if c.matched)
        logger.info(
            "Video %s: %d chunks (%d aligned to segments)", video.video_id, len(chunks), matched
        )
        return await self.store_chunks(creator_id, video.video_id, chunks)

    async def store_channel_context(
        self,
        creator_id: str,
        channel: ChannelInfo | None,
        custom_description: str | None = None,
    ) -> int:
        """Replace the creator's channel-context chunks.

        Old context is deleted from both stores before the new set is written.
        """
        await self.vector_store.delete_by_video(creator_id, CHANNEL_CONTEXT_VIDEO_ID)
        await self.documents.delete_video_chunks(creator_id, CHANNEL_CONTEXT_VIDEO_ID)

        chunks = build_channel_context_chunks(channel, custom_description)
        if not chunks:
            logger.warning("No channel context to store for creator %s", creator_id)
            return 0
        stored = await self.store_chunks(creator_id, CHANNEL_CONTEXT_VIDEO_ID, chunks)
        logger.info(
            "Stored %d channel context chunks for %s: %s",
            stored,
            creator_id,
            [c.content_type.value for c in chunks],
        )
        return stored
