"""Service wiring for the API, built once per process."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from src.ingestion.embeddings import Embedder
from src.ingestion.pipeline import IngestionPipeline
from src.ingestion.storage import ChunkDocumentStore, get_supabase_client
from src.ingestion.vector_store import VectorStore, get_or_create_index
from src.jobs.entitlements import SupabaseEntitlementChecker
from src.jobs.job_store import JobStore, ProcessingRecordStore
from src.jobs.kv_store import SupabaseKeyValueStore
from src.jobs.orchestrator import IngestionJobOrchestrator
from src.retrieval.search import HybridSearchEngine
from src.sources.youtube import YouTubeVideoSource


@dataclass
class Services:
    orchestrator: IngestionJobOrchestrator
    search_engine: HybridSearchEngine


_services: Services | None = None
_build_lock = asyncio.Lock()


async def build_services() -> Services:
    client = get_supabase_client()
    index = await get_or_create_index(client)
    embedder = Embedder()
    vector_store = VectorStore(index)
    documents = ChunkDocumentStore(client)
    orchestrator = IngestionJobOrchestrator(
        source=YouTubeVideoSource(),
        pipeline=IngestionPipeline(embedder, vector_store, documents),
        jobs=JobStore(SupabaseKeyValueStore(client)),
        entitlements=SupabaseEntitlementChecker(client),
        records=ProcessingRecordStore(client),
    )
    return Services(
        orchestrator=orchestrator,
        search_engine=HybridSearchEngine(embedder, vector_store, documents),
    )


async def get_services() -> Services:
    global _services
    async with _build_lock:
        if _services is None:
            _services = await build_services()
    return _services


async def get_orchestrator() -> IngestionJobOrchestrator:
    return (await get_services()).orchestrator


async def get_search_engine() -> HybridSearchEngine:
    return (await get_services()).search_engine
