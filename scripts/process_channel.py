"""Ingest one YouTube channel from the command line, without the API server.

Jobs and locks are kept in memory and every team is treated as entitled,
so only Supabase, OpenAI and YouTube credentials are needed.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.ingestion.embeddings import Embedder
from src.ingestion.pipeline import IngestionPipeline
from src.ingestion.storage import ChunkDocumentStore, get_supabase_client
from src.ingestion.vector_store import VectorStore, get_or_create_index
from src.jobs.entitlements import AllowAllEntitlementChecker
from src.jobs.job_store import JobStore
from src.jobs.kv_store import InMemoryKeyValueStore
from src.jobs.models import JobStatus, ProcessingRequest
from src.jobs.orchestrator import IngestionJobOrchestrator
from src.logging_config import setup_logging
from src.sources.youtube import YouTubeVideoSource


async def process_channel(args: argparse.Namespace) -> int:
    client = get_supabase_client()
    index = await get_or_create_index(client)
    embedder = Embedder()
    pipeline = IngestionPipeline(embedder, VectorStore(index), ChunkDocumentStore(client))
    orchestrator = IngestionJobOrchestrator(
        source=YouTubeVideoSource(),
        pipeline=pipeline,
        jobs=JobStore(InMemoryKeyValueStore()),
        entitlements=AllowAllEntitlementChecker(),
    )

    request = ProcessingRequest(
        creator_id=args.creator_id,
        channel_id=args.channel_id or args.channel,
        team_id="local",
        channel_url=args.channel,
        max_videos=args.max_videos,
        custom_description=args.description,
    )
    job = await orchestrator.create_job(request)
    print(f"Started {job.job_id} for {args.channel}")
    await orchestrator.wait_for_all()

    final = await orchestrator.get_job(job.job_id)
    if final is None:
        print("Job record expired before completion")
        return 1
    if final.status is JobStatus.COMPLETED and final.result:
        print(
            f"Completed: {final.result.processed_videos} videos, "
            f"{final.result.total_chunks} chunks, {final.result.failed_videos} failed"
        )
        return 0
    print(f"Failed: {final.error}")
    return 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Ingest a YouTube channel's transcripts")
    parser.add_argument("channel", help="Channel URL, @handle or UC... id")
    parser.add_argument("--creator-id", required=True, help="Tenant id to store chunks under")
    parser.add_argument("--channel-id", default=None, help="Lock key (defaults to channel)")
    parser.add_argument("--max-videos", type=int, default=20)
    parser.add_argument("--description", default=None, help="Custom channel description")
    args = parser.parse_args()

    setup_logging()
    sys.exit(asyncio.run(process_channel(args)))


if __name__ == "__main__":
    main()
