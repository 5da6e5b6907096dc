"""Job persistence, the per-channel processing lock and processing records."""

from __future__ import annotations

import logging
from typing import Any, cast

from supabase import Client

from src.config import settings
from src.ingestion.storage import run_db
from src.jobs.kv_store import KeyValueStore
from src.jobs.models import IngestionJob, JobStatus, ProcessingRecord

logger = logging.getLogger(__name__)

RECORDS_TABLE = "channel_ai_processing"


class JobStore:
    """Jobs and channel locks in a :class:`KeyValueStore`, sharing one TTL.

    Keys: ``{prefix}job:{job_id}`` and ``{prefix}processing:{channel}:{team}``.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        prefix: str | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self.kv = kv
        self.prefix = settings.kv_prefix if prefix is None else prefix
        self.ttl_seconds = ttl_seconds or settings.job_ttl_seconds

    def job_key(self, job_id: str) -> str:
        return f"{self.prefix}job:{job_id}"

    def lock_key(self, channel_id: str, team_id: str) -> str:
        return f"{self.prefix}processing:{channel_id}:{team_id}"

    async def save(self, job: IngestionJob) -> None:
        await self.kv.set(self.job_key(job.job_id), job.model_dump_json(), self.ttl_seconds)

    async def get(self, job_id: str) -> IngestionJob | None:
        raw = await self.kv.get(self.job_key(job_id))
        if raw is None:
            return None
        return IngestionJob.model_validate_json(raw)

    async def acquire_channel_lock(self, channel_id: str, team_id: str, job_id: str) -> bool:
        """Set-if-absent; ``False`` means another job holds the channel."""
        acquired = await self.kv.set_if_absent(
            self.lock_key(channel_id, team_id), job_id, self.ttl_seconds
        )
        logger.debug(
            "Channel lock %s:%s for %s: %s",
            channel_id,
            team_id,
            job_id,
            "acquired" if acquired else "held",
        )
        return acquired

    async def lock_holder(self, channel_id: str, team_id: str) -> str | None:
        return await self.kv.get(self.lock_key(channel_id, team_id))

    async def release_channel_lock(
        self, channel_id: str, team_id: str, job_id: str | None = None
    ) -> bool:
        """Delete the lock; with *job_id*, only while that job still holds it.

        A job that outlived its lock's TTL must not free a newer job's lock.
        Returns whether the lock was deleted.
        """
        key = self.lock_key(channel_id, team_id)
        if job_id is not None:
            holder = await self.kv.get(key)
            if holder != job_id:
                logger.warning(
                    "Not releasing lock %s:%s for %s; held by %s",
                    channel_id,
                    team_id,
                    job_id,
                    holder,
                )
                return False
        await self.kv.delete(key)
        return True

    async def is_channel_processing(self, channel_id: str, team_id: str) -> bool:
        return await self.kv.exists(self.lock_key(channel_id, team_id))


class ProcessingRecordStore:
    """``channel_ai_processing`` rows keyed by ``(channel_id, team_id, job_id)``."""

    def __init__(self, client: Client) -> None:
        self.client = client

    async def previous_error_count(self, channel_id: str, team_id: str) -> int:
        result = await run_db(
            lambda: self.client.table(RECORDS_TABLE)
            .select("error_count")
            .eq("channel_id", channel_id)
            .eq("team_id", team_id)
            .order("processed_at", desc=True)
            .limit(1)
            .execute(),
            f"error count {channel_id}:{team_id}",
        )
        rows = cast(list[dict[str, Any]], result.data)
        return int(rows[0].get("error_count") or 0) if rows else 0

    async def upsert(self, record: ProcessingRecord) -> None:
        row = record.model_dump(mode="json")
        if record.status is JobStatus.FAILED:
            row["error_count"] = (
                await self.previous_error_count(record.channel_id, record.team_id) + 1
            )
        await run_db(
            lambda: self.client.table(RECORDS_TABLE)
            .upsert(row, on_conflict="channel_id,team_id,job_id")
            .execute(),
            f"processing record {record.job_id}",
        )
