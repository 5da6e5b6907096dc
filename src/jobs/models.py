"""Ingestion job records, persisted as JSON in the key-value store."""

from __future__ import annotations

import secrets
import time
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    """``job_<epoch ms>_<random>``, sortable by creation time."""
    return f"job_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class JobProgress(BaseModel):
    current: int = 0
    total: int = 0


class JobResult(BaseModel):
    processed_videos: int = 0
    total_chunks: int = 0
    failed_videos: int = 0


class ProcessingRequest(BaseModel):
    """What to ingest and on whose behalf."""

    creator_id: str
    channel_id: str
    team_id: str
    channel_url: str
    max_videos: int = Field(default=20, ge=1, le=50)
    custom_description: str | None = Field(default=None, max_length=1000)


class IngestionJob(BaseModel):
    job_id: str
    creator_id: str
    channel_id: str
    team_id: str
    channel_url: str
    chat_url: str | None = None
    status: JobStatus = JobStatus.QUEUED
    progress: JobProgress = Field(default_factory=JobProgress)
    result: JobResult | None = None
    error: str | None = None
    can_reprocess: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


class ProcessingRecord(BaseModel):
    """Durable per-channel processing status, one row per job."""

    channel_id: str
    team_id: str
    job_id: str
    creator_id: str
    status: JobStatus
    channel_url: str
    chat_url: str | None = None
    videos_processed: int = 0
    total_chunks: int = 0
    failed_videos: int = 0
    has_channel_context: bool = False
    custom_description_used: bool = False
    error_count: int = 0
    last_error: str | None = None
    can_reprocess: bool = False
    processed_at: datetime | None = None
