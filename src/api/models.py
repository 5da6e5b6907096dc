"""Pydantic request/response schemas for the Creator Transcript API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from src.jobs.models import JobProgress, JobResult, JobStatus


class ProcessCreatorRequest(BaseModel):
    """Request body for the /api/process/creator endpoint."""

    creator_id: str = Field(min_length=1)
    channel_id: str = Field(min_length=1)
    team_id: str = Field(min_length=1)
    channel_url: str = Field(min_length=1)
    max_videos: int = Field(default=20, ge=1, le=50)
    custom_description: str | None = Field(default=None, max_length=1000)


class ProcessCreatorResponse(BaseModel):
    job_id: str
    status: JobStatus
    chat_url: str | None = None
    message: str = "Processing job created successfully"


class JobStatusResponse(BaseModel):
    """Response body for the /api/process/status/{job_id} endpoint."""

    job_id: str
    creator_id: str
    channel_id: str
    status: JobStatus
    progress: JobProgress
    result: JobResult | None = None
    error: str | None = None
    can_reprocess: bool = False
    chat_url: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class SearchRequest(BaseModel):
    """Request body for the /api/search endpoint."""

    creator_id: str = Field(min_length=1)
    query: str = Field(min_length=1)
    limit: int = Field(default=5, ge=1, le=20)


class SearchHit(BaseModel):
    text: str
    score: float
    source: str
    metadata: dict[str, Any] = {}


class SearchResponse(BaseModel):
    results: list[SearchHit]
    total_results: int
    semantic_results: int
    keyword_results: int
    search_time_ms: float
    processed_query: str
    keywords: list[str] = []
