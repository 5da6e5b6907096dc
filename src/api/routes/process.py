"""Process endpoints: start a channel ingestion job and poll its status."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from src.api.dependencies import get_orchestrator
from src.api.models import JobStatusResponse, ProcessCreatorRequest, ProcessCreatorResponse
from src.errors import DuplicateJobError, EntitlementError
from src.jobs.models import ProcessingRequest
from src.jobs.orchestrator import IngestionJobOrchestrator

router = APIRouter()

Orchestrator = Annotated[IngestionJobOrchestrator, Depends(get_orchestrator)]


@router.post("/api/process/creator", response_model=ProcessCreatorResponse, status_code=202)
async def process_creator(
    request: ProcessCreatorRequest,
    orchestrator: Orchestrator,
) -> ProcessCreatorResponse:
    """Queue ingestion of a creator's channel; returns before any work is done."""
    try:
        job = await orchestrator.create_job(ProcessingRequest(**request.model_dump()))
    except EntitlementError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except DuplicateJobError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "existing_job_id": exc.existing_job_id},
        ) from exc

    return ProcessCreatorResponse(job_id=job.job_id, status=job.status, chat_url=job.chat_url)


@router.get("/api/process/status/{job_id}", response_model=JobStatusResponse)
async def job_status(job_id: str, orchestrator: Orchestrator) -> JobStatusResponse:
    job = await orchestrator.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobStatusResponse(**job.model_dump())
