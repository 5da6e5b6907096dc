"""Background ingestion jobs: one per channel, with progress, timeout and a lock.

A job moves ``queued -> processing -> completed | failed``. The triggering
call returns as soon as the job is queued; the work runs as an ``asyncio``
task owned by the orchestrator. The per-channel lock is taken before the
job is queued and released on every exit path (or expires with its TTL if
the worker dies).
"""

from __future__ import annotations

import asyncio
import logging

from src.config import settings
from src.errors import (
    DuplicateJobError,
    EligibilityError,
    EntitlementError,
    JobTimeoutError,
    RagPipelineError,
)
from src.ingestion.pipeline import IngestionPipeline, is_usable_description
from src.jobs.entitlements import EntitlementChecker
from src.jobs.job_store import JobStore, ProcessingRecordStore
from src.jobs.models import (
    IngestionJob,
    JobResult,
    JobStatus,
    ProcessingRecord,
    ProcessingRequest,
    new_job_id,
    utcnow,
)
from src.sources.models import ChannelInfo, VideoInfo, VideoSource

logger = logging.getLogger(__name__)

NO_CONTENT_MESSAGE = (
    "Processing completed but no content available. None of your videos produced "
    "transcripts and no usable channel description was found. Enable captions on "
    "your videos, add a channel description on YouTube, or provide a custom description."
)


def timeout_message(seconds: float) -> str:
    return (
        "Processing timeout: Job exceeded maximum time limit of "
        f"{int(seconds // 60)} minutes"
    )


def eligibility_error(
    videos: list[VideoInfo],
    has_description: bool,
    min_duration: int,
    max_duration: int,
) -> str | None:
    """Diagnostic for a channel with nothing to ingest, or ``None`` if eligible.

    A channel is eligible when any video has captions and an in-band
    duration, or when a usable description exists.
    """
    band = f"{min_duration}-{max_duration}"

    def in_band(v: VideoInfo) -> bool:
        return min_duration <= v.duration_minutes <= max_duration

    with_captions = sum(1 for v in videos if v.has_captions)
    valid_duration = sum(1 for v in videos if in_band(v))
    eligible = sum(1 for v in videos if v.has_captions and in_band(v))

    if eligible > 0 or has_description:
        return None
    if with_captions == 0 and valid_duration == 0:
        return (
            f"Channel not eligible: No videos with captions AND no videos between {band} "
            "minutes in length. Videos must have captions enabled and be "
            f"{band} minutes long, or provide a custom description."
        )
    if with_captions == 0:
        return (
            f"Channel not eligible: Found {valid_duration} video(s) with valid duration "
            f"({band} min), but NONE have captions. Please enable captions or provide "
            "a custom description."
        )
    if valid_duration == 0:
        return (
            f"Channel not eligible: Found {with_captions} video(s) with captions, but NONE "
            f"are between {band} minutes in length. Please ensure you have videos in this "
            "duration range or provide a custom description."
        )
    return (
        f"Channel not eligible: Found {with_captions} video(s) with captions and "
        f"{valid_duration} video(s) with valid duration, but NO overlap. Videos need BOTH "
        f"captions AND to be {band} minutes long. Please provide a custom description."
    )


def has_usable_description(channel: ChannelInfo | None, custom_description: str | None) -> bool:
    if is_usable_description(custom_description):
        return True
    if channel is None:
        return False
    return (
        is_usable_description(channel.description)
        or is_usable_description(channel.background_summary)
    )


class IngestionJobOrchestrator:
    def __init__(
        self,
        source: VideoSource,
        pipeline: IngestionPipeline,
        jobs: JobStore,
        entitlements: EntitlementChecker,
        records: ProcessingRecordStore | None = None,
        timeout_seconds: float | None = None,
        chat_base_url: str | None = None,
    ) -> None:
        self.source = source
        self.pipeline = pipeline
        self.jobs = jobs
        self.entitlements = entitlements
        self.records = records
        self.timeout_seconds = timeout_seconds or settings.processing_timeout_seconds
        self.chat_base_url = chat_base_url or settings.chat_base_url
        self.min_duration = settings.min_duration_minutes
        self.max_duration = settings.max_duration_minutes
        self._tasks: set[asyncio.Task[IngestionJob]] = set()

    async def get_job(self, job_id: str) -> IngestionJob | None:
        return await self.jobs.get(job_id)

    async def create_job(self, request: ProcessingRequest) -> IngestionJob:
        """Queue an ingestion job and start it in the background.

        Raises :class:`EntitlementError` if the team may not ingest, and
        :class:`DuplicateJobError` if the channel is already being processed.
        """
        status = await self.entitlements.is_entitled(request.team_id, request.channel_id)
        if not status.entitled:
            raise EntitlementError(status.reason or "Team is not entitled to Channel AI.")

        job = IngestionJob(
            job_id=new_job_id(),
            creator_id=request.creator_id,
            channel_id=request.channel_id,
            team_id=request.team_id,
            channel_url=request.channel_url,
            chat_url=f"{self.chat_base_url}/c/{request.channel_id}",
        )
        if not await self.jobs.acquire_channel_lock(request.channel_id, request.team_id, job.job_id):
            existing = await self.jobs.lock_holder(request.channel_id, request.team_id)
            logger.warning(
                "Rejected duplicate job for channel %s (team %s); %s is running",
                request.channel_id,
                request.team_id,
                existing,
            )
            raise DuplicateJobError(request.channel_id, request.team_id, existing)

        try:
            await self.jobs.save(job)
        except Exception:
            await self.jobs.release_channel_lock(request.channel_id, request.team_id, job.job_id)
            raise

        task = asyncio.create_task(self.run_job(job, request), name=f"ingest-{job.job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Queued job %s for channel %s", job.job_id, request.channel_id)
        return job

    async def run_job(self, job: IngestionJob, request: ProcessingRequest) -> IngestionJob:
        """Run *job* to a terminal state; never raises for job-level failures."""
        try:
            job.status = JobStatus.PROCESSING
            job.started_at = utcnow()
            await self.jobs.save(job)
            await self._write_record(job, request)
            result, has_context = await self._process_with_timeout(job, request)
        except JobTimeoutError as exc:
            logger.error("Job %s timed out after %.0fs", job.job_id, self.timeout_seconds)
            await self._fail(job, request, str(exc))
        except Exception as exc:
            logger.exception("Job %s failed", job.job_id)
            await self._fail(job, request, str(exc) or type(exc).__name__)
        else:
            job.status = JobStatus.COMPLETED
            job.result = result
            job.can_reprocess = True
            job.completed_at = utcnow()
            await self._save_quietly(job)
            await self._write_record(job, request, has_context=has_context)
            logger.info(
                "Job %s completed: %d videos, %d chunks, %d failed",
                job.job_id,
                result.processed_videos,
                result.total_chunks,
                result.failed_videos,
            )
        finally:
            try:
                await self.jobs.release_channel_lock(
                    request.channel_id, request.team_id, job.job_id
                )
            except Exception:
                logger.exception(
                    "Could not release lock for channel %s; it expires with its TTL",
                    request.channel_id,
                )
        return job

    async def _process_with_timeout(
        self, job: IngestionJob, request: ProcessingRequest
    ) -> tuple[JobResult, bool]:
        try:
            return await asyncio.wait_for(
                self._process(job, request), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise JobTimeoutError(timeout_message(self.timeout_seconds)) from exc

    async def _process(
        self, job: IngestionJob, request: ProcessingRequest
    ) -> tuple[JobResult, bool]:
        listing = await self.source.list_channel_videos(request.channel_url, request.max_videos)
        videos = listing.videos
        channel = await self._channel_info(request.channel_url, listing.channel)

        job.progress.total = len(videos)
        await self.jobs.save(job)

        message = eligibility_error(
            videos,
            has_usable_description(channel, request.custom_description),
            self.min_duration,
            self.max_duration,
        )
        if message:
            raise EligibilityError(message)

        result = JobResult()
        for i, video in enumerate(videos):
            try:
                stored = await self._ingest_video(request.creator_id, video)
            except Exception:
                logger.exception("Job %s: failed to process video %s", job.job_id, video.video_id)
                stored = 0
            if stored:
                result.processed_videos += 1
                result.total_chunks += stored
            else:
                result.failed_videos += 1
            job.progress.current = i + 1
            await self.jobs.save(job)

        status = await self.entitlements.is_entitled(request.team_id, request.channel_id)
        if not status.entitled:
            raise EntitlementError(f"{status.reason or 'Entitlement lapsed.'} Processing aborted.")

        try:
            context_chunks = await self.pipeline.store_channel_context(
                request.creator_id, channel, request.custom_description
            )
        except Exception:
            logger.exception("Job %s: failed to store channel context", job.job_id)
            context_chunks = 0

        if result.processed_videos == 0 and context_chunks == 0:
            raise RagPipelineError(NO_CONTENT_MESSAGE)
        return result, context_chunks > 0

    async def _channel_info(self, channel_ref: str, fallback: ChannelInfo) -> ChannelInfo:
        try:
            return await self.source.get_channel_info(channel_ref)
        except Exception:
            logger.warning("Channel info unavailable for %s, using listing data", channel_ref)
            return fallback

    async def _ingest_video(self, creator_id: str, video: VideoInfo) -> int:
        """Chunks stored for *video*; 0 when it was skipped."""
        if not self.min_duration <= video.duration_minutes <= self.max_duration:
            logger.info(
                "Skipping %s: %d min outside %d-%d",
                video.video_id,
                video.duration_minutes,
                self.min_duration,
                self.max_duration,
            )
            return 0
        transcript = await self.source.get_transcript(video.video_id)
        if transcript is None or not transcript.text.strip():
            logger.warning("No transcript for %s", video.video_id)
            return 0
        return await self.pipeline.index_video(creator_id, video, transcript)

    async def _fail(self, job: IngestionJob, request: ProcessingRequest, message: str) -> None:
        job.status = JobStatus.FAILED
        job.error = message
        job.can_reprocess = True
        job.completed_at = utcnow()
        await self._save_quietly(job)
        await self._write_record(job, request)

    async def _save_quietly(self, job: IngestionJob) -> None:
        try:
            await self.jobs.save(job)
        except Exception:
            logger.exception("Could not persist job %s", job.job_id)

    async def _write_record(
        self,
        job: IngestionJob,
        request: ProcessingRequest,
        has_context: bool = False,
    ) -> None:
        if self.records is None:
            return
        result = job.result or JobResult()
        record = ProcessingRecord(
            channel_id=job.channel_id,
            team_id=job.team_id,
            job_id=job.job_id,
            creator_id=job.creator_id,
            status=job.status,
            channel_url=job.channel_url,
            chat_url=job.chat_url,
            videos_processed=result.processed_videos,
            total_chunks=result.total_chunks,
            failed_videos=result.failed_videos,
            has_channel_context=has_context,
            custom_description_used=bool(request.custom_description),
            last_error=job.error,
            can_reprocess=job.can_reprocess,
            processed_at=utcnow(),
        )
        try:
            await self.records.upsert(record)
        except Exception:
            logger.exception("Failed to write processing record for job %s", job.job_id)

    async def wait_for_all(self) -> None:
        """Wait for running jobs; used on shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
