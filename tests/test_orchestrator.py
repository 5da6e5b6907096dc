"""Tests for the background ingestion job orchestrator."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeVideoSource
from src.errors import DuplicateJobError, EntitlementError, JobTimeoutError
from src.ingestion.models import CHANNEL_CONTEXT_VIDEO_ID, TranscriptData
from src.jobs.entitlements import EntitlementStatus
from src.jobs.job_store import JobStore
from src.jobs.kv_store import InMemoryKeyValueStore
from src.jobs.models import IngestionJob, JobStatus, ProcessingRecord, ProcessingRequest
from src.jobs.orchestrator import (
    NO_CONTENT_MESSAGE,
    IngestionJobOrchestrator,
    eligibility_error,
    timeout_message,
)
from src.sources.models import ChannelInfo, VideoInfo

DESCRIPTION = "Weekly camera reviews, lens comparisons and studio lighting tutorials for creators."

TRANSCRIPT = TranscriptData(
    text=(
        "Welcome back to the channel everyone, today we are looking at budget cameras. "
        "The first camera has a great sensor and surprisingly good autofocus for the price. "
        "Battery life is the weak spot, so bring a spare if you shoot all day long. "
        "The second camera is heavier but the lens selection makes up for that easily."
    )
)


def _video(video_id: str, minutes: int = 10, captions: bool = True) -> VideoInfo:
    return VideoInfo(
        video_id=video_id,
        title=f"Video {video_id}",
        url=f"https://www.youtube.com/watch?v={video_id}",
        duration_minutes=minutes,
        has_captions=captions,
    )


def _channel(description: str = DESCRIPTION) -> ChannelInfo:
    return ChannelInfo(channel_id="UC1", title="Gear Talk", description=description)


def _request(**overrides) -> ProcessingRequest:
    values = {
        "creator_id": "creator1",
        "channel_id": "UC1",
        "team_id": "team1",
        "channel_url": "https://www.youtube.com/@geartalk",
        "max_videos": 10,
    }
    values.update(overrides)
    return ProcessingRequest(**values)


class FakeRecords:
    def __init__(self, fail: bool = False) -> None:
        self.records: list[ProcessingRecord] = []
        self.fail = fail

    async def upsert(self, record: ProcessingRecord) -> None:
        if self.fail:
            raise ConnectionError("database unavailable")
        self.records.append(record)


class FlakyJobStore(JobStore):
    """Fails the Nth save, then behaves normally."""

    def __init__(self, fail_on: int) -> None:
        super().__init__(InMemoryKeyValueStore(), prefix="test:", ttl_seconds=60)
        self.fail_on = fail_on
        self.saves = 0

    async def save(self, job: IngestionJob) -> None:
        self.saves += 1
        if self.saves == self.fail_on:
            raise ConnectionError("kv store unavailable")
        await super().save(job)


@pytest.fixture
def records() -> FakeRecords:
    return FakeRecords()


@pytest.fixture
def make_orchestrator(pipeline, job_store, make_entitlements, records):
    def _make(source, entitlements=None, **kwargs) -> IngestionJobOrchestrator:
        return IngestionJobOrchestrator(
            source=source,
            pipeline=pipeline,
            jobs=kwargs.pop("jobs", job_store),
            entitlements=entitlements or make_entitlements(),
            records=kwargs.pop("records", records),
            chat_base_url="https://chat.example.com",
            **kwargs,
        )

    return _make


async def _run(orchestrator: IngestionJobOrchestrator, request: ProcessingRequest):
    job = await orchestrator.create_job(request)
    await orchestrator.wait_for_all()
    return await orchestrator.get_job(job.job_id)


class TestMessages:
    def test_timeout_message(self) -> None:
        assert timeout_message(1800) == (
            "Processing timeout: Job exceeded maximum time limit of 30 minutes"
        )

    def test_eligible_when_any_video_qualifies(self) -> None:
        assert eligibility_error([_video("a"), _video("b", captions=False)], False, 2, 25) is None

    def test_eligible_with_description_only(self) -> None:
        assert eligibility_error([], True, 2, 25) is None

    @pytest.mark.parametrize(
        ("videos", "expected"),
        [
            ([_video("a", 40, captions=False)], "No videos with captions AND no videos"),
            ([_video("a", 10, captions=False)], "NONE have captions"),
            ([_video("a", 40)], "NONE are between"),
            ([_video("a", 40), _video("b", 10, captions=False)], "NO overlap"),
        ],
    )
    def test_ineligible_messages(self, videos, expected) -> None:
        message = eligibility_error(videos, False, 2, 25)
        assert message is not None
        assert expected in message
        assert "captions" in message
        assert "2-25" in message


class TestCreateJob:
    @pytest.mark.asyncio
    async def test_returns_queued_job(self, make_orchestrator, make_source) -> None:
        orchestrator = make_orchestrator(make_source(_channel(), []))
        job = await orchestrator.create_job(_request())
        assert job.job_id.startswith("job_")
        assert job.chat_url == "https://chat.example.com/c/UC1"
        await orchestrator.wait_for_all()

    @pytest.mark.asyncio
    async def test_not_entitled(self, make_orchestrator, make_source, make_entitlements, job_store) -> None:
        orchestrator = make_orchestrator(
            make_source(_channel(), []),
            make_entitlements(EntitlementStatus(False, "Channel AI is not enabled for this team.")),
        )
        with pytest.raises(EntitlementError, match="not enabled"):
            await orchestrator.create_job(_request())
        assert not await job_store.is_channel_processing("UC1", "team1")

    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, make_orchestrator, make_source, job_store) -> None:
        orchestrator = make_orchestrator(make_source(_channel(), []))
        await job_store.acquire_channel_lock("UC1", "team1", "job_running")

        with pytest.raises(DuplicateJobError) as excinfo:
            await orchestrator.create_job(_request())

        assert excinfo.value.existing_job_id == "job_running"
        assert "already being processed" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_concurrent_requests_single_job(self, make_orchestrator, make_source) -> None:
        orchestrator = make_orchestrator(make_source(_channel(), [_video("v1")], {"v1": TRANSCRIPT}))

        outcomes = await asyncio.gather(
            orchestrator.create_job(_request()),
            orchestrator.create_job(_request()),
            return_exceptions=True,
        )
        await orchestrator.wait_for_all()

        errors = [o for o in outcomes if isinstance(o, DuplicateJobError)]
        jobs = [o for o in outcomes if not isinstance(o, BaseException)]
        assert len(errors) == 1
        assert len(jobs) == 1
        assert errors[0].existing_job_id == jobs[0].job_id

    @pytest.mark.asyncio
    async def test_other_team_not_blocked(self, make_orchestrator, make_source, job_store) -> None:
        orchestrator = make_orchestrator(make_source(_channel(), []))
        await job_store.acquire_channel_lock("UC1", "team1", "job_running")
        job = await orchestrator.create_job(_request(team_id="team2"))
        await orchestrator.wait_for_all()
        assert job.team_id == "team2"


class TestRunJob:
    @pytest.mark.asyncio
    async def test_completes_with_counts(
        self, make_orchestrator, make_source, job_store, vector_index, records
    ) -> None:
        source = make_source(
            _channel(), [_video("v1"), _video("v2")], {"v1": TRANSCRIPT, "v2": TRANSCRIPT}
        )
        orchestrator = make_orchestrator(source)

        job = await _run(orchestrator, _request())

        assert job.status is JobStatus.COMPLETED
        assert job.result.processed_videos == 2
        assert job.result.failed_videos == 0
        assert job.result.total_chunks >= 2
        assert job.can_reprocess
        assert (job.progress.current, job.progress.total) == (2, 2)
        assert job.started_at is not None and job.completed_at is not None
        assert any(CHANNEL_CONTEXT_VIDEO_ID in key for key in vector_index.records)
        assert not await job_store.is_channel_processing("UC1", "team1")
        assert [r.status for r in records.records] == [JobStatus.PROCESSING, JobStatus.COMPLETED]
        assert records.records[-1].has_channel_context

    @pytest.mark.asyncio
    async def test_video_failures_counted(self, make_orchestrator, make_source) -> None:
        source = make_source(
            _channel(),
            [_video("v1"), _video("v2"), _video("v3")],
            {"v1": TRANSCRIPT, "v2": RuntimeError("caption fetch failed"), "v3": None},
        )
        job = await _run(make_orchestrator(source), _request())

        assert job.status is JobStatus.COMPLETED
        assert job.result.processed_videos == 1
        assert job.result.failed_videos == 2

    @pytest.mark.asyncio
    async def test_out_of_band_videos_skipped(self, make_orchestrator, make_source) -> None:
        source = make_source(_channel(), [_video("v1"), _video("long", 90)], {"v1": TRANSCRIPT})
        job = await _run(make_orchestrator(source), _request())

        assert source.transcript_requests == ["v1"]
        assert job.result.failed_videos == 1

    @pytest.mark.asyncio
    async def test_ineligible_channel_fails(self, make_orchestrator, make_source, job_store) -> None:
        source = make_source(_channel(description="short"), [_video("v1", 40, captions=False)])
        job = await _run(make_orchestrator(source), _request())

        assert job.status is JobStatus.FAILED
        assert "captions" in job.error
        assert "2-25" in job.error
        assert job.can_reprocess
        assert source.transcript_requests == []
        assert not await job_store.is_channel_processing("UC1", "team1")

    @pytest.mark.asyncio
    async def test_context_only_channel_completes(
        self, make_orchestrator, make_source, vector_index
    ) -> None:
        source = make_source(_channel(description="short"), [_video("v1", 40, captions=False)])
        job = await _run(make_orchestrator(source), _request(custom_description=DESCRIPTION))

        assert job.status is JobStatus.COMPLETED
        assert job.result.processed_videos == 0
        assert list(vector_index.records) == [f"creator1_{CHANNEL_CONTEXT_VIDEO_ID}_0"]

    @pytest.mark.asyncio
    async def test_no_content_fails(self, make_orchestrator, make_source) -> None:
        source = make_source(_channel(description="short"), [_video("v1")], {"v1": None})
        job = await _run(make_orchestrator(source), _request())

        assert job.status is JobStatus.FAILED
        assert job.error == NO_CONTENT_MESSAGE

    @pytest.mark.asyncio
    async def test_entitlement_lapse_aborts_before_context(
        self, make_orchestrator, make_source, make_entitlements, vector_index, job_store
    ) -> None:
        entitlements = make_entitlements(
            EntitlementStatus(True),
            EntitlementStatus(False, "Subscription is not active (status: canceled)."),
        )
        source = make_source(_channel(), [_video("v1")], {"v1": TRANSCRIPT})
        job = await _run(make_orchestrator(source, entitlements), _request())

        assert job.status is JobStatus.FAILED
        assert "Processing aborted" in job.error
        assert "canceled" in job.error
        assert not any(CHANNEL_CONTEXT_VIDEO_ID in key for key in vector_index.records)
        assert not await job_store.is_channel_processing("UC1", "team1")

    @pytest.mark.asyncio
    async def test_timeout(self, make_orchestrator, make_source, job_store) -> None:
        class SlowSource(FakeVideoSource):
            async def list_channel_videos(self, channel_ref, max_videos):
                await asyncio.sleep(5)
                return await super().list_channel_videos(channel_ref, max_videos)

        orchestrator = make_orchestrator(SlowSource(_channel(), []), timeout_seconds=0.05)
        job = await _run(orchestrator, _request())

        assert job.status is JobStatus.FAILED
        assert job.error.startswith("Processing timeout: Job exceeded maximum time limit of")
        assert not await job_store.is_channel_processing("UC1", "team1")

    @pytest.mark.asyncio
    async def test_record_failures_do_not_fail_job(self, make_orchestrator, make_source) -> None:
        source = make_source(_channel(), [_video("v1")], {"v1": TRANSCRIPT})
        orchestrator = make_orchestrator(source, records=FakeRecords(fail=True))
        job = await _run(orchestrator, _request())
        assert job.status is JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_reprocess_after_completion(self, make_orchestrator, make_source) -> None:
        source = make_source(_channel(), [_video("v1")], {"v1": TRANSCRIPT})
        orchestrator = make_orchestrator(source)
        first = await _run(orchestrator, _request())
        second = await _run(orchestrator, _request())
        assert first.job_id != second.job_id
        assert second.status is JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_failed_start_transition_releases_lock(self, make_orchestrator, make_source) -> None:
        jobs = FlakyJobStore(fail_on=2)
        source = make_source(_channel(), [_video("v1")], {"v1": TRANSCRIPT})
        job = await _run(make_orchestrator(source, jobs=jobs), _request())

        assert job.status is JobStatus.FAILED
        assert job.error == "kv store unavailable"
        assert job.can_reprocess
        assert not await jobs.is_channel_processing("UC1", "team1")
        assert source.transcript_requests == []

    @pytest.mark.asyncio
    async def test_timeout_raises_job_timeout_error(self, make_orchestrator) -> None:
        class SlowSource(FakeVideoSource):
            async def list_channel_videos(self, channel_ref, max_videos):
                await asyncio.sleep(5)
                return await super().list_channel_videos(channel_ref, max_videos)

        orchestrator = make_orchestrator(SlowSource(_channel(), []), timeout_seconds=0.05)
        job = IngestionJob(
            job_id="job_slow",
            creator_id="creator1",
            channel_id="UC1",
            team_id="team1",
            channel_url="https://www.youtube.com/@geartalk",
        )

        with pytest.raises(JobTimeoutError, match="Processing timeout"):
            await orchestrator._process_with_timeout(job, _request())

    @pytest.mark.asyncio
    async def test_stale_job_keeps_newer_lock(self, make_orchestrator, make_source, job_store) -> None:
        source = make_source(_channel(), [_video("v1")], {"v1": TRANSCRIPT})
        orchestrator = make_orchestrator(source)
        stale = IngestionJob(
            job_id="job_stale",
            creator_id="creator1",
            channel_id="UC1",
            team_id="team1",
            channel_url="https://www.youtube.com/@geartalk",
        )
        # the stale job's lock expired and a newer job took the channel
        await job_store.acquire_channel_lock("UC1", "team1", "job_newer")

        finished = await orchestrator.run_job(stale, _request())

        assert finished.status is JobStatus.COMPLETED
        assert await job_store.lock_holder("UC1", "team1") == "job_newer"

    @pytest.mark.asyncio
    async def test_background_summary_is_channel_context(
        self, make_orchestrator, make_source, vector_index
    ) -> None:
        channel = ChannelInfo(
            channel_id="UC1",
            title="Gear Talk",
            description="short",
            background_summary=(
                "Gear Talk started as a film photography podcast in 2015 and grew from there."
            ),
        )
        source = make_source(channel, [_video("v1", 40, captions=False)])
        job = await _run(make_orchestrator(source), _request())

        assert job.status is JobStatus.COMPLETED
        assert list(vector_index.records) == [f"creator1_{CHANNEL_CONTEXT_VIDEO_ID}_0"]
