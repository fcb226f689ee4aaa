"""
Integration tests for the processing orchestrator

Files are served by an in-memory S3 stand-in, reviews land in SQLite.
"""

import re
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select, update

from core.exceptions import InvalidTriggerRequestError, ProcessingAlreadyActiveError
from ingestion.extractors.object_store import FileRef
from models.base import JobStatus, ProcessingStatus, ProviderType
from models.processed_file import ProcessedFile
from models.review import Review
from schemas.processing import ProcessingTriggerRequest

JOB_ID = re.compile(r"PROC-\d{8}-\d{6}-[0-9A-F]{6}")


def reviews_file(review_factory, jsonl, count, start_id=1, provider="Agoda"):
    return jsonl(review_factory(review_id=start_id + i, provider=provider) for i in range(count))


def job_id_of(summary: str) -> str:
    return JOB_ID.search(summary).group(0)


async def count_reviews(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count(Review.id)))


async def tracked(session_factory, key) -> ProcessedFile:
    async with session_factory() as session:
        return await session.scalar(select(ProcessedFile).where(ProcessedFile.s3_key == key))


class TestProcessingRun:

    @pytest.mark.asyncio
    async def test_one_good_file_one_missing_file(
        self, orchestrator, fake_s3, review_factory, jsonl, s3_error, session_factory
    ):
        """A failing file is recorded without affecting its sibling"""
        fake_s3.put("reviews/agoda/a.jl", reviews_file(review_factory, jsonl, 50))
        fake_s3.put("reviews/agoda/b.jl", b"{}")
        fake_s3.fail("reviews/agoda/b.jl", s3_error("NoSuchKey", 404))

        summary = await orchestrator.trigger_processing(ProcessingTriggerRequest())

        assert summary.startswith("Processing completed for job: PROC-")
        assert summary.endswith("Files processed: 1, Failed: 1, Total reviews: 50")

        job = await orchestrator.get_job_status(job_id_of(summary))
        assert job.status == JobStatus.COMPLETED
        assert job.total_files == 2
        assert job.processed_files == 1
        assert job.failed_files == 1
        assert job.total_reviews == 50
        assert job.processed_file_names == ["a.jl"]
        assert job.failed_file_names == ["b.jl"]
        assert job.progress_percent == 100.0

        assert await count_reviews(session_factory) == 50
        good = await tracked(session_factory, "reviews/agoda/a.jl")
        bad = await tracked(session_factory, "reviews/agoda/b.jl")
        assert good.processing_status == ProcessingStatus.COMPLETED
        assert good.records_processed == 50
        assert good.provider == "AGODA"
        assert bad.processing_status == ProcessingStatus.FAILED
        assert bad.error_message.startswith("Object not found")
        # Missing objects are not retried
        assert fake_s3.get_calls.count("reviews/agoda/b.jl") == 1

    @pytest.mark.asyncio
    async def test_partial_failure_across_three_files(
        self, orchestrator, fake_s3, review_factory, jsonl, s3_error, session_factory
    ):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 10, start_id=1))
        fake_s3.put("reviews/b.jl", b"{}")
        fake_s3.fail("reviews/b.jl", s3_error("AccessDenied", 403))
        fake_s3.put("reviews/c.jl", jsonl([
            review_factory(review_id=100),
            "{broken json",
            review_factory(review_id=101, rating=99),
            review_factory(review_id=102),
        ]))

        summary = await orchestrator.trigger_processing(ProcessingTriggerRequest())

        assert summary.endswith("Files processed: 2, Failed: 1, Total reviews: 12")
        c = await tracked(session_factory, "reviews/c.jl")
        assert c.processing_status == ProcessingStatus.COMPLETED
        assert c.records_processed == 2
        assert c.records_failed == 2

    @pytest.mark.asyncio
    async def test_empty_bucket(self, orchestrator):
        summary = await orchestrator.trigger_processing(ProcessingTriggerRequest())

        assert summary.startswith("No new files found to process. Job ID: PROC-")
        job = await orchestrator.get_job_status(job_id_of(summary))
        assert job.status == JobStatus.COMPLETED
        assert job.total_files == 0

    @pytest.mark.asyncio
    async def test_listing_failure_fails_the_job(self, orchestrator, fake_s3, s3_error):
        fake_s3.list_error = s3_error("AccessDenied", 403, "ListObjectsV2")

        summary = await orchestrator.trigger_processing(ProcessingTriggerRequest())

        assert summary.startswith("Processing execution failed for job: PROC-")
        assert summary.endswith("Error: Failed to list review files")
        job = await orchestrator.get_job_status(job_id_of(summary))
        assert job.status == JobStatus.FAILED
        assert job.error_message == "Failed to list review files"

    @pytest.mark.asyncio
    async def test_provider_filter_and_max_files(self, orchestrator, fake_s3, review_factory, jsonl):
        fake_s3.put("reviews/agoda/a.jl", reviews_file(review_factory, jsonl, 3, start_id=1))
        fake_s3.put("reviews/booking/b1.jl", reviews_file(review_factory, jsonl, 3, start_id=10, provider="Booking"))
        fake_s3.put("reviews/booking/b2.jl", reviews_file(review_factory, jsonl, 3, start_id=20, provider="Booking"))

        summary = await orchestrator.trigger_processing(
            ProcessingTriggerRequest(provider=ProviderType.BOOKING, max_files=1)
        )

        job = await orchestrator.get_job_status(job_id_of(summary))
        assert job.provider == "BOOKING"
        assert job.total_files == 1
        assert job.processed_file_names == ["b1.jl"]
        assert "reviews/agoda/a.jl" not in fake_s3.get_calls

    @pytest.mark.asyncio
    async def test_custom_prefix(self, orchestrator, fake_s3, review_factory, jsonl):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 1))
        fake_s3.put("archive/z.jl", reviews_file(review_factory, jsonl, 1, start_id=50))

        summary = await orchestrator.trigger_processing(ProcessingTriggerRequest(s3_prefix="archive/"))

        job = await orchestrator.get_job_status(job_id_of(summary))
        assert job.processed_file_names == ["z.jl"]


class TestIdempotency:

    @pytest.mark.asyncio
    async def test_completed_file_is_not_processed_again(self, orchestrator, fake_s3, review_factory, jsonl):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 5))

        await orchestrator.trigger_processing(ProcessingTriggerRequest())
        second = await orchestrator.trigger_processing(ProcessingTriggerRequest())

        assert second.startswith("No new files found to process.")
        assert fake_s3.get_calls == ["reviews/a.jl"]

    @pytest.mark.asyncio
    async def test_reupload_is_a_new_version(self, orchestrator, fake_s3, review_factory, jsonl, session_factory):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 5), etag="v1")
        await orchestrator.trigger_processing(ProcessingTriggerRequest())

        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 6), etag="v2")
        summary = await orchestrator.trigger_processing(ProcessingTriggerRequest())

        # Five of the six reviews are already stored
        assert summary.endswith("Files processed: 1, Failed: 0, Total reviews: 1")
        assert await count_reviews(session_factory) == 6
        async with session_factory() as session:
            versions = await session.scalar(
                select(func.count(ProcessedFile.id)).where(ProcessedFile.s3_key == "reviews/a.jl")
            )
        assert versions == 2

    @pytest.mark.asyncio
    async def test_failed_file_is_retried_by_next_run(self, orchestrator, fake_s3, review_factory, jsonl, s3_error):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 2))
        fake_s3.fail("reviews/a.jl", *(s3_error("InternalError", 500) for _ in range(3)))

        first = await orchestrator.trigger_processing(ProcessingTriggerRequest())
        second = await orchestrator.trigger_processing(ProcessingTriggerRequest())

        assert first.endswith("Files processed: 0, Failed: 1, Total reviews: 0")
        assert second.endswith("Files processed: 1, Failed: 0, Total reviews: 2")

    @pytest.mark.asyncio
    async def test_process_file_skips_completed_version(self, orchestrator, fake_s3, review_factory, jsonl):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 2), etag="v1")
        ref = FileRef("reviews/a.jl", 10, "v1")

        first = await orchestrator.process_file(ref)
        second = await orchestrator.process_file(ref)

        assert (first.success, first.reviews) == (True, 2)
        assert second.skipped is True
        assert second.success is False
        assert fake_s3.get_calls == ["reviews/a.jl"]

    @pytest.mark.asyncio
    async def test_process_file_leaves_a_file_another_run_holds(self, orchestrator, fake_s3, review_factory, jsonl):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 2), etag="v1")
        ref = FileRef("reviews/a.jl", 10, "v1")
        record = (await orchestrator.tracking.create_or_get(ref)).record
        await orchestrator.tracking.mark_started(record.id)

        outcome = await orchestrator.process_file(ref)

        assert outcome.skipped is True
        assert fake_s3.get_calls == []
        stored = await orchestrator.tracking.get_by_id(record.id)
        assert stored.processing_status == ProcessingStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_run_does_not_count_files_another_run_holds(
        self, orchestrator, fake_s3, review_factory, jsonl, session_factory
    ):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 2), etag="v1")
        fake_s3.put("reviews/b.jl", reviews_file(review_factory, jsonl, 3, start_id=10), etag="v1")
        held = (await orchestrator.tracking.create_or_get(FileRef("reviews/a.jl", 10, "v1"))).record
        await orchestrator.tracking.mark_started(held.id)

        summary = await orchestrator.trigger_processing(ProcessingTriggerRequest())

        assert summary.endswith("Files processed: 1, Failed: 0, Total reviews: 3")
        job = await orchestrator.get_job_status(job_id_of(summary))
        assert job.total_files == 1
        assert job.processed_file_names == ["b.jl"]
        assert job.failed_file_names == []
        assert job.progress_percent == 100.0
        assert fake_s3.get_calls == ["reviews/b.jl"]
        assert await count_reviews(session_factory) == 3


class TestDownloadRetry:

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, orchestrator, fake_s3, review_factory, jsonl, s3_error, session_factory):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 4))
        fake_s3.fail("reviews/a.jl", s3_error("InternalError", 500), s3_error("SlowDown", 503))

        summary = await orchestrator.trigger_processing(ProcessingTriggerRequest())

        assert summary.endswith("Files processed: 1, Failed: 0, Total reviews: 4")
        assert fake_s3.get_calls.count("reviews/a.jl") == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, orchestrator, fake_s3, review_factory, jsonl, s3_error, session_factory):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 4))
        fake_s3.fail("reviews/a.jl", *(s3_error("InternalError", 500) for _ in range(5)))

        await orchestrator.trigger_processing(ProcessingTriggerRequest())

        assert fake_s3.get_calls.count("reviews/a.jl") == 3
        record = await tracked(session_factory, "reviews/a.jl")
        assert record.processing_status == ProcessingStatus.FAILED
        assert record.error_message == "Object store server error (500)"


class TestTriggerRules:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_files", [0, -1, 51])
    async def test_max_files_bounds(self, orchestrator, max_files):
        with pytest.raises(InvalidTriggerRequestError) as exc_info:
            await orchestrator.trigger_processing(ProcessingTriggerRequest(max_files=max_files))
        assert exc_info.value.message == "Invalid request: max_files must be between 1 and 50"

    @pytest.mark.asyncio
    async def test_blank_prefix(self, orchestrator):
        with pytest.raises(InvalidTriggerRequestError):
            await orchestrator.trigger_processing(ProcessingTriggerRequest(s3_prefix="  "))

    @pytest.mark.asyncio
    async def test_second_trigger_is_rejected_while_one_runs(self, orchestrator):
        async with orchestrator._trigger_lock:
            assert orchestrator.is_processing_active()
            with pytest.raises(ProcessingAlreadyActiveError):
                await orchestrator.trigger_processing(ProcessingTriggerRequest())

        assert not orchestrator.is_processing_active()

    @pytest.mark.asyncio
    async def test_scheduled_run_ignores_manual_lock(self, orchestrator, fake_s3, review_factory, jsonl):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 1))

        async with orchestrator._trigger_lock:
            summary = await orchestrator.process_new_files()

        job = await orchestrator.get_job_status(job_id_of(summary))
        assert job.triggered_by == "SCHEDULER"
        assert job.processed_files == 1

    @pytest.mark.asyncio
    async def test_process_files_since(self, orchestrator, fake_s3, review_factory, jsonl):
        cutoff = datetime(2025, 5, 1)
        fake_s3.put("reviews/old.jl", reviews_file(review_factory, jsonl, 1), last_modified=cutoff - timedelta(days=1))
        fake_s3.put("reviews/new.jl", reviews_file(review_factory, jsonl, 1, start_id=9), last_modified=cutoff + timedelta(days=1))

        summary = await orchestrator.process_files_since(cutoff)

        job = await orchestrator.get_job_status(job_id_of(summary))
        assert job.processed_file_names == ["new.jl"]
        assert job.triggered_by == "SINCE_20250501-000000"


class TestMaintenance:

    @pytest.mark.asyncio
    async def test_stuck_file_is_recovered_and_reprocessed(
        self, orchestrator, fake_s3, review_factory, jsonl, session_factory
    ):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 3), etag="v1")
        record = (await orchestrator.tracking.create_or_get(FileRef("reviews/a.jl", 10, "v1"))).record
        await orchestrator.tracking.mark_started(record.id)
        async with session_factory() as session:
            await session.execute(
                update(ProcessedFile)
                .where(ProcessedFile.id == record.id)
                .values(processing_started_at=datetime.utcnow() - timedelta(hours=3))
            )
            await session.commit()

        assert await orchestrator.recover_stuck_files() == 1
        assert await orchestrator.recover_stuck_files() == 0

        summary = await orchestrator.trigger_processing(ProcessingTriggerRequest())

        assert summary.endswith("Files processed: 1, Failed: 0, Total reviews: 3")
        assert (await tracked(session_factory, "reviews/a.jl")).id == record.id

    @pytest.mark.asyncio
    async def test_cleanup_respects_retention(self, orchestrator, fake_s3, review_factory, jsonl, session_factory):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 1))
        fake_s3.put("reviews/b.jl", reviews_file(review_factory, jsonl, 1, start_id=5))
        await orchestrator.trigger_processing(ProcessingTriggerRequest())
        async with session_factory() as session:
            await session.execute(
                update(ProcessedFile)
                .where(ProcessedFile.s3_key == "reviews/a.jl")
                .values(created_at=datetime.utcnow() - timedelta(days=31))
            )
            await session.commit()

        assert await orchestrator.cleanup_old_processed_files() == 1
        assert await tracked(session_factory, "reviews/a.jl") is None
        assert await tracked(session_factory, "reviews/b.jl") is not None

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, orchestrator):
        orchestrator.pause_scheduled_processing()
        assert orchestrator.paused
        orchestrator.resume_scheduled_processing()
        assert not orchestrator.paused

    @pytest.mark.asyncio
    async def test_validate_configuration(self, orchestrator, fake_s3, s3_error, test_settings):
        report = await orchestrator.validate_configuration()
        assert report.valid
        assert report.errors == []

        fake_s3.head_bucket = MagicMock(side_effect=s3_error("NoSuchBucket", 404, "HeadBucket"))
        report = await orchestrator.validate_configuration()
        assert not report.valid
        assert report.errors[0].startswith("Object store not reachable")

        test_settings.MAX_CONCURRENT_FILES = 0
        report = await orchestrator.validate_configuration(check_connectivity=False)
        assert "MAX_CONCURRENT_FILES must be at least 1" in report.errors


class TestHealthAndStatistics:

    @pytest.mark.asyncio
    async def test_no_history_is_degraded(self, orchestrator):
        report = await orchestrator.get_health()

        assert report.status == "DEGRADED"
        assert report.issues == ["No processing history available"]

    @pytest.mark.asyncio
    async def test_healthy_after_successful_run(self, orchestrator, fake_s3, review_factory, jsonl):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 1))
        await orchestrator.trigger_processing(ProcessingTriggerRequest())

        report = await orchestrator.get_health()

        assert report.status == "UP"
        assert report.last_processed_file == "reviews/a.jl"
        assert report.recent_processed_files == 1

    @pytest.mark.asyncio
    async def test_high_failure_rate_is_down(self, orchestrator, fake_s3, review_factory, jsonl, s3_error):
        fake_s3.put("reviews/a.jl", reviews_file(review_factory, jsonl, 1))
        for key in ("reviews/b.jl", "reviews/c.jl"):
            fake_s3.put(key, b"{}")
            fake_s3.fail(key, s3_error("AccessDenied", 403))
        await orchestrator.trigger_processing(ProcessingTriggerRequest())

        report = await orchestrator.get_health()

        assert report.status == "DOWN"
        assert report.recent_failed_files == 2

    @pytest.mark.asyncio
    async def test_file_statistics(self, orchestrator, fake_s3, review_factory, jsonl, s3_error):
        fake_s3.put("reviews/agoda/a.jl", reviews_file(review_factory, jsonl, 1))
        fake_s3.put("reviews/agoda/b.jl", b"{}")
        fake_s3.fail("reviews/agoda/b.jl", s3_error("AccessDenied", 403))
        await orchestrator.trigger_processing(ProcessingTriggerRequest())

        stats = await orchestrator.get_file_statistics(ProviderType.AGODA)

        assert stats.total == 2
        assert stats.success_rate == 50.0
        assert stats.failure_rate == 50.0
