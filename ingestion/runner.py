# ============================================================================
# File: ingestion/runner.py
# Description: Review file processing orchestrator
# ============================================================================
"""
Processing orchestrator - drives review files from the bucket into the database.

This module provides:
- Discovery, idempotency filtering and bounded-concurrency dispatch of files
- Per-file download (with retry), streaming parse and batched persistence
- Job lifecycle: sync/async triggers, stop, retry, history and logs
- Maintenance: stuck-file recovery, retention cleanup, configuration checks
- Processing health (UP / DEGRADED / DOWN)

Failures in one file never cancel sibling files; they are recorded against
the file's tracking record and the owning job's failed-file list.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple

from core.config import Settings, settings
from core.database import async_session_maker
from core.exceptions import (
    IllegalJobStateError,
    IngestionException,
    InvalidTriggerRequestError,
    ProcessingAlreadyActiveError,
    ProcessingJobError,
    StorageError,
)
from core.retry import retry_with_backoff
from ingestion.extractors.object_lister import ObjectLister
from ingestion.extractors.object_store import FileRef, ObjectStoreClient
from ingestion.health import DOWN, evaluate_health
from ingestion.jobs import JobProgress, ProcessingJobStore
from ingestion.loaders.review_loader import ReviewBatchLoader
from ingestion.parsers.jsonl_parser import JsonLinesParser, ParseStats
from ingestion.tracking import FileTrackingStore
from models.base import JobStatus, ProviderType
from models.processing_job import ProcessingJob
from schemas.processing import (
    ConfigurationReport,
    FileStatistics,
    HealthReport,
    ProcessingStatusResponse,
    ProcessingTriggerRequest,
)

logger = logging.getLogger(__name__)

ALREADY_ACTIVE_MESSAGE = (
    "Processing is already in progress. Please wait for current processing to complete."
)
CANCELLED_MESSAGE = "Processing cancelled"
STOPPED_MESSAGE = "Processing stopped by request"
HISTORY_DEFAULT_DAYS = 30
MAX_FAILURE_DETAILS = 5


@dataclass
class FileOutcome:
    """Result of processing one file"""
    ref: FileRef
    success: bool
    reviews: int = 0
    error: Optional[str] = None
    skipped: bool = False


def infer_provider(key: str) -> Optional[ProviderType]:
    """Provider whose display name appears in the object key, if any."""
    lowered = key.lower()
    for provider in ProviderType:
        if provider.display_name.lower() in lowered:
            return provider
    return None


def filter_by_provider(refs: List[FileRef], provider: Optional[ProviderType]) -> List[FileRef]:
    if provider is None:
        return refs
    needle = provider.display_name.lower()
    return [ref for ref in refs if needle in ref.key.lower()]


def _error_text(exc: BaseException) -> str:
    if isinstance(exc, IngestionException):
        return exc.message
    return str(exc) or type(exc).__name__


class ProcessingOrchestrator:
    """
    Review processing orchestrator

    Responsibilities:
    - Discover candidate files and skip versions already completed
    - Process distinct files concurrently, at most ``max_concurrent_files``
    - Own job state: one JobProgress per run, persisted by the run itself
    - Serialize manual triggers (a second one is rejected, not queued)
    - Recover stuck files and enforce retention
    """

    def __init__(
        self,
        session_factory=None,
        store: ObjectStoreClient = None,
        lister: ObjectLister = None,
        tracking: FileTrackingStore = None,
        jobs: ProcessingJobStore = None,
        loader: ReviewBatchLoader = None,
        config: Settings = None,
        retry_delay: float = None,
    ):
        self.config = config or settings
        session_factory = session_factory or async_session_maker

        self.store = store or ObjectStoreClient(self.config.S3_BUCKET_NAME)
        self.lister = lister or ObjectLister(
            self.store,
            page_size=self.config.S3_PAGE_SIZE,
            max_pages_multiplier=self.config.S3_MAX_PAGES_MULTIPLIER,
        )
        self.tracking = tracking or FileTrackingStore(session_factory)
        self.jobs = jobs or ProcessingJobStore(session_factory)
        self.loader = loader or ReviewBatchLoader(
            session_factory, chunk_size=self.config.PERSIST_CHUNK_SIZE
        )

        self.max_concurrent_files = self.config.MAX_CONCURRENT_FILES
        self.retry_delay = self.config.S3_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay

        self._pool: Optional[asyncio.Semaphore] = None
        self._file_tasks: Set[asyncio.Task] = set()
        self._job_tasks: Dict[str, asyncio.Task] = {}
        self._active_files: Set[str] = set()
        self._trigger_lock = asyncio.Lock()
        self._scheduled_lock = asyncio.Lock()
        self._accepting = True
        self.paused = False

    # ==================================================================
    # Triggers
    # ==================================================================

    async def trigger_processing(self, request: ProcessingTriggerRequest, triggered_by: str = "API") -> str:
        """
        Manually start a processing run.

        ``triggered_by`` labels the job, e.g. API or CLI.

        Returns:
            The run summary (synchronous) or the new job id (asynchronous)

        Raises:
            InvalidTriggerRequestError: the request failed validation
            ProcessingAlreadyActiveError: another manual trigger is running
        """
        self._validate_request(request)
        self._ensure_accepting()
        if self._trigger_lock.locked():
            logger.warning("Rejected trigger: processing already in progress")
            raise ProcessingAlreadyActiveError(ALREADY_ACTIVE_MESSAGE)

        if request.asynchronous:
            await self._trigger_lock.acquire()
            try:
                job = await self._create_job(request, triggered_by)
            except BaseException:
                self._trigger_lock.release()
                raise
            self._start_job_task(job.processing_id, request, release_trigger_lock=True)
            logger.info(f"Asynchronous processing started: {job.processing_id}")
            return job.processing_id

        async with self._trigger_lock:
            job = await self._create_job(request, triggered_by)
            return await self._execute_job(job.processing_id, request)

    async def process_new_files(self) -> str:
        """
        Scheduled run over the configured prefix.

        Does not take the manual trigger lock; overlapping scheduled runs are
        skipped instead.
        """
        return await self._run_maintenance("SCHEDULER", since=None)

    async def process_files_since(self, since: datetime) -> str:
        """Process files modified after ``since`` that are not yet completed."""
        return await self._run_maintenance(f"SINCE_{since:%Y%m%d-%H%M%S}", since=since)

    async def _run_maintenance(self, triggered_by: str, since: Optional[datetime]) -> str:
        request = ProcessingTriggerRequest()
        self._ensure_accepting()
        if self._scheduled_lock.locked():
            logger.info("Previous scheduled run still active, skipping")
            return "Skipped: a scheduled run is already active"
        async with self._scheduled_lock:
            job = await self._create_job(request, triggered_by)
            return await self._execute_job(job.processing_id, request, since=since)

    def _validate_request(self, request: ProcessingTriggerRequest):
        limit = self.config.MAX_FILES_PER_REQUEST
        if request.max_files is not None and (request.max_files <= 0 or request.max_files > limit):
            raise InvalidTriggerRequestError(
                f"Invalid request: max_files must be between 1 and {limit}",
                context={"max_files": request.max_files}
            )
        if request.s3_prefix is not None and not request.s3_prefix.strip():
            raise InvalidTriggerRequestError("Invalid request: s3_prefix cannot be blank")

    def _ensure_accepting(self):
        if not self._accepting:
            raise ProcessingJobError("Processing orchestrator is shutting down")

    async def _create_job(self, request: ProcessingTriggerRequest, triggered_by: str) -> ProcessingJob:
        return await self.jobs.create(
            provider=request.provider.value if request.provider else None,
            s3_prefix=request.s3_prefix,
            max_files=request.max_files,
            triggered_by=triggered_by,
            asynchronous=request.asynchronous,
        )

    def _start_job_task(self, job_id: str, request: ProcessingTriggerRequest, release_trigger_lock: bool):
        # Done callbacks also fire for a task cancelled before its first step
        def finished(task: asyncio.Task):
            self._job_tasks.pop(job_id, None)
            if release_trigger_lock:
                self._trigger_lock.release()
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Processing job {job_id} crashed: {task.exception()}")

        task = asyncio.create_task(self._execute_job(job_id, request), name=f"job-{job_id}")
        self._job_tasks[job_id] = task
        task.add_done_callback(finished)

    # ==================================================================
    # Run execution
    # ==================================================================

    async def _execute_job(
        self,
        job_id: str,
        request: ProcessingTriggerRequest,
        since: Optional[datetime] = None,
    ) -> str:
        """
        Execute one job end to end and return its summary.

        Pipeline phases:
        1. Discover - list candidate files
        2. Filter - provider, already completed, max files
        3. Dispatch - bounded concurrent per-file processing
        4. Finalize - terminal job status
        """
        progress = JobProgress()

        try:
            logger.info(f"Starting processing execution for job: {job_id}")
            await self.jobs.mark_started(job_id)

            # --------------------------------------------------
            # PHASE 1: DISCOVERY
            # --------------------------------------------------
            prefix = request.s3_prefix if request.s3_prefix is not None else self.config.S3_PREFIX
            refs = await self.lister.list(prefix, since=since)

            # --------------------------------------------------
            # PHASE 2: FILTERING
            # --------------------------------------------------
            refs = filter_by_provider(refs, request.provider)
            if request.provider is not None:
                logger.info(f"After provider filtering: {len(refs)} files remaining for job: {job_id}")

            pending: List[FileRef] = []
            for ref in refs:
                if await self.tracking.is_already_processed(ref.key, ref.etag):
                    logger.debug(f"File {ref.key} already processed, skipping")
                    continue
                pending.append(ref)

            max_files = request.max_files or self.config.MAX_FILES_PER_REQUEST
            pending = pending[:max_files]

            if not pending:
                await self.jobs.finish(job_id, JobStatus.COMPLETED, progress)
                message = f"No new files found to process. Job ID: {job_id}"
                logger.info(message)
                return message

            # Progress is measured against the files actually dispatched
            progress.total_files = len(pending)
            await self.jobs.save_progress(job_id, progress)

            # --------------------------------------------------
            # PHASE 3: DISPATCH
            # --------------------------------------------------
            provider = request.provider
            await self._dispatch(job_id, pending, provider, progress)

            # --------------------------------------------------
            # PHASE 4: FINALIZE
            # --------------------------------------------------
            await self.jobs.finish(job_id, JobStatus.COMPLETED, progress)
            summary = progress.summary(job_id)
            logger.info(summary)
            return summary

        except asyncio.CancelledError:
            logger.warning(f"Processing job {job_id} cancelled")
            await self.jobs.finish(job_id, JobStatus.CANCELLED, progress, CANCELLED_MESSAGE)
            raise

        except Exception as e:
            error = _error_text(e)
            logger.exception(f"Processing execution failed for job: {job_id}")
            await self.jobs.finish(job_id, JobStatus.FAILED, progress, error)
            return f"Processing execution failed for job: {job_id}. Error: {error}"

    async def _dispatch(
        self,
        job_id: str,
        refs: List[FileRef],
        provider: Optional[ProviderType],
        progress: JobProgress,
    ):
        """Run files through the pool; record each outcome as it completes."""
        pool = self._get_pool()

        async def run_one(ref: FileRef) -> FileOutcome:
            async with pool:
                return await self.process_file(ref, provider or infer_provider(ref.key))

        # Oldest first; the semaphore admits waiters in order
        tasks = [self._spawn(run_one(ref), ref.name) for ref in refs]
        try:
            for next_done in asyncio.as_completed(tasks):
                outcome = await next_done
                if outcome.skipped:
                    progress.record_skipped(outcome.ref.name)
                elif outcome.success:
                    progress.record_success(outcome.ref.name, outcome.reviews)
                else:
                    progress.record_failure(outcome.ref.name)
                await self.jobs.save_progress(job_id, progress)
        finally:
            unfinished = [task for task in tasks if not task.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)

    def _get_pool(self) -> asyncio.Semaphore:
        if self._pool is None:
            logger.info(f"Creating file processing pool with {self.max_concurrent_files} workers")
            self._pool = asyncio.Semaphore(self.max_concurrent_files)
        return self._pool

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"file-{name}")
        self._file_tasks.add(task)
        task.add_done_callback(self._file_tasks.discard)
        return task

    # ==================================================================
    # Per-file processing
    # ==================================================================

    async def process_file(self, ref: FileRef, provider: Optional[ProviderType] = None) -> FileOutcome:
        """
        Process one file version and record the outcome on its tracking record.

        A version another run holds or has completed is skipped without being
        downloaded. Never raises for processing failures; cancellation
        propagates.
        """
        self._active_files.add(ref.key)
        record_id: Optional[int] = None

        try:
            tracked = await self.tracking.create_or_get(ref, provider.value if provider else None)
            if await self.tracking.mark_started(tracked.record.id) is None:
                logger.info(f"File {ref.key} is held or completed by another run, skipping")
                return FileOutcome(ref, success=False, skipped=True)

            record_id = tracked.record.id

            valid, failed, stats = await self._ingest(ref)

            if stats.batch_handler_errors:
                details = "; ".join(stats.handler_errors[:MAX_FAILURE_DETAILS])
                message = (
                    f"{stats.batch_handler_errors} of "
                    f"{stats.batches_emitted + stats.batch_handler_errors} batches failed: {details}"
                )
                await self.tracking.mark_failed(record_id, message)
                return FileOutcome(ref, success=False, error=message)

            await self.tracking.mark_completed(record_id, valid, failed)
            logger.info(f"Successfully processed file: {ref.key} with {valid} reviews")
            return FileOutcome(ref, success=True, reviews=valid)

        except asyncio.CancelledError:
            if record_id is not None:
                await self._mark_failed_quietly(record_id, ref.key, CANCELLED_MESSAGE)
            raise

        except Exception as e:
            message = _error_text(e)
            logger.error(f"Failed to process file: {ref.key}: {message}")
            if record_id is not None:
                await self._mark_failed_quietly(record_id, ref.key, message)
            return FileOutcome(ref, success=False, error=message)

        finally:
            self._active_files.discard(ref.key)

    async def _ingest(self, ref: FileRef) -> Tuple[int, int, ParseStats]:
        """Download, stream-parse and persist one file. Returns (valid, failed, stats)."""
        body = await retry_with_backoff(
            lambda: self.store.get_object_body(ref.key),
            max_attempts=self.config.S3_MAX_RETRIES,
            base_delay=self.retry_delay,
            max_delay=self.config.S3_MAX_RETRY_DELAY_SECONDS,
            operation_name=f"Download of {ref.key}",
        )

        parser = JsonLinesParser(source_name=ref.key)
        counts = {"valid": 0, "invalid": 0}

        async def handle(batch):
            result = await self.loader.process_batch(batch, source_file=ref.key)
            counts["valid"] += result.valid_count
            counts["invalid"] += result.invalid_count

        stats = await parser.process_in_batches(
            self.store.iter_lines(body), self.config.PROCESSING_BATCH_SIZE, handle
        )
        return counts["valid"], counts["invalid"] + stats.parse_errors, stats

    async def _mark_failed_quietly(self, record_id: int, key: str, message: str):
        try:
            await self.tracking.mark_failed(record_id, message)
        except Exception:
            logger.exception(f"Failed to mark file as failed: {key}")

    # ==================================================================
    # Job management
    # ==================================================================

    async def get_job_status(self, job_id: str) -> ProcessingStatusResponse:
        return ProcessingStatusResponse.from_job(await self.jobs.get(job_id))

    async def list_jobs(self, limit: int = 50) -> List[ProcessingStatusResponse]:
        return [ProcessingStatusResponse.from_job(job) for job in await self.jobs.list_jobs(limit)]

    async def get_processing_history(
        self,
        provider: Optional[ProviderType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[ProcessingStatusResponse]:
        """Jobs created in [start, end]; defaults to the last 30 days."""
        end = end or datetime.utcnow()
        start = start or end - timedelta(days=HISTORY_DEFAULT_DAYS)
        if start > end:
            raise ProcessingJobError(
                "Invalid request: start date must not be after end date",
                context={"start": start.isoformat(), "end": end.isoformat()}
            )
        jobs = await self.jobs.history(provider.value if provider else None, start, end, limit)
        return [ProcessingStatusResponse.from_job(job) for job in jobs]

    async def stop_job(self, job_id: str) -> str:
        """
        Cancel a PENDING or IN_PROGRESS job.

        The job is marked CANCELLED first; an asynchronous job's task is then
        cancelled and its in-flight files are failed as they unwind.
        """
        job = await self.jobs.get(job_id)
        status = JobStatus(job.status)
        if not status.is_stoppable:
            raise IllegalJobStateError(
                f"Cannot stop job {job_id} in status {status.value}",
                context={"job_id": job_id, "status": status.value}
            )

        await self.jobs.finish(job_id, JobStatus.CANCELLED, error_message=STOPPED_MESSAGE)
        task = self._job_tasks.get(job_id)
        if task is not None and not task.done():
            task.cancel()
        logger.info(f"Processing job {job_id} stopped")
        return f"Processing job {job_id} has been stopped"

    async def retry_job(self, job_id: str) -> str:
        """Start a new asynchronous job repeating a FAILED one; returns the new id."""
        job = await self.jobs.get(job_id)
        status = JobStatus(job.status)
        if status != JobStatus.FAILED:
            raise IllegalJobStateError(
                f"Only failed jobs can be retried. Current status: {status.value}",
                context={"job_id": job_id, "status": status.value}
            )
        self._ensure_accepting()

        request = ProcessingTriggerRequest(
            provider=ProviderType.from_name(job.provider),
            max_files=job.max_files,
            s3_prefix=job.s3_prefix,
            asynchronous=True,
        )
        new_job = await self._create_job(request, f"RETRY_{job_id}")
        self._start_job_task(new_job.processing_id, request, release_trigger_lock=False)
        logger.info(f"Retry processing started with new job ID: {new_job.processing_id}")
        return new_job.processing_id

    async def get_processing_logs(self, job_id: str, limit: Optional[int] = None) -> List[str]:
        """Lifecycle lines reconstructed from the job record."""
        job = await self.jobs.get(job_id)
        lines = [f"[{job.created_at}] Processing job created: {job_id}"]
        if job.start_time:
            lines.append(f"[{job.start_time}] Processing started")
        if job.total_files:
            lines.append(f"Discovered {job.total_files} files to process")
        for name in job.processed_file_names or []:
            lines.append(f"Processed file: {name}")
        for name in job.failed_file_names or []:
            lines.append(f"Failed file: {name}")
        if job.processed_files:
            lines.append(f"Processed {job.processed_files} files successfully")
        if job.failed_files:
            lines.append(f"Failed to process {job.failed_files} files")
        if job.end_time:
            lines.append(f"[{job.end_time}] Processing completed with status: {JobStatus(job.status).value}")
        if job.error_message:
            lines.append(f"Error: {job.error_message}")

        if limit is not None and limit > 0:
            lines = lines[:limit]
        return lines

    async def clear_processing_history(self, older_than_days: Optional[int] = None) -> int:
        days = older_than_days if older_than_days is not None else self.config.CLEANUP_RETENTION_DAYS
        if days < 0:
            raise ProcessingJobError("Invalid request: older_than_days must not be negative")
        return await self.jobs.delete_older_than(datetime.utcnow() - timedelta(days=days))

    def is_processing_active(self) -> bool:
        return (
            self._trigger_lock.locked()
            or self._scheduled_lock.locked()
            or any(not task.done() for task in self._job_tasks.values())
            or bool(self._active_files)
        )

    # ==================================================================
    # Maintenance
    # ==================================================================

    async def recover_stuck_files(self) -> int:
        cutoff = datetime.utcnow() - timedelta(hours=self.config.STUCK_PROCESSING_HOURS)
        reset = await self.tracking.reset_stuck(cutoff)
        if reset:
            logger.warning(f"Recovered {len(reset)} stuck files")
        return len(reset)

    async def cleanup_old_processed_files(self) -> int:
        cutoff = datetime.utcnow() - timedelta(days=self.config.CLEANUP_RETENTION_DAYS)
        return await self.tracking.delete_older_than(cutoff)

    def pause_scheduled_processing(self):
        self.paused = True
        logger.info("Scheduled processing paused")

    def resume_scheduled_processing(self):
        self.paused = False
        logger.info("Scheduled processing resumed")

    async def validate_configuration(self, check_connectivity: bool = True) -> ConfigurationReport:
        """Sanity-check runtime settings and, optionally, bucket reachability."""
        config = self.config
        errors: List[str] = []
        warnings: List[str] = []

        if not config.S3_BUCKET_NAME or not config.S3_BUCKET_NAME.strip():
            errors.append("S3 bucket name is not configured")
        if not config.S3_PREFIX:
            warnings.append("S3 prefix is empty; the whole bucket will be scanned")
        if config.MAX_CONCURRENT_FILES < 1:
            errors.append("MAX_CONCURRENT_FILES must be at least 1")
        elif config.MAX_CONCURRENT_FILES > 20:
            warnings.append(f"MAX_CONCURRENT_FILES={config.MAX_CONCURRENT_FILES} is unusually high")
        if config.MAX_FILES_PER_REQUEST < 1:
            errors.append("MAX_FILES_PER_REQUEST must be at least 1")
        if not 0.0 <= config.FAILURE_RATE_THRESHOLD <= 1.0:
            errors.append("FAILURE_RATE_THRESHOLD must be between 0.0 and 1.0")
        if config.PROCESSING_BATCH_SIZE < 1:
            errors.append("PROCESSING_BATCH_SIZE must be at least 1")
        if config.PERSIST_CHUNK_SIZE < 1:
            errors.append("PERSIST_CHUNK_SIZE must be at least 1")
        if config.S3_MAX_RETRIES < 1:
            errors.append("S3_MAX_RETRIES must be at least 1")
        if config.STUCK_PROCESSING_HOURS < 1:
            warnings.append("STUCK_PROCESSING_HOURS below 1 may reset files that are still running")
        if config.CLEANUP_RETENTION_DAYS < 7:
            warnings.append(f"CLEANUP_RETENTION_DAYS={config.CLEANUP_RETENTION_DAYS} keeps little history")

        if check_connectivity and not errors:
            try:
                await self.store.check_connectivity()
            except StorageError as e:
                errors.append(f"Object store not reachable: {e.message}")

        report = ConfigurationReport(valid=not errors, errors=errors, warnings=warnings)
        logger.info(f"Configuration valid={report.valid} errors={len(errors)} warnings={len(warnings)}")
        return report

    # ==================================================================
    # Health and statistics
    # ==================================================================

    async def get_health(self) -> HealthReport:
        """Processing health over the trailing 24 hours; DOWN with the error if it cannot be computed."""
        now = datetime.utcnow()
        try:
            processed, failed = await self.tracking.outcome_counts_since(now - timedelta(hours=24))
            last = await self.tracking.last_completed()
        except Exception as e:
            logger.exception("Failed to compute processing health")
            return HealthReport(status=DOWN, timestamp=now, error=str(e), issues=[f"Health check failed: {e}"])

        return evaluate_health(
            now=now,
            recent_processed=processed,
            recent_failed=failed,
            currently_processing=len(self._active_files),
            last_completed_at=last.processing_completed_at if last else None,
            last_completed_file=last.s3_key if last else None,
            failure_rate_threshold=self.config.FAILURE_RATE_THRESHOLD,
            staleness_hours=self.config.STALENESS_THRESHOLD_HOURS,
            max_concurrent_files=self.max_concurrent_files,
        )

    async def get_file_statistics(self, provider: Optional[ProviderType] = None) -> FileStatistics:
        return await self.tracking.statistics(provider.value if provider else None)

    # ==================================================================
    # Shutdown
    # ==================================================================

    async def shutdown(self, timeout: float = None):
        """
        Stop accepting work, wait up to ``timeout`` seconds for in-flight
        jobs and files, then cancel whatever is left.
        """
        timeout = self.config.SHUTDOWN_TIMEOUT_SECONDS if timeout is None else timeout
        self._accepting = False

        pending = [t for t in list(self._job_tasks.values()) + list(self._file_tasks) if not t.done()]
        if pending:
            logger.info(f"Waiting up to {timeout}s for {len(pending)} in-flight tasks")
            done, still_running = await asyncio.wait(pending, timeout=timeout)
            if still_running:
                logger.warning(f"Cancelling {len(still_running)} tasks after shutdown timeout")
                for task in still_running:
                    task.cancel()
                await asyncio.gather(*still_running, return_exceptions=True)

        self._pool = None
        logger.info("Processing orchestrator shut down")
