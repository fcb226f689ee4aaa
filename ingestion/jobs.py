"""
Processing job records and the per-run progress accumulator
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.database import async_session_maker, transaction_scope
from core.exceptions import JobNotFoundError
from models.base import JobStatus
from models.processing_job import ProcessingJob

logger = logging.getLogger(__name__)

JOB_ERROR_MAX_LENGTH = 1000


def generate_job_id(now: datetime = None) -> str:
    """PROC-<yyyymmdd-HHMMSS>-<random suffix>"""
    now = now or datetime.utcnow()
    return f"PROC-{now.strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:6].upper()}"


@dataclass
class JobProgress:
    """
    Outcome accumulator for one run.

    Owned by the coroutine driving the run; file tasks report back to it
    and only the owner writes it to the job record.
    """
    total_files: int = 0
    processed_file_names: List[str] = field(default_factory=list)
    failed_file_names: List[str] = field(default_factory=list)
    total_reviews: int = 0

    @property
    def processed_files(self) -> int:
        return len(self.processed_file_names)

    @property
    def failed_files(self) -> int:
        return len(self.failed_file_names)

    def record_success(self, file_name: str, reviews: int):
        self.processed_file_names.append(file_name)
        self.total_reviews += reviews

    def record_failure(self, file_name: str):
        self.failed_file_names.append(file_name)

    def record_skipped(self, file_name: str):
        """A dispatched file another run took; it no longer counts towards this job."""
        self.total_files = max(self.total_files - 1, 0)
        logger.debug(f"{file_name} skipped, {self.total_files} files left in this job")

    def summary(self, job_id: str) -> str:
        return (
            f"Processing completed for job: {job_id}. Files processed: {self.processed_files}, "
            f"Failed: {self.failed_files}, Total reviews: {self.total_reviews}"
        )


class ProcessingJobStore:
    """CRUD and state transitions for ProcessingJob rows"""

    def __init__(self, session_factory: async_sessionmaker = None):
        self.session_factory = session_factory or async_session_maker

    async def create(
        self,
        provider: Optional[str] = None,
        s3_prefix: Optional[str] = None,
        max_files: Optional[int] = None,
        triggered_by: str = "API",
        asynchronous: bool = False,
    ) -> ProcessingJob:
        job = ProcessingJob(
            processing_id=generate_job_id(),
            status=JobStatus.PENDING,
            provider=provider,
            s3_prefix=s3_prefix,
            max_files=max_files,
            triggered_by=triggered_by,
            is_asynchronous=asynchronous,
            total_files=0,
            processed_files=0,
            failed_files=0,
            total_reviews=0,
            processed_file_names=[],
            failed_file_names=[],
        )
        async with transaction_scope(self.session_factory) as session:
            session.add(job)
        logger.info(f"Created processing job {job.processing_id} (triggered by {triggered_by})")
        return job

    async def find(self, job_id: str) -> Optional[ProcessingJob]:
        async with self.session_factory() as session:
            return await session.get(ProcessingJob, job_id)

    async def get(self, job_id: str) -> ProcessingJob:
        job = await self.find(job_id)
        if job is None:
            raise JobNotFoundError(f"Processing job not found: {job_id}", context={"job_id": job_id})
        return job

    async def mark_started(self, job_id: str) -> ProcessingJob:
        async with transaction_scope(self.session_factory) as session:
            job = await self._load(session, job_id)
            job.status = JobStatus.IN_PROGRESS
            job.start_time = datetime.utcnow()
        return job

    async def save_progress(self, job_id: str, progress: JobProgress) -> ProcessingJob:
        async with transaction_scope(self.session_factory) as session:
            job = await self._load(session, job_id)
            self._apply(job, progress)
        return job

    async def finish(
        self,
        job_id: str,
        status: JobStatus,
        progress: Optional[JobProgress] = None,
        error_message: Optional[str] = None,
    ) -> ProcessingJob:
        """
        Move a job to a terminal status.

        A job that is already terminal keeps its status; this happens when a
        cancelled run unwinds after stop_job already recorded CANCELLED.
        """
        async with transaction_scope(self.session_factory) as session:
            job = await self._load(session, job_id)
            if progress is not None:
                self._apply(job, progress)
            if JobStatus(job.status).is_terminal:
                logger.debug(f"Job {job_id} already {job.status}, keeping it")
                return job
            job.status = status
            job.end_time = datetime.utcnow()
            if error_message:
                job.error_message = error_message[:JOB_ERROR_MAX_LENGTH]
        logger.info(f"Processing job {job_id} finished with status {status.value}")
        return job

    @staticmethod
    def _apply(job: ProcessingJob, progress: JobProgress):
        job.total_files = progress.total_files
        job.processed_files = progress.processed_files
        job.failed_files = progress.failed_files
        job.total_reviews = progress.total_reviews
        job.processed_file_names = list(progress.processed_file_names)
        job.failed_file_names = list(progress.failed_file_names)

    @staticmethod
    async def _load(session, job_id: str) -> ProcessingJob:
        job = await session.get(ProcessingJob, job_id)
        if job is None:
            raise JobNotFoundError(f"Processing job not found: {job_id}", context={"job_id": job_id})
        return job

    async def list_jobs(self, limit: int = 50) -> List[ProcessingJob]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ProcessingJob).order_by(ProcessingJob.created_at.desc()).limit(limit)
            )
            return list(result.scalars().all())

    async def history(
        self,
        provider: Optional[str],
        start: datetime,
        end: datetime,
        limit: int = 100,
    ) -> List[ProcessingJob]:
        query = select(ProcessingJob).where(
            ProcessingJob.created_at >= start,
            ProcessingJob.created_at <= end,
        )
        if provider:
            query = query.where(ProcessingJob.provider == provider)
        async with self.session_factory() as session:
            result = await session.execute(query.order_by(ProcessingJob.created_at.desc()).limit(limit))
            return list(result.scalars().all())

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete terminal jobs created before ``cutoff``."""
        terminal = [JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED]
        async with transaction_scope(self.session_factory) as session:
            result = await session.execute(
                delete(ProcessingJob)
                .where(ProcessingJob.created_at < cutoff, ProcessingJob.status.in_(terminal))
                .execution_options(synchronize_session=False)
            )
        deleted = result.rowcount or 0
        logger.info(f"Deleted {deleted} processing jobs older than {cutoff}")
        return deleted
