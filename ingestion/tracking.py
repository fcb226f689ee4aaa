"""
File tracking store: the idempotency and recovery ledger.

One ProcessedFile row per (s3_key, etag) file version. Every mutation is a
load-mutate-save inside its own transaction; no state is cached between calls,
so concurrent workers only ever share what the database holds.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.database import async_session_maker, transaction_scope
from core.exceptions import TrackingRecordNotFoundError
from ingestion.extractors.object_store import FileRef
from models.base import ProcessingStatus
from models.processed_file import ProcessedFile
from schemas.processing import FileStatistics

logger = logging.getLogger(__name__)

STUCK_FILE_MESSAGE = "Processing timeout - file was stuck in processing state"
CLAIMABLE_STATUSES = (ProcessingStatus.PENDING, ProcessingStatus.FAILED)


@dataclass
class TrackingResult:
    """Outcome of create_or_get: the record, and whether this call created it"""
    record: ProcessedFile
    created: bool


class FileTrackingStore:
    """
    Persisted status of every file version the pipeline has seen.

    Status transitions:
        PENDING -> IN_PROGRESS -> COMPLETED | FAILED | SKIPPED
    A FAILED record may be started again by a later run.
    """

    def __init__(self, session_factory: async_sessionmaker = None):
        self.session_factory = session_factory or async_session_maker

    # ------------------------------------------------------------------
    # Idempotency
    # ------------------------------------------------------------------

    async def is_already_processed(self, s3_key: str, etag: str) -> bool:
        """True only when exactly this file version completed."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ProcessedFile.id).where(
                    ProcessedFile.s3_key == s3_key,
                    ProcessedFile.etag == etag,
                    ProcessedFile.processing_status == ProcessingStatus.COMPLETED,
                )
            )
            return result.first() is not None

    async def create_or_get(self, ref: FileRef, provider: Optional[str] = None) -> TrackingResult:
        """
        Return the record for ``ref``'s file version, creating it as PENDING
        when absent.

        Safe under concurrent callers: the unique (s3_key, etag) constraint
        decides the winner and a losing insert falls back to a fetch.
        """
        existing = await self.get_by_key(ref.key, ref.etag)
        if existing is not None:
            logger.debug(f"File tracking record already exists: {existing.id}")
            return TrackingResult(record=existing, created=False)

        record = ProcessedFile(
            s3_key=ref.key,
            etag=ref.etag,
            file_size=ref.size,
            last_modified_date=ref.last_modified,
            provider=provider,
            processing_status=ProcessingStatus.PENDING,
            records_processed=0,
            records_failed=0,
        )
        try:
            async with transaction_scope(self.session_factory) as session:
                session.add(record)
        except IntegrityError:
            existing = await self.get_by_key(ref.key, ref.etag)
            if existing is None:
                raise
            logger.info(f"Lost tracking record creation race for {ref.key}, using record {existing.id}")
            return TrackingResult(record=existing, created=False)

        logger.info(f"Created file tracking record {record.id} for {ref.key} (etag={ref.etag})")
        return TrackingResult(record=record, created=True)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def mark_started(self, file_id: int) -> Optional[ProcessedFile]:
        """
        Claim a PENDING or FAILED record for processing.

        The claim is one conditional UPDATE, so of several runs racing for the
        same record exactly one wins. Returns the claimed record, or None when
        another run holds it or it has already completed.
        """
        async with transaction_scope(self.session_factory) as session:
            result = await session.execute(
                update(ProcessedFile)
                .where(
                    ProcessedFile.id == file_id,
                    ProcessedFile.processing_status.in_(CLAIMABLE_STATUSES),
                )
                .values(
                    processing_status=ProcessingStatus.IN_PROGRESS,
                    processing_started_at=datetime.utcnow(),
                    processing_completed_at=None,
                    error_message=None,
                )
                .execution_options(synchronize_session=False)
            )
            record = await self._load(session, file_id)

        if result.rowcount != 1:
            logger.info(f"File ID {file_id} not claimed, status is {record.processing_status}")
            return None
        logger.info(f"Marked processing started for file ID: {file_id}")
        return record

    async def mark_completed(self, file_id: int, records_processed: int, records_failed: int) -> ProcessedFile:
        async with transaction_scope(self.session_factory) as session:
            record = await self._load(session, file_id)
            record.mark_processing_completed(records_processed, records_failed)
        logger.info(
            f"Marked processing completed for file ID: {file_id} "
            f"(processed={records_processed}, failed={records_failed})"
        )
        return record

    async def mark_failed(self, file_id: int, error_message: str) -> ProcessedFile:
        """Mark FAILED; messages over the column bound are truncated."""
        async with transaction_scope(self.session_factory) as session:
            record = await self._load(session, file_id)
            record.mark_processing_failed(error_message)
        logger.error(f"Marked processing failed for file ID: {file_id}, error: {error_message}")
        return record

    @staticmethod
    async def _load(session, file_id: int) -> ProcessedFile:
        record = await session.get(ProcessedFile, file_id)
        if record is None:
            raise TrackingRecordNotFoundError(
                f"File tracking record not found: {file_id}",
                context={"file_id": file_id}
            )
        return record

    # ------------------------------------------------------------------
    # Recovery and retention
    # ------------------------------------------------------------------

    async def find_stuck(self, older_than: datetime) -> List[ProcessedFile]:
        """IN_PROGRESS records started before ``older_than``."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ProcessedFile)
                .where(
                    ProcessedFile.processing_status == ProcessingStatus.IN_PROGRESS,
                    ProcessedFile.processing_started_at < older_than,
                )
                .order_by(ProcessedFile.processing_started_at)
            )
            return list(result.scalars().all())

    async def reset_stuck(
        self,
        older_than: datetime,
        to_status: ProcessingStatus = ProcessingStatus.FAILED,
    ) -> List[ProcessedFile]:
        """
        Fail every stuck record, or return it to PENDING, so the next run
        picks the file up again.

        Records are re-checked inside the transaction; one that finished in
        the meantime is left alone.
        """
        stuck = await self.find_stuck(older_than)
        if not stuck:
            return []

        logger.warning(f"Found {len(stuck)} stuck processing files")
        reset: List[ProcessedFile] = []
        async with transaction_scope(self.session_factory) as session:
            for candidate in stuck:
                record = await session.get(ProcessedFile, candidate.id)
                if record is None or record.processing_status != ProcessingStatus.IN_PROGRESS:
                    continue
                logger.warning(f"Resetting stuck file: ID={record.id}, s3Key={record.s3_key}")
                if to_status == ProcessingStatus.PENDING:
                    record.reset_to_pending()
                else:
                    record.mark_processing_failed(STUCK_FILE_MESSAGE)
                reset.append(record)
        return reset

    async def delete_older_than(
        self,
        cutoff: datetime,
        statuses: Sequence[ProcessingStatus] = None,
    ) -> int:
        """Delete terminal records created before ``cutoff``; returns the count."""
        statuses = list(statuses or ProcessingStatus.terminal())
        logger.info(f"Cleaning up processed file records older than: {cutoff}")
        async with transaction_scope(self.session_factory) as session:
            result = await session.execute(
                delete(ProcessedFile)
                .where(
                    ProcessedFile.created_at < cutoff,
                    ProcessedFile.processing_status.in_(statuses),
                )
                .execution_options(synchronize_session=False)
            )
        deleted = result.rowcount or 0
        logger.info(f"Cleaned up {deleted} old processed file records")
        return deleted

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_by_id(self, file_id: int) -> ProcessedFile:
        async with self.session_factory() as session:
            return await self._load(session, file_id)

    async def get_by_key(self, s3_key: str, etag: str) -> Optional[ProcessedFile]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ProcessedFile).where(ProcessedFile.s3_key == s3_key, ProcessedFile.etag == etag)
            )
            return result.scalar_one_or_none()

    async def statistics(self, provider: Optional[str] = None) -> FileStatistics:
        """Counts per status; rates are percentages and 0 when there are no files."""
        query = select(ProcessedFile.processing_status, func.count(ProcessedFile.id)).group_by(
            ProcessedFile.processing_status
        )
        if provider:
            query = query.where(ProcessedFile.provider == provider)

        async with self.session_factory() as session:
            rows = (await session.execute(query)).all()

        counts = {ProcessingStatus(status): count for status, count in rows}
        total = sum(counts.values())
        completed = counts.get(ProcessingStatus.COMPLETED, 0)
        failed = counts.get(ProcessingStatus.FAILED, 0)

        return FileStatistics(
            provider=provider,
            total=total,
            pending=counts.get(ProcessingStatus.PENDING, 0),
            in_progress=counts.get(ProcessingStatus.IN_PROGRESS, 0),
            completed=completed,
            failed=failed,
            success_rate=round(completed * 100.0 / total, 2) if total else 0.0,
            failure_rate=round(failed * 100.0 / total, 2) if total else 0.0,
        )

    async def outcome_counts_since(self, since: datetime) -> Tuple[int, int]:
        """(finished, failed) counts for files whose processing ended after ``since``."""
        async with self.session_factory() as session:
            finished = await session.scalar(
                select(func.count(ProcessedFile.id)).where(
                    ProcessedFile.processing_completed_at >= since
                )
            )
            failed = await session.scalar(
                select(func.count(ProcessedFile.id)).where(
                    ProcessedFile.processing_completed_at >= since,
                    ProcessedFile.processing_status == ProcessingStatus.FAILED,
                )
            )
        return finished or 0, failed or 0

    async def last_completed(self) -> Optional[ProcessedFile]:
        """Most recently completed file, if any."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ProcessedFile)
                .where(ProcessedFile.processing_status == ProcessingStatus.COMPLETED)
                .order_by(ProcessedFile.processing_completed_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()
