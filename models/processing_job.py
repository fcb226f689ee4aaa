from sqlalchemy import Column, String, Enum, DateTime, Integer, Boolean, Index
from sqlalchemy.ext.mutable import MutableList
from datetime import datetime
from models.base import Base, JobStatus, JSONType


class ProcessingJob(Base):
    """
    One accepted processing trigger (manual, scheduled or retry).

    Purpose:
    - Audit trail of processing runs
    - Progress and per-file outcome reporting
    - Source record for retrying a failed run
    """
    __tablename__ = "processing_jobs"

    processing_id = Column(String(50), primary_key=True)

    status = Column(Enum(JobStatus, name="job_status"), default=JobStatus.PENDING, nullable=False, index=True)
    provider = Column(String(20), nullable=True, index=True)
    s3_prefix = Column(String(500), nullable=True)
    max_files = Column(Integer, nullable=True)

    # Timestamps
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Statistics
    total_files = Column(Integer, default=0, nullable=False)
    processed_files = Column(Integer, default=0, nullable=False)
    failed_files = Column(Integer, default=0, nullable=False)
    total_reviews = Column(Integer, default=0, nullable=False)

    # Per-file outcomes, in completion order
    processed_file_names = Column(MutableList.as_mutable(JSONType), default=list, nullable=False)
    failed_file_names = Column(MutableList.as_mutable(JSONType), default=list, nullable=False)

    error_message = Column(String(1000), nullable=True)
    triggered_by = Column(String(100), nullable=True)
    is_asynchronous = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("idx_processing_jobs_provider_created", "provider", "created_at"),
        Index("idx_processing_jobs_status_created", "status", "created_at"),
    )

    @property
    def duration_seconds(self):
        if not self.start_time:
            return None
        end = self.end_time or datetime.utcnow()
        return (end - self.start_time).total_seconds()

    @property
    def progress_percent(self) -> float:
        """Share of dispatched files that reached an outcome."""
        if not self.total_files:
            return 0.0
        done = (self.processed_files or 0) + (self.failed_files or 0)
        return round(done * 100.0 / self.total_files, 2)

    def __repr__(self) -> str:
        return f"<ProcessingJob {self.processing_id} status={self.status}>"
