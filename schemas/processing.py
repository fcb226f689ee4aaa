"""
Pydantic schemas for processing results, jobs and health
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import ProcessingStatus, JobStatus, ProviderType


# ============================================================================
# Batch Results
# ============================================================================

class BatchResult(BaseModel):
    """Aggregate outcome of persisting one batch of raw reviews"""
    processed_count: int = 0
    valid_count: int = 0
    invalid_count: int = 0
    duplicate_count: int = 0
    errors: List[str] = Field(default_factory=list)
    status: ProcessingStatus = ProcessingStatus.COMPLETED
    processing_time_ms: int = 0


# ============================================================================
# Trigger / Job Schemas
# ============================================================================

class ProcessingTriggerRequest(BaseModel):
    """Manual processing trigger"""
    provider: Optional[ProviderType] = Field(None, description="Only process files for this provider")
    max_files: Optional[int] = Field(None, description="Upper bound on files processed by this job")
    s3_prefix: Optional[str] = Field(None, description="Override the configured key prefix")
    asynchronous: bool = Field(False, description="Return a job id immediately instead of waiting")


class ProcessingStatusResponse(BaseModel):
    """Processing job state as reported to callers"""
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: str
    status: JobStatus
    provider: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    total_files: int = 0
    processed_files: int = 0
    failed_files: int = 0
    total_reviews: int = 0
    progress_percent: float = 0.0
    error_message: Optional[str] = None
    processed_file_names: List[str] = Field(default_factory=list)
    failed_file_names: List[str] = Field(default_factory=list)
    triggered_by: Optional[str] = None
    is_asynchronous: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job) -> "ProcessingStatusResponse":
        return cls(
            id=job.processing_id,
            status=job.status,
            provider=job.provider,
            start_time=job.start_time,
            end_time=job.end_time,
            duration_seconds=job.duration_seconds,
            total_files=job.total_files or 0,
            processed_files=job.processed_files or 0,
            failed_files=job.failed_files or 0,
            total_reviews=job.total_reviews or 0,
            progress_percent=job.progress_percent,
            error_message=job.error_message,
            processed_file_names=list(job.processed_file_names or []),
            failed_file_names=list(job.failed_file_names or []),
            triggered_by=job.triggered_by,
            is_asynchronous=bool(job.is_asynchronous),
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


# ============================================================================
# Statistics / Health
# ============================================================================

class FileStatistics(BaseModel):
    """File tracking counts, optionally for one provider"""
    provider: Optional[str] = None
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    failed: int = 0
    success_rate: float = 0.0
    failure_rate: float = 0.0


class HealthReport(BaseModel):
    """Processing health: UP, DEGRADED or DOWN"""
    status: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    failure_rate: float = 0.0
    failure_rate_threshold: float = 0.0
    recent_processed_files: int = 0
    recent_failed_files: int = 0
    currently_processing: int = 0
    max_concurrent_files: int = 0
    last_processed_file: Optional[str] = None
    last_processing_completed_at: Optional[datetime] = None
    hours_since_last_processing: Optional[float] = None
    is_stale: bool = True
    issues: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class ConfigurationReport(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.utcnow)
