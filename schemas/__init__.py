"""
Pydantic schemas for validation and API contracts.

Modules:
    reviews: Raw review lines and normalized ReviewCreate records
    processing: Batch results, trigger requests, job status, statistics, health
    api: HTTP response envelopes

Usage:
    from schemas.reviews import RawReviewRecord, ReviewCreate
    from schemas.processing import BatchResult, ProcessingTriggerRequest
"""

__all__ = [
    "RawReviewRecord",
    "ReviewCreate",
    "BatchResult",
    "ProcessingTriggerRequest",
    "ProcessingStatusResponse",
    "FileStatistics",
    "HealthReport",
    "ConfigurationReport",
    "TriggerResponse",
    "RetryResponse",
    "ProcessingLogsResponse",
    "MessageResponse",
    "ErrorResponse",
]
