"""
Core utilities and configuration for the review ingestion service.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Async engine, session factory and transaction scope
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration
    retry: Retry-with-backoff helper and error classifier

Usage:
    from core.config import settings
    from core.database import async_session_maker, transaction_scope
    from core.exceptions import ObjectNotFoundError, StorageNetworkError
    from core.logging import setup_logging
    from core.retry import retry_with_backoff

Example:
    setup_logging()

    async with transaction_scope(async_session_maker) as session:
        session.add(record)
"""

__all__ = [
    "settings",
    "async_session_maker",
    "transaction_scope",
    "setup_logging",
    "retry_with_backoff",
    # Exceptions
    "IngestionException",
    "StorageError",
    "ObjectListingError",
    "ObjectDownloadError",
    "TransformationError",
    "NormalizationError",
    "LoadError",
    "ReviewPersistenceError",
    "TrackingError",
    "TrackingRecordNotFoundError",
    "ProcessingJobError",
    "JobNotFoundError",
    "IllegalJobStateError",
    "InvalidTriggerRequestError",
    "ProcessingAlreadyActiveError",
    "RetryableError",
    "NonRetryableError",
    "StorageNetworkError",
    "StorageThrottledError",
    "ObjectNotFoundError",
    "StorageAccessDeniedError",
]
