"""
Custom exceptions for the review ingestion pipeline with structured error context.

This module provides the exception hierarchy used throughout ingestion.
Each exception carries a context dictionary for debugging and monitoring.

Exception Hierarchy:
    IngestionException (base)
    ├── StorageError
    │   ├── ObjectListingError
    │   └── ObjectDownloadError
    ├── TransformationError
    │   └── NormalizationError
    ├── LoadError
    │   └── ReviewPersistenceError
    ├── TrackingError
    │   └── TrackingRecordNotFoundError
    ├── ProcessingJobError
    │   ├── JobNotFoundError
    │   ├── IllegalJobStateError
    │   ├── InvalidTriggerRequestError
    │   └── ProcessingAlreadyActiveError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class IngestionException(Exception):
    """
    Base exception for all ingestion-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (bucket, key, job id, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Object Store Errors
# ============================================================================

class StorageError(IngestionException):
    """Base exception for object store failures."""
    pass


class ObjectListingError(StorageError):
    """
    Raised when listing the source bucket fails.

    Context should include:
        - bucket: Bucket being listed
        - prefix: Key prefix
    """
    pass


class ObjectDownloadError(StorageError):
    """
    Raised when an object body cannot be fetched.

    Context should include:
        - bucket: Source bucket
        - key: Object key
        - attempts: Number of attempts made (if retried)
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(IngestionException):
    """Base exception for review transformation failures."""
    pass


class NormalizationError(TransformationError):
    """
    Raised when a valid record cannot be mapped to a review.

    Context should include:
        - line_number: Source line of the record
        - field_name: Field that could not be mapped
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(IngestionException):
    """Base exception for data loading failures."""
    pass


class ReviewPersistenceError(LoadError):
    """
    Raised when a chunk of reviews cannot be written.

    The chunk's transaction has been rolled back when this is raised.

    Context should include:
        - chunk_index: Index of the failed chunk
        - chunk_size: Number of reviews in the chunk
        - source_file: Object key the reviews came from (if known)
    """
    pass


# ============================================================================
# Tracking / Job Errors
# ============================================================================

class TrackingError(IngestionException):
    """Base exception for file tracking failures."""
    pass


class TrackingRecordNotFoundError(TrackingError):
    """Raised when a file tracking record id does not exist."""
    pass


class ProcessingJobError(IngestionException):
    """Base exception for processing job operations."""
    pass


class JobNotFoundError(ProcessingJobError):
    """Raised when a processing job id does not exist."""
    pass


class IllegalJobStateError(ProcessingJobError):
    """Raised for a transition the job's current status does not allow."""
    pass


class InvalidTriggerRequestError(ProcessingJobError):
    """Raised when a processing trigger request fails validation."""
    pass


class ProcessingAlreadyActiveError(ProcessingJobError):
    """Raised when a manual trigger arrives while another one is running."""
    pass


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(IngestionException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts and dropped connections
    - Throttling (SlowDown, HTTP 503)
    """
    pass


class NonRetryableError(IngestionException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Missing objects (NoSuchKey, HTTP 404)
    - Access denied (HTTP 403)
    - Malformed requests
    """
    pass


# ============================================================================
# Specific Retryable Errors
# ============================================================================

class StorageNetworkError(RetryableError, ObjectDownloadError):
    """Connection, timeout and server-side object store errors."""
    pass


class StorageThrottledError(RetryableError, ObjectDownloadError):
    """Throttling responses from the object store."""
    pass


# ============================================================================
# Specific Non-Retryable Errors
# ============================================================================

class ObjectNotFoundError(NonRetryableError, ObjectDownloadError):
    """The requested object or bucket does not exist."""
    pass


class StorageAccessDeniedError(NonRetryableError, ObjectDownloadError):
    """Credentials were rejected or lack permission for the object."""
    pass
