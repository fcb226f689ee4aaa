"""
SQLAlchemy ORM models for database tables.

Models:
    base: Declarative base, JSON column type and shared enums
        (ProcessingStatus, JobStatus, ProviderType)
    processed_file: File tracking ledger, one row per (s3_key, etag)
    processing_job: Processing job records with per-file outcomes
    provider: Review provider reference data
    review: Normalized reviews keyed by (provider_code, provider_review_id)

Database Schema:
    All models inherit from the Base declarative class. JSON columns map to
    JSONB on PostgreSQL and to JSON on other engines.

Usage:
    from models import ProcessedFile, ProcessingJob, Provider, Review
    from models.base import ProcessingStatus, JobStatus, ProviderType

Relationships:
    - Review -> Provider by provider_code foreign key (no back-reference)
    - ProcessingJob and ProcessedFile are linked only through file keys
      recorded on the job
"""

from models.base import Base, ProcessingStatus, JobStatus, ProviderType
from models.processed_file import ProcessedFile
from models.processing_job import ProcessingJob
from models.provider import Provider
from models.review import Review

__all__ = [
    "Base",
    "ProcessingStatus",
    "JobStatus",
    "ProviderType",
    "ProcessedFile",
    "ProcessingJob",
    "Provider",
    "Review",
]
