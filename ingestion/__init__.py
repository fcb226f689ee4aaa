"""
Review file ingestion pipeline.

This package contains every component between the source bucket and the
reviews table:

Modules:
    runner: ProcessingOrchestrator - triggers, dispatch, job lifecycle,
        maintenance and health
    scheduler: APScheduler integration for periodic processing, stuck-file
        sweeps and retention cleanup
    tracking: File tracking ledger, one record per (s3_key, etag)
    jobs: Processing job records and the per-run progress accumulator
    health: UP / DEGRADED / DOWN classification

Subpackages:
    extractors: S3 object store client and file lister
    parsers: Streaming line-delimited JSON parser
    transformers: Record validation and normalization
    loaders: Batch deduplication and chunked persistence

Architecture:
    A processing run follows four phases:

    1. Discover - list candidate files under the prefix, oldest first
    2. Filter - provider, already-completed versions, max files
    3. Dispatch - files run concurrently up to MAX_CONCURRENT_FILES; each
       file is downloaded with retry, parsed in batches and persisted in
       chunks
    4. Finalize - the job record gets its terminal status and counts

    A failing file never affects its siblings. It is recorded as FAILED on
    its tracking record and picked up again by a later run.

Usage:
    from ingestion.runner import ProcessingOrchestrator
    from schemas.processing import ProcessingTriggerRequest

Example:
    orchestrator = ProcessingOrchestrator()
    summary = await orchestrator.trigger_processing(
        ProcessingTriggerRequest(max_files=10)
    )

Error Handling:
    All components raise exceptions from core.exceptions. Object store
    errors are classified as retryable or not so downloads can be retried
    on type alone.
"""

__all__ = [
    "ProcessingOrchestrator",
    "ProcessingScheduler",
    "FileTrackingStore",
    "ProcessingJobStore",
    "JobProgress",
    "evaluate_health",
]
