"""
Validate, deduplicate and persist batches of raw reviews.

One call to process_batch handles one parser batch:
- every record is validated; violations are counted, never fatal
- valid records are normalized against their provider (auto-created if new)
- business keys already stored, or already seen in the batch, are duplicates
- the remainder is written in chunks, one transaction per chunk
"""

import asyncio
import logging
import time
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import settings
from core.database import async_session_maker, transaction_scope
from core.exceptions import NormalizationError, ReviewPersistenceError
from ingestion.transformers.normalizer import ReviewNormalizer
from ingestion.transformers.validator import ReviewDataValidator
from models.base import ProcessingStatus, ProviderType
from models.provider import Provider
from models.review import Review
from schemas.processing import BatchResult
from schemas.reviews import RawReviewRecord, ReviewCreate

logger = logging.getLogger(__name__)

MAX_RECORDED_ERRORS = 100

BusinessKey = Tuple[str, str]


class ReviewBatchLoader:
    """
    Turn raw review records into stored Review rows.

    Ensures:
    - No duplicate rows for a business key, within or across batches
    - A failed chunk leaves nothing behind (its transaction is rolled back)
    - Counts always add up: processed = valid + invalid + duplicate
    """

    def __init__(
        self,
        session_factory: async_sessionmaker = None,
        validator: ReviewDataValidator = None,
        normalizer: ReviewNormalizer = None,
        chunk_size: int = None,
    ):
        self.session_factory = session_factory or async_session_maker
        self.validator = validator or ReviewDataValidator()
        self.normalizer = normalizer or ReviewNormalizer()
        self.chunk_size = chunk_size or settings.PERSIST_CHUNK_SIZE

    async def process_batch(
        self,
        records: List[RawReviewRecord],
        source_file: Optional[str] = None,
    ) -> BatchResult:
        """
        Process one batch of raw records.

        Returns:
            BatchResult with aggregate counts. Status is FAILED whenever any
            record was invalid, even if the rest were stored.

        Raises:
            ReviewPersistenceError: a chunk write failed; earlier chunks stay
                committed
        """
        started = time.monotonic()
        result = BatchResult(processed_count=len(records))

        if not records:
            logger.debug("Empty batch, nothing to process")
            return result

        # ----------------------------------------------------------------
        # Validate and normalize
        # ----------------------------------------------------------------
        providers: Dict[ProviderType, Provider] = {}
        accepted: List[ReviewCreate] = []

        for record in records:
            violations = self.validator.validate(record)
            if violations:
                self._record_invalid(result, record.line_number, "; ".join(violations))
                continue

            provider_type = ProviderType.from_name(record.provider)
            if provider_type not in providers:
                providers[provider_type] = await self._get_or_create_provider(provider_type)

            try:
                accepted.append(
                    self.normalizer.normalize(record, providers[provider_type], source_file)
                )
            except NormalizationError as e:
                self._record_invalid(result, record.line_number, e.message)

        # ----------------------------------------------------------------
        # Deduplicate
        # ----------------------------------------------------------------
        fresh = await self._drop_duplicates(accepted, result)

        # ----------------------------------------------------------------
        # Persist
        # ----------------------------------------------------------------
        saved = await self._persist(fresh, source_file)
        result.valid_count = saved

        result.status = (
            ProcessingStatus.COMPLETED
            if result.invalid_count == 0 and not result.errors
            else ProcessingStatus.FAILED
        )
        result.processing_time_ms = int((time.monotonic() - started) * 1000)

        logger.info(
            f"Batch processed: {result.processed_count} records, {result.valid_count} saved, "
            f"{result.invalid_count} invalid, {result.duplicate_count} duplicates "
            f"({result.processing_time_ms}ms)"
        )
        return result

    @staticmethod
    def _record_invalid(result: BatchResult, line_number: int, message: str):
        result.invalid_count += 1
        if len(result.errors) < MAX_RECORDED_ERRORS:
            result.errors.append(f"Line {line_number}: {message}")

    async def _get_or_create_provider(self, provider_type: ProviderType) -> Provider:
        """Look up a provider by code, creating it with defaults on first sight."""
        try:
            async with transaction_scope(self.session_factory) as session:
                provider = await self._find_provider(session, provider_type.value)
                if provider is None:
                    provider = Provider.with_defaults(provider_type)
                    session.add(provider)
                    logger.info(f"Creating provider {provider_type.value}")
            return provider

        except IntegrityError:
            # Another worker created it first
            async with self.session_factory() as session:
                provider = await self._find_provider(session, provider_type.value)
            if provider is None:
                raise
            return provider

    @staticmethod
    async def _find_provider(session, code: str) -> Optional[Provider]:
        result = await session.execute(select(Provider).where(Provider.code == code))
        return result.scalar_one_or_none()

    async def _drop_duplicates(
        self,
        reviews: List[ReviewCreate],
        result: BatchResult,
    ) -> List[ReviewCreate]:
        if not reviews:
            return []

        existing = await self._existing_keys(r.business_key for r in reviews)
        seen: Set[BusinessKey] = set()
        fresh: List[ReviewCreate] = []

        for review in reviews:
            key = review.business_key
            if key in existing or key in seen:
                result.duplicate_count += 1
                logger.debug(f"Duplicate review skipped: {key[0]}:{key[1]}")
                continue
            seen.add(key)
            fresh.append(review)

        return fresh

    async def _existing_keys(self, keys: Iterable[BusinessKey]) -> Set[BusinessKey]:
        """Business keys from ``keys`` that are already stored."""
        by_provider: Dict[str, Set[str]] = {}
        for code, review_id in keys:
            by_provider.setdefault(code, set()).add(review_id)

        existing: Set[BusinessKey] = set()
        async with self.session_factory() as session:
            for code, review_ids in by_provider.items():
                rows = await session.execute(
                    select(Review.provider_review_id).where(
                        Review.provider_code == code,
                        Review.provider_review_id.in_(review_ids),
                    )
                )
                existing.update((code, review_id) for review_id in rows.scalars())
        return existing

    async def _persist(self, reviews: List[ReviewCreate], source_file: Optional[str]) -> int:
        saved = 0
        for index in range(0, len(reviews), self.chunk_size):
            chunk = reviews[index:index + self.chunk_size]
            # A cancelled caller must not interrupt a chunk mid-transaction
            await asyncio.shield(self._write_chunk(chunk, index // self.chunk_size, source_file))
            saved += len(chunk)
        return saved

    async def _write_chunk(self, chunk: List[ReviewCreate], chunk_index: int, source_file: Optional[str]):
        try:
            async with transaction_scope(self.session_factory) as session:
                session.add_all([Review(**review.model_dump()) for review in chunk])
        except SQLAlchemyError as e:
            logger.error(f"Chunk {chunk_index} ({len(chunk)} reviews) failed and was rolled back: {e}")
            raise ReviewPersistenceError(
                f"Failed to persist review chunk {chunk_index}",
                context={
                    "chunk_index": chunk_index,
                    "chunk_size": len(chunk),
                    "source_file": source_file,
                },
                original_exception=e
            ) from e

        logger.debug(f"Chunk {chunk_index}: saved {len(chunk)} reviews")
