"""
Transform validated raw review records into ReviewCreate models
"""

from typing import Any, Dict, Optional
import hashlib
import logging

from pydantic import ValidationError as PydanticValidationError

from core.exceptions import NormalizationError
from ingestion.transformers.validator import parse_review_date
from models.provider import Provider
from schemas.reviews import RawReviewRecord, ReviewCreate

logger = logging.getLogger(__name__)


def content_hash(record: RawReviewRecord) -> str:
    """
    SHA-256 over hotel id, lowercased comment text, rating and review date.

    Used to spot the same review re-published under a different id.
    """
    comment = record.comment_section
    parts = [str(record.hotel_id)]

    comments = comment.get("reviewComments")
    parts.append(str(comments).strip().lower() if comments is not None else "")

    rating = comment.get("rating")
    parts.append(str(rating) if rating is not None else "")

    review_date = comment.get("reviewDate")
    parts.append(str(review_date) if review_date is not None else "")

    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


class ReviewNormalizer:
    """
    Map a raw provider record onto the unified review schema.

    Handles:
    - Field mapping out of the nested comment section
    - Type conversion
    - Rating normalization to the 5-point scale
    - Content hashing
    """

    def normalize(
        self,
        record: RawReviewRecord,
        provider: Provider,
        source_file: Optional[str] = None,
    ) -> ReviewCreate:
        """
        Normalize one record for ``provider``.

        Raises:
            NormalizationError: the record lacks an id or a field fails the
                ReviewCreate bounds
        """
        comment = record.comment_section
        provider_review_id = self._extract_review_id(comment, record.line_number)
        rating = self._parse_float(comment.get("rating"))
        reviewer_info = comment.get("reviewerInfo")
        if not isinstance(reviewer_info, dict):
            reviewer_info = {}

        try:
            return ReviewCreate(
                provider_code=provider.code,
                provider_review_id=provider_review_id,
                hotel_id=int(record.hotel_id),
                hotel_name=str(record.hotel_name),
                rating=rating,
                rating_normalized=provider.normalize_rating(rating),
                review_title=self._clean_text(comment.get("reviewTitle")),
                review_comments=self._clean_text(comment.get("reviewComments")),
                review_date=parse_review_date(comment.get("reviewDate")),
                language=self._clean_text(comment.get("language") or comment.get("translateSource")),
                reviewer_name=self._clean_text(
                    comment.get("reviewerName") or reviewer_info.get("displayMemberName")
                ),
                reviewer_country=self._clean_text(reviewer_info.get("countryName")),
                length_of_stay=self._parse_int(reviewer_info.get("lengthOfStay")),
                room_type=self._clean_text(reviewer_info.get("roomTypeName")),
                helpful_votes=self._parse_int(comment.get("helpfulVotes")),
                total_votes=self._parse_int(comment.get("totalVotes")),
                is_verified=comment.get("isVerified") is True,
                source_file=source_file,
                source_line_number=record.line_number,
                content_hash=content_hash(record),
            )
        except (PydanticValidationError, ValueError, TypeError) as e:
            raise NormalizationError(
                f"Failed to normalize review: {e}",
                context={"line_number": record.line_number, "provider": provider.code},
                original_exception=e
            ) from e

    @staticmethod
    def _extract_review_id(comment: Dict[str, Any], line_number: int) -> str:
        review_id = comment.get("hotelReviewId")
        if review_id is None:
            raise NormalizationError(
                "hotelReviewId is missing from comment data",
                context={"line_number": line_number}
            )
        # JSON numbers may arrive as 948353737.0
        if isinstance(review_id, float) and review_id.is_integer():
            review_id = int(review_id)
        return str(review_id).strip()

    @staticmethod
    def _clean_text(value: Any) -> Optional[str]:
        """Trimmed string, or None when absent or blank"""
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @staticmethod
    def _parse_float(value: Any) -> Optional[float]:
        """Safely parse float value"""
        if value is None or value == "" or isinstance(value, bool):
            return None
        try:
            return float(value)
        except (ValueError, TypeError):
            logger.warning(f"Invalid rating format: {value!r}")
            return None

    @staticmethod
    def _parse_int(value: Any) -> Optional[int]:
        """Safely parse int value"""
        if value is None or value == "" or isinstance(value, bool):
            return None
        try:
            return int(float(value))  # Handle "10.0" strings
        except (ValueError, TypeError):
            return None
