"""
Validation rules for raw review records.

Pure functions, no I/O. Every violation in a record is collected so a single
log line describes the whole problem.
"""

from datetime import datetime, timezone
from typing import Any, Callable, List, Optional
import logging
import math

from core.config import settings
from models.base import ProviderType
from schemas.reviews import RawReviewRecord

logger = logging.getLogger(__name__)

MAX_HOTEL_NAME_LENGTH = 255
MAX_REVIEW_COMMENTS_LENGTH = 5000
MIN_RATING = 0.0
MAX_RATING = 10.0

REVIEW_DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
)


def parse_review_date(value: Any) -> datetime:
    """
    Parse a review date in any accepted format.

    Offset-aware values are converted to naive UTC. Raises ValueError when no
    format matches.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        parsed = None
        for fmt in REVIEW_DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            raise ValueError(f"Unable to parse date: {text}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_number(value: Any) -> float:
    """Strict numeric conversion; booleans and non-numeric text raise ValueError."""
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, str):
        result = float(value.strip())
    else:
        raise ValueError(f"not a number: {value!r}")
    if math.isnan(result) or math.isinf(result):
        raise ValueError(f"not a finite number: {value!r}")
    return result


def to_integer(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"not an integer: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise ValueError(f"not an integer: {value!r}")


def _years_before(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return moment.replace(year=moment.year - years, day=28)


class ReviewDataValidator:
    """
    Validate RawReviewRecord instances.

    Args:
        max_review_age_years: Oldest accepted review date, in years
        clock: Returns "now" as naive UTC; injectable for tests
    """

    def __init__(
        self,
        max_review_age_years: int = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.max_review_age_years = max_review_age_years or settings.MAX_REVIEW_AGE_YEARS
        self.clock = clock

    def validate(self, record: RawReviewRecord) -> List[str]:
        """Return every rule violation for ``record``; empty means valid."""
        errors: List[str] = []

        self._validate_hotel_id(record.hotel_id, errors)
        self._validate_provider(record.provider, errors)
        self._validate_hotel_name(record.hotel_name, errors)
        self._validate_comment(record.comment, errors)

        if errors:
            logger.debug(f"Line {record.line_number}: {len(errors)} validation errors")
        return errors

    def is_valid(self, record: RawReviewRecord) -> bool:
        return not self.validate(record)

    # ------------------------------------------------------------------
    # Top-level fields
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_hotel_id(hotel_id: Any, errors: List[str]):
        if hotel_id is None:
            errors.append("Hotel ID is required")
            return
        try:
            if to_integer(hotel_id) <= 0:
                errors.append("Hotel ID must be positive")
        except ValueError:
            errors.append("Hotel ID must be a valid number")

    @staticmethod
    def _validate_provider(provider: Any, errors: List[str]):
        if provider is None:
            errors.append("Provider is required")
        elif not str(provider).strip():
            errors.append("Provider cannot be empty")
        elif ProviderType.from_name(provider) is None:
            names = ", ".join(p.display_name for p in ProviderType)
            errors.append(f"Provider must be one of: {names}")

    @staticmethod
    def _validate_hotel_name(hotel_name: Any, errors: List[str]):
        if hotel_name is None:
            errors.append("Hotel name is required")
        elif not str(hotel_name).strip():
            errors.append("Hotel name cannot be empty")
        elif len(str(hotel_name)) > MAX_HOTEL_NAME_LENGTH:
            errors.append(f"Hotel name cannot exceed {MAX_HOTEL_NAME_LENGTH} characters")

    # ------------------------------------------------------------------
    # Comment section
    # ------------------------------------------------------------------

    def _validate_comment(self, comment: Any, errors: List[str]):
        if comment is None:
            errors.append("Comment section is required")
            return
        if not isinstance(comment, dict):
            errors.append("Comment section must be an object")
            return

        self._validate_rating(comment.get("rating"), errors)
        self._validate_review_date(comment.get("reviewDate"), errors)
        self._validate_hotel_review_id(comment.get("hotelReviewId"), errors)
        self._validate_review_comments(comment.get("reviewComments"), errors)
        self._validate_reviewer_info(comment.get("reviewerInfo"), errors)

    @staticmethod
    def _validate_rating(rating: Any, errors: List[str]):
        if rating is None:
            return
        try:
            value = to_number(rating)
        except ValueError:
            errors.append("Rating must be a valid number")
            return
        if value < MIN_RATING or value > MAX_RATING:
            errors.append(f"Rating must be between {MIN_RATING} and {MAX_RATING}")

    def _validate_review_date(self, review_date: Any, errors: List[str]):
        if review_date is None:
            errors.append("Review date is required")
            return
        try:
            parsed = parse_review_date(review_date)
        except ValueError:
            errors.append("Invalid review date format")
            return

        now = self.clock()
        if parsed > now:
            errors.append("Review date cannot be in the future")
        if parsed < _years_before(now, self.max_review_age_years):
            errors.append(f"Review date cannot be older than {self.max_review_age_years} years")

    @staticmethod
    def _validate_hotel_review_id(hotel_review_id: Any, errors: List[str]):
        if hotel_review_id is None:
            return
        try:
            if to_integer(hotel_review_id) <= 0:
                errors.append("Hotel review ID must be positive")
        except ValueError:
            errors.append("Hotel review ID must be a valid number")

    @staticmethod
    def _validate_review_comments(review_comments: Any, errors: List[str]):
        if review_comments is not None and len(str(review_comments)) > MAX_REVIEW_COMMENTS_LENGTH:
            errors.append(f"Review comments cannot exceed {MAX_REVIEW_COMMENTS_LENGTH} characters")

    @staticmethod
    def _validate_reviewer_info(reviewer_info: Any, errors: List[str]):
        if not isinstance(reviewer_info, dict):
            return

        country_name: Optional[Any] = reviewer_info.get("countryName")
        if country_name is not None and not str(country_name).strip():
            errors.append("Country name cannot be empty when present")

        length_of_stay = reviewer_info.get("lengthOfStay")
        if length_of_stay is not None:
            try:
                if to_integer(length_of_stay) <= 0:
                    errors.append("Length of stay must be positive when present")
            except ValueError:
                errors.append("Length of stay must be a valid number when present")
