"""
Pydantic schemas for raw and normalized review records
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime


class RawReviewRecord(BaseModel):
    """
    One parsed line of a provider review file.

    Fields are deliberately untyped: the record validator reports bad values
    as violations instead of pydantic rejecting the line outright.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hotel_id: Any = Field(None, alias="hotelId")
    provider: Any = None
    hotel_name: Any = Field(None, alias="hotelName")
    comment: Any = None
    overall_by_providers: List[Any] = Field(default_factory=list, alias="overallByProviders")

    line_number: int = 0
    raw_json: Optional[str] = Field(None, repr=False)

    @field_validator("overall_by_providers", mode="before")
    @classmethod
    def coerce_list(cls, v):
        if v is None:
            return []
        return v if isinstance(v, list) else [v]

    @classmethod
    def from_json_object(cls, data: Dict[str, Any], line_number: int, raw_json: str = None) -> "RawReviewRecord":
        """Build from a decoded JSON object; both overall-by-providers spellings are accepted."""
        payload = dict(data)
        if "overallByProviders" not in payload and "overallByproviders" in payload:
            payload["overallByProviders"] = payload.pop("overallByproviders")
        return cls.model_validate({**payload, "line_number": line_number, "raw_json": raw_json})

    @property
    def comment_section(self) -> Dict[str, Any]:
        return self.comment if isinstance(self.comment, dict) else {}


class ReviewCreate(BaseModel):
    """
    Normalized review ready for insertion.

    Ensures:
    - Business key fields are present
    - Text fields are trimmed and bounded
    """

    # Business key
    provider_code: str = Field(..., min_length=1, max_length=20)
    provider_review_id: str = Field(..., min_length=1, max_length=100)

    # Property
    hotel_id: int = Field(..., gt=0)
    hotel_name: str = Field(..., min_length=1, max_length=255)

    # Rating
    rating: Optional[float] = Field(None, ge=0, le=10)
    rating_normalized: Optional[float] = Field(None, ge=0, le=5)

    # Content
    review_title: Optional[str] = Field(None, max_length=500)
    review_comments: Optional[str] = Field(None, max_length=5000)
    review_date: datetime
    language: Optional[str] = Field(None, max_length=10)

    # Reviewer
    reviewer_name: Optional[str] = Field(None, max_length=200)
    reviewer_country: Optional[str] = Field(None, max_length=100)
    length_of_stay: Optional[int] = Field(None, ge=0)
    room_type: Optional[str] = Field(None, max_length=200)

    # Engagement
    helpful_votes: Optional[int] = Field(None, ge=0)
    total_votes: Optional[int] = Field(None, ge=0)
    is_verified: bool = False

    # Lineage
    source_file: Optional[str] = None
    source_line_number: Optional[int] = None
    content_hash: Optional[str] = Field(None, max_length=64)

    @field_validator("hotel_name")
    @classmethod
    def clean_hotel_name(cls, v):
        v = " ".join(v.split())
        if not v:
            raise ValueError("hotel_name cannot be empty after stripping")
        return v

    @property
    def business_key(self):
        return (self.provider_code, self.provider_review_id)
