from sqlalchemy import (
    Column, BigInteger, String, Text, Float, Integer, DateTime, Boolean,
    ForeignKey, Index, UniqueConstraint
)
from datetime import datetime
from models.base import Base


class Review(Base):
    """
    Normalized hotel review.

    Business key: (provider_code, provider_review_id). The provider is
    referenced by code only; there is no ORM relationship back to Provider.
    Rows are insert-only for this pipeline.
    """
    __tablename__ = "reviews"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)

    # Business key
    provider_code = Column(String(20), ForeignKey("providers.code"), nullable=False, index=True)
    provider_review_id = Column(String(100), nullable=False)

    # Property
    hotel_id = Column(BigInteger, nullable=False, index=True)
    hotel_name = Column(String(255), nullable=False)

    # Rating
    rating = Column(Float, nullable=True)
    rating_normalized = Column(Float, nullable=True)

    # Content
    review_title = Column(String(500), nullable=True)
    review_comments = Column(Text, nullable=True)
    review_date = Column(DateTime, nullable=False, index=True)
    language = Column(String(10), nullable=True)

    # Reviewer
    reviewer_name = Column(String(200), nullable=True)
    reviewer_country = Column(String(100), nullable=True)
    length_of_stay = Column(Integer, nullable=True)
    room_type = Column(String(200), nullable=True)

    # Engagement
    helpful_votes = Column(Integer, nullable=True)
    total_votes = Column(Integer, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)

    # Lineage / near-duplicate detection
    source_file = Column(String(1000), nullable=True)
    source_line_number = Column(Integer, nullable=True)
    content_hash = Column(String(64), nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("provider_code", "provider_review_id", name="uq_reviews_business_key"),
        Index("idx_reviews_hotel_date", "hotel_id", "review_date"),
    )

    @property
    def business_key(self):
        return (self.provider_code, self.provider_review_id)

    def __repr__(self) -> str:
        return f"<Review {self.provider_code}:{self.provider_review_id} hotel={self.hotel_id}>"
