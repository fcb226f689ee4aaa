from sqlalchemy import Column, String, Boolean, Float, DateTime, Integer
from datetime import datetime
from models.base import Base, ProviderType

# Rating scale assumed when a provider is auto-created
DEFAULT_RATING_SCALES = {
    ProviderType.AGODA: 10.0,
    ProviderType.BOOKING: 10.0,
    ProviderType.EXPEDIA: 5.0,
}


class Provider(Base):
    """
    Review provider reference data.

    Reviews point at a provider by code only. Aggregates such as review
    counts are computed with queries, not kept on this object.
    """
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    rating_scale = Column(Float, default=5.0, nullable=False)
    supported_languages = Column(String(200), default="en", nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    @classmethod
    def with_defaults(cls, provider_type: ProviderType) -> "Provider":
        """New provider row for a code seen for the first time."""
        return cls(
            code=provider_type.value,
            name=provider_type.display_name,
            description=f"Auto-created provider for {provider_type.display_name}",
            active=True,
            rating_scale=DEFAULT_RATING_SCALES.get(provider_type, 5.0),
            supported_languages="en",
        )

    def supports_language(self, language_code: str) -> bool:
        if not self.supported_languages or not language_code:
            return False
        languages = [lang.strip() for lang in self.supported_languages.lower().split(",")]
        return language_code.lower() in languages

    def normalize_rating(self, rating):
        """Convert a rating on this provider's scale to a 5-point scale, capped at 5."""
        if rating is None:
            return None
        if not self.rating_scale or self.rating_scale <= 0:
            return min(rating, 5.0)
        return min(round((rating / self.rating_scale) * 5.0, 2), 5.0)

    def __repr__(self) -> str:
        return f"<Provider {self.code} active={self.active}>"
