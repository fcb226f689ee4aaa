from typing import Optional
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class ProcessingStatus(str, enum.Enum):
    """File tracking status"""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"

    @classmethod
    def terminal(cls):
        return [cls.COMPLETED, cls.FAILED, cls.SKIPPED]


class JobStatus(str, enum.Enum):
    """Processing job status"""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    @property
    def is_stoppable(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.IN_PROGRESS)


class ProviderType(str, enum.Enum):
    """Review providers accepted by the pipeline"""
    AGODA = "AGODA"
    BOOKING = "BOOKING"
    EXPEDIA = "EXPEDIA"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional["ProviderType"]:
        """Look up by code or display name, case-insensitive. None if unknown."""
        if name is None:
            return None
        candidate = str(name).strip().upper()
        for provider in cls:
            if provider.value == candidate:
                return provider
        return None
