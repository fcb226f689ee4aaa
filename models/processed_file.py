from sqlalchemy import Column, BigInteger, String, Enum, DateTime, Integer, Text, Index, UniqueConstraint
from datetime import datetime
from models.base import Base, ProcessingStatus

ERROR_MESSAGE_MAX_LENGTH = 2000


class ProcessedFile(Base):
    """
    Idempotency ledger: one row per (s3_key, etag) file version.

    Purpose:
    - Skip file versions that already completed
    - Track a re-uploaded key (new etag) as a separate version
    - Find work abandoned by a crashed worker
    - Per-provider processing statistics
    """
    __tablename__ = "processed_files"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)

    # File identity
    s3_key = Column(String(1000), nullable=False, index=True)
    etag = Column(String(255), nullable=False)
    file_size = Column(BigInteger, nullable=True)
    last_modified_date = Column(DateTime, nullable=True)
    provider = Column(String(50), nullable=True, index=True)

    # Processing state
    processing_status = Column(
        Enum(ProcessingStatus, name="processing_status"),
        default=ProcessingStatus.PENDING,
        nullable=False,
        index=True
    )
    records_processed = Column(Integer, default=0, nullable=False)
    records_failed = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)

    # Timestamps
    processing_started_at = Column(DateTime, nullable=True)
    processing_completed_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("s3_key", "etag", name="uq_processed_files_key_etag"),
        Index("idx_processed_files_status_started", "processing_status", "processing_started_at"),
        Index("idx_processed_files_provider_status", "provider", "processing_status"),
    )

    def mark_processing_completed(self, records_processed: int, records_failed: int):
        self.processing_status = ProcessingStatus.COMPLETED
        self.records_processed = records_processed
        self.records_failed = records_failed
        self.processing_completed_at = datetime.utcnow()
        self.error_message = None

    def mark_processing_failed(self, error_message: str):
        self.processing_status = ProcessingStatus.FAILED
        self.processing_completed_at = datetime.utcnow()
        self.error_message = truncate_error_message(error_message)

    def reset_to_pending(self):
        self.processing_status = ProcessingStatus.PENDING
        self.processing_started_at = None
        self.processing_completed_at = None

    def __repr__(self) -> str:
        return f"<ProcessedFile id={self.id} key={self.s3_key} status={self.processing_status}>"


def truncate_error_message(message, limit: int = ERROR_MESSAGE_MAX_LENGTH):
    if message is None:
        return None
    message = str(message)
    if len(message) <= limit:
        return message
    return message[:limit - 3] + "..."
