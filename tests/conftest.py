"""
Pytest configuration and fixtures
"""

import hashlib
import io
import json
from datetime import datetime
from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from core.config import Settings
from ingestion.extractors.object_store import ObjectStoreClient
from ingestion.runner import ProcessingOrchestrator
from models import Base
from schemas.reviews import RawReviewRecord

TEST_BUCKET = "test-bucket"
TEST_PREFIX = "reviews/"


# ============================================================================
# Database
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """File-backed SQLite so every session gets its own connection"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for assertions against what the pipeline committed"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Review records
# ============================================================================

def build_review(
    review_id=948353737,
    hotel_id=10984,
    provider="Agoda",
    hotel_name="Oscar Saigon Hotel",
    rating=6.4,
    review_date="2025-04-10T05:37:00+07:00",
    comments="Hotel room is basic and very small.",
    **comment_overrides,
) -> Dict:
    """One review line as providers deliver it"""
    comment = {
        "isShowReviewResponse": False,
        "hotelReviewId": review_id,
        "providerId": 332,
        "rating": rating,
        "checkInDateMonthAndYear": "April 2025",
        "encryptedReviewData": "cZwJ6a6ZE0DT8XDSJGRN9A==",
        "formattedRating": str(rating),
        "formattedReviewDate": "April 10, 2025",
        "ratingText": "Good",
        "responderName": "Oscar Saigon Hotel",
        "responseDateText": "",
        "reviewComments": comments,
        "reviewNegatives": "",
        "reviewPositives": "",
        "reviewProviderLogo": "",
        "reviewProviderText": provider,
        "reviewTitle": "Perfect location and safe but not clean",
        "translateSource": "en",
        "translateTarget": "en",
        "reviewDate": review_date,
        "reviewerInfo": {
            "countryName": "India",
            "displayMemberName": "********",
            "flagName": "in",
            "reviewGroupName": "Solo traveler",
            "roomTypeName": "Premium Deluxe Double Room",
            "countryId": 35,
            "lengthOfStay": 2,
            "reviewGroupId": 3,
            "roomTypeId": 0,
            "reviewerReviewedCount": 0,
            "isExpertReviewer": False,
            "isShowGlobalIcon": False,
            "isShowReviewedCount": False,
        },
        "originalTitle": "",
        "originalComment": "",
        "formattedResponseDate": "",
    }
    comment.update(comment_overrides)
    return {
        "hotelId": hotel_id,
        "platform": provider,
        "provider": provider,
        "hotelName": hotel_name,
        "comment": comment,
        "overallByProviders": [
            {"providerId": 332, "provider": provider, "overallScore": 7.9, "reviewCount": 7070}
        ],
    }


@pytest.fixture
def review_factory():
    return build_review


@pytest.fixture
def raw_record_factory():
    def make(line_number=1, **kwargs) -> RawReviewRecord:
        data = build_review(**kwargs)
        return RawReviewRecord.from_json_object(data, line_number=line_number, raw_json=json.dumps(data))
    return make


def to_jsonl(rows) -> bytes:
    """Encode dicts (as JSON) and raw strings (verbatim) one per line"""
    return "\n".join(r if isinstance(r, str) else json.dumps(r) for r in rows).encode("utf-8")


# ============================================================================
# Object store
# ============================================================================

def client_error(code: str, status: int, operation: str = "GetObject") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


class FakeS3Client:
    """
    Stand-in for a boto3 S3 client.

    Supports list_objects_v2 pagination, get_object and head_bucket. Per-key
    errors are raised in order, one per get_object call, before the object
    is finally served.
    """

    def __init__(self):
        self.objects: Dict[str, Dict] = {}
        self.errors: Dict[str, List[Exception]] = {}
        self.get_calls: List[str] = []
        self.list_error: Optional[Exception] = None

    def put(self, key: str, data: bytes, last_modified: datetime = None, etag: str = None):
        self.objects[key] = {
            "Key": key,
            "Size": len(data),
            "ETag": f'"{etag or hashlib.md5(data).hexdigest()}"',
            "LastModified": last_modified,
            "data": data,
        }

    def fail(self, key: str, *errors: Exception):
        self.errors.setdefault(key, []).extend(errors)

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        return self

    def paginate(self, Bucket, Prefix, PaginationConfig):
        if self.list_error is not None:
            raise self.list_error
        page_size = PaginationConfig["PageSize"]
        entries = [
            {k: v for k, v in obj.items() if k != "data"}
            for key, obj in sorted(self.objects.items())
            if key.startswith(Prefix)
        ]
        for start in range(0, len(entries), page_size):
            yield {"Contents": entries[start:start + page_size]}

    def get_object(self, Bucket, Key):
        self.get_calls.append(Key)
        pending = self.errors.get(Key)
        if pending:
            raise pending.pop(0)
        if Key not in self.objects:
            raise client_error("NoSuchKey", 404)
        return {"Body": io.BytesIO(self.objects[Key]["data"])}

    def head_bucket(self, Bucket):
        return {}


@pytest.fixture
def fake_s3():
    return FakeS3Client()


@pytest.fixture
def test_settings():
    return Settings(
        S3_BUCKET_NAME=TEST_BUCKET,
        S3_PREFIX=TEST_PREFIX,
        MAX_CONCURRENT_FILES=1,
        MAX_FILES_PER_REQUEST=50,
        PROCESSING_BATCH_SIZE=20,
        PERSIST_CHUNK_SIZE=10,
        S3_MAX_RETRIES=3,
        S3_RETRY_DELAY_SECONDS=0.0,
        CLEANUP_RETENTION_DAYS=30,
        STUCK_PROCESSING_HOURS=2,
    )


@pytest_asyncio.fixture
async def orchestrator(session_factory, fake_s3, test_settings):
    orch = ProcessingOrchestrator(
        session_factory=session_factory,
        store=ObjectStoreClient(TEST_BUCKET, client=fake_s3),
        config=test_settings,
        retry_delay=0,
    )
    yield orch
    await orch.shutdown(timeout=5)


@pytest.fixture
def jsonl():
    return to_jsonl


@pytest.fixture
def s3_error():
    return client_error
