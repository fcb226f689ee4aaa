"""
Unit tests for the S3 object store client and file listing
"""

import io
from unittest.mock import MagicMock
from datetime import datetime, timedelta, timezone

import pytest
from botocore.exceptions import EndpointConnectionError

from core.exceptions import (
    ObjectDownloadError,
    ObjectListingError,
    ObjectNotFoundError,
    RetryableError,
    StorageAccessDeniedError,
    StorageNetworkError,
    StorageThrottledError,
)
from ingestion.extractors.object_lister import ObjectLister, is_candidate
from ingestion.extractors.object_store import FileRef, ObjectStoreClient, translate_storage_error

BASE_TIME = datetime(2025, 5, 1, 8, 0, 0)


class TestTranslateStorageError:
    """botocore errors map to retryable or fatal types"""

    @pytest.mark.parametrize("code,status,expected", [
        ("NoSuchKey", 404, ObjectNotFoundError),
        ("AccessDenied", 403, StorageAccessDeniedError),
        ("SlowDown", 503, StorageThrottledError),
        ("InternalError", 500, StorageNetworkError),
        ("InvalidRange", 416, ObjectDownloadError),
    ])
    def test_client_errors(self, s3_error, code, status, expected):
        error = translate_storage_error(s3_error(code, status), "bucket", "reviews/a.jl")
        assert type(error) is expected
        assert error.context["error_code"] == code
        assert error.context["key"] == "reviews/a.jl"

    def test_connection_error_is_retryable(self):
        error = translate_storage_error(EndpointConnectionError(endpoint_url="http://s3"), "bucket")
        assert isinstance(error, RetryableError)

    def test_not_found_is_not_retryable(self, s3_error):
        assert not isinstance(translate_storage_error(s3_error("NoSuchKey", 404), "bucket"), RetryableError)


class TestObjectStoreClient:

    @pytest.mark.asyncio
    async def test_get_object_body_translates_errors(self, fake_s3, s3_error):
        fake_s3.fail("reviews/a.jl", s3_error("AccessDenied", 403))
        store = ObjectStoreClient("test-bucket", client=fake_s3)

        with pytest.raises(StorageAccessDeniedError):
            await store.get_object_body("reviews/a.jl")

    @pytest.mark.asyncio
    async def test_iter_lines_splits_across_chunks(self, fake_s3):
        store = ObjectStoreClient("test-bucket", client=fake_s3)
        body = io.BytesIO(b'{"a": 1}\n{"b": 2}\n{"c": 3}')

        lines = [line async for line in store.iter_lines(body, chunk_size=5)]

        assert lines == [b'{"a": 1}', b'{"b": 2}', b'{"c": 3}']
        assert body.closed

    @pytest.mark.asyncio
    async def test_check_connectivity(self, fake_s3, s3_error):
        store = ObjectStoreClient("test-bucket", client=fake_s3)
        await store.check_connectivity()

        fake_s3.head_bucket = MagicMock(side_effect=s3_error("NoSuchBucket", 404, "HeadBucket"))
        with pytest.raises(ObjectNotFoundError):
            await store.check_connectivity()


class TestIsCandidate:

    def test_filters(self):
        ref = FileRef("reviews/a.jl", 10, "e1", BASE_TIME)
        assert is_candidate(ref)
        assert is_candidate(FileRef("reviews/a.JSONL", 10, "e1", BASE_TIME))
        assert not is_candidate(FileRef("reviews/", 0, "e1", BASE_TIME))
        assert not is_candidate(FileRef("reviews/empty.jl", 0, "e1", BASE_TIME))
        assert not is_candidate(FileRef("reviews/a.csv", 10, "e1", BASE_TIME))

    def test_since_is_exclusive(self):
        ref = FileRef("reviews/a.jl", 10, "e1", BASE_TIME)
        assert not is_candidate(ref, since=BASE_TIME)
        assert is_candidate(ref, since=BASE_TIME - timedelta(seconds=1))
        assert is_candidate(FileRef("reviews/b.jl", 10, "e1", None), since=BASE_TIME)


class TestObjectLister:

    @pytest.mark.asyncio
    async def test_lists_oldest_first_with_naive_utc(self, fake_s3):
        aware = datetime(2025, 5, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))
        fake_s3.put("reviews/b.jl", b"x", last_modified=aware)
        fake_s3.put("reviews/a.jl", b"x", last_modified=BASE_TIME + timedelta(hours=1))
        fake_s3.put("reviews/notes.txt", b"x", last_modified=BASE_TIME)
        fake_s3.put("other/c.jl", b"x", last_modified=BASE_TIME)

        refs = await ObjectLister(ObjectStoreClient("test-bucket", client=fake_s3)).list("reviews/")

        assert [r.key for r in refs] == ["reviews/b.jl", "reviews/a.jl"]
        assert refs[0].last_modified == BASE_TIME
        assert refs[0].etag and '"' not in refs[0].etag

    @pytest.mark.asyncio
    async def test_since_filter(self, fake_s3):
        fake_s3.put("reviews/old.jl", b"x", last_modified=BASE_TIME)
        fake_s3.put("reviews/new.jl", b"x", last_modified=BASE_TIME + timedelta(days=1))

        refs = await ObjectLister(ObjectStoreClient("test-bucket", client=fake_s3)).list(
            "reviews/", since=BASE_TIME
        )

        assert [r.name for r in refs] == ["new.jl"]

    @pytest.mark.asyncio
    async def test_results_are_capped(self, fake_s3):
        for i in range(10):
            fake_s3.put(f"reviews/{i:02d}.jl", b"x", last_modified=BASE_TIME + timedelta(minutes=i))

        lister = ObjectLister(ObjectStoreClient("test-bucket", client=fake_s3), page_size=2, max_pages_multiplier=2)
        refs = await lister.list("reviews/")

        assert len(refs) == 4
        assert refs[0].key == "reviews/00.jl"

    @pytest.mark.asyncio
    async def test_listing_failure(self, fake_s3, s3_error):
        fake_s3.list_error = s3_error("AccessDenied", 403, "ListObjectsV2")

        with pytest.raises(ObjectListingError) as exc_info:
            await ObjectLister(ObjectStoreClient("test-bucket", client=fake_s3)).list("reviews/")

        assert exc_info.value.context["prefix"] == "reviews/"
