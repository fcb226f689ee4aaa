"""
S3 object store client with error classification.

Wraps a boto3 S3 client. boto3 is blocking, so every network call runs in a
worker thread via asyncio.to_thread. botocore errors are translated into the
pipeline's exception hierarchy so retry decisions can be made on type alone.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterator, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from core.config import settings
from core.exceptions import (
    ObjectDownloadError,
    ObjectNotFoundError,
    StorageAccessDeniedError,
    StorageError,
    StorageNetworkError,
    StorageThrottledError,
)

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "NotFound", "404"}
ACCESS_DENIED_CODES = {
    "AccessDenied", "403", "InvalidAccessKeyId", "SignatureDoesNotMatch",
    "AllAccessDisabled", "ExpiredToken",
}
THROTTLING_CODES = {
    "SlowDown", "Throttling", "ThrottlingException", "RequestLimitExceeded",
    "TooManyRequests", "503",
}

READ_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class FileRef:
    """Listing entry for one candidate object"""
    key: str
    size: int
    etag: str
    last_modified: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.key.rsplit("/", 1)[-1]


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """boto3 returns aware datetimes; the database stores naive UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def file_ref_from_listing(obj: Dict[str, Any]) -> FileRef:
    return FileRef(
        key=obj["Key"],
        size=int(obj.get("Size") or 0),
        etag=str(obj.get("ETag") or "").strip('"'),
        last_modified=to_naive_utc(obj.get("LastModified")),
    )


def translate_storage_error(
    exc: Exception,
    bucket: str,
    key: Optional[str] = None,
    operation: str = "get_object",
) -> StorageError:
    """Map a botocore exception to a typed (retryable or fatal) storage error."""
    context = {"bucket": bucket, "key": key, "operation": operation}

    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        context["error_code"] = code
        context["status_code"] = status

        if code in NOT_FOUND_CODES or status == 404:
            return ObjectNotFoundError(f"Object not found: s3://{bucket}/{key or ''}", context, exc)
        if code in ACCESS_DENIED_CODES or status == 403:
            return StorageAccessDeniedError(f"Access denied to s3://{bucket}/{key or ''}", context, exc)
        if code in THROTTLING_CODES or status in (429, 503):
            return StorageThrottledError("Object store throttled the request", context, exc)
        if status is not None and status >= 500:
            return StorageNetworkError(f"Object store server error ({status})", context, exc)
        return ObjectDownloadError(f"Object store request failed: {code}", context, exc)

    if isinstance(exc, BotoCoreError):
        return StorageNetworkError(f"Object store connection error: {exc}", context, exc)

    return ObjectDownloadError(f"Unexpected object store error: {exc}", context, exc)


class ObjectStoreClient:
    """
    Thin async facade over boto3's S3 client for one bucket.

    Args:
        bucket: Source bucket name
        client: Pre-built boto3 client (tests pass a mock); built lazily otherwise
    """

    def __init__(self, bucket: str = None, client=None):
        self.bucket = bucket or settings.S3_BUCKET_NAME
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=settings.AWS_REGION,
                endpoint_url=settings.AWS_ENDPOINT_URL,
                aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                config=Config(
                    connect_timeout=settings.S3_CONNECT_TIMEOUT,
                    read_timeout=settings.S3_READ_TIMEOUT,
                    retries={"max_attempts": 1, "mode": "standard"},
                ),
            )
        return self._client

    def iter_objects(self, prefix: str, page_size: int) -> Iterator[Dict[str, Any]]:
        """Blocking iterator over raw listing entries, page by page."""
        paginator = self.client.get_paginator("list_objects_v2")
        pages = paginator.paginate(
            Bucket=self.bucket,
            Prefix=prefix or "",
            PaginationConfig={"PageSize": page_size},
        )
        for page in pages:
            for obj in page.get("Contents", []) or []:
                yield obj

    async def get_object_body(self, key: str):
        """Open an object for streaming. Raises a typed StorageError."""
        try:
            response = await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise translate_storage_error(e, self.bucket, key, "get_object") from e
        return response["Body"]

    async def iter_lines(self, body, chunk_size: int = READ_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """
        Yield the body's lines without holding the whole object in memory.

        Reads fixed-size chunks in a worker thread and splits on newlines; a
        trailing line without a newline is still yielded.
        """
        pending = b""
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(body.read, chunk_size)
                except (ClientError, BotoCoreError) as e:
                    raise translate_storage_error(e, self.bucket, None, "read_body") from e
                if not chunk:
                    break
                pending += chunk
                *lines, pending = pending.split(b"\n")
                for line in lines:
                    yield line
            if pending:
                yield pending
        finally:
            close = getattr(body, "close", None)
            if close is not None:
                close()

    async def check_connectivity(self) -> None:
        """HEAD the bucket; raises a typed StorageError when unreachable."""
        try:
            await asyncio.to_thread(self.client.head_bucket, Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            raise translate_storage_error(e, self.bucket, None, "head_bucket") from e
