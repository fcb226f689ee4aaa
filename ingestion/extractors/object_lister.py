"""
Discover candidate review files in the source bucket
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from core.config import settings
from core.exceptions import ObjectListingError
from ingestion.extractors.object_store import FileRef, ObjectStoreClient, file_ref_from_listing, to_naive_utc

logger = logging.getLogger(__name__)

RECOGNIZED_EXTENSIONS = (".jl", ".jsonl")


def is_candidate(ref: FileRef, since: Optional[datetime] = None) -> bool:
    """Listing filter: real, non-empty review files newer than ``since``."""
    if ref.key.endswith("/") or ref.size <= 0:
        return False
    if not ref.key.lower().endswith(RECOGNIZED_EXTENSIONS):
        return False
    # Unknown modification time is kept
    if since is not None and ref.last_modified is not None and ref.last_modified <= since:
        return False
    return True


def sort_oldest_first(refs: List[FileRef]) -> List[FileRef]:
    return sorted(refs, key=lambda r: (r.last_modified is not None, r.last_modified or datetime.min, r.key))


class ObjectLister:
    """
    List review files under a prefix, oldest first.

    Pagination is transparent. Total results are capped at
    ``page_size * max_pages_multiplier``; hitting the cap is logged and the
    remaining objects are picked up by a later run.
    """

    def __init__(
        self,
        client: ObjectStoreClient,
        page_size: int = None,
        max_pages_multiplier: int = None,
    ):
        self.client = client
        self.page_size = page_size or settings.S3_PAGE_SIZE
        self.max_pages_multiplier = max_pages_multiplier or settings.S3_MAX_PAGES_MULTIPLIER

    @property
    def max_results(self) -> int:
        return self.page_size * self.max_pages_multiplier

    async def list(self, prefix: str = None, since: Optional[datetime] = None) -> List[FileRef]:
        prefix = settings.S3_PREFIX if prefix is None else prefix
        since = to_naive_utc(since)
        logger.info(f"Listing s3://{self.client.bucket}/{prefix} (since={since})")

        try:
            refs = await asyncio.to_thread(self._collect, prefix, since)
        except (ClientError, BotoCoreError) as e:
            raise ObjectListingError(
                "Failed to list review files",
                context={"bucket": self.client.bucket, "prefix": prefix},
                original_exception=e
            ) from e

        refs = sort_oldest_first(refs)
        logger.info(f"Found {len(refs)} candidate files under {prefix}")
        return refs

    def _collect(self, prefix: str, since: Optional[datetime]) -> List[FileRef]:
        refs: List[FileRef] = []
        scanned = 0

        for obj in self.client.iter_objects(prefix, self.page_size):
            scanned += 1
            ref = file_ref_from_listing(obj)
            if not is_candidate(ref, since):
                continue

            refs.append(ref)
            if len(refs) >= self.max_results:
                logger.warning(
                    f"Listing capped at {self.max_results} files after scanning {scanned} objects "
                    f"under {prefix}; remaining files will be picked up by a later run"
                )
                break

        logger.debug(f"Scanned {scanned} objects, kept {len(refs)}")
        return refs
