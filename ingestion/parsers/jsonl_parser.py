"""
Streaming parser for line-delimited JSON review files.

Each non-blank line is one review. A line that is not valid JSON (or not a
JSON object) is skipped and counted; one corrupt line never aborts a file.

Two consumption modes:
- parse_all: materialize every record (small files, tests)
- process_in_batches: hand at most ``batch_size`` records at a time to an
  async handler, so memory stays bounded for arbitrarily large files
"""

import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterable, Awaitable, Callable, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from schemas.reviews import RawReviewRecord

logger = logging.getLogger(__name__)

Line = Union[str, bytes]
BatchHandler = Callable[[List[RawReviewRecord]], Awaitable[object]]

MAX_RECORDED_ERRORS = 50
PROGRESS_LOG_EVERY = 1000


@dataclass
class ParseStats:
    """Counters for one parser run"""
    lines_seen: int = 0
    records_parsed: int = 0
    parse_errors: int = 0
    batches_emitted: int = 0
    batch_handler_errors: int = 0
    line_errors: List[str] = field(default_factory=list)
    handler_errors: List[str] = field(default_factory=list)

    def record_line_error(self, message: str):
        self.parse_errors += 1
        if len(self.line_errors) < MAX_RECORDED_ERRORS:
            self.line_errors.append(message)

    def record_handler_error(self, message: str):
        self.batch_handler_errors += 1
        if len(self.handler_errors) < MAX_RECORDED_ERRORS:
            self.handler_errors.append(message)

    @property
    def summary(self) -> str:
        return (
            f"Lines: {self.lines_seen}, Parsed: {self.records_parsed}, "
            f"Parse errors: {self.parse_errors}, Batches: {self.batches_emitted}, "
            f"Batch errors: {self.batch_handler_errors}"
        )


class JsonLinesParser:
    """
    Parse review lines into RawReviewRecord objects.

    A parser instance tracks one run; create a new one per file.
    """

    def __init__(self, source_name: str = "stream"):
        self.source_name = source_name
        self.stats = ParseStats()
        self._line_number = 0

    def parse_line(self, line: Line, line_number: int) -> Optional[RawReviewRecord]:
        """
        Parse one line.

        Returns None for blank lines. Raises ValueError for lines that are
        not a JSON object.
        """
        if isinstance(line, bytes):
            line = line.decode("utf-8")
        text = line.strip()
        if not text:
            return None

        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return RawReviewRecord.from_json_object(data, line_number=line_number, raw_json=text)

    def _consume(self, line: Line) -> Optional[RawReviewRecord]:
        self._line_number += 1
        self.stats.lines_seen += 1
        try:
            record = self.parse_line(line, self._line_number)
        except (ValueError, UnicodeDecodeError, PydanticValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning(f"{self.source_name}: skipping malformed line {self._line_number}: {e}")
            self.stats.record_line_error(f"Line {self._line_number}: {e}")
            return None

        if record is not None:
            self.stats.records_parsed += 1
            if self.stats.records_parsed % PROGRESS_LOG_EVERY == 0:
                logger.debug(f"{self.source_name}: parsed {self.stats.records_parsed} records")
        return record

    def iter_records(self, lines: Iterable[Line]):
        """Lazy generator over the records of a synchronous line source."""
        for line in lines:
            record = self._consume(line)
            if record is not None:
                yield record

    def parse_all(self, lines: Iterable[Line]) -> List[RawReviewRecord]:
        records = list(self.iter_records(lines))
        logger.info(f"{self.source_name}: {self.stats.summary}")
        return records

    async def process_in_batches(
        self,
        lines: Union[Iterable[Line], AsyncIterable[Line]],
        batch_size: int,
        handler: BatchHandler,
    ) -> ParseStats:
        """
        Stream records into ``handler`` in batches of at most ``batch_size``.

        A handler exception is logged and counted; later batches still run.
        The final partial batch is flushed after the stream ends.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        batch: List[RawReviewRecord] = []
        logger.info(f"{self.source_name}: batch processing with batch size {batch_size}")

        async for line in _as_async_iter(lines):
            record = self._consume(line)
            if record is None:
                continue
            batch.append(record)
            if len(batch) >= batch_size:
                await self._emit(batch, handler)
                batch = []

        if batch:
            await self._emit(batch, handler)

        logger.info(f"{self.source_name}: batch processing completed - {self.stats.summary}")
        if self.stats.parse_errors:
            logger.warning(
                f"{self.source_name}: {self.stats.parse_errors} malformed lines "
                f"out of {self.stats.lines_seen}"
            )
        return self.stats

    async def _emit(self, batch: List[RawReviewRecord], handler: BatchHandler):
        try:
            await handler(list(batch))
            self.stats.batches_emitted += 1
        except Exception as e:
            logger.error(f"{self.source_name}: batch of {len(batch)} records failed: {e}")
            self.stats.record_handler_error(str(e))


async def _as_async_iter(lines):
    if hasattr(lines, "__aiter__"):
        async for line in lines:
            yield line
    else:
        for line in lines:
            yield line
