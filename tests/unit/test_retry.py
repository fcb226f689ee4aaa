"""
Unit tests for retry with exponential backoff
"""

import pytest

from core.exceptions import ObjectNotFoundError, StorageNetworkError
from core.retry import backoff_delay, is_retryable_error, retry_with_backoff


class FlakyOperation:
    """Fails with the queued errors, then returns ``result``"""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestRetryWithBackoff:

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        operation = FlakyOperation([StorageNetworkError("timeout"), StorageNetworkError("timeout")])

        result = await retry_with_backoff(operation, max_attempts=3, base_delay=0)

        assert result == "ok"
        assert operation.calls == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        operation = FlakyOperation([StorageNetworkError(f"timeout {i}") for i in range(5)])

        with pytest.raises(StorageNetworkError) as exc_info:
            await retry_with_backoff(operation, max_attempts=3, base_delay=0)

        assert operation.calls == 3
        assert exc_info.value.message == "timeout 2"

    @pytest.mark.asyncio
    async def test_non_retryable_error_is_raised_immediately(self):
        operation = FlakyOperation([ObjectNotFoundError("missing")])

        with pytest.raises(ObjectNotFoundError):
            await retry_with_backoff(operation, max_attempts=3, base_delay=0)

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_custom_classifier(self):
        operation = FlakyOperation([KeyError("x")])

        result = await retry_with_backoff(
            operation, is_retryable=lambda e: isinstance(e, KeyError), max_attempts=2, base_delay=0
        )

        assert result == "ok"

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            await retry_with_backoff(FlakyOperation([]), max_attempts=0)


class TestBackoff:

    def test_delay_doubles(self):
        assert [backoff_delay(i, 1.0) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_is_capped(self):
        assert backoff_delay(10, 1.0, max_delay=30.0) == 30.0

    def test_plain_exceptions_are_not_retryable(self):
        assert not is_retryable_error(RuntimeError("boom"))
        assert is_retryable_error(StorageNetworkError("reset"))
