"""
Tests for the retry wrapper.

Tests:
- Attempt counts and backoff delays
- Original error re-raised on exhaustion
- Cancellation is never retried
"""

import asyncio

import pytest

from coinpulse.runtime.retry import RetryPolicy, retry_async


class FlakyOperation:
    """Fails a fixed number of times, then returns a value."""

    def __init__(self, failures: int, result: str = "ok") -> None:
        self.failures = failures
        self.result = result
        self.attempts = 0
        self.errors: list[Exception] = []

    async def __call__(self) -> str:
        self.attempts += 1
        if self.attempts <= self.failures:
            error = ConnectionError(f"failure {self.attempts}")
            self.errors.append(error)
            raise error
        return self.result


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_delay_grows_geometrically(self) -> None:
        policy = RetryPolicy(max_retries=3, initial_delay_s=0.5, backoff_multiplier=2.0)
        assert [policy.delay_for(k) for k in range(3)] == [0.5, 1.0, 2.0]
        assert policy.max_attempts == 4

    def test_negative_values_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=1, initial_delay_s=-0.1)


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_first_success_does_not_sleep(self) -> None:
        operation = FlakyOperation(failures=0)
        sleep = RecordingSleep()

        result = await retry_async(operation, RetryPolicy(max_retries=2), sleep=sleep)

        assert result == "ok"
        assert operation.attempts == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_failures_with_backoff(self) -> None:
        operation = FlakyOperation(failures=2, result="value")
        sleep = RecordingSleep()
        policy = RetryPolicy(max_retries=2, initial_delay_s=0.1, backoff_multiplier=2.0)

        result = await retry_async(operation, policy, sleep=sleep)

        assert result == "value"
        assert operation.attempts == 3
        assert sleep.delays == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_original_error(self) -> None:
        operation = FlakyOperation(failures=10)
        sleep = RecordingSleep()
        policy = RetryPolicy(max_retries=2, initial_delay_s=0.1, backoff_multiplier=2.0)

        with pytest.raises(ConnectionError) as exc_info:
            await retry_async(operation, policy, sleep=sleep)

        assert operation.attempts == 3
        assert exc_info.value is operation.errors[-1]
        assert sleep.delays == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_zero_retries_makes_single_attempt(self) -> None:
        operation = FlakyOperation(failures=1)

        with pytest.raises(ConnectionError):
            await retry_async(operation, RetryPolicy(max_retries=0), sleep=RecordingSleep())

        assert operation.attempts == 1

    @pytest.mark.asyncio
    async def test_real_sleep_waits_between_attempts(self) -> None:
        operation = FlakyOperation(failures=2)
        policy = RetryPolicy(max_retries=2, initial_delay_s=0.02, backoff_multiplier=2.0)
        loop = asyncio.get_running_loop()

        started = loop.time()
        await retry_async(operation, policy)
        elapsed = loop.time() - started

        assert operation.attempts == 3
        assert elapsed >= 0.055

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self) -> None:
        attempts = 0

        async def cancelled() -> None:
            nonlocal attempts
            attempts += 1
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await retry_async(cancelled, RetryPolicy(max_retries=3), sleep=RecordingSleep())

        assert attempts == 1
