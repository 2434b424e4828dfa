"""
Tests for exponential-backoff retry.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from snoozeplus.core.config import Settings
from snoozeplus.core.retry import RetryPolicy, retry_async


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestComputeDelay:
    """Tests for RetryPolicy.compute_delay."""

    def test_exponential_growth(self):
        policy = RetryPolicy(retries=5, factor=2, min_timeout=1.0, max_timeout=60.0)

        assert [policy.compute_delay(n) for n in range(1, 5)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_timeout(self):
        policy = RetryPolicy(retries=5, factor=2, min_timeout=1.0, max_timeout=5.0)

        assert policy.compute_delay(3) == 4.0
        assert policy.compute_delay(4) == 5.0
        assert policy.compute_delay(10) == 5.0

    def test_randomized_delay_within_bounds(self):
        policy = RetryPolicy(factor=2, min_timeout=1.0, max_timeout=5.0, randomize=True)

        for _ in range(50):
            assert 0 <= policy.compute_delay(2) <= 2.0

    def test_randomized_uses_uniform_draw(self):
        policy = RetryPolicy(factor=2, min_timeout=1.0, max_timeout=5.0, randomize=True)

        with patch("snoozeplus.core.retry.random.uniform", return_value=0.7) as uniform:
            assert policy.compute_delay(3) == 0.7

        uniform.assert_called_once_with(0, 4.0)

    def test_from_settings_converts_milliseconds(self):
        config = Settings(
            RETRY_ATTEMPTS=4,
            RETRY_FACTOR=3,
            RETRY_MIN_TIMEOUT=500,
            RETRY_MAX_TIMEOUT=2500,
            RETRY_RANDOMIZE=True,
        )

        policy = RetryPolicy.from_settings(config)

        assert policy == RetryPolicy(retries=4, factor=3, min_timeout=0.5, max_timeout=2.5, randomize=True)


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self):
        sleep = RecordingSleep()
        operation = AsyncMock(return_value="ok")

        result = await retry_async(operation, "op", RetryPolicy(), sleep=sleep)

        assert result == "ok"
        operation.assert_awaited_once()
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_backoff_delays_before_fourth_attempt_success(self):
        """Attempts 1-3 fail, attempt 4 succeeds after 1s, 2s and 4s."""
        sleep = RecordingSleep()
        operation = AsyncMock(
            side_effect=[ValueError("a"), ValueError("b"), ValueError("c"), "fourth"]
        )
        policy = RetryPolicy(retries=3, factor=2, min_timeout=1.0, max_timeout=5.0)

        result = await retry_async(operation, "sendMessage", policy, sleep=sleep)

        assert result == "fourth"
        assert operation.await_count == 4
        assert sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error(self):
        sleep = RecordingSleep()
        errors = [ConnectionError("first"), ConnectionError("second"), ConnectionError("last")]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(ConnectionError) as exc_info:
            await retry_async(operation, "op", RetryPolicy(retries=2), sleep=sleep)

        assert exc_info.value is errors[-1]
        assert operation.await_count == 3
        assert len(sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_zero_retries_invokes_once(self):
        operation = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await retry_async(operation, "op", RetryPolicy(retries=0), sleep=RecordingSleep())

        operation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        sleep = RecordingSleep()
        operation = AsyncMock(side_effect=asyncio.CancelledError())

        with pytest.raises(asyncio.CancelledError):
            await retry_async(operation, "op", RetryPolicy(retries=3), sleep=sleep)

        operation.assert_awaited_once()
        assert sleep.delays == []
