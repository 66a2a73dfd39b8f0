"""
Unit tests for the retry executor
"""

import pytest
import httpx
from unittest.mock import AsyncMock, patch
from core.exceptions import AuthenticationError, NetworkError, RateLimitError, ServerError, ValidationError
from ingestion.retry import (
    RetryOptions,
    compute_delay,
    is_retryable_error,
    retry_if_retryable,
    retry_with_backoff,
)


class TestComputeDelay:
    """Backoff schedule"""

    def test_exponential_growth(self):
        options = RetryOptions(initial_delay=1.0, backoff_multiplier=2.0, max_delay=30.0)
        assert [compute_delay(n, options) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        options = RetryOptions(initial_delay=10.0, backoff_multiplier=3.0, max_delay=25.0)
        assert compute_delay(1, options) == 10.0
        assert compute_delay(2, options) == 25.0
        assert compute_delay(5, options) == 25.0


class TestIsRetryableError:
    """Transient vs permanent classification"""

    def test_transient_errors(self):
        assert is_retryable_error(NetworkError("reset"))
        assert is_retryable_error(RateLimitError("slow down", status_code=429))
        assert is_retryable_error(ServerError("boom", status_code=503))
        assert is_retryable_error(ConnectionResetError())
        assert is_retryable_error(TimeoutError())
        assert is_retryable_error(httpx.ConnectTimeout("timed out"))

    def test_http_status_errors(self):
        request = httpx.Request("GET", "https://example.com")
        server_error = httpx.HTTPStatusError("x", request=request, response=httpx.Response(502, request=request))
        not_found = httpx.HTTPStatusError("x", request=request, response=httpx.Response(404, request=request))
        assert is_retryable_error(server_error)
        assert not is_retryable_error(not_found)

    def test_permanent_errors(self):
        assert not is_retryable_error(AuthenticationError("bad token", status_code=401))
        assert not is_retryable_error(ValidationError("bad record"))
        assert not is_retryable_error(KeyError("x"))


class TestRetryWithBackoff:
    """Retry loop behaviour"""

    @pytest.mark.asyncio
    async def test_always_failing_call_invoked_max_attempts(self):
        """A permanently transient failure is attempted exactly max_attempts times"""
        fn = AsyncMock(side_effect=NetworkError("connection reset"))
        options = RetryOptions(max_attempts=3, initial_delay=1.0, backoff_multiplier=2.0, max_delay=30.0)

        with patch("ingestion.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(NetworkError):
                await retry_with_backoff(fn, options)

        assert fn.await_count == 3
        delays = [call.args[0] for call in mock_sleep.await_args_list]
        assert delays == [1.0, 2.0]
        assert delays == sorted(delays)

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failures(self):
        fn = AsyncMock(side_effect=[ServerError("503"), ServerError("503"), {"data": []}])

        with patch("ingestion.retry.asyncio.sleep", new_callable=AsyncMock):
            result = await retry_with_backoff(fn, RetryOptions(max_attempts=3))

        assert result == {"data": []}
        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self):
        fn = AsyncMock(side_effect=AuthenticationError("expired token", status_code=401))

        with patch("ingestion.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(AuthenticationError):
                await retry_if_retryable(fn, RetryOptions(max_attempts=5))

        assert fn.await_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retry_after_raises_wait_within_cap(self):
        fn = AsyncMock(side_effect=[RateLimitError("429", retry_after=10, status_code=429), "ok"])
        options = RetryOptions(max_attempts=2, initial_delay=1.0, max_delay=5.0)

        with patch("ingestion.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            assert await retry_if_retryable(fn, options) == "ok"

        mock_sleep.assert_awaited_once_with(5.0)

    @pytest.mark.asyncio
    async def test_on_retry_callback(self):
        fn = AsyncMock(side_effect=[NetworkError("reset"), "ok"])
        seen = []

        with patch("ingestion.retry.asyncio.sleep", new_callable=AsyncMock):
            await retry_with_backoff(
                fn,
                RetryOptions(max_attempts=2, initial_delay=0.5),
                on_retry=lambda attempt, error, delay: seen.append((attempt, type(error).__name__, delay))
            )

        assert seen == [(1, "NetworkError", 0.5)]
