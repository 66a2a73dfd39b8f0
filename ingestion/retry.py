"""
Retry executor with bounded exponential backoff.

Wraps a remote call so transient failures (network resets, timeouts,
HTTP 429, HTTP 5xx) are retried while permanent failures (authorization,
validation, not found) re-raise immediately.

The wait after failed attempt n is:

    min(initial_delay * backoff_multiplier ** (n - 1), max_delay)
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
from pydantic import BaseModel, Field

from core.config import settings
from core.exceptions import NonRetryableError, RateLimitError, RetryableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = {429}


class RetryOptions(BaseModel):
    max_attempts: int = Field(3, ge=1)
    initial_delay: float = Field(1.0, ge=0)  # seconds
    max_delay: float = Field(30.0, ge=0)  # seconds
    backoff_multiplier: float = Field(2.0, ge=1)

    @classmethod
    def from_settings(cls) -> "RetryOptions":
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            initial_delay=settings.RETRY_INITIAL_DELAY_SECONDS,
            max_delay=settings.RETRY_MAX_DELAY_SECONDS,
            backoff_multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
        )


def compute_delay(attempt: int, options: RetryOptions) -> float:
    """Seconds to wait after failed attempt ``attempt`` (1-based)."""
    return min(
        options.initial_delay * (options.backoff_multiplier ** (attempt - 1)),
        options.max_delay,
    )


def _is_retryable_status(status_code: Any) -> bool:
    return isinstance(status_code, int) and (
        status_code in RETRYABLE_STATUS_CODES or status_code >= 500
    )


def is_retryable_error(error: BaseException) -> bool:
    """
    Classify an exception as transient (retry) or permanent (re-raise).

    Transient:
        - RetryableError subclasses (NetworkError, RateLimitError, ServerError)
        - httpx timeouts and transport errors
        - connection resets and timeouts from the OS
        - any error carrying HTTP status 429 or >= 500
    Permanent:
        - NonRetryableError subclasses (AuthenticationError, ResourceNotFoundError, ...)
        - everything else
    """
    if isinstance(error, NonRetryableError):
        return False

    if isinstance(error, RetryableError):
        return True

    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True

    if isinstance(error, (ConnectionResetError, ConnectionAbortedError, TimeoutError, asyncio.TimeoutError)):
        return True

    if isinstance(error, httpx.HTTPStatusError):
        return _is_retryable_status(error.response.status_code)

    return _is_retryable_status(getattr(error, "status_code", None))


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """
    Call ``fn`` until it succeeds or attempts are exhausted.

    Args:
        fn: Zero-argument coroutine function performing the remote call
        options: Attempt/delay configuration (defaults from settings)
        should_retry: Classifier; when it returns False the error re-raises immediately
        on_retry: Callback invoked with (attempt, error, delay) before each wait

    Returns:
        Result of the first successful call

    Raises:
        The last error once attempts are exhausted, or the first permanent error
    """
    opts = options or RetryOptions.from_settings()
    last_error: Optional[BaseException] = None

    for attempt in range(1, opts.max_attempts + 1):
        try:
            return await fn()
        except Exception as e:
            last_error = e

            if should_retry is not None and not should_retry(e):
                logger.debug(f"Non-retryable error on attempt {attempt}: {type(e).__name__}")
                raise

            if attempt == opts.max_attempts:
                break

            delay = compute_delay(attempt, opts)
            if isinstance(e, RateLimitError) and e.retry_after:
                delay = min(max(delay, float(e.retry_after)), opts.max_delay)

            if on_retry is not None:
                on_retry(attempt, e, delay)

            logger.warning(
                f"Retry attempt {attempt}/{opts.max_attempts} failed "
                f"({type(e).__name__}: {e}). Retrying in {delay}s"
            )
            await asyncio.sleep(delay)

    logger.error(f"All {opts.max_attempts} attempts failed: {last_error}")
    raise last_error


async def retry_if_retryable(
    fn: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """Retry only transient failures; permanent failures re-raise on first occurrence."""
    return await retry_with_backoff(fn, options, should_retry=is_retryable_error, on_retry=on_retry)
