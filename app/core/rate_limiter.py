"""
Rate limiting and retry for external API calls.

Implements client-side request pacing and bounded retries with jittered
exponential backoff for Gemini text and embedding calls.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, TypeVar

from google.api_core import exceptions as google_exceptions
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from app.core.errors import (
    APIQuotaError,
    MalformedResponseError,
    MemoryPipelineError,
    RateLimitError,
    TransientUpstreamError,
    UpstreamError,
    UpstreamTimeoutError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """
    Rate limiter for API calls with request tracking.

    Tracks API calls per minute and enforces a minimum interval between
    requests to avoid quota exhaustion.
    """

    def __init__(self, max_requests_per_minute: int = 60):
        """
        Initialize rate limiter.

        Args:
            max_requests_per_minute: Maximum requests allowed per minute
        """
        self.max_requests_per_minute = max_requests_per_minute
        self.requests: Dict[int, int] = {}  # minute -> request_count
        self.last_request_time = 0.0
        self.min_interval = 60.0 / max_requests_per_minute
        self._lock = asyncio.Lock()

    def _get_current_minute(self) -> int:
        """Get current minute as integer for tracking."""
        return int(time.time() // 60)

    def _cleanup_old_requests(self) -> None:
        """Remove request counts older than the current minute."""
        current_minute = self._get_current_minute()
        self.requests = {minute: count for minute, count in self.requests.items()
                         if minute >= current_minute}

    def get_requests_this_minute(self) -> int:
        """
        Get number of requests made in current minute.

        Returns:
            int: Number of requests in current minute
        """
        self._cleanup_old_requests()
        return self.requests.get(self._get_current_minute(), 0)

    def can_make_request(self) -> bool:
        """
        Check if a request can be made without exceeding rate limit.

        Returns:
            bool: True if request can be made, False otherwise
        """
        return self.get_requests_this_minute() < self.max_requests_per_minute

    def get_wait_time_until_available(self) -> float:
        """
        Get time to wait until next request can be made.

        Returns:
            float: Seconds to wait, 0 if request can be made immediately
        """
        if self.can_make_request():
            return 0.0
        return 60.0 - (time.time() % 60)

    def record_request(self) -> None:
        """Record that a request was made."""
        current_minute = self._get_current_minute()
        self.requests[current_minute] = self.requests.get(current_minute, 0) + 1
        logger.debug(f"Recorded request. Count this minute: {self.requests[current_minute]}")

    async def acquire(self) -> None:
        """
        Wait until a request slot is available and claim it.

        Ensures the minimum interval between requests and the per-minute cap.
        """
        async with self._lock:
            time_since_last = time.time() - self.last_request_time
            if time_since_last < self.min_interval:
                wait_time = self.min_interval - time_since_last
                logger.debug(f"Rate limiting: waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)

            if not self.can_make_request():
                wait_time = self.get_wait_time_until_available()
                logger.warning(f"Rate limit reached, waiting {wait_time:.1f}s")
                await asyncio.sleep(wait_time)

            self.last_request_time = time.time()
            self.record_request()


def classify_upstream_error(error: Exception) -> UpstreamError:
    """
    Map a raw client exception onto the pipeline's error taxonomy.

    Args:
        error: Exception raised by the Gemini client

    Returns:
        UpstreamError: Classified error (transient ones are retryable)
    """
    if isinstance(error, UpstreamError):
        return error

    if isinstance(error, google_exceptions.ResourceExhausted):
        return RateLimitError(f"API rate limit exceeded: {error}")
    if isinstance(error, (google_exceptions.ServiceUnavailable,
                          google_exceptions.InternalServerError,
                          google_exceptions.DeadlineExceeded)):
        return TransientUpstreamError(f"Upstream temporarily unavailable: {error}")
    if isinstance(error, (google_exceptions.InvalidArgument,
                          google_exceptions.PermissionDenied,
                          google_exceptions.Unauthenticated)):
        return UpstreamError(f"Upstream rejected request: {error}")

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return UpstreamTimeoutError(f"Upstream call timed out: {error}")

    error_message = str(error).lower()

    if "quota exceeded" in error_message or "billing" in error_message:
        return APIQuotaError(f"API quota exhausted: {error}")

    if "quota" in error_message or "rate limit" in error_message or "429" in error_message:
        return RateLimitError(f"API rate limit exceeded: {error}")

    if "api key" in error_message or "authentication" in error_message:
        return UpstreamError(f"API authentication error: {error}")

    if "unavailable" in error_message or "503" in error_message or "500" in error_message:
        return TransientUpstreamError(f"Upstream temporarily unavailable: {error}")

    if isinstance(error, (ValueError, KeyError, IndexError, TypeError)):
        return MalformedResponseError(f"Unexpected upstream response: {error}")

    return UpstreamError(f"Unexpected API error: {error}")


async def call_upstream(operation: Callable[[], Awaitable[T]], description: str) -> T:
    """
    Await an upstream call and translate its failures.

    Args:
        operation: Zero-argument coroutine factory
        description: Label used in log messages

    Returns:
        The operation's result

    Raises:
        UpstreamError: Classified upstream failure
    """
    try:
        return await operation()
    except MemoryPipelineError:
        raise
    except Exception as e:
        classified = classify_upstream_error(e)
        logger.warning(f"{description} failed: {classified.message}")
        raise classified from e


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int,
    backoff_multiplier: float = 1.0,
    backoff_max: float = 20.0,
    description: str = "upstream call",
) -> T:
    """
    Run an upstream call with bounded retries and jittered backoff.

    Only TransientUpstreamError (rate limits, timeouts, unavailability) is
    retried; every other failure propagates on the first attempt.

    Args:
        operation: Zero-argument coroutine factory, invoked once per attempt
        max_attempts: Total attempts, including the first
        backoff_multiplier: Scale of the random exponential wait (seconds)
        backoff_max: Upper bound of a single wait (seconds)
        description: Label used in log messages

    Returns:
        The operation's result

    Example:
        >>> summary = await call_with_retry(
        ...     lambda: text_service.generate(prompt),
        ...     max_attempts=3,
        ...     description="summary generation"
        ... )
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_random_exponential(multiplier=backoff_multiplier, max=backoff_max),
        retry=retry_if_exception_type(TransientUpstreamError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                logger.info(f"Retrying {description} (attempt {attempt.retry_state.attempt_number}/{max_attempts})")
            return await operation()
