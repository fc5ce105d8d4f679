"""
Deadline-scoped upstream calls.

A Deadline is created once per recall request or ingestion job and
threaded through every external call, so that each call's timeout is
clipped to what is left of the overall budget.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

from app.core.errors import DeadlineExceededError, UpstreamTimeoutError

T = TypeVar("T")


class Deadline:
    """Absolute point in (monotonic) time after which work is abandoned."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.expires_at = clock() + seconds

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(float("inf"))

    def remaining(self) -> float:
        return self.expires_at - self._clock()

    def expired(self) -> bool:
        return self.remaining() <= 0

    def timeout_for(self, per_call: float) -> float:
        """
        Timeout for the next call: the per-call limit clipped to the deadline.

        Raises:
            DeadlineExceededError: If nothing is left of the deadline
        """
        remaining = self.remaining()
        if remaining <= 0:
            raise DeadlineExceededError("Deadline exceeded before upstream call")
        return min(per_call, remaining)


async def call_with_timeout(
    operation: Callable[[], Awaitable[T]],
    per_call_timeout: float,
    deadline: Optional[Deadline] = None,
    description: str = "upstream call",
) -> T:
    """
    Run an upstream call under a timeout, cancelling it on expiry.

    Args:
        operation: Zero-argument coroutine factory
        per_call_timeout: Timeout for this single call (seconds)
        deadline: Optional overall deadline the timeout is clipped to
        description: Label used in error messages

    Returns:
        The operation's result

    Raises:
        DeadlineExceededError: If the overall deadline ran out
        UpstreamTimeoutError: If only the per-call timeout expired
    """
    timeout = deadline.timeout_for(per_call_timeout) if deadline else per_call_timeout

    try:
        return await asyncio.wait_for(operation(), timeout=timeout)
    except asyncio.TimeoutError:
        if deadline is not None and deadline.expired():
            raise DeadlineExceededError(f"Deadline exceeded during {description}")
        raise UpstreamTimeoutError(f"{description} timed out after {timeout:.1f}s")
