"""
Bounded retry with exponential backoff.

Runs one backend attempt up to max_retries + 1 times. After failed try i
(zero-indexed, i < max_retries) it waits initial_delay * multiplier ** i
seconds. The final failure is re-raised unchanged.

Usage:
    >>> policy = RetryPolicy(max_retries=2, initial_delay=1.0)
    >>> result = await policy.run(lambda: client.generate(...))
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from llm_layer.backends.exceptions import MissingCredentialError, UnsupportedOperationError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
# Called after each failed try that will be retried: (error, try index, delay)
RetryHook = Callable[[Exception, int, float], None]


def is_retryable(error: Exception) -> bool:
    """Unsupported-operation and missing-credential errors can never succeed on retry."""
    return not isinstance(error, (UnsupportedOperationError, MissingCredentialError))


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration for one backend.

    Attributes:
        max_retries: Retries after the first try (0 = single attempt)
        initial_delay: Seconds before the first retry
        multiplier: Backoff growth factor
        max_delay: Optional ceiling for a single delay
        jitter: Fraction of the delay added at random (0 = deterministic)
        retry_if: Predicate deciding whether an error is worth retrying
    """

    max_retries: int = 1
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: Optional[float] = None
    jitter: float = 0.0
    retry_if: Callable[[Exception], bool] = field(default=is_retryable)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be >= 0")

    def delay_for(self, attempt_index: int) -> float:
        """Backoff in seconds after failed try `attempt_index` (zero-indexed)."""
        delay = self.initial_delay * self.multiplier ** attempt_index
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        if self.jitter:
            delay += delay * self.jitter * random.random()
        return delay

    async def run(
        self,
        attempt: Callable[[], Awaitable[T]],
        sleep: Sleep = asyncio.sleep,
        on_retry: Optional[RetryHook] = None,
    ) -> T:
        """
        Run `attempt` until it succeeds or the retry bound is reached.

        Raises:
            The error of the last failed try, unchanged.
        """
        for attempt_index in range(self.max_retries + 1):
            try:
                return await attempt()
            except Exception as e:
                if attempt_index >= self.max_retries or not self.retry_if(e):
                    raise

                delay = self.delay_for(attempt_index)
                logger.debug(
                    "Attempt failed, backing off",
                    attempt=attempt_index + 1,
                    max_attempts=self.max_retries + 1,
                    delay_seconds=delay,
                    error=str(e),
                )
                if on_retry is not None:
                    on_retry(e, attempt_index, delay)
                await sleep(delay)

        raise AssertionError("unreachable")  # pragma: no cover


async def with_retry(
    attempt: Callable[[], Awaitable[T]],
    max_retries: int,
    initial_delay: float = 1.0,
    **kwargs,
) -> T:
    """
    Shorthand for RetryPolicy(max_retries, initial_delay, ...).run(attempt).

    `sleep` and `on_retry` are forwarded to run(); every other keyword
    configures the policy.
    """
    sleep = kwargs.pop("sleep", asyncio.sleep)
    on_retry = kwargs.pop("on_retry", None)
    policy = RetryPolicy(max_retries=max_retries, initial_delay=initial_delay, **kwargs)
    return await policy.run(attempt, sleep=sleep, on_retry=on_retry)
