"""Retry policy with exponential backoff, jitter and classified failures.

Every failure is classified exactly once at the call boundary
(:func:`caseflow.core.errors.classify_error`). Only the transient variants
(rate limited, server unavailable, network reset) are retried; anything
else propagates immediately.

    Delay before retry ``n`` (0-based) = base_delay * 2**n + uniform(0, jitter_max)

With ``max_retries=3`` a job is called at most four times.

Example:
    >>> from caseflow.execution.retry import run_with_retry
    >>>
    >>> result = await run_with_retry(
    ...     lambda: ocr_client.extract(evidence_id),
    ...     max_retries=3,
    ...     base_delay=2.0,
    ...     name="extract:ev-1",
    ... )
"""

import asyncio
import random
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

from caseflow.core.errors import CaseflowError, classify_error
from caseflow.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class RetryStrategy(ABC):
    """Abstract base for retry strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Calculate delay before the next retry.

        Args:
            attempt: Zero-based retry number (0 = first retry)

        Returns:
            Delay in seconds
        """
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: CaseflowError) -> bool:
        """Decide whether to retry after a classified failure.

        Args:
            attempt: Number of retries already made
            error: The classified failure
        """
        ...


@dataclass
class ExponentialBackoff(RetryStrategy):
    """Exponential backoff with additive jitter.

    Attributes:
        max_retries: Maximum number of retries after the first call
        base_delay: Delay before the first retry, in seconds
        jitter_max: Upper bound of the uniform jitter added to every delay
    """

    max_retries: int = 3
    base_delay: float = 2.0
    jitter_max: float = 1.0

    def next_delay(self, attempt: int) -> float:
        delay = self.base_delay * (2 ** attempt)
        if self.jitter_max > 0:
            delay += random.uniform(0, self.jitter_max)
        return delay

    def should_retry(self, attempt: int, error: CaseflowError) -> bool:
        if attempt >= self.max_retries:
            return False
        return error.retryable


@dataclass
class NoRetry(RetryStrategy):
    """No retry - fail on the first error."""

    def next_delay(self, attempt: int) -> float:
        return 0.0

    def should_retry(self, attempt: int, error: CaseflowError) -> bool:
        return False


@dataclass
class RetryContext:
    """Tracks retry state across the calls of one logical operation.

    Example:
        >>> ctx = RetryContext(ExponentialBackoff(max_retries=3), name="analyze:ev-7")
        >>> result = await ctx.run_async(call_model)
        >>> ctx.attempts
        1
    """

    strategy: RetryStrategy
    name: str | None = None
    on_retry: Callable[[int, CaseflowError, float], None] | None = None
    attempt: int = field(default=0, init=False)
    last_error: CaseflowError | None = field(default=None, init=False)
    started_at: datetime = field(default_factory=utcnow, init=False)
    errors: list[tuple[int, CaseflowError, datetime]] = field(default_factory=list, init=False)

    @property
    def attempts(self) -> int:
        """Number of calls made so far."""
        return self.attempt

    @property
    def elapsed_seconds(self) -> float:
        return (utcnow() - self.started_at).total_seconds()

    async def run_async(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Execute an async callable with retry.

        Raises:
            The original exception once it is non-retryable or retries are
            exhausted.
        """
        while True:
            self.attempt += 1
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                classified = classify_error(e)
                self.last_error = classified
                self.errors.append((self.attempt, classified, utcnow()))

                retries_made = self.attempt - 1
                if not self.strategy.should_retry(retries_made, classified):
                    if classified.retryable:
                        logger.warning(
                            "retry.exhausted",
                            name=self.name,
                            attempts=self.attempt,
                            kind=classified.kind.value,
                        )
                    raise

                delay = self.strategy.next_delay(retries_made)
                logger.warning(
                    "retry.scheduled",
                    name=self.name,
                    attempt=self.attempt,
                    kind=classified.kind.value,
                    delay_seconds=round(delay, 3),
                    error=classified.message,
                )
                if self.on_retry:
                    self.on_retry(self.attempt, classified, delay)

                await asyncio.sleep(delay)


async def run_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 2.0,
    jitter_max: float = 1.0,
    name: str | None = None,
    on_retry: Callable[[int, CaseflowError, float], None] | None = None,
) -> T:
    """Invoke ``fn`` and retry transient failures with exponential backoff.

    Args:
        fn: Zero-argument async callable
        max_retries: Retries after the first call (at most ``max_retries + 1`` calls)
        base_delay: Delay before the first retry, in seconds
        jitter_max: Upper bound of the random jitter, in seconds
        name: Label used in log events
        on_retry: Callback ``(attempt, error, delay)`` before each sleep

    Returns:
        The value returned by the first successful call.
    """
    strategy = ExponentialBackoff(max_retries=max_retries, base_delay=base_delay, jitter_max=jitter_max)
    ctx = RetryContext(strategy=strategy, name=name, on_retry=on_retry)
    return await ctx.run_async(fn)


__all__ = [
    "RetryStrategy",
    "ExponentialBackoff",
    "NoRetry",
    "RetryContext",
    "run_with_retry",
]
