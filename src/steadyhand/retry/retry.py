"""Retry - Deterministic exponential backoff for async operations."""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from pydantic import BaseModel, Field


logger = structlog.get_logger()

T = TypeVar("T")

FailedAttemptCallback = Callable[[int, BaseException, int], None]
Sleep = Callable[[float], Awaitable[None]]


class RetryPolicy(BaseModel):
    """Backoff parameters.

    The delay after failed attempt ``n`` (0-based) is
    ``min(min_delay * factor ** n, max_delay)``. No jitter is applied.
    """

    retries: int = Field(default=3, ge=0, description="Additional attempts after the first")
    min_delay: float = Field(default=1.0, ge=0, description="First delay (s)")
    max_delay: float = Field(default=10.0, ge=0, description="Delay cap (s)")
    factor: float = Field(default=2.0, ge=1)

    class Config:
        frozen = True

    @property
    def total_attempts(self) -> int:
        return self.retries + 1

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given 0-based failed attempt."""
        return min(self.min_delay * self.factor**attempt, self.max_delay)


# Interaction retries are shorter than network retries
INTERACTION_RETRY = RetryPolicy(retries=2, min_delay=0.5, max_delay=2.0, factor=2.0)
NETWORK_RETRY = RetryPolicy(retries=3, min_delay=1.0, max_delay=10.0, factor=2.0)
ITEM_RETRY = RetryPolicy(retries=1, min_delay=2.0, max_delay=30.0, factor=2.0)


def backoff_delays(policy: RetryPolicy) -> list[float]:
    """Return every delay the policy waits between attempts.

    Args:
        policy: Retry policy

    Returns:
        One delay per retry, in order
    """
    return [policy.delay_for(attempt) for attempt in range(policy.retries)]


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = NETWORK_RETRY,
    on_failed_attempt: Optional[FailedAttemptCallback] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run an async operation, retrying with backoff on failure.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Backoff parameters
        on_failed_attempt: Called with (attempt number, error, attempts remaining)
            before each wait and after the final failure
        sleep: Awaitable sleep, injectable for tests

    Returns:
        The operation's result

    Raises:
        The last error raised by the operation once all attempts fail
    """
    total = policy.total_attempts

    for attempt in range(total):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            remaining = total - attempt - 1

            if on_failed_attempt is not None:
                try:
                    on_failed_attempt(attempt + 1, e, remaining)
                except Exception as callback_error:
                    logger.warning(
                        "retry_callback_error",
                        error=str(callback_error),
                    )

            if remaining == 0:
                logger.debug(
                    "retry_exhausted",
                    attempts=total,
                    error=str(e),
                )
                raise

            delay = policy.delay_for(attempt)
            logger.debug(
                "retry_attempt_failed",
                attempt=attempt + 1,
                retries_left=remaining,
                delay=delay,
                error=str(e),
            )
            await sleep(delay)

    # retries is validated as >= 0, so the loop always returns or raises
    raise RuntimeError("unreachable")
