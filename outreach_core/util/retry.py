"""Retry utilities for handling transient failures."""

import time
from typing import Callable, Optional, TypeVar

T = TypeVar("T")


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        retryable_exceptions: tuple = (Exception,),
        non_retryable_exceptions: tuple = (),
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.retryable_exceptions = retryable_exceptions
        self.non_retryable_exceptions = non_retryable_exceptions


class RetryExhausted(Exception):
    """Raised when every attempt failed, or a non-retryable error stopped the loop."""

    def __init__(self, last_exception: BaseException, attempts: int) -> None:
        self.last_exception = last_exception
        self.attempts = attempts
        super().__init__(str(last_exception))


def exponential_backoff(attempt: int, config: RetryConfig) -> float:
    """Calculate exponential backoff delay."""
    delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    return min(delay, config.max_delay)


def call_with_retry(
    func: Callable[[int], T],
    config: RetryConfig,
    sleep: Callable[[float], None] = time.sleep,
    on_error: Optional[Callable[[int, BaseException], None]] = None,
) -> tuple[T, int]:
    """Call ``func(attempt)`` until it succeeds or the budget runs out.

    Attempts run sequentially; ``sleep`` blocks only the calling thread.

    Returns:
        Tuple of (result, number of attempts used).

    Raises:
        RetryExhausted: Wrapping the last error once no attempt is left, or
            immediately for a non-retryable error.
    """
    for attempt in range(1, config.max_attempts + 1):
        try:
            return func(attempt), attempt
        except config.non_retryable_exceptions as e:
            if on_error is not None:
                on_error(attempt, e)
            raise RetryExhausted(e, attempt) from e
        except config.retryable_exceptions as e:
            if on_error is not None:
                on_error(attempt, e)
            if attempt >= config.max_attempts:
                raise RetryExhausted(e, attempt) from e
            sleep(exponential_backoff(attempt, config))

    raise RuntimeError("Unexpected retry state")

