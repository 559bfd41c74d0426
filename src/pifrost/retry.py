"""Retry decorator with exponential backoff for slow-starting dependencies."""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

import structlog

logger = structlog.get_logger()

P = ParamSpec("P")
T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 300.0) -> float:
    """Delay after failed attempt number `attempt` (1-based): base * 2**attempt."""
    return min(base_delay * (2**attempt), max_delay)


def retry_with_backoff(
    max_attempts: int,
    base_delay: float = 1.0,
    max_delay: float = 300.0,
    retryable_exceptions: tuple[type[Exception], ...] = (),
    should_retry: Callable[[Exception], bool] | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Decorator for retrying a call with exponential backoff.

    With the defaults the waits between attempts are 2s, 4s, 8s, ... without
    jitter.

    Args:
        max_attempts: Total number of calls, including the first
        base_delay: Multiplier for the 2**attempt delay
        max_delay: Upper bound for a single delay
        retryable_exceptions: Exception types that trigger another attempt
        should_retry: Optional predicate to refuse retrying a given exception

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            last_exception: Exception | None = None

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retryable_exceptions as e:
                    last_exception = e

                    if should_retry is not None and not should_retry(e):
                        raise

                    if attempt < max_attempts:
                        delay = backoff_delay(attempt, base_delay, max_delay)
                        logger.warning(
                            "Attempt failed, retrying",
                            attempt=attempt,
                            max_attempts=max_attempts,
                            delay=delay,
                            error=str(e),
                        )
                        time.sleep(delay)

            if last_exception is not None:
                raise last_exception
            raise RuntimeError("Unexpected state: no exception but all retries failed")

        return wrapper

    return decorator
