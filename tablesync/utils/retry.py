"""Retry utilities with exponential backoff."""

import time
from functools import wraps
from typing import Callable, Iterator, Tuple, Type

import structlog

log = structlog.stdlib.get_logger()


def backoff_delays(max_retries: int, base_delay: float, max_delay: float) -> Iterator[float]:
    """Yield the wait before each retry: base_delay doubling per attempt, capped at max_delay."""
    for attempt in range(max_retries):
        yield min(base_delay * (2**attempt), max_delay)


def exponential_backoff_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Callable:
    """
    Decorator that retries a function with exponential backoff.

    Only the listed exception types are retried; anything else propagates on
    the first attempt. Once the delays from ``backoff_delays`` are used up the
    last exception is re-raised unchanged.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exceptions: Tuple of exception types to catch and retry
        sleep: Function used to wait between attempts (injected in tests)

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            # One attempt per delay, plus the final attempt that may raise
            for attempt, delay in enumerate(backoff_delays(max_retries, base_delay, max_delay), 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    log.warning(
                        "retrying_after_error",
                        function=func.__name__,
                        attempt=attempt,
                        max_retries=max_retries,
                        delay_seconds=delay,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                sleep(delay)

            try:
                return func(*args, **kwargs)
            except exceptions as e:
                log.error(
                    "max_retries_reached",
                    function=func.__name__,
                    max_retries=max_retries,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise

        return wrapper

    return decorator
