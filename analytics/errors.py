"""Error types and retry helper for the quiz analytics pipeline."""

import logging
import time
from functools import wraps
from typing import Any, Callable, Optional, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class AnalyticsError(Exception):
    """Base class for analytics pipeline errors."""
    pass


class MalformedAttemptError(AnalyticsError):
    """Raised when a stored quiz attempt cannot be turned into an Attempt."""
    pass


class StatsUnavailableError(AnalyticsError):
    """Raised when the admin report cannot be produced as a whole."""
    pass


class RetryExhaustedError(AnalyticsError):
    """Raised when a retried storage read keeps failing."""
    pass


def with_retry(
    max_retries: int = 3,
    initial_delay: float = 0.1,
    max_delay: float = 2.0,
    backoff_factor: float = 2.0,
    exceptions: tuple[Type[Exception], ...] = (Exception,)
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry a storage read with exponential backoff.

    Only the listed ``exceptions`` are retried. Once the attempts are exhausted
    a :class:`RetryExhaustedError` is raised, chained to the last failure.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            name = getattr(func, "__name__", "storage read")
            delay = initial_delay
            last_exception: Optional[Exception] = None

            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    logger.warning(
                        "%s failed (attempt %d/%d): %s",
                        name, attempt + 1, max_retries, e,
                    )
                    if attempt < max_retries - 1:
                        time.sleep(min(delay, max_delay))
                        delay *= backoff_factor

            raise RetryExhaustedError(
                f"{name} failed after {max_retries} attempts"
            ) from last_exception

        return wrapper
    return decorator
