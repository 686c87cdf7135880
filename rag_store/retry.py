"""Bounded retry with exponential backoff for provider calls."""
import logging
import time
from typing import Callable, Tuple, Type, TypeVar

from .errors import IndexUnavailableError, ProviderUnavailableError, RateLimitedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    RateLimitedError,
    ProviderUnavailableError,
    IndexUnavailableError,
)


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay after the zero-based `attempt`: base, 2*base, 4*base, ..."""
    return base_delay * (2 ** attempt)


def with_retry(
    fn: Callable[[], T],
    attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "call"
) -> T:
    """
    Call `fn` until it succeeds or `attempts` calls have failed.

    Errors outside `retry_on` propagate on the first failure. After the
    last attempt the most recent error is re-raised unchanged.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(attempts):
        try:
            return fn()
        except retry_on as e:
            logger.warning(
                "Retry %d/%d for %s failed: %s", attempt + 1, attempts, description, e
            )
            if attempt == attempts - 1:
                raise
            sleep(backoff_delay(attempt, base_delay))

    raise AssertionError("unreachable")  # pragma: no cover
