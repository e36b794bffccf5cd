"""Utility functions and helpers for existinfra."""
import logging
import random
import time
from typing import Callable, Optional, TypeVar

T = TypeVar('T')
R = TypeVar('R')

logger = logging.getLogger("existinfra.utils")


class RetryError(Exception):
    """Custom exception for retry-related errors."""

    def __init__(self, message: str, attempts: int, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


def retry_on_conflict(
    read: Callable[[], T],
    mutate: Callable[[T], None],
    write: Callable[[T], R],
    is_conflict: Callable[[Exception], bool],
    attempts: int = 5,
    delay: float = 0.01,
    factor: float = 1.0,
    jitter: float = 0.1,
    sleep: Callable[[float], None] = time.sleep,
) -> R:
    """Run an optimistic read-modify-write, retrying when the write conflicts.

    Every attempt reads a fresh copy of the object, applies ``mutate`` to it
    and hands it to ``write``, which must fail when the object changed since
    it was read. Only errors for which ``is_conflict`` is true are retried;
    any other error is raised immediately.

    Args:
        read: Returns the current object
        mutate: Modifies the object in place
        write: Persists the object, raising on conflict
        is_conflict: Tells conflicts apart from other errors
        attempts: Maximum number of attempts
        delay: Delay before the second attempt in seconds
        factor: Multiplier applied to the delay after each attempt
        jitter: Random extra fraction of the delay
        sleep: Sleep function (replaceable in tests)

    Returns:
        Whatever ``write`` returned

    Raises:
        RetryError: every attempt conflicted
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    last_error: Optional[Exception] = None
    current_delay = delay
    for attempt in range(1, attempts + 1):
        obj = read()
        mutate(obj)
        try:
            return write(obj)
        except Exception as e:
            if not is_conflict(e):
                raise
            last_error = e
            if attempt < attempts:
                wait_time = current_delay * (1 + random.uniform(0, jitter))
                logger.warning(
                    f"Attempt {attempt} conflicted: {e}. Retrying in {wait_time:.3f}s..."
                )
                sleep(wait_time)
                current_delay *= factor

    raise RetryError(
        f"Failed after {attempts} attempts. Last error: {last_error}", attempts, last_error
    ) from last_error
