"""Bounded retry with exponential backoff."""

import logging
import time
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry(
    operation: Callable[[], T],
    max_attempts: int,
    initial_delay: float,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "Operation",
    fatal: Tuple[Type[BaseException], ...] = (),
) -> T:
    """
    Call ``operation`` until it succeeds or ``max_attempts`` is reached.

    The delay between attempts starts at ``initial_delay`` seconds and
    doubles after every failure.

    Args:
        operation: Zero-argument callable to run.
        max_attempts: Total number of attempts, at least 1.
        initial_delay: Seconds to wait after the first failure.
        sleep: Sleep function (injectable for tests).
        description: Label used in log messages.
        fatal: Exception types re-raised at once, without further attempts.

    Returns:
        The value returned by the first successful attempt.

    Raises:
        ValueError: If max_attempts is less than 1.
        Exception: The error from the last attempt when all attempts fail.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except fatal:
            raise
        except Exception as e:
            if attempt == max_attempts:
                raise
            logger.warning(
                f"{description} failed (attempt {attempt}/{max_attempts}): {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            sleep(delay)
            delay *= 2
