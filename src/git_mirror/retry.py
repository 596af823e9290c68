import logging
import time
from collections.abc import Callable
from typing import TypeVar

from .constants import APP_NAME, RETRY_ATTEMPTS, RETRY_BACKOFF

logger = logging.getLogger(APP_NAME)

T = TypeVar("T")


def with_retry(
    operation: Callable[[], T],
    max_attempts: int = RETRY_ATTEMPTS,
    backoff: float = RETRY_BACKOFF,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    description: str = "operation",
) -> T:
    """Calls `operation` until it succeeds or the attempts run out.

    The wait between attempts is constant. Errors that are not instances of
    `retry_on` propagate immediately. When every attempt fails, the error from
    the last attempt is re-raised unchanged.

    Args:
        operation (Callable[[], T]): The zero-argument callable to invoke.
        max_attempts (int, optional): Total number of attempts. Defaults to 3.
        backoff (float, optional): Seconds to sleep between attempts. Defaults to 1.
        retry_on (tuple[type[BaseException], ...], optional): Error types that
            trigger another attempt. Defaults to (Exception,).
        description (str, optional): Label used in log messages.

    Returns:
        T: Whatever `operation` returns on its first successful attempt.

    Raises:
        ValueError: If `max_attempts` is less than 1.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except retry_on as e:
            if attempt == max_attempts:
                logger.error(f"RETRY {description}: giving up after {attempt} attempts.")
                raise
            logger.warning(
                f"RETRY {description}: attempt {attempt}/{max_attempts} failed ({e}). "
                f"Retrying in {backoff:g}s."
            )
            time.sleep(backoff)

    raise AssertionError("unreachable")
