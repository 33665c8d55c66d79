"""
Retry utilities for handling transient directory failures.

This module provides helper functions for retrying calls with configurable
attempts and delays. Only the directory client retries; reconciliation and
the applier never do.
"""

import time
import logging
from typing import Callable, Any, Tuple, Type, Optional

logger = logging.getLogger(__name__)


class MaxRetriesExceeded(Exception):
    """Raised when maximum retry attempts are exceeded."""

    def __init__(self, attempts: int, last_exception: Exception):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"Failed after {attempts} attempts: {last_exception}")


def retry_call(
    func: Callable,
    args: tuple = (),
    kwargs: dict = None,
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 1.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    retry_if: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None
) -> Any:
    """
    Call a function, retrying failures that look transient.

    An exception outside ``exceptions``, or one that ``retry_if`` rejects, is
    raised unchanged from the attempt that produced it.

    Args:
        func: Function to call
        args: Positional arguments for function
        kwargs: Keyword arguments for function
        max_attempts: Maximum number of attempts (including the initial call)
        delay: Seconds to wait before the first retry
        backoff: Multiplier applied to the wait after each retry
        exceptions: Exception types that may be retried
        retry_if: Predicate deciding whether a caught exception is retried
        on_retry: Optional callback called as on_retry(attempt, exception)

    Returns:
        Function result

    Raises:
        MaxRetriesExceeded: If the last allowed attempt fails with a retryable error
    """
    kwargs = kwargs or {}
    attempts = max(max_attempts, 1)
    wait = delay

    for attempt in range(1, attempts + 1):
        try:
            result = func(*args, **kwargs)
        except exceptions as e:
            if retry_if is not None and not retry_if(e):
                raise
            if attempt == attempts:
                raise MaxRetriesExceeded(attempts, e)

            logger.debug(f"Attempt {attempt} failed with {type(e).__name__}: {e}; "
                         f"retrying in {wait:.1f} seconds")
            if on_retry:
                try:
                    on_retry(attempt, e)
                except Exception as callback_error:
                    logger.warning(f"Retry callback failed: {callback_error}")

            time.sleep(wait)
            wait *= backoff
        else:
            if attempt > 1:
                logger.info(f"Operation succeeded on attempt {attempt}")
            return result


def is_retryable_error(exception: Exception) -> bool:
    """
    Determine if an exception should trigger a retry.

    Args:
        exception: Exception to check

    Returns:
        True if the exception indicates a transient failure
    """
    if isinstance(exception, (ConnectionError, TimeoutError)):
        return True

    # 429 and 5xx responses are transient
    status_code = getattr(exception, 'status_code', None)
    if status_code is not None:
        return status_code == 429 or 500 <= status_code < 600

    error_msg = str(exception).lower()
    transient_patterns = [
        'timeout',
        'timed out',
        'connection reset',
        'connection refused',
        'network is unreachable',
        'temporary failure',
        'service unavailable',
        'too many requests'
    ]

    return any(pattern in error_msg for pattern in transient_patterns)


def create_retry_callback(operation_name: str) -> Callable[[int, Exception], None]:
    """
    Create a standard retry callback for logging retry attempts.

    Args:
        operation_name: Name of the operation being retried

    Returns:
        Callback function for retry events
    """
    def on_retry(attempt: int, exception: Exception):
        logger.warning(f"{operation_name} failed on attempt {attempt}, "
                       f"retrying due to {type(exception).__name__}: {exception}")

    return on_retry
