"""Retry utilities for catalog reads with exponential backoff"""

import logging
import random
import time
from enum import Enum
from typing import Callable, Tuple, TypeVar

import requests

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryableErrorType(Enum):
    """Types of errors that should trigger retries"""

    NETWORK = "network"  # Connection errors, timeouts
    TEMPORARY = "temporary"  # 5xx errors, rate limiting
    PERMANENT = "permanent"  # 4xx errors (except rate limiting), auth failures


def is_retryable_error(error: Exception) -> Tuple[bool, RetryableErrorType]:
    """Determine if an error is retryable and what type it is

    Args:
        error: The exception that occurred

    Returns:
        Tuple of (is_retryable, error_type)
    """
    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return True, RetryableErrorType.NETWORK

    status = getattr(error, "status_code", None)
    if status is not None:
        if status == 429 or status >= 500:
            return True, RetryableErrorType.TEMPORARY
        return False, RetryableErrorType.PERMANENT

    # Anything else (decode errors, programming errors) will not fix itself
    return False, RetryableErrorType.PERMANENT


def retry_operation(
    operation: Callable[[], T],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    operation_name: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Retry an operation with exponential backoff

    Only use this for requests that are safe to repeat.

    Args:
        operation: Callable to retry
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay between retries
        exponential_base: Base for exponential backoff
        jitter: Add random jitter
        operation_name: Name for logging purposes
        sleep: Sleep function, replaceable in tests

    Returns:
        Result of operation
    """
    for attempt in range(max_retries + 1):
        try:
            result = operation()
            if attempt > 0:
                logger.info(f"{operation_name} succeeded on attempt {attempt + 1}")
            return result
        except Exception as e:
            is_retryable, error_type = is_retryable_error(e)

            if not is_retryable:
                logger.error(f"{operation_name} failed with non-retryable error: {e}")
                raise

            if attempt >= max_retries:
                logger.error(f"{operation_name} failed after {max_retries + 1} attempts: {e}")
                raise

            delay = min(initial_delay * (exponential_base**attempt), max_delay)
            if jitter:
                jitter_amount = delay * 0.1
                delay = delay + random.uniform(-jitter_amount, jitter_amount)
                delay = max(0.1, delay)

            logger.warning(
                f"{operation_name} failed on attempt {attempt + 1}/{max_retries + 1} "
                f"({error_type.value} error). Retrying in {delay:.2f}s..."
            )
            sleep(delay)
