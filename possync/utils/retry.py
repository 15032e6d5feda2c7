"""
Retry utility functions with exponential backoff.
Categorizes errors as transient (retryable) or permanent (non-retryable).
"""

import functools
import inspect
from collections.abc import Callable
from typing import TypeVar

import httpx
import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger()

T = TypeVar("T")

# 408 Request Timeout and 429 Too Many Requests are worth another attempt
RETRYABLE_4XX = frozenset({408, 429})


class TransientError(Exception):
    """Raised for transient/retryable errors (network issues, rate limits, 5xx)."""

    pass


class PermanentError(Exception):
    """Raised for permanent/non-retryable errors (4xx validation errors, auth failures)."""

    pass


def is_transient_error(exception: Exception) -> bool:
    """
    Determine if an exception represents a transient error that should be retried.

    Args:
        exception: The exception to check

    Returns:
        True if error is transient (retryable), False otherwise
    """
    # Network/connection errors are transient
    if isinstance(exception, httpx.ConnectError | httpx.TimeoutException | httpx.NetworkError):
        return True

    if isinstance(exception, httpx.HTTPStatusError):
        status_code = exception.response.status_code
        if 500 <= status_code < 600:
            return True
        if status_code in RETRYABLE_4XX:
            return True
        # Remaining 4xx are permanent
        return False

    if isinstance(exception, TimeoutError):
        return True

    if isinstance(exception, TransientError):
        return True

    # Default to non-retryable for unknown errors (PermanentError included)
    return False


def _classify(exc: Exception) -> Exception:
    if is_transient_error(exc):
        return TransientError(f"Transient error: {exc}")
    return PermanentError(f"Permanent error: {exc}")


def retry_with_backoff(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    multiplier: float = 2.0,
    max_delay: float = 60.0,
):
    """
    Decorator for retrying functions with exponential backoff.
    Only retries on transient errors. Works for plain functions and coroutines.

    The n-th retry waits ``initial_delay * multiplier ** (n - 1)`` seconds, capped at ``max_delay``.
    The original exception is always available as ``__cause__`` of the raised
    TransientError / PermanentError.

    Args:
        max_attempts: Maximum number of attempts (first call included)
        initial_delay: Delay before the first retry, in seconds
        multiplier: Growth factor between consecutive delays
        max_delay: Maximum delay in seconds

    Returns:
        Decorated function with retry logic
    """

    retrying = retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=initial_delay, exp_base=multiplier, max=max_delay),
        retry=retry_if_exception_type(TransientError),
        reraise=True,
        before_sleep=_log_retry_attempt,
    )

    def retry_decorator(func: Callable[..., T]) -> Callable[..., T]:
        if inspect.iscoroutinefunction(func):

            @retrying
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except (TransientError, PermanentError):
                    raise
                except Exception as e:
                    raise _classify(e) from e

            return async_wrapper

        @retrying
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except (TransientError, PermanentError):
                raise
            except Exception as e:
                raise _classify(e) from e

        return wrapper

    return retry_decorator


def _log_retry_attempt(retry_state: RetryCallState):
    """Log retry attempt before sleeping."""
    if retry_state.outcome is not None:
        exception = retry_state.outcome.exception()
        logger.warning(
            "Retrying after transient error",
            attempt=retry_state.attempt_number,
            exception=str(exception),
            wait_time=retry_state.next_action.sleep if retry_state.next_action else 0,
        )
