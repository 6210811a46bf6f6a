"""
Error hierarchy and retry helpers for transient failures.

This module provides:
- Error type hierarchy (retryable vs non-retryable)
- A tenacity-based retry decorator for async integration reads
- Classification of foreign exceptions into that hierarchy

Redemption failures are not modelled here: they are classified into
RedemptionErrorKind by charon.redemption.classifier, because only a subset
of them counts toward the per-market circuit breaker.

Usage:
    from charon.core.retry import retry_transient, NetworkError

    @retry_transient(max_attempts=3)
    async def fetch_positions():
        ...
"""

from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random_exponential,
)

log = structlog.get_logger()


# =============================================================================
# Error Type Hierarchy
# =============================================================================


class ErrorCategory(str, Enum):
    """Classification of error types for retry decisions."""

    TRANSIENT = "transient"  # Network issues, rate limits - should retry
    PERMANENT = "permanent"  # Bad input, bad config - should NOT retry
    UNKNOWN = "unknown"


class CharonError(Exception):
    """Base exception for all Charon errors."""

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


class TransientError(CharonError):
    """Error that may succeed on retry (timeouts, resets, throttling)."""

    category = ErrorCategory.TRANSIENT


class NetworkError(TransientError):
    """Network-related transient error."""

    pass


class PermanentError(CharonError):
    """Error that will NOT succeed on retry."""

    category = ErrorCategory.PERMANENT


class ValidationError(PermanentError):
    """Input validation failed - fix the input."""

    pass


class InvalidConditionIdError(ValidationError):
    """Condition id is not a 32-byte hex string."""

    pass


class ConfigurationError(PermanentError):
    """Configuration is missing or inconsistent."""

    pass


# =============================================================================
# Retry Decorators
# =============================================================================

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT_SECONDS = 1.0
DEFAULT_MAX_WAIT_SECONDS = 30.0
DEFAULT_EXPONENTIAL_MULTIPLIER = 2.0

F = TypeVar("F", bound=Callable[..., Any])


def _create_retry_callback(
    log_context: Optional[dict[str, Any]] = None,
) -> Callable[[RetryCallState], None]:
    context = log_context or {}

    def callback(state: RetryCallState) -> None:
        exception = state.outcome.exception() if state.outcome else None
        log.warning(
            "retry_attempt",
            attempt=state.attempt_number,
            error=str(exception) if exception else None,
            error_type=type(exception).__name__ if exception else None,
            wait_seconds=state.next_action.sleep if state.next_action else 0,
            **context,
        )

    return callback


def retry_transient(
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT_SECONDS,
    max_wait: float = DEFAULT_MAX_WAIT_SECONDS,
    multiplier: float = DEFAULT_EXPONENTIAL_MULTIPLIER,
    jitter: bool = True,
    log_context: Optional[dict[str, Any]] = None,
) -> Callable[[F], F]:
    """Decorator to retry a coroutine function on TransientError with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (including initial).
        min_wait: Minimum wait time between retries in seconds.
        max_wait: Maximum wait time between retries in seconds.
        multiplier: Multiplier for exponential backoff.
        jitter: Whether to add randomness to wait times.
        log_context: Additional context for log messages.

    Returns:
        Decorator function.
    """

    def decorator(func: F) -> F:
        callback = _create_retry_callback(log_context)

        if jitter:
            wait_strategy = wait_random_exponential(
                multiplier=multiplier, min=min_wait, max=max_wait
            )
        else:
            wait_strategy = wait_exponential(
                multiplier=multiplier, min=min_wait, max=max_wait
            )

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max_attempts),
                wait=wait_strategy,
                retry=retry_if_exception_type(TransientError),
                before_sleep=callback,
                reraise=True,
            ):
                with attempt:
                    return await func(*args, **kwargs)

        return async_wrapper  # type: ignore

    return decorator


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable.

    Args:
        error: The exception to check.

    Returns:
        True if the error should be retried, False otherwise.
    """
    if isinstance(error, PermanentError):
        return False
    if isinstance(error, (TransientError, ConnectionError, TimeoutError)):
        return True
    error_str = str(error).lower()
    retryable_patterns = [
        "timeout",
        "timed out",
        "connection",
        "network",
        "rate limit",
        "too many requests",
        "502",
        "503",
        "504",
        "service unavailable",
        "temporarily",
    ]
    return any(pattern in error_str for pattern in retryable_patterns)


def wrap_external_error(error: Exception, context: Optional[str] = None) -> CharonError:
    """Wrap an external library error in the matching Charon error type."""
    message = f"{context}: {error}" if context else str(error)
    if is_retryable(error):
        return NetworkError(message, cause=error)
    return PermanentError(message, cause=error)
