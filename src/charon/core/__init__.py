"""Core framework infrastructure - config, logging, lifecycle, retry."""

from charon.core.config import ConfigManager
from charon.core.lifecycle import BaseComponent, HealthCheckResult, HealthStatus
from charon.core.logging import get_logger, setup_logging
from charon.core.retry import (
    CharonError,
    ConfigurationError,
    ErrorCategory,
    InvalidConditionIdError,
    NetworkError,
    PermanentError,
    TransientError,
    ValidationError,
    is_retryable,
    retry_transient,
    wrap_external_error,
)

__all__ = [
    # Config
    "ConfigManager",
    # Logging
    "setup_logging",
    "get_logger",
    # Lifecycle
    "BaseComponent",
    "HealthCheckResult",
    "HealthStatus",
    # Errors
    "CharonError",
    "ErrorCategory",
    "TransientError",
    "NetworkError",
    "PermanentError",
    "ValidationError",
    "InvalidConditionIdError",
    "ConfigurationError",
    # Retry
    "retry_transient",
    "is_retryable",
    "wrap_external_error",
]
