"""Ambient primitives: errors, logging, settings."""

from agqr.core.errors import (
    AgqrError,
    AlreadyConsolidatedError,
    ChildProcessFailure,
    ConfigError,
    CoordinationError,
    ErrorCategory,
    ErrorContext,
    LockContentionError,
    MissingConfigError,
    NetworkError,
    ParseError,
    StorageError,
    TransientError,
    WorkerCrashedError,
    is_retryable,
)
from agqr.core.logging import LogContext, configure_logging, get_logger

__all__ = [
    "AgqrError",
    "AlreadyConsolidatedError",
    "ChildProcessFailure",
    "ConfigError",
    "CoordinationError",
    "ErrorCategory",
    "ErrorContext",
    "LockContentionError",
    "MissingConfigError",
    "NetworkError",
    "ParseError",
    "StorageError",
    "TransientError",
    "WorkerCrashedError",
    "is_retryable",
    "LogContext",
    "configure_logging",
    "get_logger",
]
