"""
Structured error types for the recorder.

Every failure the scheduler or the coordinator can observe is expressed as
an ``AgqrError`` subclass carrying a category, a retry hint and structured
context, so it can be logged as a single event and routed without string
matching.

Architecture:
    ::

        AgqrError (category, retryable, context, cause)
        ├── TransientError ──── NetworkError
        ├── ParseError
        ├── ConfigError ─────── MissingConfigError
        ├── StorageError
        ├── CoordinationError ─ LockContentionError
        │                     └ AlreadyConsolidatedError
        ├── ChildProcessFailure
        └── WorkerCrashedError

Guardrails:
    ❌ DON'T: Treat LockContentionError / AlreadyConsolidatedError as failures
    ✅ DO: Convert them into a skip outcome at the group boundary

    ❌ DON'T: Retry ConfigError at runtime
    ✅ DO: Abort at startup with a clear message
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    NETWORK = "NETWORK"
    STORAGE = "STORAGE"
    PARSE = "PARSE"
    CONFIG = "CONFIG"
    COORDINATION = "COORDINATION"
    PROCESS = "PROCESS"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        worker: Name of the worker that observed the error
        program: Program title (recorder jobs) or store program name
        group: Work group timestamp (``2024-01-01_120000``)
        host: Host whose artifacts were involved
        pid: Child process id
        url: URL that was being accessed
        metadata: Additional key-value pairs
    """

    worker: str | None = None
    program: str | None = None
    group: str | None = None
    host: str | None = None
    pid: int | None = None
    url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Set fields only, with metadata flattened in."""
        fields = {key: value for key, value in vars(self).items() if key != "metadata" and value is not None}
        return {**fields, **self.metadata}


class AgqrError(Exception):
    """
    Base exception for all recorder errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers may
    override both per instance.

    Examples:
        >>> error = AgqrError("boom").with_context(group="2024-01-01_120000")
        >>> error.context.group
        '2024-01-01_120000'
        >>> error.to_dict()["category"]
        'INTERNAL'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **fields: Any) -> AgqrError:
        """Attach context and return self, for ``raise X(...).with_context(...)``.

        Names that are not ErrorContext fields land in ``metadata``.
        """
        known = set(vars(self.context)) - {"metadata"}
        for name, value in fields.items():
            if name in known:
                setattr(self.context, name, value)
            else:
                self.context.metadata[name] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# ── Transient / source errors ───────────────────────────────────


class TransientError(AgqrError):
    """Temporary failure; the next attempt may succeed."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NetworkError(TransientError):
    """Connection, DNS or HTTP status failure while talking to a remote."""


class ParseError(AgqrError):
    """Malformed timetable markup. The previous schedule stays in effect."""

    default_category = ErrorCategory.PARSE
    default_retryable = False


# ── Configuration errors ────────────────────────────────────────


class ConfigError(AgqrError):
    """Invalid configuration. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """A required setting is absent."""

    def __init__(self, key: str, message: str | None = None):
        super().__init__(message or f"Missing required configuration: {key}")
        self.key = key


# ── Store / coordination errors ─────────────────────────────────


class StorageError(AgqrError):
    """Object store operation failed."""

    default_category = ErrorCategory.STORAGE
    default_retryable = True


class CoordinationError(AgqrError):
    """A work group cannot be consolidated by this host right now."""

    default_category = ErrorCategory.COORDINATION
    default_retryable = True


class LockContentionError(CoordinationError):
    """Another host holds the lock object of the group."""

    def __init__(self, holder: str, message: str | None = None):
        super().__init__(message or f"Group is locked by {holder}")
        self.holder = holder


class AlreadyConsolidatedError(CoordinationError):
    """The group already has a published consolidated metadata object."""

    default_retryable = False


# ── Process / worker errors ─────────────────────────────────────


class ChildProcessFailure(AgqrError):
    """A supervised child process exited with a nonzero status."""

    default_category = ErrorCategory.PROCESS
    default_retryable = False

    def __init__(self, returncode: int, message: str | None = None, **kwargs: Any):
        super().__init__(message or f"Child process exited with status {returncode}", **kwargs)
        self.returncode = returncode


class WorkerCrashedError(AgqrError):
    """A worker loop terminated because of an unhandled exception."""

    default_category = ErrorCategory.INTERNAL
    default_retryable = False


def is_retryable(error: BaseException) -> bool:
    """Return whether *error* is worth retrying on a later pass."""
    if isinstance(error, AgqrError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "AgqrError",
    "TransientError",
    "NetworkError",
    "ParseError",
    "ConfigError",
    "MissingConfigError",
    "StorageError",
    "CoordinationError",
    "LockContentionError",
    "AlreadyConsolidatedError",
    "ChildProcessFailure",
    "WorkerCrashedError",
    "is_retryable",
]
