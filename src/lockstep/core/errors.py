"""
Structured error types for lockstep.

Every failure the synchronization core can surface is a subclass of
:class:`LockstepError`. Each error knows its category, whether the caller
may retry it, and (optionally) how long to wait before doing so.

Manifesto:
    - **Typed hierarchy:** callers branch on type, never on message text
    - **Explicit retry semantics:** every error carries ``retryable``
    - **"We didn't try" vs "we tried":** ``CircuitOpenError`` is distinct
      from the dependency failure that opened the circuit
    - **Error chaining:** the original exception is kept as ``cause``

Architecture:
    ::

        LockstepError (category, retryable, retry_after, context, cause)
        ├── LockTimeoutError        LOCK       retryable, http 503
        ├── CircuitOpenError        CIRCUIT    retryable, http 503
        ├── BatchDispatchError      DISPATCH   retryable
        ├── StoreUnavailableError   STORE      retryable (internal: triggers fallback)
        ├── AppendError             NETWORK    retryable for 408/429/5xx
        ├── ValidationError         VALIDATION never retryable
        └── ConfigError             CONFIG     never retryable

Examples:
    >>> err = LockTimeoutError("lock:google-sheets:abc", attempts=3)
    >>> err.retryable
    True
    >>> err.to_dict()["category"]
    'LOCK'

Tags:
    error-handling, exception-hierarchy, retry-logic, lockstep
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for routing and retry decisions."""

    LOCK = "LOCK"                 # Lock contention
    CIRCUIT = "CIRCUIT"           # Short-circuited call
    DISPATCH = "DISPATCH"         # Batch failed after retries
    STORE = "STORE"               # Key-value store unreachable
    NETWORK = "NETWORK"           # Transport / upstream HTTP errors
    VALIDATION = "VALIDATION"     # Caller programming error
    CONFIG = "CONFIG"             # Invalid settings
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error for logging.

    Attributes:
        resource: Lock key or destination involved
        breaker: Circuit breaker name
        batch_index: 0-based batch index
        attempt: Attempt number when the error was raised
        metadata: Additional key-value pairs
    """

    resource: str | None = None
    breaker: str | None = None
    batch_index: int | None = None
    attempt: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ("resource", "breaker", "batch_index", "attempt"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class LockstepError(Exception):
    """Base exception for all lockstep errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can be
    overridden per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False
    http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: float | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> LockstepError:
        """Add context to this error (fluent API).

        Usage:
            raise AppendError("boom").with_context(resource="sheet-1", attempt=2)
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# COORDINATION ERRORS
# =============================================================================


class LockTimeoutError(LockstepError):
    """
    A lock could not be acquired after all attempts.

    Signals contention the caller could not resolve. Treat it as
    retryable-later (service unavailable), not as a fatal failure.
    """

    default_category = ErrorCategory.LOCK
    default_retryable = True
    http_status = 503

    def __init__(self, resource: str, *, attempts: int, **kwargs: Any):
        self.resource = resource
        self.attempts = attempts
        kwargs.setdefault("context", ErrorContext(resource=resource, attempt=attempts))
        super().__init__(
            f"Failed to acquire lock '{resource}' after {attempts} attempt(s)",
            **kwargs,
        )


class CircuitOpenError(LockstepError):
    """Raised when a call is short-circuited because the circuit is open.

    The wrapped work was never invoked.
    """

    default_category = ErrorCategory.CIRCUIT
    default_retryable = True
    http_status = 503

    def __init__(self, breaker_name: str, *, retry_after: float | None = None, **kwargs: Any):
        self.breaker_name = breaker_name
        kwargs.setdefault("context", ErrorContext(breaker=breaker_name))
        super().__init__(
            f"Service '{breaker_name}' is temporarily unavailable. Circuit breaker is open.",
            retry_after=retry_after,
            **kwargs,
        )


class BatchDispatchError(LockstepError):
    """A batch failed after exhausting its retries.

    Carries the batch index and the last underlying failure. Never aborts
    sibling batches; the engine records it in the aggregate result.
    """

    default_category = ErrorCategory.DISPATCH
    default_retryable = True

    def __init__(
        self,
        batch_index: int,
        *,
        attempts: int,
        cause: Exception | None = None,
        message: str | None = None,
        **kwargs: Any,
    ):
        self.batch_index = batch_index
        self.attempts = attempts
        reason = str(cause) if cause is not None else "unknown error"
        kwargs.setdefault("context", ErrorContext(batch_index=batch_index, attempt=attempts))
        super().__init__(
            message
            or f"Batch {batch_index + 1} failed after {attempts} attempt(s): {reason}",
            cause=cause,
            **kwargs,
        )


class StoreUnavailableError(LockstepError):
    """The shared key-value store could not be reached or returned an error."""

    default_category = ErrorCategory.STORE
    default_retryable = True


class AppendError(LockstepError):
    """The bulk-append API returned a non-success response or failed in transit."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True

    RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs: Any):
        self.status_code = status_code
        if status_code is not None and "retryable" not in kwargs:
            kwargs["retryable"] = status_code in self.RETRYABLE_STATUS_CODES
        super().__init__(message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


# =============================================================================
# CALLER ERRORS
# =============================================================================


class ValidationError(LockstepError):
    """
    Caller programming error (bad batch size, malformed key, bad TTL).

    Never retryable: the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False
    http_status = 400

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class ConfigError(LockstepError):
    """Configuration error. Never retryable."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, LockstepError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError, OSError))


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "LockstepError",
    "LockTimeoutError",
    "CircuitOpenError",
    "BatchDispatchError",
    "StoreUnavailableError",
    "AppendError",
    "ValidationError",
    "ConfigError",
    "is_retryable",
]
