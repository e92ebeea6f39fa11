"""lockstep.core: errors, logging, settings, time, and key conventions."""

from lockstep.core.errors import (
    AppendError,
    BatchDispatchError,
    CircuitOpenError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    LockstepError,
    LockTimeoutError,
    StoreUnavailableError,
    ValidationError,
    is_retryable,
)
from lockstep.core.keys import LockKeys, validate_key
from lockstep.core.logging import LogContext, configure_logging, get_logger
from lockstep.core.settings import LockstepSettings, clear_settings_cache, get_settings
from lockstep.core.timestamps import Clock, SystemClock

__all__ = [
    # errors
    "AppendError",
    "BatchDispatchError",
    "CircuitOpenError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "LockstepError",
    "LockTimeoutError",
    "StoreUnavailableError",
    "ValidationError",
    "is_retryable",
    # keys
    "LockKeys",
    "validate_key",
    # logging
    "LogContext",
    "configure_logging",
    "get_logger",
    # settings
    "LockstepSettings",
    "clear_settings_cache",
    "get_settings",
    # time
    "Clock",
    "SystemClock",
]
