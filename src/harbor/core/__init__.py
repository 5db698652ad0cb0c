"""Core primitives shared by every harbor module: errors, results, logging, settings."""

from harbor.core.errors import (
    DecodeError,
    ErrorCategory,
    ErrorContext,
    HarborError,
    InputValidationError,
    LifecycleCleanupError,
    ProcessError,
    ProcessFailure,
    WaitCancelledError,
    WaitTimeoutError,
)
from harbor.core.logging import LogContext, configure_logging, get_logger
from harbor.core.result import DecodeFailed, DecodeResult, Ok, collect_results
from harbor.core.settings import HarborSettings, get_settings

__all__ = [
    "DecodeError",
    "DecodeFailed",
    "DecodeResult",
    "ErrorCategory",
    "ErrorContext",
    "HarborError",
    "HarborSettings",
    "InputValidationError",
    "LifecycleCleanupError",
    "LogContext",
    "Ok",
    "ProcessError",
    "ProcessFailure",
    "WaitCancelledError",
    "WaitTimeoutError",
    "collect_results",
    "configure_logging",
    "get_logger",
    "get_settings",
]
