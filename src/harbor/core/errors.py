"""
Structured error types for harbor.

Every failure that crosses a harbor boundary is one of a small set of typed
errors. Each carries a category for routing, a structured context (container,
image, argv) for logging, and the underlying cause when one exists.

Manifesto:
    - **Typed taxonomy:** A caller can tell "docker is not installed" from
      "the daemon said no" from "the output made no sense" without parsing
      message strings
    - **No silent defaults:** An error is never downgraded to an empty value
    - **Rich context:** Errors carry the argv and raw output that produced them
    - **Error chaining:** The original exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                         HarborError                              │
        │            (category, context, cause, to_dict())                 │
        ├─────────────────────────────────────────────────────────────────┤
        │  ProcessError          DecodeError          InputValidationError │
        │  (PROCESS)             (DECODE)             (VALIDATION)         │
        │  kind: NOT_FOUND                                                 │
        │        TIMED_OUT                                                 │
        │        SIGNALED                                                  │
        │        NON_ZERO_EXIT                                             │
        │                                                                  │
        │  WaitTimeoutError      WaitCancelledError   LifecycleCleanupError│
        │  (WAIT)                (WAIT)               (LIFECYCLE)          │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> err = ProcessError.non_zero_exit(["docker", "rm", "abc"], 1, "", "Error: busy")
    >>> err.kind
    <ProcessFailure.NON_ZERO_EXIT: 'NON_ZERO_EXIT'>
    >>> err.with_context(container_id="abc").context.container_id
    'abc'

Tags:
    error-handling, exception-hierarchy, error-context, harbor
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence


class ErrorCategory(str, Enum):
    """Standard error categories used for classification and log routing."""

    PROCESS = "PROCESS"          # Runtime CLI could not run or finish
    DECODE = "DECODE"            # Output did not match the expected shape
    VALIDATION = "VALIDATION"    # Caller input rejected before invocation
    WAIT = "WAIT"                # Readiness wait timed out or was cancelled
    LIFECYCLE = "LIFECYCLE"      # Scoped teardown failed
    INTERNAL = "INTERNAL"        # Bugs, unexpected state


class ProcessFailure(str, Enum):
    """Why an external invocation failed."""

    NOT_FOUND = "NOT_FOUND"            # Binary missing from PATH
    TIMED_OUT = "TIMED_OUT"            # Executor deadline passed, process killed
    SIGNALED = "SIGNALED"              # Terminated by a signal
    NON_ZERO_EXIT = "NON_ZERO_EXIT"    # Ran to completion and reported failure
    SPAWN_FAILED = "SPAWN_FAILED"      # OS refused to start the process


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a harbor error.

    Only fields that are set are emitted by ``to_dict()``; anything that does
    not fit a typed field goes into ``metadata``.

    Attributes:
        container_id: Container the operation targeted
        image: Image reference the operation targeted
        verb: Runtime verb (``pull``, ``stop``, ...)
        argv: Full command line that was executed
        metadata: Additional key-value pairs
    """

    container_id: str | None = None
    image: str | None = None
    verb: str | None = None
    argv: list[str] | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ["container_id", "image", "verb", "argv"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class HarborError(Exception):
    """
    Base exception for all harbor errors.

    Subclasses set ``default_category``; instances carry an ``ErrorContext``
    and an optional ``cause`` that is also chained as ``__cause__`` so
    tracebacks show the root failure.

    Examples:
        >>> error = HarborError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["message"]
        'Something went wrong'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> HarborError:
        """
        Add context to this error (fluent API).

        Usage:
            raise DecodeError("bad inspect", fragment=raw).with_context(
                container_id=container.id, verb="inspect"
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context = self.context.to_dict()
        if context:
            result["context"] = context
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# PROCESS ERRORS
# =============================================================================

_NOT_FOUND_OBJECT = re.compile(r"no such (container|image|object)", re.IGNORECASE)


class ProcessError(HarborError):
    """
    The runtime CLI could not be run or did not finish successfully.

    ``kind`` distinguishes the four failure modes. Never retried by harbor
    itself; retry policy belongs to callers.
    """

    default_category = ErrorCategory.PROCESS

    def __init__(
        self,
        message: str,
        *,
        kind: ProcessFailure,
        argv: Sequence[str] = (),
        exit_code: int | None = None,
        stdout: str = "",
        stderr: str = "",
        timeout: float | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.kind = kind
        self.argv = list(argv)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.timeout = timeout
        if self.context.argv is None and self.argv:
            self.context.argv = self.argv

    @property
    def is_not_found_object(self) -> bool:
        """True when the runtime reported that the target does not exist."""
        return bool(_NOT_FOUND_OBJECT.search(self.stderr))

    @classmethod
    def binary_not_found(cls, argv: Sequence[str], cause: BaseException | None = None) -> ProcessError:
        binary = argv[0] if argv else "<empty>"
        return cls(
            f"Executable not found: {binary}",
            kind=ProcessFailure.NOT_FOUND,
            argv=argv,
            cause=cause,
        )

    @classmethod
    def spawn_failed(cls, argv: Sequence[str], cause: OSError) -> ProcessError:
        binary = argv[0] if argv else "<empty>"
        return cls(
            f"Cannot start {binary}: {cause}",
            kind=ProcessFailure.SPAWN_FAILED,
            argv=argv,
            cause=cause,
        )

    @classmethod
    def timed_out(
        cls,
        argv: Sequence[str],
        timeout: float,
        stdout: str = "",
        stderr: str = "",
    ) -> ProcessError:
        return cls(
            f"Command timed out after {timeout:g}s: {' '.join(argv)}",
            kind=ProcessFailure.TIMED_OUT,
            argv=argv,
            stdout=stdout,
            stderr=stderr,
            timeout=timeout,
        )

    @classmethod
    def signaled(cls, argv: Sequence[str], exit_code: int, stdout: str = "", stderr: str = "") -> ProcessError:
        return cls(
            f"Command killed by signal {-exit_code}: {' '.join(argv)}",
            kind=ProcessFailure.SIGNALED,
            argv=argv,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
        )

    @classmethod
    def non_zero_exit(cls, argv: Sequence[str], exit_code: int, stdout: str, stderr: str) -> ProcessError:
        detail = stderr.strip() or stdout.strip()
        message = f"Command failed (exit {exit_code}): {' '.join(argv)}"
        if detail:
            message = f"{message}\n{detail}"
        return cls(
            message,
            kind=ProcessFailure.NON_ZERO_EXIT,
            argv=argv,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["kind"] = self.kind.value
        if self.exit_code is not None:
            result["exit_code"] = self.exit_code
        if self.timeout is not None:
            result["timeout"] = self.timeout
        return result


# =============================================================================
# DECODE / VALIDATION ERRORS
# =============================================================================


class DecodeError(HarborError):
    """Runtime output did not match the expected shape.

    ``fragment`` is the offending raw text (a single line for
    line-delimited output, the whole document otherwise).
    """

    default_category = ErrorCategory.DECODE

    def __init__(self, message: str, *, fragment: str, expected: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.fragment = fragment
        self.expected = expected

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["fragment"] = self.fragment[:500]
        if self.expected:
            result["expected"] = self.expected
        return result


class InputValidationError(HarborError):
    """Caller-supplied parameters are structurally invalid."""

    default_category = ErrorCategory.VALIDATION

    def __init__(self, message: str, *, field: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field = field


# =============================================================================
# WAIT ERRORS
# =============================================================================


class WaitTimeoutError(HarborError):
    """The wait deadline passed without the condition becoming true."""

    default_category = ErrorCategory.WAIT

    def __init__(
        self,
        message: str,
        *,
        elapsed: float,
        last_status: Any,
        attempts: int,
        condition: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.elapsed = elapsed
        self.last_status = last_status
        self.attempts = attempts
        self.condition = condition

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update(
            elapsed=round(self.elapsed, 3),
            last_status=str(getattr(self.last_status, "value", self.last_status)),
            attempts=self.attempts,
        )
        return result


class WaitCancelledError(HarborError):
    """The caller cancelled the wait before the condition was satisfied."""

    default_category = ErrorCategory.WAIT

    def __init__(self, message: str, *, elapsed: float, attempts: int, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.elapsed = elapsed
        self.attempts = attempts


# =============================================================================
# LIFECYCLE ERRORS
# =============================================================================


class LifecycleCleanupError(HarborError):
    """Teardown of a scoped container failed after the work succeeded."""

    default_category = ErrorCategory.LIFECYCLE

    def __init__(self, message: str, *, errors: Sequence[BaseException], container: Any = None, **kwargs: Any):
        kwargs.setdefault("cause", errors[0] if errors else None)
        super().__init__(message, **kwargs)
        self.errors = list(errors)
        self.container = container


__all__ = [
    "DecodeError",
    "ErrorCategory",
    "ErrorContext",
    "HarborError",
    "InputValidationError",
    "LifecycleCleanupError",
    "ProcessError",
    "ProcessFailure",
    "WaitCancelledError",
    "WaitTimeoutError",
]
