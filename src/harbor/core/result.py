"""
Tagged decode result: ``Ok[T] | DecodeFailed[T]``.

The decoder never coerces bad output into a default value. Every shape
function returns either ``Ok(value)`` or ``DecodeFailed(raw, reason)``, and
the caller decides when to turn a failure into a raised ``DecodeError``
(usually by calling ``unwrap()`` at the verb boundary).

Architecture:
    ::

        ┌────────────────────────────────────────────────────────┐
        │                   DecodeResult[T]                       │
        ├──────────────────────┬─────────────────────────────────┤
        │       Ok[T]          │       DecodeFailed[T]            │
        │ • value: T           │ • raw: str (offending fragment)  │
        │ • map()              │ • reason: str                    │
        │ • flat_map()         │ • expected: str | None           │
        │ • unwrap()           │ • unwrap() -> raises DecodeError │
        └──────────────────────┴─────────────────────────────────┘

Examples:
    >>> Ok(["abc"]).map(len).unwrap()
    1
    >>> failed = DecodeFailed("{oops", reason="invalid JSON", expected="json")
    >>> failed.is_err()
    True
    >>> collect_results([Ok(1), failed]) is failed
    True

Guardrails:
    ❌ DON'T: Drop failed lines and keep the rest
    ✅ DO: Use collect_results() so one bad line fails the whole call

Tags:
    result-pattern, decoding, error-handling, harbor
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, TypeVar

from harbor.core.errors import DecodeError


T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful decode holding a typed value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, f: Callable[[T], U]) -> DecodeResult[U]:
        """Transform the value."""
        return Ok(f(self.value))

    def flat_map(self, f: Callable[[T], DecodeResult[U]]) -> DecodeResult[U]:
        """Chain another decode step."""
        return f(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class DecodeFailed(Generic[T]):
    """
    Failed decode carrying the raw fragment that could not be decoded.

    ``unwrap()`` raises a ``DecodeError`` built from this value, so the raw
    fragment always reaches the caller.
    """

    raw: str
    reason: str
    expected: str | None = None

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    @property
    def error(self) -> DecodeError:
        return DecodeError(
            f"Cannot decode runtime output: {self.reason}",
            fragment=self.raw,
            expected=self.expected,
        )

    def unwrap(self) -> T:
        """Raise the failure as a DecodeError."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, f: Callable[[T], U]) -> DecodeResult[U]:
        """No-op for DecodeFailed."""
        return DecodeFailed(self.raw, self.reason, self.expected)

    def flat_map(self, f: Callable[[T], DecodeResult[U]]) -> DecodeResult[U]:
        """No-op for DecodeFailed."""
        return DecodeFailed(self.raw, self.reason, self.expected)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": False, "reason": self.reason, "raw": self.raw[:500], "expected": self.expected}

    def __repr__(self) -> str:
        return f"DecodeFailed(reason={self.reason!r}, raw={self.raw[:60]!r})"


DecodeResult = Ok[T] | DecodeFailed[T]


def collect_results(results: Iterable[DecodeResult[T]]) -> DecodeResult[list[T]]:
    """
    Collect a sequence of results into one, failing on the first failure.

    No partial list is ever returned: a caller comparing counts must never
    see fewer records than the runtime reported.

    Examples:
        >>> collect_results([Ok(1), Ok(2)]).unwrap()
        [1, 2]
        >>> collect_results([]).unwrap()
        []
    """
    values: list[T] = []
    for result in results:
        if isinstance(result, DecodeFailed):
            return result
        values.append(result.value)
    return Ok(values)


__all__ = [
    "DecodeFailed",
    "DecodeResult",
    "Ok",
    "collect_results",
]
