"""Readiness wait engine — block until a container satisfies a condition.

A wait polls a caller-supplied predicate against freshly fetched container
state until it returns True, a deadline passes, or the caller cancels.

State machine::

    PENDING ──▶ POLLING ──┬──▶ SATISFIED   predicate returned True
                  ▲  │    ├──▶ TIMED_OUT   predicate False and now >= deadline
                  └──┘    ├──▶ ERRORED     a fetch or the predicate raised
                 sleep    └──▶ CANCELLED   cancel event set

Rules:
    - The deadline is fixed on entry (``timeout`` always has a finite value;
      the default comes from ``HarborSettings.wait_timeout``).
    - The predicate is evaluated before the deadline is checked, so there is
      always at least one evaluation, and a fetch that lands after the
      deadline still gets its evaluation before the wait gives up.
    - Sleeps are clipped to the time remaining, so the final evaluation
      happens at the deadline, not up to one interval past it.
    - Fetch errors propagate immediately; the engine never keeps polling a
      broken fetch path.

Key Concepts:
    ContainerProbe: What a predicate sees each tick. Lazily fetches (and
        caches for that tick only) the refreshed Container, the inspect
        document, and the logs, so a tick costs only what the predicate reads.
    WaitCondition: Predicate plus description and optional timeout/interval.
    until_*: Stock conditions over status, log pattern, health and exec success.

Example::

    outcome = wait_for(runtime, container, until_log(r"ready to accept connections"), timeout=30)
    outcome = wait_for(runtime, container, all_of(until_running(), until_healthy()))

Tags:
    wait, readiness, polling, health, deadline
"""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Sequence

from harbor.core.errors import InputValidationError, WaitCancelledError, WaitTimeoutError
from harbor.core.logging import LogContext, get_logger
from harbor.models import Container, ContainerStatus

if TYPE_CHECKING:
    from harbor.runtime.client import ContainerRef, DockerRuntime
    from harbor.runtime.executor import CommandOutcome

logger = get_logger(__name__)


class WaitState(str, Enum):
    PENDING = "pending"
    POLLING = "polling"
    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"
    CANCELLED = "cancelled"


class ContainerProbe:
    """Per-tick, lazily fetched view of one container.

    Every attribute goes through a public runtime verb; nothing is cached
    across ticks.
    """

    def __init__(self, runtime: DockerRuntime, container: ContainerRef) -> None:
        self._runtime = runtime
        self.container_id = container.id if isinstance(container, Container) else str(container)
        self._container: Container | None = None
        self._document: dict[str, Any] | None = None
        self._logs: str | None = None
        self.last_status: ContainerStatus | None = None

    @property
    def container(self) -> Container:
        if self._container is None:
            self._container = self._runtime.refresh(self.container_id)
            self.last_status = self._container.status
        return self._container

    @property
    def snapshot(self) -> Container | None:
        """The Container fetched this tick, if any."""
        return self._container

    @property
    def status(self) -> ContainerStatus:
        return self.container.status

    @property
    def document(self) -> dict[str, Any]:
        """Raw inspect document."""
        if self._document is None:
            self._document = self._runtime.inspect(self.container_id)
            state = self._document.get("State")
            if isinstance(state, dict) and isinstance(state.get("Status"), str):
                self.last_status = ContainerStatus.from_runtime(state["Status"])
        return self._document

    @property
    def logs(self) -> str:
        if self._logs is None:
            self._logs = self._runtime.logs(self.container_id)
        return self._logs

    def exec(self, command: Sequence[str] | str) -> CommandOutcome:
        """Run a command in the container (not cached)."""
        return self._runtime.exec_run(self.container_id, command)


Predicate = Callable[[ContainerProbe], bool]


@dataclass(frozen=True)
class WaitCondition:
    """A readiness predicate with optional per-condition timing."""

    predicate: Predicate
    description: str = "custom condition"
    timeout: float | None = None
    interval: float | None = None

    def __call__(self, probe: ContainerProbe) -> bool:
        return bool(self.predicate(probe))

    def with_timeout(self, timeout: float) -> WaitCondition:
        return replace(self, timeout=timeout)

    def with_interval(self, interval: float) -> WaitCondition:
        return replace(self, interval=interval)

    def __str__(self) -> str:
        return self.description


@dataclass(frozen=True)
class WaitOutcome:
    """Result of a satisfied wait."""

    container: Container | None
    attempts: int
    elapsed: float
    last_status: ContainerStatus | None = None
    state: WaitState = WaitState.SATISFIED


# ---------------------------------------------------------------------------
# Stock conditions
# ---------------------------------------------------------------------------


def until_status(*statuses: ContainerStatus | str) -> WaitCondition:
    """Container status is one of ``statuses``."""
    if not statuses:
        raise InputValidationError("until_status needs at least one status", field="statuses")
    try:
        wanted = frozenset(ContainerStatus(s) for s in statuses)
    except ValueError as exc:
        raise InputValidationError(str(exc), field="statuses", cause=exc) from exc
    names = "|".join(sorted(s.value for s in wanted))
    return WaitCondition(lambda probe: probe.status in wanted, description=f"status in {names}")


def until_running() -> WaitCondition:
    return until_status(ContainerStatus.RUNNING)


def until_exited() -> WaitCondition:
    return until_status(ContainerStatus.EXITED)


def until_log(pattern: str | re.Pattern[str], flags: int = 0) -> WaitCondition:
    """Fresh logs match ``pattern`` (regular expression search)."""
    try:
        compiled = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, flags)
    except re.error as exc:
        raise InputValidationError(f"invalid log pattern: {exc}", field="pattern", cause=exc) from exc
    return WaitCondition(
        lambda probe: compiled.search(probe.logs) is not None,
        description=f"logs match {compiled.pattern!r}",
    )


def _is_healthy(probe: ContainerProbe) -> bool:
    state = probe.document.get("State") or {}
    health = state.get("Health") if isinstance(state, dict) else None
    if not isinstance(health, dict):
        raise InputValidationError(
            f"container {probe.container_id[:12]} has no health check configured",
            field="container",
        )
    return health.get("Status") == "healthy"


def until_healthy() -> WaitCondition:
    """Runtime health check reports ``healthy``."""
    return WaitCondition(_is_healthy, description="health is healthy")


def until_exec(command: Sequence[str] | str) -> WaitCondition:
    """``command`` run inside the container exits 0."""
    return WaitCondition(lambda probe: probe.exec(command).ok, description=f"exec {command!r} succeeds")


def all_of(*conditions: WaitCondition) -> WaitCondition:
    """Every condition holds on the same tick (short-circuits in order)."""
    if not conditions:
        raise InputValidationError("all_of needs at least one condition", field="conditions")
    return WaitCondition(
        lambda probe: all(condition(probe) for condition in conditions),
        description=" and ".join(c.description for c in conditions),
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _positive(value: float, name: str) -> float:
    if value <= 0:
        raise InputValidationError(f"{name} must be > 0, got {value}", field=name)
    return float(value)


def wait_for(
    runtime: DockerRuntime,
    container: ContainerRef,
    condition: WaitCondition | Predicate,
    *,
    timeout: float | None = None,
    interval: float | None = None,
    cancel: threading.Event | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> WaitOutcome:
    """Block until ``condition`` holds for ``container``.

    Parameters
    ----------
    runtime
        Runtime used for every fetch.
    container
        Container (or id) to watch.
    condition
        ``WaitCondition`` or bare predicate over a ``ContainerProbe``.
    timeout, interval
        Seconds. Precedence: argument, then the condition's own value, then
        ``HarborSettings.wait_timeout`` / ``wait_interval``. An explicit
        0 at any level is rejected, never treated as unset.
    cancel
        Optional event; once set the wait ends with ``WaitCancelledError``.
        When given, the pause between ticks is ``cancel.wait`` so a set
        wakes the wait at once; ``sleep`` is then not called.
    clock, sleep
        Time source and pause function (``sleep`` only without ``cancel``).

    Raises
    ------
    WaitTimeoutError
        Deadline passed; carries elapsed time, last observed status, attempts.
    WaitCancelledError
        ``cancel`` was set.
    HarborError
        Any fetch failure (ProcessError, DecodeError) propagates unchanged.
    """
    if not isinstance(condition, WaitCondition):
        condition = WaitCondition(condition, description=getattr(condition, "__name__", "custom condition"))

    settings = runtime.settings
    if timeout is None:
        timeout = condition.timeout if condition.timeout is not None else settings.wait_timeout
    if interval is None:
        interval = condition.interval if condition.interval is not None else settings.wait_interval
    timeout = _positive(timeout, "timeout")
    interval = _positive(interval, "interval")

    container_id = container.id if isinstance(container, Container) else str(container)
    started = clock()
    deadline = started + timeout
    attempts = 0
    last_status: ContainerStatus | None = container.status if isinstance(container, Container) else None
    state = WaitState.PENDING

    with LogContext(container=container_id[:12]):
        logger.debug("wait.started", condition=condition.description, timeout=timeout, interval=interval)
        while True:
            if cancel is not None and cancel.is_set():
                state = WaitState.CANCELLED
                break

            state = WaitState.POLLING
            probe = ContainerProbe(runtime, container_id)
            attempts += 1
            try:
                satisfied = condition(probe)
            except Exception as exc:
                state = WaitState.ERRORED
                logger.warning(
                    "wait.errored",
                    condition=condition.description,
                    attempts=attempts,
                    error=f"{type(exc).__name__}: {exc}",
                )
                raise
            finally:
                if probe.last_status is not None:
                    last_status = probe.last_status

            now = clock()
            if satisfied:
                state = WaitState.SATISFIED
                elapsed = now - started
                logger.info(
                    "wait.satisfied",
                    condition=condition.description,
                    attempts=attempts,
                    elapsed_ms=round(elapsed * 1000),
                )
                return WaitOutcome(
                    container=probe.snapshot,
                    attempts=attempts,
                    elapsed=elapsed,
                    last_status=last_status,
                    state=state,
                )

            if now >= deadline:
                state = WaitState.TIMED_OUT
                break

            delay = min(interval, deadline - now)
            if cancel is not None:
                if cancel.wait(delay):
                    state = WaitState.CANCELLED
                    break
            else:
                sleep(delay)

    elapsed = clock() - started
    if state is WaitState.CANCELLED:
        logger.info("wait.cancelled", container=container_id[:12], attempts=attempts)
        raise WaitCancelledError(
            f"Wait for {condition.description!r} cancelled after {elapsed:.2f}s",
            elapsed=elapsed,
            attempts=attempts,
        ).with_context(container_id=container_id)

    observed = last_status.value if last_status is not None else ContainerStatus.UNKNOWN.value
    logger.warning(
        "wait.timed_out",
        container=container_id[:12],
        condition=condition.description,
        attempts=attempts,
        last_status=observed,
    )
    raise WaitTimeoutError(
        f"Timed out after {elapsed:.2f}s waiting for {condition.description!r} "
        f"(last status: {observed}, attempts: {attempts})",
        elapsed=elapsed,
        last_status=last_status or ContainerStatus.UNKNOWN,
        attempts=attempts,
        condition=condition.description,
    ).with_context(container_id=container_id)


__all__ = [
    "ContainerProbe",
    "Predicate",
    "WaitCondition",
    "WaitOutcome",
    "WaitState",
    "all_of",
    "until_exec",
    "until_exited",
    "until_healthy",
    "until_log",
    "until_running",
    "until_status",
    "wait_for",
]
