"""Process executor — runs the runtime CLI and captures what it said.

Every runtime verb ends up here as one external invocation: an argv, an
optional timeout, and back a ``CommandOutcome`` (exit code, stdout, stderr,
duration) or a ``ProcessError`` saying which of the four ways it failed.

Key Concepts:
    CommandOutcome: Transient value consumed immediately by the decoder.
    ProcessBackend: Protocol for "something that runs an argv". The real one
        is ``SubprocessBackend``; tests plug in ``FakeProcessBackend``.
    ProcessExecutor: Prepends the runtime binary, applies the default
        timeout, logs the call, and classifies non-zero exits.
    OutputStream: Live line stream for long-running invocations
        (``docker logs --follow``). Closing it kills the process.

Architecture Decisions:
    - New session per child: on timeout the whole process group is killed,
      so nothing the CLI spawned outlives the call.
    - No retries: retry policy belongs to callers (e.g. the wait engine).
    - ``check=False`` returns non-zero outcomes untouched so verbs like
      ``exec`` can tell an inner failure from a runtime failure.

Example::

    executor = ProcessExecutor(binary="docker", timeout=30)
    outcome = executor.run(["ps", "--quiet"])
    print(outcome.stdout)

Tags:
    subprocess, executor, timeout, process-group, docker-cli
"""

from __future__ import annotations

import os
import signal
import subprocess
import time
from dataclasses import dataclass
from typing import Iterator, Protocol, Sequence

from harbor.core.errors import ProcessError
from harbor.core.logging import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CommandOutcome:
    """Captured result of one external invocation."""

    argv: tuple[str, ...]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """stdout followed by stderr."""
        return self.stdout + self.stderr

    def raise_for_status(self) -> CommandOutcome:
        """Raise ProcessError unless the command exited 0."""
        if self.exit_code < 0:
            raise ProcessError.signaled(self.argv, self.exit_code, self.stdout, self.stderr)
        if self.exit_code != 0:
            raise ProcessError.non_zero_exit(self.argv, self.exit_code, self.stdout, self.stderr)
        return self


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class OutputStream(Protocol):
    """Live, closable stream of output lines (newline stripped)."""

    def __iter__(self) -> Iterator[str]: ...

    def close(self) -> None: ...

    def __enter__(self) -> OutputStream: ...

    def __exit__(self, *exc_info: object) -> None: ...


class ProcessBackend(Protocol):
    """Runs a full argv. Raises ProcessError for NOT_FOUND / SPAWN_FAILED / TIMED_OUT only."""

    def run(self, argv: Sequence[str], timeout: float | None) -> CommandOutcome: ...

    def stream(self, argv: Sequence[str]) -> OutputStream: ...


def _kill_tree(proc: subprocess.Popen) -> None:
    """Kill the child and everything in its process group."""
    if hasattr(os, "killpg"):
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except (ProcessLookupError, PermissionError):
            pass
    try:
        proc.kill()
    except ProcessLookupError:
        pass


class SubprocessStream:
    """OutputStream over a running ``subprocess.Popen`` (stderr merged into stdout)."""

    def __init__(self, proc: subprocess.Popen, argv: Sequence[str]) -> None:
        self._proc = proc
        self.argv = tuple(argv)

    def __iter__(self) -> Iterator[str]:
        if self._proc.stdout is None:
            return
        for line in self._proc.stdout:
            yield line.rstrip("\r\n")

    @property
    def exit_code(self) -> int | None:
        return self._proc.poll()

    def close(self) -> None:
        if self._proc.poll() is None:
            _kill_tree(self._proc)
        self._proc.wait()
        if self._proc.stdout is not None:
            self._proc.stdout.close()
        logger.debug("docker.stream_closed", argv=list(self.argv), exit_code=self._proc.returncode)

    def __enter__(self) -> SubprocessStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class SubprocessBackend:
    """ProcessBackend that spawns real OS processes."""

    def run(self, argv: Sequence[str], timeout: float | None) -> CommandOutcome:
        argv = tuple(argv)
        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                start_new_session=True,  # own process group for clean kill
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise ProcessError.binary_not_found(argv, cause=exc) from exc
        except OSError as exc:
            raise ProcessError.spawn_failed(argv, exc) from exc

        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_tree(proc)
            stdout, stderr = proc.communicate()
            logger.warning("docker.timeout", argv=list(argv), timeout=timeout)
            raise ProcessError.timed_out(argv, timeout or 0.0, stdout or "", stderr or "") from None
        except BaseException:
            # KeyboardInterrupt and friends must not leave an orphan behind
            _kill_tree(proc)
            proc.wait()
            raise

        return CommandOutcome(
            argv=argv,
            exit_code=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            duration=time.monotonic() - start,
        )

    def stream(self, argv: Sequence[str]) -> SubprocessStream:
        try:
            proc = subprocess.Popen(
                list(argv),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                start_new_session=True,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise ProcessError.binary_not_found(argv, cause=exc) from exc
        except OSError as exc:
            raise ProcessError.spawn_failed(argv, exc) from exc
        return SubprocessStream(proc, argv)


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class ProcessExecutor:
    """Runs runtime CLI subcommands through a ProcessBackend.

    Parameters
    ----------
    binary
        Runtime CLI to prepend to every argv (``docker``, ``podman``).
    backend
        Backend to execute with (default: ``SubprocessBackend``).
    timeout
        Default per-invocation timeout in seconds; ``None`` means no limit.
    """

    def __init__(
        self,
        binary: str = "docker",
        backend: ProcessBackend | None = None,
        timeout: float | None = 120.0,
    ) -> None:
        self.binary = binary
        self.backend: ProcessBackend = backend or SubprocessBackend()
        self.timeout = timeout

    def run(
        self,
        args: Sequence[str],
        *,
        timeout: float | None = None,
        check: bool = True,
    ) -> CommandOutcome:
        """Run ``<binary> <args...>`` to completion.

        Parameters
        ----------
        args
            Subcommand and arguments (without the binary).
        timeout
            Override for the default timeout.
        check
            Raise ProcessError on a non-zero or signalled exit.

        Raises
        ------
        ProcessError
            NOT_FOUND, SPAWN_FAILED, TIMED_OUT, and (with ``check``) SIGNALED or NON_ZERO_EXIT.
        """
        argv = (self.binary, *args)
        effective_timeout = timeout if timeout is not None else self.timeout
        logger.debug("docker.exec", argv=list(argv), timeout=effective_timeout)

        outcome = self.backend.run(argv, effective_timeout)

        logger.debug(
            "docker.exit",
            verb=args[0] if args else None,
            exit_code=outcome.exit_code,
            duration_ms=round(outcome.duration * 1000),
        )
        if check:
            outcome.raise_for_status()
        return outcome

    def stream(self, args: Sequence[str]) -> OutputStream:
        """Start ``<binary> <args...>`` and return its live output stream."""
        argv = (self.binary, *args)
        logger.debug("docker.stream", argv=list(argv))
        return self.backend.stream(argv)


__all__ = [
    "CommandOutcome",
    "OutputStream",
    "ProcessBackend",
    "ProcessExecutor",
    "SubprocessBackend",
    "SubprocessStream",
]
