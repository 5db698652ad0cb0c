"""Fake process backend — scripted runtime output for tests.

``FakeProcessBackend`` implements the ``ProcessBackend`` protocol without
spawning anything. Responses are registered against argv prefixes (the
subcommand tokens after the binary); every call is recorded so tests can
assert on the exact command lines a verb produced.

Architecture::

    ProcessExecutor ──▶ FakeProcessBackend
                           ├── rules: [(prefix, FakeResponse, remaining)]
                           ├── streams: [(prefix, lines)]
                           └── calls: [argv, ...]

    Matching: first rule (in registration order) whose prefix matches the
    start of argv[1:] and that still has uses left. ``times=None`` is sticky.

Example::

    backend = FakeProcessBackend()
    backend.on("stop", stdout="abc\\n")
    backend.on("inspect", stdout=inspect_json("abc", status="exited"))
    runtime = DockerRuntime(backend=backend)
    stopped = runtime.stop(container)
    assert backend.calls[0][:2] == ("docker", "stop")

    # Scripted progression: created, created, then running forever
    backend.on("inspect", stdout=inspect_json("abc", status="created"), times=2)
    backend.on("inspect", stdout=inspect_json("abc", status="running"))

Tags:
    testing, fakes, test-doubles, subprocess
"""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Sequence

from harbor.runtime.executor import CommandOutcome


@dataclass(frozen=True)
class FakeResponse:
    """What the fake backend does for a matched argv."""

    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    delay: float = 0.0
    raises: BaseException | None = None
    handler: Callable[[tuple[str, ...]], CommandOutcome] | None = None


@dataclass
class _Rule:
    prefix: tuple[str, ...]
    response: FakeResponse
    remaining: int | None = None


class FakeStream:
    """OutputStream over a fixed list of lines."""

    def __init__(self, argv: Sequence[str], lines: Sequence[str]) -> None:
        self.argv = tuple(argv)
        self._lines = list(lines)
        self.closed = False

    def __iter__(self) -> Iterator[str]:
        for line in self._lines:
            if self.closed:
                return
            yield line

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> FakeStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@dataclass
class FakeProcessBackend:
    """ProcessBackend returning scripted responses and recording calls."""

    calls: list[tuple[str, ...]] = field(default_factory=list)
    streams: list[FakeStream] = field(default_factory=list)
    _rules: list[_Rule] = field(default_factory=list, init=False, repr=False)
    _stream_rules: list[tuple[tuple[str, ...], list[str]]] = field(default_factory=list, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def on(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        exit_code: int = 0,
        delay: float = 0.0,
        raises: BaseException | None = None,
        handler: Callable[[tuple[str, ...]], CommandOutcome] | None = None,
        times: int | None = None,
    ) -> FakeProcessBackend:
        """Register a response for argvs starting with ``prefix``."""
        response = FakeResponse(
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            delay=delay,
            raises=raises,
            handler=handler,
        )
        self._rules.append(_Rule(prefix=tuple(prefix), response=response, remaining=times))
        return self

    def on_stream(self, *prefix: str, lines: Sequence[str]) -> FakeProcessBackend:
        """Register lines for streaming invocations starting with ``prefix``."""
        self._stream_rules.append((tuple(prefix), list(lines)))
        return self

    # -- ProcessBackend ------------------------------------------------------

    def run(self, argv: Sequence[str], timeout: float | None) -> CommandOutcome:
        argv = tuple(argv)
        with self._lock:
            self.calls.append(argv)
            response = self._take(argv)

        if response.delay:
            time.sleep(response.delay)
        if response.raises is not None:
            raise response.raises
        if response.handler is not None:
            return response.handler(argv)
        return CommandOutcome(
            argv=argv,
            exit_code=response.exit_code,
            stdout=response.stdout,
            stderr=response.stderr,
            duration=response.delay,
        )

    def stream(self, argv: Sequence[str]) -> FakeStream:
        argv = tuple(argv)
        with self._lock:
            self.calls.append(argv)
            for prefix, lines in self._stream_rules:
                if _matches(prefix, argv):
                    stream = FakeStream(argv, lines)
                    self.streams.append(stream)
                    return stream
        raise LookupError(f"no fake stream registered for {' '.join(argv)}")

    # -- Assertions helpers --------------------------------------------------

    def calls_for(self, *prefix: str) -> list[tuple[str, ...]]:
        """All recorded argvs starting with ``prefix`` (after the binary)."""
        return [argv for argv in self.calls if _matches(prefix, argv)]

    def _take(self, argv: tuple[str, ...]) -> FakeResponse:
        for rule in self._rules:
            if rule.remaining == 0 or not _matches(rule.prefix, argv):
                continue
            if rule.remaining is not None:
                rule.remaining -= 1
            return rule.response
        raise LookupError(f"no fake response registered for {' '.join(argv)}")


def _matches(prefix: tuple[str, ...], argv: tuple[str, ...]) -> bool:
    return argv[1 : 1 + len(prefix)] == prefix


# ---------------------------------------------------------------------------
# Canned runtime output
# ---------------------------------------------------------------------------


def inspect_json(
    container_id: str,
    *,
    name: str = "harbor-test",
    status: str = "running",
    image: str = "alpine:latest",
    health: str | None = None,
    exit_code: int = 0,
) -> str:
    """``docker inspect --type container`` output for one container."""
    state: dict[str, Any] = {
        "Status": status,
        "Running": status == "running",
        "ExitCode": exit_code,
    }
    if health is not None:
        state["Health"] = {"Status": health, "FailingStreak": 0, "Log": []}
    document = {
        "Id": container_id,
        "Name": f"/{name}",
        "State": state,
        "Config": {"Image": image},
    }
    return json.dumps([document], indent=4) + "\n"


def ps_line(container_id: str, *, name: str = "harbor-test", state: str = "running", image: str = "alpine:latest") -> str:
    """One ``docker ps --format {{json .}}`` line."""
    return json.dumps(
        {
            "ID": container_id,
            "Names": name,
            "Image": image,
            "State": state,
            "Status": "Up 2 seconds" if state == "running" else "Exited (0) 1 second ago",
        }
    )


def image_line(repository: str, tag: str = "latest", *, image_id: str = "sha256:0", digest: str = "<none>") -> str:
    """One ``docker images --format {{json .}}`` line."""
    return json.dumps(
        {
            "Repository": repository,
            "Tag": tag,
            "ID": image_id,
            "Digest": digest,
            "Size": "7.38MB",
        }
    )


__all__ = [
    "FakeProcessBackend",
    "FakeResponse",
    "FakeStream",
    "image_line",
    "inspect_json",
    "ps_line",
]
