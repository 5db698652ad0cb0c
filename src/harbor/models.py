"""Domain entities and per-verb option models.

Entities are immutable snapshots. A ``Container`` value says what the
runtime reported at the moment it was fetched, nothing more; every
lifecycle verb hands back a *new* value with refreshed status instead of
mutating the caller's handle.

Key Concepts:
    Image: Pulled image identity (repository, tag, digest/id).
    Container: Container snapshot (id, name, status, image reference).
    ContainerStatus: Enum — created, running, paused, exited, unknown.
    *Options: Frozen Pydantic models, one per verb, enumerating every
        recognised option and its default. Invalid input is rejected here,
        before any process is spawned.

Architecture Decisions:
    - Frozen dataclasses for entities, so a value can never change under its holder.
    - Pydantic v2 for options: validation and defaults in one place;
      ``resolve_options()`` turns ``ValidationError`` into
      ``InputValidationError`` so callers see a single taxonomy.
    - Fixed Linux signal table for ``kill``: the signal is delivered inside
      the container, so the host's ``signal`` module is the wrong oracle.

Tags:
    models, entities, pydantic, options, validation
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from harbor.core.errors import InputValidationError


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class ContainerStatus(str, Enum):
    """Container lifecycle status as reported by the runtime."""

    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    EXITED = "exited"
    UNKNOWN = "unknown"

    @classmethod
    def from_runtime(cls, state: str | None) -> ContainerStatus:
        """Map a runtime state string onto the status enum.

        ``restarting`` counts as running; ``dead``, ``removing`` and anything
        unrecognised map to UNKNOWN.
        """
        normalized = (state or "").strip().lower()
        if normalized == "restarting":
            return cls.RUNNING
        try:
            return cls(normalized)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class Image:
    """An image known to the runtime. Never mutated; a re-pull yields a new value."""

    repository: str
    tag: str = "latest"
    digest: str | None = None
    id: str | None = None

    @property
    def reference(self) -> str:
        """Reference usable on the runtime command line."""
        if self.repository == "<none>" and self.id:
            return self.id
        if self.tag and self.tag != "<none>":
            return f"{self.repository}:{self.tag}"
        if self.digest:
            return f"{self.repository}@{self.digest}"
        return self.repository

    def __str__(self) -> str:
        return self.reference


@dataclass(frozen=True)
class Container:
    """Snapshot of a container. Holding one proves nothing about the present."""

    id: str
    name: str
    status: ContainerStatus
    image: str

    @property
    def short_id(self) -> str:
        return self.id[:12]

    @property
    def is_running(self) -> bool:
        return self.status is ContainerStatus.RUNNING

    def __str__(self) -> str:
        return f"{self.name or self.short_id} ({self.status.value})"


# ---------------------------------------------------------------------------
# Option models
# ---------------------------------------------------------------------------

_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_CONTAINER_PORT_RE = re.compile(r"^(\d{1,5})(/(tcp|udp|sctp))?$")
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")

# Standard Linux signal numbers; signals are delivered inside the container.
LINUX_SIGNALS: dict[str, int] = {
    "SIGHUP": 1, "SIGINT": 2, "SIGQUIT": 3, "SIGILL": 4, "SIGTRAP": 5,
    "SIGABRT": 6, "SIGBUS": 7, "SIGFPE": 8, "SIGKILL": 9, "SIGUSR1": 10,
    "SIGSEGV": 11, "SIGUSR2": 12, "SIGPIPE": 13, "SIGALRM": 14, "SIGTERM": 15,
    "SIGSTKFLT": 16, "SIGCHLD": 17, "SIGCONT": 18, "SIGSTOP": 19, "SIGTSTP": 20,
    "SIGTTIN": 21, "SIGTTOU": 22, "SIGURG": 23, "SIGXCPU": 24, "SIGXFSZ": 25,
    "SIGVTALRM": 26, "SIGPROF": 27, "SIGWINCH": 28, "SIGIO": 29, "SIGPWR": 30,
    "SIGSYS": 31,
}
_SIGNALS_BY_NUMBER = {number: name for name, number in LINUX_SIGNALS.items()}


class _Options(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class PullOptions(_Options):
    """Options for ``pull``."""

    tag: str = Field(default="latest", description="Image tag to pull")

    @field_validator("tag")
    @classmethod
    def _check_tag(cls, value: str) -> str:
        if not _TAG_RE.match(value):
            raise ValueError(f"invalid image tag {value!r}")
        return value


class ListOptions(_Options):
    """Options for ``list_containers`` / ``container_ids``."""

    all: bool = Field(default=False, description="Include stopped containers (--all)")


def _split_host_binding(key: Any) -> tuple[str, int]:
    text = str(key).strip()
    host_ip, sep, port_text = text.rpartition(":")
    if not sep:
        host_ip = "0.0.0.0"
    if not port_text.isdigit() or not 0 < int(port_text) < 65536:
        raise ValueError(f"invalid host port {key!r}")
    return host_ip or "0.0.0.0", int(port_text)


class RunOptions(_Options):
    """Options for ``run``.

    ``ports`` maps host port (``8080`` or ``"127.0.0.1:8080"``) to container
    port (``80`` or ``"53/udp"``). ``volumes`` maps host path to container
    path, optionally suffixed with ``:ro``/``:rw``.
    """

    name: str | None = Field(default=None, description="Container name (--name)")
    ports: dict[int | str, int | str] = Field(default_factory=dict, description="Host -> container port map")
    volumes: dict[str, str] = Field(default_factory=dict, description="Host path -> container path map")
    environment: dict[str, str] = Field(default_factory=dict, description="Environment variables")
    command: list[str] | None = Field(default=None, description="Command override")
    detach: bool = Field(default=False, description="Run in background and return immediately")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str | None) -> str | None:
        if value is not None and not _NAME_RE.match(value):
            raise ValueError(f"invalid container name {value!r}")
        return value

    @field_validator("command", mode="before")
    @classmethod
    def _split_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            return shlex.split(value)
        return value

    @field_validator("ports")
    @classmethod
    def _check_ports(cls, value: dict[int | str, int | str]) -> dict[int | str, int | str]:
        seen: dict[int, list[str]] = {}
        for host, target in value.items():
            host_ip, port = _split_host_binding(host)
            match = _CONTAINER_PORT_RE.match(str(target).strip())
            if not match or not 0 < int(match.group(1)) < 65536:
                raise ValueError(f"invalid container port {target!r}")
            ips = seen.setdefault(port, [])
            if host_ip in ips or "0.0.0.0" in ips or (ips and host_ip == "0.0.0.0"):
                raise ValueError(f"duplicate host port {port}")
            ips.append(host_ip)
        return value

    @field_validator("volumes")
    @classmethod
    def _check_volumes(cls, value: dict[str, str]) -> dict[str, str]:
        targets: set[str] = set()
        for source, target in value.items():
            if not source.strip():
                raise ValueError("empty volume source")
            path, _, mode = target.partition(":")
            if not path.startswith("/"):
                raise ValueError(f"volume target must be an absolute path: {target!r}")
            if mode and mode not in ("ro", "rw"):
                raise ValueError(f"invalid volume mode {mode!r}")
            if path in targets:
                raise ValueError(f"duplicate volume target {path}")
            targets.add(path)
        return value

    @field_validator("environment")
    @classmethod
    def _check_environment(cls, value: dict[str, str]) -> dict[str, str]:
        for key in value:
            if not _ENV_KEY_RE.match(key):
                raise ValueError(f"invalid environment variable name {key!r}")
        return value

    def port_args(self) -> list[str]:
        args: list[str] = []
        for host, target in self.ports.items():
            args.extend(["--publish", f"{str(host).strip()}:{str(target).strip()}"])
        return args

    def volume_args(self) -> list[str]:
        args: list[str] = []
        for source, target in self.volumes.items():
            args.extend(["--volume", f"{source}:{target}"])
        return args

    def env_args(self) -> list[str]:
        args: list[str] = []
        for key, value in self.environment.items():
            args.extend(["--env", f"{key}={value}"])
        return args


class StopOptions(_Options):
    """Options for ``stop``. ``timeout`` is the runtime's grace period before SIGKILL."""

    timeout: int = Field(default=10, ge=0, description="Seconds before the runtime kills the container")


class RestartOptions(_Options):
    """Options for ``restart``."""

    timeout: int = Field(default=10, ge=0, description="Seconds before the runtime kills the container")


class KillOptions(_Options):
    """Options for ``kill``. The signal is normalised to its ``SIG*`` name."""

    signal: str = Field(default="SIGTERM", description="Signal name or number")

    @field_validator("signal", mode="before")
    @classmethod
    def _normalize_signal(cls, value: Any) -> str:
        if isinstance(value, bool):
            raise ValueError(f"unknown signal {value!r}")
        if isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit()):
            number = int(value)
            if number not in _SIGNALS_BY_NUMBER:
                raise ValueError(f"unknown signal number {number}")
            return _SIGNALS_BY_NUMBER[number]
        if not isinstance(value, str):
            raise ValueError(f"unknown signal {value!r}")
        name = value.strip().upper()
        if not name.startswith("SIG"):
            name = f"SIG{name}"
        if name not in LINUX_SIGNALS:
            raise ValueError(f"unknown signal name {value!r}")
        return name


class RemoveOptions(_Options):
    """Options for ``remove``."""

    force: bool = Field(default=False, description="Kill and remove a running container (--force)")


class RemoveImageOptions(_Options):
    """Options for ``remove_image``."""

    force: bool = Field(default=False, description="Remove even if referenced (--force)")


class LogsOptions(_Options):
    """Options for ``logs``."""

    follow: bool = Field(default=False, description="Return a live stream instead of text")
    tail: int | Literal["all"] = Field(default="all", description="Number of trailing lines, or 'all'")

    @field_validator("tail")
    @classmethod
    def _check_tail(cls, value: int | str) -> int | str:
        if isinstance(value, int) and value < 0:
            raise ValueError("tail must be >= 0 or 'all'")
        return value


class ExecOptions(_Options):
    """Options for ``exec``."""

    detach: bool = Field(default=False, description="Start the command and return immediately")


OptionsT = TypeVar("OptionsT", bound=_Options)


def resolve_options(
    model: type[OptionsT],
    options: OptionsT | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> OptionsT:
    """Build a validated options instance from an instance and/or keyword overrides.

    Raises
    ------
    InputValidationError
        If the combined values do not validate.
    """
    if options is not None and not isinstance(options, model):
        raise InputValidationError(
            f"expected {model.__name__}, got {type(options).__name__}",
            field="options",
        )
    if options is not None and not overrides:
        return options
    data: dict[str, Any] = options.model_dump() if options is not None else {}
    data.update(overrides or {})
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise InputValidationError(
            f"Invalid {model.__name__}: {first.get('msg', str(exc))}",
            field=field,
            cause=exc,
        ) from exc


__all__ = [
    "Container",
    "ContainerStatus",
    "ExecOptions",
    "Image",
    "KillOptions",
    "LINUX_SIGNALS",
    "ListOptions",
    "LogsOptions",
    "PullOptions",
    "RemoveImageOptions",
    "RemoveOptions",
    "RestartOptions",
    "RunOptions",
    "StopOptions",
    "resolve_options",
]
