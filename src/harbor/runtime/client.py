"""Docker runtime client — one typed call per runtime verb.

Each verb follows the same path: typed parameters → option model (validated
before anything runs) → argv → ``ProcessExecutor`` → decoder → typed result.
Lifecycle verbs (start, stop, restart, run) finish with a fresh ``inspect``
and return a *new* ``Container`` value; the caller's value is never touched.

Key Concepts:
    DockerRuntime: Entry point — ``pull()``, ``images()``, ``run()``,
        ``list_containers()``, ``stop()``, ``kill()``, ``remove()``,
        ``inspect()``, ``logs()``, ``exec()`` and friends.
    Options: every verb takes an options model *or* keyword overrides of
        the same fields (``runtime.stop(c, timeout=3)``).

Architecture Decisions:
    - docker CLI via subprocess, not docker-py: works with any runtime that
      exposes a docker-compatible CLI (Docker, Podman, Colima, CI runners).
    - Runtime grace periods (``stop --time``) are passed through; the
      executor's own timeout is stretched to cover them so the two never
      race.
    - ``exec`` and foreground ``run`` report the inner exit code instead of
      raising; only failures of the runtime call itself raise.

Example::

    runtime = DockerRuntime()
    image = runtime.pull("redis", tag="7")
    container = runtime.run(image, name="cache", ports={6379: 6379}, detach=True)
    container = runtime.stop(container, timeout=5)
    assert container.status is ContainerStatus.EXITED
    runtime.remove(container)

Tags:
    container, docker, lifecycle, subprocess, verbs
"""

from __future__ import annotations

import re
import shlex
from typing import Any, Sequence

from harbor.core.errors import DecodeError, InputValidationError, ProcessError
from harbor.core.logging import get_logger
from harbor.core.result import DecodeResult
from harbor.core.settings import HarborSettings, get_settings
from harbor.models import (
    Container,
    ExecOptions,
    Image,
    KillOptions,
    ListOptions,
    LogsOptions,
    PullOptions,
    RemoveImageOptions,
    RemoveOptions,
    RestartOptions,
    RunOptions,
    StopOptions,
    resolve_options,
)
from harbor.runtime.decoder import (
    decode_container,
    decode_containers,
    decode_identifiers,
    decode_images,
    decode_json_document,
    decode_single_identifier,
    decode_single_image,
)
from harbor.runtime.executor import CommandOutcome, OutputStream, ProcessBackend, ProcessExecutor

logger = get_logger(__name__)

# Prefix the CLI itself puts on stderr when the runtime call (not the workload) fails.
_RUNTIME_FAILURE = re.compile(r"\A(Error response from daemon:|Error: No such (container|object))")
_JSON_FORMAT = "{{json .}}"
# Extra executor headroom on top of a runtime grace period.
_GRACE_MARGIN = 30.0

ContainerRef = Container | str
ImageRef = Image | str


def _container_id(container: ContainerRef) -> str:
    container_id = container.id if isinstance(container, Container) else container
    if not container_id or not str(container_id).strip():
        raise InputValidationError("container id must not be empty", field="container")
    return str(container_id).strip()


def _image_ref(image: ImageRef) -> str:
    ref = image.reference if isinstance(image, Image) else image
    if not ref or any(ch.isspace() for ch in ref):
        raise InputValidationError(f"invalid image reference {ref!r}", field="image")
    return ref


def _check_repository(repository: str) -> str:
    if not repository or any(ch.isspace() for ch in repository) or "@" in repository:
        raise InputValidationError(f"invalid image repository {repository!r}", field="image")
    if ":" in repository.rsplit("/", 1)[-1]:
        raise InputValidationError(
            f"repository {repository!r} already carries a tag; pass it as tag=...",
            field="image",
        )
    return repository


def _command_vector(command: Sequence[str] | str) -> list[str]:
    vector = shlex.split(command) if isinstance(command, str) else [str(part) for part in command]
    if not vector:
        raise InputValidationError("command must not be empty", field="command")
    return vector


def is_runtime_failure(outcome: CommandOutcome) -> bool:
    """True when a non-zero outcome came from the runtime CLI rather than the workload."""
    if outcome.exit_code < 0:
        return True
    return outcome.exit_code != 0 and bool(_RUNTIME_FAILURE.search(outcome.stderr))


class DockerRuntime:
    """Typed verbs over a docker-compatible CLI.

    Parameters
    ----------
    settings
        Settings to use (default: ``get_settings()``).
    executor
        Pre-built executor. When omitted one is built from ``settings``.
    backend
        Process backend for the built executor (e.g. ``FakeProcessBackend``).
    """

    def __init__(
        self,
        *,
        settings: HarborSettings | None = None,
        executor: ProcessExecutor | None = None,
        backend: ProcessBackend | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.executor = executor or ProcessExecutor(
            binary=self.settings.docker_binary,
            backend=backend,
            timeout=self.settings.command_timeout,
        )

    def __repr__(self) -> str:
        return f"DockerRuntime(binary={self.executor.binary!r})"

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _invoke(
        self,
        args: list[str],
        *,
        container_id: str | None = None,
        image: str | None = None,
        timeout: float | None = None,
        check: bool = True,
    ) -> CommandOutcome:
        try:
            return self.executor.run(args, timeout=timeout, check=check)
        except ProcessError as exc:
            exc.with_context(verb=args[0], container_id=container_id, image=image)
            logger.debug("docker.failed", verb=args[0], kind=exc.kind.value, exit_code=exc.exit_code)
            raise

    @staticmethod
    def _unwrap(result: DecodeResult[Any], verb: str, *, container_id: str | None = None, image: str | None = None) -> Any:
        try:
            return result.unwrap()
        except DecodeError as exc:
            exc.with_context(verb=verb, container_id=container_id, image=image)
            logger.warning("docker.decode_failed", verb=verb, reason=exc.message, fragment=exc.fragment[:200])
            raise

    def _grace_timeout(self, grace: int) -> float | None:
        if self.executor.timeout is None:
            return None
        return max(self.executor.timeout, grace + _GRACE_MARGIN)

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Check that the CLI is installed and the daemon answers."""
        try:
            outcome = self.executor.run(["info", "--format", "{{json .ServerVersion}}"], timeout=10, check=False)
        except ProcessError:
            return False
        return outcome.ok

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def pull(self, image: str, options: PullOptions | None = None, **overrides: Any) -> Image:
        """Pull ``image:tag`` and return the resulting Image.

        Registry and runtime errors are surfaced, never retried.
        """
        opts = resolve_options(PullOptions, options, overrides)
        ref = f"{_check_repository(image)}:{opts.tag}"

        self._invoke(["pull", "--quiet", ref], image=ref)
        outcome = self._invoke(["images", "--no-trunc", "--format", _JSON_FORMAT, ref], image=ref)
        pulled: Image = self._unwrap(decode_single_image(outcome.stdout), "pull", image=ref)

        logger.info("image.pulled", image=ref, digest=pulled.digest)
        return pulled

    def images(self) -> list[Image]:
        """List images known to the runtime."""
        outcome = self._invoke(["images", "--no-trunc", "--format", _JSON_FORMAT])
        return self._unwrap(decode_images(outcome.stdout), "images")

    def remove_image(self, image: ImageRef, options: RemoveImageOptions | None = None, **overrides: Any) -> bool:
        """Remove an image. Returns True once the runtime confirms removal."""
        opts = resolve_options(RemoveImageOptions, options, overrides)
        ref = _image_ref(image)
        args = ["rmi"]
        if opts.force:
            args.append("--force")
        self._invoke([*args, ref], image=ref)
        logger.info("image.removed", image=ref, force=opts.force)
        return True

    # ------------------------------------------------------------------
    # Containers: listing and inspection
    # ------------------------------------------------------------------

    def list_containers(self, options: ListOptions | None = None, **overrides: Any) -> list[Container]:
        """List containers; stopped ones only with ``all=True``. Empty list when none."""
        opts = resolve_options(ListOptions, options, overrides)
        args = ["ps", "--no-trunc", "--format", _JSON_FORMAT]
        if opts.all:
            args.insert(1, "--all")
        outcome = self._invoke(args)
        return self._unwrap(decode_containers(outcome.stdout), "ps")

    def container_ids(self, options: ListOptions | None = None, **overrides: Any) -> list[str]:
        """List container ids (``ps --quiet``)."""
        opts = resolve_options(ListOptions, options, overrides)
        args = ["ps", "--quiet", "--no-trunc"]
        if opts.all:
            args.insert(1, "--all")
        outcome = self._invoke(args)
        return self._unwrap(decode_identifiers(outcome.stdout), "ps")

    def inspect(self, container: ContainerRef) -> dict[str, Any]:
        """Return the runtime's inspect document for a container (not-found is surfaced)."""
        container_id = _container_id(container)
        outcome = self._invoke(["inspect", "--type", "container", container_id], container_id=container_id)
        return self._unwrap(decode_json_document(outcome.stdout), "inspect", container_id=container_id)

    def refresh(self, container: ContainerRef) -> Container:
        """Re-query the runtime and return a new snapshot."""
        container_id = _container_id(container)
        outcome = self._invoke(["inspect", "--type", "container", container_id], container_id=container_id)
        return self._unwrap(decode_container(outcome.stdout), "inspect", container_id=container_id)

    # ------------------------------------------------------------------
    # Containers: lifecycle
    # ------------------------------------------------------------------

    def run(self, image: ImageRef, options: RunOptions | None = None, **overrides: Any) -> Container:
        """Create and start a container from ``image``.

        Detached runs return as soon as the runtime reports the id. Foreground
        runs block until the container exits; its exit code is visible via
        ``inspect``/``logs`` and is not an error of this call.
        """
        opts = resolve_options(RunOptions, options, overrides)
        ref = _image_ref(image)

        flags: list[str] = []
        if opts.name:
            flags.extend(["--name", opts.name])
        flags.extend(opts.port_args())
        flags.extend(opts.volume_args())
        flags.extend(opts.env_args())
        tail = [ref, *(opts.command or [])]

        if opts.detach:
            outcome = self._invoke(["run", "--detach", *flags, *tail], image=ref)
            container_id = self._unwrap(decode_single_identifier(outcome.stdout), "run", image=ref)
        else:
            outcome = self._invoke(["create", *flags, *tail], image=ref)
            container_id = self._unwrap(decode_single_identifier(outcome.stdout), "create", image=ref)
            attached = self._invoke(["start", "--attach", container_id], container_id=container_id, check=False)
            if is_runtime_failure(attached):
                raise ProcessError.non_zero_exit(
                    attached.argv, attached.exit_code, attached.stdout, attached.stderr
                ).with_context(verb="start", container_id=container_id, image=ref)

        container = self.refresh(container_id)
        logger.info(
            "container.started",
            container=container.short_id,
            name=container.name,
            image=ref,
            status=container.status.value,
            detach=opts.detach,
        )
        return container

    def start(self, container: ContainerRef) -> Container:
        """Start a created or stopped container; returns the refreshed value."""
        container_id = _container_id(container)
        self._invoke(["start", container_id], container_id=container_id)
        return self.refresh(container_id)

    def stop(self, container: ContainerRef, options: StopOptions | None = None, **overrides: Any) -> Container:
        """Stop gracefully; the runtime kills after ``timeout`` seconds. Returns the refreshed value."""
        opts = resolve_options(StopOptions, options, overrides)
        container_id = _container_id(container)
        self._invoke(
            ["stop", "--time", str(opts.timeout), container_id],
            container_id=container_id,
            timeout=self._grace_timeout(opts.timeout),
        )
        refreshed = self.refresh(container_id)
        logger.info("container.stopped", container=refreshed.short_id, status=refreshed.status.value)
        return refreshed

    def restart(self, container: ContainerRef, options: RestartOptions | None = None, **overrides: Any) -> Container:
        """Restart a container; returns the refreshed value."""
        opts = resolve_options(RestartOptions, options, overrides)
        container_id = _container_id(container)
        self._invoke(
            ["restart", "--time", str(opts.timeout), container_id],
            container_id=container_id,
            timeout=self._grace_timeout(opts.timeout),
        )
        refreshed = self.refresh(container_id)
        logger.info("container.restarted", container=refreshed.short_id, status=refreshed.status.value)
        return refreshed

    def kill(self, container: ContainerRef, options: KillOptions | None = None, **overrides: Any) -> bool:
        """Send a signal (default SIGTERM). Unknown signals fail before anything runs."""
        opts = resolve_options(KillOptions, options, overrides)
        container_id = _container_id(container)
        self._invoke(["kill", "--signal", opts.signal, container_id], container_id=container_id)
        logger.info("container.killed", container=container_id[:12], signal=opts.signal)
        return True

    def remove(self, container: ContainerRef, options: RemoveOptions | None = None, **overrides: Any) -> bool:
        """Remove a container.

        Removing a running container without ``force`` fails and is surfaced;
        it is never retried with force.
        """
        opts = resolve_options(RemoveOptions, options, overrides)
        container_id = _container_id(container)
        args = ["rm"]
        if opts.force:
            args.append("--force")
        self._invoke([*args, container_id], container_id=container_id)
        logger.info("container.removed", container=container_id[:12], force=opts.force)
        return True

    # ------------------------------------------------------------------
    # Containers: observation and exec
    # ------------------------------------------------------------------

    def logs(
        self,
        container: ContainerRef,
        options: LogsOptions | None = None,
        **overrides: Any,
    ) -> str | OutputStream:
        """Container logs as text, or a live stream when ``follow=True``.

        Text output is the runtime's stdout followed by its stderr.
        """
        opts = resolve_options(LogsOptions, options, overrides)
        if opts.follow:
            return self.stream_logs(container, tail=opts.tail)
        container_id = _container_id(container)
        outcome = self._invoke(["logs", "--tail", str(opts.tail), container_id], container_id=container_id)
        return outcome.output

    def stream_logs(self, container: ContainerRef, tail: int | str = "all") -> OutputStream:
        """Follow container logs. Close the stream (or use it as a context manager) to stop."""
        opts = resolve_options(LogsOptions, None, {"follow": True, "tail": tail})
        container_id = _container_id(container)
        try:
            return self.executor.stream(["logs", "--follow", "--tail", str(opts.tail), container_id])
        except ProcessError as exc:
            exc.with_context(verb="logs", container_id=container_id)
            raise

    def exec_run(
        self,
        container: ContainerRef,
        command: Sequence[str] | str,
        options: ExecOptions | None = None,
        **overrides: Any,
    ) -> CommandOutcome:
        """Run a command inside the container and return the full outcome.

        A non-zero ``exit_code`` from the command is returned, not raised.
        """
        opts = resolve_options(ExecOptions, options, overrides)
        container_id = _container_id(container)
        vector = _command_vector(command)
        args = ["exec"]
        if opts.detach:
            args.append("--detach")
        outcome = self._invoke([*args, container_id, *vector], container_id=container_id, check=False)
        if is_runtime_failure(outcome):
            raise ProcessError.non_zero_exit(
                outcome.argv, outcome.exit_code, outcome.stdout, outcome.stderr
            ).with_context(verb="exec", container_id=container_id)
        logger.debug("container.exec", container=container_id[:12], command=vector, exit_code=outcome.exit_code)
        return outcome

    def exec(
        self,
        container: ContainerRef,
        command: Sequence[str] | str,
        options: ExecOptions | None = None,
        **overrides: Any,
    ) -> str:
        """Run a command inside the container and return its standard output."""
        return self.exec_run(container, command, options, **overrides).stdout


__all__ = ["ContainerRef", "DockerRuntime", "ImageRef", "is_runtime_failure"]
