"""harbor — typed client for docker-compatible container runtimes.

Drives the runtime's command-line tool, decodes its output into typed
values, waits for containers to become ready, and scopes container
lifetimes so nothing leaks.

Example::

    from harbor import DockerRuntime, container_scope, until_log, wait_for

    runtime = DockerRuntime()
    image = runtime.pull("postgres", tag="16")
    with container_scope(runtime, image, ports={5432: 5432}, environment={"POSTGRES_PASSWORD": "x"}) as db:
        wait_for(runtime, db, until_log("ready to accept connections"), timeout=60)
        ...

Tags:
    container, docker, client
"""

from harbor.core.errors import (
    DecodeError,
    HarborError,
    InputValidationError,
    LifecycleCleanupError,
    ProcessError,
    WaitCancelledError,
    WaitTimeoutError,
)
from harbor.core.logging import configure_logging, get_logger
from harbor.core.settings import HarborSettings, get_settings
from harbor.lifecycle import container_scope, with_container
from harbor.models import (
    Container,
    ContainerStatus,
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
)
from harbor.runtime import CommandOutcome, DockerRuntime, ProcessExecutor
from harbor.wait import (
    ContainerProbe,
    WaitCondition,
    WaitOutcome,
    WaitState,
    all_of,
    until_exec,
    until_exited,
    until_healthy,
    until_log,
    until_running,
    until_status,
    wait_for,
)

__version__ = "0.1.0"

__all__ = [
    "CommandOutcome",
    "Container",
    "ContainerProbe",
    "ContainerStatus",
    "DecodeError",
    "DockerRuntime",
    "ExecOptions",
    "HarborError",
    "HarborSettings",
    "Image",
    "InputValidationError",
    "KillOptions",
    "LifecycleCleanupError",
    "ListOptions",
    "LogsOptions",
    "ProcessError",
    "ProcessExecutor",
    "PullOptions",
    "RemoveImageOptions",
    "RemoveOptions",
    "RestartOptions",
    "RunOptions",
    "StopOptions",
    "WaitCancelledError",
    "WaitCondition",
    "WaitOutcome",
    "WaitState",
    "WaitTimeoutError",
    "__version__",
    "all_of",
    "configure_logging",
    "container_scope",
    "get_logger",
    "get_settings",
    "until_exec",
    "until_exited",
    "until_healthy",
    "until_log",
    "until_running",
    "until_status",
    "wait_for",
    "with_container",
]
