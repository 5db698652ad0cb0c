"""Runtime layer: process execution, output decoding, and the typed verb client."""

from harbor.runtime.client import ContainerRef, DockerRuntime, ImageRef, is_runtime_failure
from harbor.runtime.executor import (
    CommandOutcome,
    OutputStream,
    ProcessBackend,
    ProcessExecutor,
    SubprocessBackend,
    SubprocessStream,
)
from harbor.runtime.fakes import FakeProcessBackend

__all__ = [
    "CommandOutcome",
    "ContainerRef",
    "DockerRuntime",
    "FakeProcessBackend",
    "ImageRef",
    "OutputStream",
    "ProcessBackend",
    "ProcessExecutor",
    "SubprocessBackend",
    "SubprocessStream",
    "is_runtime_failure",
]
