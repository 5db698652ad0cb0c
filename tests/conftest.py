"""
Shared pytest fixtures for harbor tests.

This module provides:
- A scripted ``FakeProcessBackend`` so no test needs a Docker daemon
- Test settings with short timeouts
- A ``DockerRuntime`` wired to the fake backend
- A canned running container snapshot

Usage:
    def test_stop(runtime, backend, container):
        backend.on("stop", stdout=container.id)
        ...
"""

import pytest
import structlog

from harbor.core.logging import clear_context
from harbor.core.settings import HarborSettings
from harbor.models import Container, ContainerStatus
from harbor.runtime.client import DockerRuntime
from harbor.runtime.fakes import FakeProcessBackend

CONTAINER_ID = "3f1c2a9b8e7d" + "0" * 52


@pytest.fixture(autouse=True)
def _reset_logging_context():
    """Keep bound structlog context from leaking between tests."""
    clear_context()
    yield
    clear_context()
    structlog.reset_defaults()


@pytest.fixture
def settings() -> HarborSettings:
    return HarborSettings(
        docker_binary="docker",
        command_timeout=5.0,
        stop_timeout=1,
        wait_timeout=2.0,
        wait_interval=0.01,
    )


@pytest.fixture
def backend() -> FakeProcessBackend:
    return FakeProcessBackend()


@pytest.fixture
def runtime(settings, backend) -> DockerRuntime:
    return DockerRuntime(settings=settings, backend=backend)


@pytest.fixture
def container_id() -> str:
    return CONTAINER_ID


@pytest.fixture
def container(container_id) -> Container:
    return Container(
        id=container_id,
        name="harbor-test",
        status=ContainerStatus.RUNNING,
        image="alpine:latest",
    )
