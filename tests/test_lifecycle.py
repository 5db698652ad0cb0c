"""Tests for harbor.lifecycle: scoped run, cleanup ordering and error precedence."""

import pytest
from structlog.testing import capture_logs

from harbor.core.errors import InputValidationError, LifecycleCleanupError, ProcessError
from harbor.lifecycle import container_scope, teardown, with_container
from harbor.models import ContainerStatus, RunOptions
from harbor.runtime.fakes import inspect_json

CONFLICT = "Error response from daemon: cannot stop container: permission denied\n"


class WorkFailed(Exception):
    pass


@pytest.fixture
def started(backend, container_id):
    """Script a successful detached run of ``container_id``."""
    backend.on("run", stdout=container_id + "\n")
    backend.on("inspect", stdout=inspect_json(container_id, status="running"), times=1)
    return backend


def _verbs(backend):
    return [argv[1] for argv in backend.calls]


class TestContainerScope:
    def test_happy_path_stops_then_removes(self, runtime, started, container_id):
        started.on("stop", stdout=container_id)
        started.on("inspect", stdout=inspect_json(container_id, status="exited"))
        started.on("rm", stdout=container_id)

        with container_scope(runtime, "alpine", name="scoped") as container:
            assert container.status is ContainerStatus.RUNNING
            assert container.id == container_id

        assert _verbs(started) == ["run", "inspect", "stop", "inspect", "rm"]
        assert started.calls_for("rm") == [("docker", "rm", container_id)]

    def test_always_detached(self, runtime, started, container_id):
        started.on("stop", stdout=container_id)
        started.on("inspect", stdout=inspect_json(container_id, status="exited"))
        started.on("rm", stdout=container_id)

        with container_scope(runtime, "alpine", RunOptions(detach=False)):
            pass

        assert started.calls[0][:3] == ("docker", "run", "--detach")

    def test_stop_timeout_from_settings(self, runtime, started, container_id, settings):
        started.on("stop", stdout=container_id)
        started.on("inspect", stdout=inspect_json(container_id, status="exited"))
        started.on("rm", stdout=container_id)

        with container_scope(runtime, "alpine"):
            pass

        assert started.calls_for("stop")[0][2:4] == ("--time", str(settings.stop_timeout))

    def test_work_error_propagates_and_cleanup_runs(self, runtime, started, container_id):
        started.on("stop", stdout=container_id)
        started.on("inspect", stdout=inspect_json(container_id, status="exited"))
        started.on("rm", stdout=container_id)

        with pytest.raises(WorkFailed):
            with container_scope(runtime, "alpine"):
                raise WorkFailed("boom")

        assert _verbs(started)[-3:] == ["stop", "inspect", "rm"]

    def test_work_error_wins_over_cleanup_error(self, runtime, started, container_id):
        started.on("stop", exit_code=1, stderr=CONFLICT)
        started.on("rm", exit_code=1, stderr=CONFLICT)

        with capture_logs() as logs:
            with pytest.raises(WorkFailed, match="boom"):
                with container_scope(runtime, "alpine"):
                    raise WorkFailed("boom")

        assert len(started.calls_for("stop")) == 1
        assert started.calls_for("rm") == [("docker", "rm", "--force", container_id)]
        assert any(entry["event"] == "lifecycle.cleanup_failed" for entry in logs)

    def test_cleanup_error_raised_when_work_succeeds(self, runtime, started, container_id):
        started.on("stop", stdout=container_id)
        started.on("inspect", stdout=inspect_json(container_id, status="exited"))
        started.on("rm", exit_code=1, stderr="Error response from daemon: removal already in progress\n")

        with pytest.raises(LifecycleCleanupError) as exc_info:
            with container_scope(runtime, "alpine"):
                pass

        err = exc_info.value
        assert len(err.errors) == 1
        assert isinstance(err.errors[0], ProcessError)
        assert err.container.id == container_id
        assert err.context.container_id == container_id

    def test_stop_failure_forces_removal(self, runtime, started, container_id):
        started.on("stop", exit_code=1, stderr=CONFLICT)
        started.on("rm", stdout=container_id)

        with pytest.raises(LifecycleCleanupError) as exc_info:
            with container_scope(runtime, "alpine"):
                pass

        assert started.calls_for("rm") == [("docker", "rm", "--force", container_id)]
        assert len(exc_info.value.errors) == 1

    def test_run_failure_means_no_cleanup(self, runtime, backend):
        backend.on("run", exit_code=125, stderr="Unable to find image 'nope:latest' locally\n")

        with pytest.raises(ProcessError):
            with container_scope(runtime, "nope"):
                pytest.fail("body must not run")

        assert _verbs(backend) == ["run"]

    def test_invalid_options_fail_before_run(self, runtime, backend):
        with pytest.raises(InputValidationError):
            with container_scope(runtime, "alpine", ports={8080: 80, "0.0.0.0:8080": 81}):
                pass
        assert backend.calls == []


class TestWithContainer:
    def test_returns_work_result(self, runtime, started, container_id):
        started.on("exec", stdout="hello\n")
        started.on("stop", stdout=container_id)
        started.on("inspect", stdout=inspect_json(container_id, status="exited"))
        started.on("rm", stdout=container_id)

        result = with_container(runtime, "alpine", lambda c: runtime.exec(c, "echo hello").strip(), command="sleep 60")

        assert result == "hello"
        assert _verbs(started) == ["run", "inspect", "exec", "stop", "inspect", "rm"]

    def test_work_error_propagates_even_if_cleanup_fails(self, runtime, started, container_id):
        started.on("stop", exit_code=1, stderr=CONFLICT)
        started.on("rm", exit_code=1, stderr=CONFLICT)

        def work(container):
            raise WorkFailed(container.id)

        with pytest.raises(WorkFailed) as exc_info:
            with_container(runtime, "alpine", work)

        assert str(exc_info.value) == container_id
        assert len(started.calls_for("stop")) == 1
        assert len(started.calls_for("rm")) == 1

    def test_non_harbor_stop_error_still_removes_and_keeps_work_error(self, runtime, started, container_id):
        started.on("stop", raises=OSError(24, "Too many open files"))
        started.on("rm", stdout=container_id)

        with pytest.raises(WorkFailed, match="boom"):
            with container_scope(runtime, "alpine"):
                raise WorkFailed("boom")

        assert started.calls_for("rm") == [("docker", "rm", "--force", container_id)]


class TestTeardown:
    def test_returns_errors_without_raising(self, runtime, backend, container):
        backend.on("stop", exit_code=1, stderr=CONFLICT)
        backend.on("rm", exit_code=1, stderr=CONFLICT)

        errors = teardown(runtime, container, stop_timeout=3)

        assert len(errors) == 2
        assert backend.calls_for("stop")[0][2:4] == ("--time", "3")

    def test_unexpected_exception_collected(self, runtime, backend, container):
        failure = OSError(24, "Too many open files")
        backend.on("stop", raises=failure)
        backend.on("rm", stdout=container.id)

        with capture_logs() as logs:
            errors = teardown(runtime, container, stop_timeout=1)

        assert errors == [failure]
        assert backend.calls_for("rm") == [("docker", "rm", "--force", container.id)]
        stop_failed = [entry for entry in logs if entry["event"] == "lifecycle.stop_failed"]
        assert "Too many open files" in stop_failed[0]["error"]

    def test_cleanup_error_wraps_unexpected_exception(self, runtime, started, container_id):
        started.on("stop", stdout=container_id)
        started.on("inspect", stdout=inspect_json(container_id, status="exited"))
        started.on("rm", raises=OSError(24, "Too many open files"))

        with pytest.raises(LifecycleCleanupError) as exc_info:
            with container_scope(runtime, "alpine"):
                pass

        assert isinstance(exc_info.value.errors[0], OSError)
        assert "Too many open files" in exc_info.value.message
