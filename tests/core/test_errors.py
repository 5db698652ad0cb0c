"""Tests for harbor.core.errors module."""

import pytest

from harbor.core.errors import (
    DecodeError,
    ErrorCategory,
    ErrorContext,
    HarborError,
    InputValidationError,
    LifecycleCleanupError,
    ProcessError,
    ProcessFailure,
    WaitCancelledError,
    WaitTimeoutError,
)
from harbor.models import ContainerStatus


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_create_empty_context(self):
        ctx = ErrorContext()
        assert ctx.container_id is None
        assert ctx.verb is None
        assert ctx.metadata == {}

    def test_to_dict_includes_set_fields(self):
        """to_dict includes only non-None fields, metadata flattened in."""
        ctx = ErrorContext(container_id="abc", verb="stop", metadata={"attempt": 2})
        d = ctx.to_dict()
        assert d["container_id"] == "abc"
        assert d["verb"] == "stop"
        assert d["attempt"] == 2
        assert "image" not in d


class TestHarborError:
    """Test HarborError base class."""

    def test_create_minimal_error(self):
        err = HarborError("Something failed")
        assert err.message == "Something failed"
        assert err.category == ErrorCategory.INTERNAL
        assert err.cause is None
        assert str(err) == "Something failed"

    def test_create_with_cause(self):
        cause = ValueError("Invalid value")
        err = HarborError("Wrapped", cause=cause)
        assert err.cause is cause
        assert err.__cause__ is cause

    def test_with_context_fluent_api(self):
        """Known fields land on the context, unknown keys in metadata."""
        err = HarborError("Failed").with_context(container_id="abc", verb="rm", attempt=3)
        assert err.context.container_id == "abc"
        assert err.context.verb == "rm"
        assert err.context.metadata["attempt"] == 3

    def test_to_dict(self):
        err = HarborError("Failed", cause=RuntimeError("boom")).with_context(verb="ps")
        d = err.to_dict()
        assert d["error_type"] == "HarborError"
        assert d["category"] == "INTERNAL"
        assert d["context"] == {"verb": "ps"}
        assert d["cause"] == "RuntimeError: boom"

    def test_subclasses_are_harbor_errors(self):
        for cls in (ProcessError, DecodeError, InputValidationError, WaitTimeoutError, LifecycleCleanupError):
            assert issubclass(cls, HarborError)


class TestProcessError:
    """Test ProcessError constructors and classification."""

    def test_binary_not_found(self):
        cause = FileNotFoundError("docker")
        err = ProcessError.binary_not_found(["docker", "ps"], cause=cause)
        assert err.kind is ProcessFailure.NOT_FOUND
        assert err.category == ErrorCategory.PROCESS
        assert err.__cause__ is cause
        assert "docker" in err.message

    def test_timed_out_keeps_partial_output(self):
        err = ProcessError.timed_out(["docker", "pull", "x"], 1.5, stdout="partial", stderr="")
        assert err.kind is ProcessFailure.TIMED_OUT
        assert err.timeout == 1.5
        assert err.stdout == "partial"
        assert err.to_dict()["timeout"] == 1.5

    def test_spawn_failed(self):
        cause = OSError(7, "Argument list too long")
        err = ProcessError.spawn_failed(["docker", "run"], cause)
        assert err.kind is ProcessFailure.SPAWN_FAILED
        assert err.category == ErrorCategory.PROCESS
        assert err.__cause__ is cause
        assert err.to_dict()["kind"] == "SPAWN_FAILED"

    def test_signaled(self):
        err = ProcessError.signaled(["docker", "logs"], -9)
        assert err.kind is ProcessFailure.SIGNALED
        assert "signal 9" in err.message

    def test_non_zero_exit_message_includes_stderr(self):
        err = ProcessError.non_zero_exit(["docker", "rm", "abc"], 1, "", "Error response from daemon: conflict\n")
        assert err.kind is ProcessFailure.NON_ZERO_EXIT
        assert err.exit_code == 1
        assert "conflict" in err.message
        assert err.context.argv == ["docker", "rm", "abc"]
        assert err.to_dict()["kind"] == "NON_ZERO_EXIT"

    @pytest.mark.parametrize(
        "stderr, expected",
        [
            ("Error response from daemon: No such container: abc", True),
            ("Error: No such object: abc", True),
            ("Error response from daemon: No such image: nope:latest", True),
            ("Error response from daemon: conflict", False),
        ],
    )
    def test_is_not_found_object(self, stderr, expected):
        err = ProcessError.non_zero_exit(["docker", "inspect"], 1, "", stderr)
        assert err.is_not_found_object is expected


class TestOtherErrors:
    def test_decode_error_carries_fragment(self):
        err = DecodeError("bad", fragment="{not json", expected="json record")
        assert err.fragment == "{not json"
        assert err.category == ErrorCategory.DECODE
        assert err.to_dict()["expected"] == "json record"

    def test_input_validation_error_field(self):
        err = InputValidationError("bad signal", field="signal")
        assert err.field == "signal"
        assert err.category == ErrorCategory.VALIDATION

    def test_wait_timeout_error_fields(self):
        err = WaitTimeoutError("timed out", elapsed=1.23456, last_status=ContainerStatus.CREATED, attempts=4)
        assert err.elapsed == 1.23456
        assert err.last_status is ContainerStatus.CREATED
        d = err.to_dict()
        assert d["elapsed"] == 1.235
        assert d["last_status"] == "created"
        assert d["attempts"] == 4

    def test_wait_cancelled_error(self):
        err = WaitCancelledError("cancelled", elapsed=0.1, attempts=1)
        assert err.category == ErrorCategory.WAIT
        assert err.attempts == 1

    def test_lifecycle_cleanup_error_chains_first_error(self):
        first = ProcessError.non_zero_exit(["docker", "stop"], 1, "", "boom")
        second = ProcessError.non_zero_exit(["docker", "rm"], 1, "", "boom")
        err = LifecycleCleanupError("cleanup failed", errors=[first, second], container="abc")
        assert err.errors == [first, second]
        assert err.__cause__ is first
        assert err.container == "abc"
