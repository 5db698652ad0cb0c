"""Scoped container lifecycle — run, hand to work, always stop and remove.

Every container started through this module is torn down when the scope
ends, whatever the work did. Teardown is ``stop`` followed by ``rm``; when
``stop`` fails the removal is forced so a wedged container does not leak.

Error precedence:

    ======================  =====================  ==========================
    work                    teardown               caller sees
    ======================  =====================  ==========================
    returned                succeeded              work's return value
    returned                failed                 ``LifecycleCleanupError``
    raised ``E``            succeeded              ``E``
    raised ``E``            failed                 ``E`` (teardown logged)
    ======================  =====================  ==========================

If ``run`` itself fails there is no container and nothing to tear down; the
run error propagates.

Example::

    with container_scope(runtime, "postgres:16", ports={5432: 5432}) as db:
        wait_for(runtime, db, until_log("ready to accept connections"))
        run_tests(db)

    rows = with_container(runtime, "redis:7", lambda c: probe(c))

Tags:
    lifecycle, context-manager, cleanup, teardown
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Iterator, TypeVar

from harbor.core.errors import HarborError, LifecycleCleanupError
from harbor.core.logging import LogContext, get_logger
from harbor.models import Container, RunOptions, resolve_options

if TYPE_CHECKING:
    from harbor.runtime.client import DockerRuntime, ImageRef

logger = get_logger(__name__)

T = TypeVar("T")


def _describe(exc: BaseException) -> str:
    return exc.message if isinstance(exc, HarborError) else f"{type(exc).__name__}: {exc}"


def teardown(runtime: DockerRuntime, container: Container, *, stop_timeout: int) -> list[Exception]:
    """Stop then remove ``container``; returns the errors hit (empty on success).

    Every step is attempted whatever the previous one raised.
    """
    errors: list[Exception] = []
    force = False
    try:
        runtime.stop(container, timeout=stop_timeout)
    except Exception as exc:
        errors.append(exc)
        force = True
        logger.warning("lifecycle.stop_failed", error=_describe(exc))

    try:
        runtime.remove(container, force=force)
    except Exception as exc:
        errors.append(exc)
        logger.warning("lifecycle.remove_failed", error=_describe(exc), force=force)

    return errors


@contextmanager
def container_scope(
    runtime: DockerRuntime,
    image: ImageRef,
    options: RunOptions | None = None,
    *,
    stop_timeout: int | None = None,
    **overrides: Any,
) -> Iterator[Container]:
    """Run a detached container for the duration of a ``with`` block.

    ``options``/``overrides`` are the same as ``DockerRuntime.run``;
    ``detach`` is always forced on. ``stop_timeout`` defaults to
    ``HarborSettings.stop_timeout``.
    """
    opts = resolve_options(RunOptions, options, {**overrides, "detach": True})
    grace = stop_timeout if stop_timeout is not None else runtime.settings.stop_timeout

    container = runtime.run(image, opts)

    with LogContext(container=container.short_id):
        logger.debug("lifecycle.entered", name=container.name)
        try:
            yield container
        except BaseException as exc:
            errors = teardown(runtime, container, stop_timeout=grace)
            if errors:
                logger.error(
                    "lifecycle.cleanup_failed",
                    errors=[_describe(e) for e in errors],
                    work_error=f"{type(exc).__name__}: {exc}",
                )
            raise

        errors = teardown(runtime, container, stop_timeout=grace)
        if errors:
            logger.error("lifecycle.cleanup_failed", errors=[_describe(e) for e in errors])
            raise LifecycleCleanupError(
                f"Cleanup of container {container.short_id} failed: {_describe(errors[0])}",
                errors=errors,
                container=container,
            ).with_context(container_id=container.id)
        logger.debug("lifecycle.exited", name=container.name)


def with_container(
    runtime: DockerRuntime,
    image: ImageRef,
    work: Callable[[Container], T],
    options: RunOptions | None = None,
    *,
    stop_timeout: int | None = None,
    **overrides: Any,
) -> T:
    """Run ``work`` against a fresh container and return its result.

    The container is stopped and removed afterwards even if ``work`` raises.
    """
    with container_scope(runtime, image, options, stop_timeout=stop_timeout, **overrides) as container:
        return work(container)


__all__ = ["container_scope", "teardown", "with_container"]
