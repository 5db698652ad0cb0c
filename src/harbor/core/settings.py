"""Environment-driven settings for harbor.

Every default harbor uses (which CLI binary to drive, how long a single
invocation may run, the runtime's stop grace period, and the wait engine's
timeout and poll interval) lives here, so nothing is a hidden call-site
default and CI can override any of it without touching code.

Examples:
    >>> from harbor.core.settings import HarborSettings
    >>> HarborSettings(docker_binary="podman").docker_binary
    'podman'

    Environment overrides use the ``HARBOR_`` prefix::

        HARBOR_DOCKER_BINARY=podman HARBOR_WAIT_TIMEOUT=120 pytest

Tags:
    settings, configuration, pydantic, environment, harbor
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class HarborSettings(BaseSettings):
    """Settings shared by the executor, runtime client and wait engine.

    Fields
    ──────
    docker_binary   : docker-compatible CLI to invoke (``docker``, ``podman``)
    command_timeout : per-invocation executor timeout in seconds (None = no limit)
    stop_timeout    : runtime grace period used when a scoped container is torn down
    wait_timeout    : default readiness wait deadline in seconds
    wait_interval   : default readiness poll interval in seconds
    log_level       : structlog log level
    log_json        : JSON output (None = auto-detect from tty)
    """

    model_config = SettingsConfigDict(
        env_prefix="HARBOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Runtime ──────────────────────────────────────────────────
    docker_binary: str = "docker"
    command_timeout: float | None = Field(default=120.0, gt=0)
    stop_timeout: int = Field(default=10, ge=0)

    # ── Wait engine ──────────────────────────────────────────────
    wait_timeout: float = Field(default=60.0, gt=0)
    wait_interval: float = Field(default=0.5, gt=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None


@lru_cache(maxsize=1)
def get_settings() -> HarborSettings:
    """Return the process-wide settings instance (read once from the environment)."""
    return HarborSettings()


__all__ = ["HarborSettings", "get_settings"]
