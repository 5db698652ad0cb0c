"""Tests for harbor.core.settings module.

Covers:
- HarborSettings defaults
- HARBOR_ environment overrides
- Field validation
"""

import pytest
from pydantic import ValidationError

from harbor.core.settings import HarborSettings, get_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in ("DOCKER_BINARY", "COMMAND_TIMEOUT", "STOP_TIMEOUT", "WAIT_TIMEOUT", "WAIT_INTERVAL", "LOG_LEVEL"):
        monkeypatch.delenv(f"HARBOR_{name}", raising=False)
    # keep a stray .env in the working directory out of the picture
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestHarborSettingsDefaults:
    def test_defaults(self):
        s = HarborSettings()
        assert s.docker_binary == "docker"
        assert s.command_timeout == 120.0
        assert s.stop_timeout == 10
        assert s.wait_timeout == 60.0
        assert s.wait_interval == 0.5
        assert s.log_level == "INFO"
        assert s.log_json is None


class TestHarborSettingsEnvOverride:
    def test_binary_from_env(self, monkeypatch):
        monkeypatch.setenv("HARBOR_DOCKER_BINARY", "podman")
        assert HarborSettings().docker_binary == "podman"

    def test_wait_timeout_from_env(self, monkeypatch):
        monkeypatch.setenv("HARBOR_WAIT_TIMEOUT", "5")
        assert HarborSettings().wait_timeout == 5.0

    def test_unprefixed_env_ignored(self, monkeypatch):
        monkeypatch.setenv("DOCKER_BINARY", "nerdctl")
        assert HarborSettings().docker_binary == "docker"

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()


class TestHarborSettingsValidation:
    def test_wait_interval_must_be_positive(self):
        with pytest.raises(ValidationError):
            HarborSettings(wait_interval=0)

    def test_stop_timeout_non_negative(self):
        with pytest.raises(ValidationError):
            HarborSettings(stop_timeout=-1)
