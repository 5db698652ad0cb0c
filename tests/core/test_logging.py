"""
Tests for harbor.core.logging.

Tests verify:
- LogContext binds and unbinds context
- configure_logging selects the renderer and level filter
- configure_logging falls back to HarborSettings for unset arguments
"""

from unittest.mock import patch

import structlog
from structlog.testing import capture_logs

from harbor.core.logging import LogContext, bind_context, clear_context, configure_logging, get_logger
from harbor.core.settings import HarborSettings


class TestContextManagement:
    def test_log_context_binds_and_unbinds(self):
        with LogContext(container="abc123"):
            assert structlog.contextvars.get_contextvars()["container"] == "abc123"
        assert "container" not in structlog.contextvars.get_contextvars()

    def test_clear_context(self):
        bind_context(verb="ps")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}


class TestGetLogger:
    def test_events_are_captured(self):
        logger = get_logger("harbor.test")
        with capture_logs() as logs:
            logger.info("container.started", container="abc")
        assert logs == [{"event": "container.started", "container": "abc", "log_level": "info"}]


class TestConfigureLogging:
    def test_json_renderer_selected(self):
        configure_logging(level="INFO", json_format=True, service="harbor-test", add_timestamp=False)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_console_renderer_selected(self):
        configure_logging(level="INFO", json_format=False)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_debug_suppressed_at_info(self):
        configure_logging(level="INFO", json_format=True, add_timestamp=False)
        logger = get_logger("harbor.test.level")
        with capture_logs() as logs:
            logger.debug("docker.exec")
            logger.info("docker.exit")
        assert [entry["event"] for entry in logs] == ["docker.exit"]

    @patch("harbor.core.logging.get_settings")
    def test_unset_arguments_come_from_settings(self, mock_settings):
        mock_settings.return_value = HarborSettings(log_level="WARNING", log_json=True)
        configure_logging(add_timestamp=False)
        assert isinstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)
        logger = get_logger("harbor.test.settings")
        with capture_logs() as logs:
            logger.info("docker.exec")
            logger.warning("docker.slow")
        assert [entry["event"] for entry in logs] == ["docker.slow"]

    @patch("harbor.core.logging.get_settings")
    def test_explicit_arguments_override_settings(self, mock_settings):
        mock_settings.return_value = HarborSettings(log_level="ERROR", log_json=True)
        configure_logging(level="DEBUG", json_format=False)
        assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)
        logger = get_logger("harbor.test.override")
        with capture_logs() as logs:
            logger.debug("docker.exec")
        assert [entry["event"] for entry in logs] == ["docker.exec"]
