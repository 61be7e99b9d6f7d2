"""Tests for logging factory module."""

import logging
import logging.handlers

import pytest
from pydantic import ValidationError

from agentsql.config.models import LoggingConfig
from agentsql.logging.factory import (
    PACKAGE_LOGGER,
    LoggerFactory,
    configure_logging,
    get_factory,
    get_logger,
    get_performance_logger,
)
from agentsql.logging.performance import PerformanceLogger
from agentsql.logging.structured import StructuredLogger


def _handler_types(factory: LoggerFactory):
    return [type(handler).__name__ for handler in factory._handlers]


class TestLoggerFactory:
    """Test cases for LoggerFactory class."""

    def test_factory_initialization(self):
        """Test LoggerFactory initializes correctly."""
        factory = LoggerFactory()

        assert isinstance(factory.config, LoggingConfig)
        assert factory.initialized is False
        assert len(factory._loggers) == 0
        assert len(factory._performance_loggers) == 0

    def test_configure_with_file_logging(self, logger_factory, sample_logging_config, temp_dir):
        """File logging installs a rotating handler and stops propagation."""
        logger_factory.configure_from_config(sample_logging_config)

        assert logger_factory.initialized is True
        assert _handler_types(logger_factory) == ["RotatingFileHandler"]
        assert (temp_dir / "agentsql.log").exists()
        assert logging.getLogger(PACKAGE_LOGGER).propagate is False

    def test_configure_with_stderr_copy(self, logger_factory):
        logger_factory.configure_from_config(LoggingConfig(copy_to_stderr=True))

        assert _handler_types(logger_factory) == ["StreamHandler"]

    def test_configure_without_output(self, logger_factory):
        """Without outputs, lines propagate to the host's handlers."""
        logger_factory.configure_from_config(LoggingConfig())

        assert _handler_types(logger_factory) == ["NullHandler"]
        assert logging.getLogger(PACKAGE_LOGGER).propagate is True

    def test_reconfigure_replaces_handlers(self, logger_factory, sample_logging_config):
        logger_factory.configure_from_config(sample_logging_config)
        logger_factory.configure_from_config(LoggingConfig(copy_to_stderr=True))

        package_handlers = logging.getLogger(PACKAGE_LOGGER).handlers
        assert _handler_types(logger_factory) == ["StreamHandler"]
        assert not any(isinstance(h, logging.handlers.RotatingFileHandler) for h in package_handlers)

    def test_configure_from_dict_merges(self, logger_factory):
        """Test configuring factory from dictionary."""
        logger_factory.configure_from_dict({"level": "all", "format": "json"})
        logger_factory.configure_from_dict({"copy_to_stderr": "on"})

        assert logger_factory.config.level == "DEBUG"
        assert logger_factory.config.format == "json"
        assert logger_factory.config.copy_to_stderr is True
        assert logging.getLogger(PACKAGE_LOGGER).level == logging.DEBUG

    def test_configure_from_dict_rejects_unknown_field(self, logger_factory):
        with pytest.raises(ValidationError):
            logger_factory.configure_from_dict({"console_output": True})

    def test_file_receives_log_lines(self, logger_factory, sample_logging_config, temp_dir):
        logger_factory.configure_from_config(sample_logging_config)
        logger = logger_factory.get_logger("agentsql.test.file")

        logger.info("Connection bound", context_id="observer")
        for handler in logger_factory._handlers:
            handler.flush()

        content = (temp_dir / "agentsql.log").read_text(encoding="utf-8")
        assert "Connection bound" in content
        assert "observer" in content

    def test_get_logger_caching(self, logger_factory):
        """Test logger caching in factory."""
        logger1 = logger_factory.get_logger("agentsql.test.logger")
        logger2 = logger_factory.get_logger("agentsql.test.logger")

        assert logger1 is logger2
        assert isinstance(logger1, StructuredLogger)
        assert logger_factory.initialized is True

    def test_get_performance_logger(self, logger_factory):
        """Performance loggers are cached and log under a .perf child logger."""
        perf_logger = logger_factory.get_performance_logger("agentsql.test")

        assert isinstance(perf_logger, PerformanceLogger)
        assert perf_logger is logger_factory.get_performance_logger("agentsql.test")
        assert perf_logger.logger.name == "agentsql.test.perf"

    def test_set_level(self, logger_factory):
        logger_factory.set_level("WARNING")

        assert logger_factory.config.level == "WARNING"
        assert logging.getLogger(PACKAGE_LOGGER).level == logging.WARNING

    def test_get_logger_info(self, logger_factory):
        logger_factory.get_logger("agentsql.test.info")

        info = logger_factory.get_logger_info()

        assert info["initialized"] is True
        assert "agentsql.test.info" in info["loggers"]
        assert info["handlers"] == ["NullHandler"]

    def test_shutdown(self, logger_factory):
        logger_factory.configure_from_config(LoggingConfig(copy_to_stderr=True))
        handler = logger_factory._handlers[0]

        logger_factory.shutdown()

        assert logger_factory.initialized is False
        assert handler not in logging.getLogger(PACKAGE_LOGGER).handlers
        assert logger_factory._loggers == {}


class TestGlobalFunctions:
    """Test the module-level convenience functions."""

    def test_get_logger_uses_global_factory(self):
        logger = get_logger("agentsql.test.global")

        assert logger is get_factory().get_logger("agentsql.test.global")

    def test_get_performance_logger_uses_global_factory(self):
        assert get_performance_logger("agentsql.test.g") is get_factory().get_performance_logger("agentsql.test.g")

    def test_configure_logging(self):
        configure_logging(level="ERROR")

        assert get_factory().config.level == "ERROR"
        assert logging.getLogger(PACKAGE_LOGGER).level == logging.ERROR
