"""Logging-specific test configuration and fixtures."""

import logging

import pytest

from agentsql.config.models import LoggingConfig


@pytest.fixture
def sample_logging_config(temp_dir):
    """Create sample logging configuration writing into a temp directory."""
    return LoggingConfig(
        level="INFO",
        format="json",
        file_logging=True,
        path=temp_dir,
        max_file_size=1048576,  # 1MB
        backup_count=3,
    )


@pytest.fixture(autouse=True)
def cleanup_global_logging():
    """Clean up global logging state after each test."""
    yield

    from agentsql.logging.factory import PACKAGE_LOGGER, _global_factory
    _global_factory.shutdown()

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True
