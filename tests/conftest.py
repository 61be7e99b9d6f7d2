"""Pytest configuration and shared fixtures.

This module provides pytest configuration and shared fixtures for all tests
in the agentsql test suite, including an in-memory DB-API driver that
counts connection opens and closes.
"""

import sys
import tempfile
from pathlib import Path
from typing import Any, Generator, List

import pytest
import structlog

from agentsql.database.dialects import DialectRegistry, create_default_registry
from agentsql.database.pool import ConnectionPool
from agentsql.environment import Environment
from agentsql.logging.factory import LoggerFactory

from fake_dbapi import FAKE_DIALECT, FAKE_SETTINGS, FakeDriver

# Configure test logging to suppress noise during tests
structlog.configure(
    processors=[structlog.testing.LogCapture()],
    wrapper_class=structlog.BoundLogger,
    logger_factory=structlog.testing.ReturnLoggerFactory(),
    cache_logger_on_first_use=True,
)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def fake_driver(monkeypatch) -> FakeDriver:
    """Install the ``fakedb`` DB-API module."""
    driver = FakeDriver()
    monkeypatch.setitem(sys.modules, "fakedb", driver.as_module())
    return driver


@pytest.fixture
def dialects(fake_driver) -> DialectRegistry:
    """Built-in dialects plus the fake one."""
    registry = create_default_registry()
    registry.register(FAKE_DIALECT)
    return registry


@pytest.fixture
def pool(dialects) -> Generator[ConnectionPool, None, None]:
    pool = ConnectionPool(dialects)
    yield pool
    pool.close()


@pytest.fixture
def logger_factory() -> Generator[LoggerFactory, None, None]:
    """Create clean logger factory for testing."""
    factory = LoggerFactory()
    yield factory
    factory.shutdown()


@pytest.fixture
def environment(dialects, logger_factory) -> Generator[Environment, None, None]:
    env = Environment(dialects=dialects, logger_factory=logger_factory)
    yield env
    env.close()


@pytest.fixture
def fake_settings() -> List[List[Any]]:
    return [list(pair) for pair in FAKE_SETTINGS]


# Pytest markers for different test categories
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, isolated)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (slower, real dependencies)"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests that take > 1 second"
    )
    config.addinivalue_line(
        "markers", "database: marks tests requiring database connection"
    )


# Auto-mark tests based on their location
def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        test_path = Path(str(item.fspath)).relative_to(Path(str(config.rootdir)) / "tests")

        if test_path.parts[0] == "unit":
            item.add_marker(pytest.mark.unit)
        elif test_path.parts[0] == "integration":
            item.add_marker(pytest.mark.integration)

        if "database" in str(test_path):
            item.add_marker(pytest.mark.database)
