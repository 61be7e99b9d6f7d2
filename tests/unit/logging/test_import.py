"""Simple import test to verify logging module can be imported."""


def test_import_logging_module():
    """Test that logging module exposes its public names."""
    from agentsql.logging import (
        LoggerFactory,
        PerformanceLogger,
        StructuredLogger,
        configure_logging,
        get_logger,
    )

    assert LoggerFactory is not None
    assert StructuredLogger is not None
    assert PerformanceLogger is not None
    assert callable(configure_logging)
    assert callable(get_logger)


def test_create_simple_logger():
    """Test creating a simple logger."""
    from agentsql.logging import get_logger

    logger = get_logger("agentsql.test.simple")
    assert logger.name == "agentsql.test.simple"


def test_basic_logging():
    """Test basic logging functionality."""
    from agentsql.logging import get_logger

    logger = get_logger("agentsql.test.basic")

    # These should not raise any exceptions
    logger.info("Test info message", context_id="turtle 0")
    logger.debug("Test debug message")
    logger.warning("Test warning message")
    logger.error("Test error message", code="X")
