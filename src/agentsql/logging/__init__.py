"""agentsql structured logging.

Classes:
    StructuredLogger: Main structured logging interface
    PerformanceLogger: Operation timing
    LoggerFactory: Logger creation and configuration

Example:
    >>> from agentsql.logging import get_logger, get_performance_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Connection bound", context_id="observer")
    >>>
    >>> perf_logger = get_performance_logger("agentsql.database.connection")
    >>> with perf_logger.measure("execute"):
    ...     pass
"""

from .factory import (
    LoggerFactory,
    configure_logging,
    get_factory,
    get_logger,
    get_performance_logger,
    shutdown_logging,
)
from .performance import OperationStats, PerformanceLogger, TimingContext, TimingMetrics
from .structured import LogContext, StructuredLogger

__all__ = [
    # Factory and configuration
    "LoggerFactory",
    "get_logger",
    "get_performance_logger",
    "get_factory",
    "configure_logging",
    "shutdown_logging",

    # Performance logging
    "PerformanceLogger",
    "TimingContext",
    "TimingMetrics",
    "OperationStats",

    # Structured logging
    "StructuredLogger",
    "LogContext",
]
