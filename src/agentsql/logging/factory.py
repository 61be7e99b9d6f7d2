"""Logger factory and configuration for agentsql.

This module provides centralized logger creation and configuration of the
``agentsql`` logger hierarchy. Output handlers are attached to the package
logger only, so a host application's root logging setup is left alone.

Classes:
    LoggerFactory: Main logger factory and configuration manager

Functions:
    get_logger: Convenience function for getting loggers
    get_performance_logger: Convenience function for performance loggers
    configure_logging: Configure logging system globally

Example:
    >>> from agentsql.logging import get_logger, configure_logging
    >>> configure_logging(level="DEBUG", copy_to_stderr=True)
    >>> logger = get_logger(__name__)
    >>> logger.info("Environment created", version="1.0.0")
"""

import logging
import logging.handlers
import sys
import threading
from typing import Any, Dict, List, Optional

import structlog

from ..config.models import LoggingConfig
from .performance import PerformanceLogger
from .structured import StructuredLogger

PACKAGE_LOGGER = "agentsql"


class LoggerFactory:
    """Factory for creating and configuring agentsql loggers.

    Attributes:
        config: Active logging configuration
        initialized: Whether structlog and the package logger are configured

    Example:
        >>> factory = LoggerFactory()
        >>> factory.configure_from_config(LoggingConfig(level="DEBUG", copy_to_stderr=True))
        >>> logger = factory.get_logger("agentsql.database.pool")
    """

    def __init__(self, config: Optional[LoggingConfig] = None) -> None:
        self.config = config or LoggingConfig()
        self.initialized = False
        self._loggers: Dict[str, StructuredLogger] = {}
        self._performance_loggers: Dict[str, PerformanceLogger] = {}
        self._handlers: List[logging.Handler] = []
        self._lock = threading.RLock()
        self._structlog_configured = False

    def configure_from_config(self, logging_config: LoggingConfig) -> None:
        """Configure factory from a LoggingConfig instance.

        Reconfiguring replaces the handlers installed by a previous call.

        Args:
            logging_config: agentsql logging configuration
        """
        with self._lock:
            self.config = logging_config
            self.initialized = False
            self._configure_logging_system()

    def configure_from_dict(self, config_dict: Dict[str, Any]) -> None:
        """Configure factory from dictionary of LoggingConfig fields."""
        merged = self.config.model_dump()
        merged.update(config_dict)
        self.configure_from_config(LoggingConfig(**merged))

    def _configure_logging_system(self) -> None:
        if self.initialized:
            return
        self._configure_structlog()
        self._configure_stdlib_logging()
        self.initialized = True

    def _build_formatter(self) -> logging.Formatter:
        if self.config.format == "json":
            renderer: Any = structlog.processors.JSONRenderer()
        else:
            renderer = structlog.dev.ConsoleRenderer(colors=False)
        return structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
            ],
        )

    def _configure_stdlib_logging(self) -> None:
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.setLevel(getattr(logging, self.config.level))

        for handler in self._handlers:
            package_logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()

        formatter = self._build_formatter()

        if self.config.copy_to_stderr:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(formatter)
            self._handlers.append(console_handler)

        if self.config.file_logging:
            file_path = self.config.file_path
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=str(file_path),
                maxBytes=self.config.max_file_size,
                backupCount=self.config.backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            self._handlers.append(file_handler)

        if not self._handlers:
            self._handlers.append(logging.NullHandler())

        for handler in self._handlers:
            package_logger.addHandler(handler)

        # Own output replaces the host's root handlers for agentsql lines
        package_logger.propagate = not (self.config.copy_to_stderr or self.config.file_logging)

    def _configure_structlog(self) -> None:
        if self._structlog_configured:
            return

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=structlog.stdlib.LoggerFactory(),
            context_class=dict,
            cache_logger_on_first_use=True,
        )
        self._structlog_configured = True

    def get_logger(self, name: str) -> StructuredLogger:
        """Get or create a structured logger.

        Args:
            name: Logger name (typically module name)

        Returns:
            StructuredLogger instance
        """
        with self._lock:
            if not self.initialized:
                self._configure_logging_system()
            logger = self._loggers.get(name)
            if logger is None:
                logger = self._loggers[name] = StructuredLogger(name)
            return logger

    def get_performance_logger(self, name: str, *, auto_log: bool = True) -> PerformanceLogger:
        """Get or create a performance logger.

        Args:
            name: Logger name
            auto_log: Whether to automatically log timing results

        Returns:
            PerformanceLogger instance
        """
        with self._lock:
            perf_logger = self._performance_loggers.get(name)
            if perf_logger is None:
                perf_logger = self._performance_loggers[name] = PerformanceLogger(
                    name,
                    auto_log=auto_log,
                    logger=self.get_logger(f"{name}.perf"),
                )
            return perf_logger

    def set_level(self, level: str) -> None:
        """Set log level for the whole agentsql hierarchy."""
        self.configure_from_dict({"level": level})

    def get_logger_info(self) -> Dict[str, Any]:
        """Get information about configured loggers and handlers."""
        return {
            "config": self.config.to_dict(),
            "initialized": self.initialized,
            "loggers": sorted(self._loggers),
            "performance_loggers": sorted(self._performance_loggers),
            "handlers": [type(handler).__name__ for handler in self._handlers],
        }

    def shutdown(self) -> None:
        """Detach handlers and clear logger caches."""
        with self._lock:
            package_logger = logging.getLogger(PACKAGE_LOGGER)
            for handler in self._handlers:
                package_logger.removeHandler(handler)
                handler.close()
            self._handlers.clear()
            self._loggers.clear()
            self._performance_loggers.clear()
            self.initialized = False

    def __repr__(self) -> str:
        return (
            f"LoggerFactory("
            f"level={self.config.level!r}, "
            f"file_logging={self.config.file_logging}, "
            f"initialized={self.initialized})"
        )


# Global logger factory instance
_global_factory = LoggerFactory()


def configure_logging(**settings: Any) -> None:
    """Configure agentsql logging globally.

    Args:
        **settings: LoggingConfig fields to change

    Example:
        >>> configure_logging(level="DEBUG", file_logging=True, path="%t")
    """
    _global_factory.configure_from_dict(settings)


def get_logger(name: str) -> StructuredLogger:
    """Get or create a structured logger using the global factory.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Pool drained", fingerprint="sqlite:///sim.db")
    """
    return _global_factory.get_logger(name)


def get_performance_logger(name: str) -> PerformanceLogger:
    """Get or create a performance logger using the global factory."""
    return _global_factory.get_performance_logger(name)


def get_factory() -> LoggerFactory:
    """Get the global logger factory instance."""
    return _global_factory


def shutdown_logging() -> None:
    """Shutdown the global logging system and clean up resources."""
    _global_factory.shutdown()
