"""Structured logging implementation for agentsql.

This module wraps structlog with a small logger class that carries bound
context (for example the execution context a connection belongs to) and a
thread-local context stack, so concurrently running agents do not leak
context into each other's log lines.

Classes:
    StructuredLogger: Main structured logging interface
    LogContext: Thread-local context storage

Example:
    >>> logger = StructuredLogger("agentsql.database.sessions")
    >>> with logger.context(context_id="turtle 7"):
    ...     logger.info("Connection bound", brand="mysql")
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

import structlog

from ..core.exceptions import AgentSqlException
from ..core.utils import ValidationUtils


class LogContext:
    """Thread-local context for log correlation and metadata.

    Example:
        >>> context = LogContext()
        >>> context.set("context_id", "observer")
        >>> context.get_all()
        {'context_id': 'observer'}
    """

    def __init__(self) -> None:
        self._local = threading.local()

    def _data(self) -> Dict[str, Any]:
        if not hasattr(self._local, "context"):
            self._local.context = {}
        return self._local.context

    def set(self, key: str, value: Any) -> None:
        """Set context value."""
        self._data()[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        """Get context value."""
        return self._data().get(key, default)

    def get_all(self) -> Dict[str, Any]:
        """Get a copy of all context values for the current thread."""
        return dict(self._data())

    def update(self, context: Dict[str, Any]) -> None:
        """Update context with multiple values."""
        self._data().update(context)

    def clear(self) -> None:
        """Clear all context values for the current thread."""
        self._data().clear()


class StructuredLogger:
    """Structured logger with bound and thread-local context.

    Attributes:
        name: Logger name

    Example:
        >>> logger = StructuredLogger("agentsql.database.pool")
        >>> pool_logger = logger.bind(fingerprint="mysql://db:3306/sim")
        >>> pool_logger.debug("Connection acquired", idle=2)
    """

    def __init__(
        self,
        name: str,
        *,
        level: Optional[str] = None,
        bound: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize structured logger.

        Args:
            name: Logger name (typically module name)
            level: Initial log level, inherited from the parent when None
            bound: Context included in every message of this logger
        """
        self.name = name
        self._logger = structlog.get_logger(name)
        self._bound: Dict[str, Any] = dict(bound or {})
        self._context = LogContext()
        self._stdlib_logger = logging.getLogger(name)
        if level is not None:
            self.set_level(level)

    def _prepare_event_dict(self, **kwargs: Any) -> Dict[str, Any]:
        event_dict = dict(self._bound)
        event_dict.update(self._context.get_all())
        event_dict.update(kwargs)
        return event_dict

    @contextmanager
    def context(self, **context_data: Any) -> Generator[None, None, None]:
        """Context manager for adding temporary context data.

        Args:
            **context_data: Context data to add temporarily

        Example:
            >>> with logger.context(context_id="turtle 1"):
            ...     logger.info("Statement executed")
        """
        old_context = self._context.get_all()
        try:
            self._context.update(context_data)
            yield
        finally:
            self._context.clear()
            self._context.update(old_context)

    def bind(self, **context_data: Any) -> "StructuredLogger":
        """Create new logger instance with additional bound context.

        Args:
            **context_data: Context data to bind

        Returns:
            New logger instance with bound context
        """
        bound = dict(self._bound)
        bound.update(context_data)
        return StructuredLogger(self.name, bound=bound)

    def set_level(self, level: str) -> None:
        """Set logging level.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

        Raises:
            AgentSqlException: If the level name is not known to logging
        """
        if not ValidationUtils.validate_identifier(level):
            raise AgentSqlException(f"Invalid log level: {level}", code="INVALID_LOG_LEVEL")

        log_level = logging.getLevelName(level.upper())
        if not isinstance(log_level, int):
            raise AgentSqlException(f"Unknown log level: {level}", code="UNKNOWN_LOG_LEVEL")

        self._stdlib_logger.setLevel(log_level)

    def get_level(self) -> str:
        """Get current effective logging level name."""
        return logging.getLevelName(self._stdlib_logger.getEffectiveLevel())

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(message, **self._prepare_event_dict(**kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(message, **self._prepare_event_dict(**kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(message, **self._prepare_event_dict(**kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(message, **self._prepare_event_dict(**kwargs))

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log error message with the active exception's traceback."""
        self._logger.error(message, exc_info=True, **self._prepare_event_dict(**kwargs))

    def get_context(self) -> Dict[str, Any]:
        """Get bound and thread-local context data."""
        return self._prepare_event_dict()

    def __repr__(self) -> str:
        return f"StructuredLogger(name={self.name!r}, level={self.get_level()!r})"
