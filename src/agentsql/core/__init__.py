"""agentsql core infrastructure.

This package provides the exception hierarchy and the small utilities used
throughout agentsql.

Modules:
    exceptions: Exception hierarchy and error codes
    utils: Validation and conversion helpers

Example:
    >>> from agentsql.core import ConfigurationError, ErrorCodes
    >>> from agentsql.core.utils import parse_toggle
"""

from .exceptions import (
    AgentSqlException,
    AuthenticationError,
    ConfigurationError,
    ConnectionCloseError,
    ConnectionError,
    ConnectionPoolError,
    DriverUnavailableError,
    ErrorCodes,
    NetworkError,
    StateError,
    StatementError,
    UnsupportedColumnTypeError,
    create_error_from_exception,
)
from .utils import ValidationUtils, coalesce, parse_toggle

__all__ = [
    # Exceptions
    "AgentSqlException",
    "ConfigurationError",
    "ConnectionError",
    "DriverUnavailableError",
    "AuthenticationError",
    "NetworkError",
    "ConnectionPoolError",
    "ConnectionCloseError",
    "StatementError",
    "StateError",
    "UnsupportedColumnTypeError",
    "ErrorCodes",
    "create_error_from_exception",

    # Utilities
    "ValidationUtils",
    "parse_toggle",
    "coalesce",
]
