"""agentsql exception hierarchy.

Every failure raised by the session layer is an ``AgentSqlException`` carrying
an error code, a context dictionary and, where a driver error was wrapped,
the original exception as ``cause``.

Classes:
    AgentSqlException: Base exception for all agentsql operations
    ConfigurationError: Settings parsing and configuration errors
    ConnectionError: Errors while opening or pooling connections
    StatementError: Errors while executing statements
    StateError: Operations invoked in the wrong session state
    UnsupportedColumnTypeError: Column values that cannot be converted

Example:
    >>> try:
    ...     env.connect(agent, [["host", "db"], ["foo", "bar"]])
    ... except ConfigurationError as e:
    ...     logger.error("Connect failed", error_code=e.code, context=e.context)
"""

from typing import Any, Dict, Optional


class AgentSqlException(Exception):
    """Base exception for all agentsql operations.

    Attributes:
        code: Unique error code for categorization
        context: Additional context information about the error
        cause: Original exception that caused this error (if any)

    Example:
        >>> raise AgentSqlException(
        ...     "Operation failed",
        ...     code="OPERATION_FAILED",
        ...     context={"context_id": "turtle 3"}
        ... )
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        """Initialize agentsql exception.

        Args:
            message: Human-readable error description
            code: Unique error code for categorization (defaults to class name)
            context: Additional context information
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.code: str = code or self.__class__.__name__
        self.context: Dict[str, Any] = context or {}
        self.cause: Optional[BaseException] = cause

    def __str__(self) -> str:
        """Return formatted error message with code."""
        return f"{self.code}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"context={self.context!r}, "
            f"cause={self.cause!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(AgentSqlException):
    """Configuration related errors.

    Raised while parsing a settings list: unknown keys, missing mandatory
    keys, values of the wrong shape and unknown brands. A failed parse never
    leaves a partial configuration applied.
    """
    pass


class ConnectionError(AgentSqlException):
    """Database connection related errors.

    Base class for everything that can go wrong while binding a context to a
    connection. The session registry and pool are left in their pre-call
    state when one of these is raised.
    """
    pass


class DriverUnavailableError(ConnectionError):
    """The DB-API driver module for a dialect cannot be imported."""
    pass


class AuthenticationError(ConnectionError):
    """Database authentication errors.

    Raised when the server rejects the configured credentials.
    """
    pass


class NetworkError(ConnectionError):
    """The database server could not be reached."""
    pass


class ConnectionPoolError(ConnectionError):
    """Connection pool errors.

    Raised when a pool has no free slot for a fingerprint within the
    configured timeout, or when the pool has been closed.
    """
    pass


class ConnectionCloseError(ConnectionError):
    """Closing a native connection failed.

    The binding is removed before this is raised.
    """
    pass


class StatementError(AgentSqlException):
    """SQL statement execution errors.

    The connection remains bound and usable after a statement fails.
    """
    pass


class StateError(AgentSqlException):
    """An operation was invoked in a session state that does not allow it."""
    pass


class UnsupportedColumnTypeError(AgentSqlException):
    """A fetched column value has no scripting-side representation.

    Raised lazily, only when the offending value is actually read.
    """
    pass


class ErrorCodes:
    """Common error codes for agentsql exceptions."""

    # Configuration errors
    CONFIG_NOT_FOUND = "CONFIG_NOT_FOUND"
    CONFIG_UNKNOWN_KEY = "CONFIG_UNKNOWN_KEY"
    CONFIG_MISSING_KEY = "CONFIG_MISSING_KEY"
    CONFIG_INVALID_VALUE = "CONFIG_INVALID_VALUE"
    UNKNOWN_BRAND = "UNKNOWN_BRAND"

    # Connection errors
    DRIVER_UNAVAILABLE = "DRIVER_UNAVAILABLE"
    AUTH_FAILED = "AUTH_FAILED"
    NETWORK_UNREACHABLE = "NETWORK_UNREACHABLE"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    POOL_EXHAUSTED = "POOL_EXHAUSTED"
    CONNECTION_CLOSE_FAILED = "CONNECTION_CLOSE_FAILED"

    # Statement errors
    QUERY_EXECUTION_FAILED = "QUERY_EXECUTION_FAILED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    SCHEMA_SWITCH_UNSUPPORTED = "SCHEMA_SWITCH_UNSUPPORTED"

    # State errors
    NO_ACTIVE_CONNECTION = "NO_ACTIVE_CONNECTION"
    POOLED_SCHEMA_SWITCH = "POOLED_SCHEMA_SWITCH"

    # Value conversion
    UNSUPPORTED_COLUMN_TYPE = "UNSUPPORTED_COLUMN_TYPE"


def create_error_from_exception(
    exc: BaseException,
    message: Optional[str] = None,
    code: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> AgentSqlException:
    """Create agentsql exception from a driver or builtin exception.

    Args:
        exc: Original exception to convert
        message: Override message (uses original if not provided)
        code: Error code to assign
        context: Additional context information

    Returns:
        Appropriate agentsql exception type

    Example:
        >>> try:
        ...     native.cursor().execute(sql)
        ... except Exception as e:
        ...     raise create_error_from_exception(
        ...         e, code=ErrorCodes.QUERY_EXECUTION_FAILED
        ...     ) from e
    """
    error_message = message or str(exc) or type(exc).__name__

    exception_mapping = {
        ErrorCodes.AUTH_FAILED: AuthenticationError,
        ErrorCodes.NETWORK_UNREACHABLE: NetworkError,
        ErrorCodes.CONNECTION_REFUSED: NetworkError,
        ErrorCodes.DRIVER_UNAVAILABLE: DriverUnavailableError,
        ErrorCodes.POOL_EXHAUSTED: ConnectionPoolError,
        ErrorCodes.CONNECTION_CLOSE_FAILED: ConnectionCloseError,
        ErrorCodes.QUERY_EXECUTION_FAILED: StatementError,
        ErrorCodes.TRANSACTION_FAILED: StatementError,
    }
    type_mapping = {
        ConnectionRefusedError: NetworkError,
        ImportError: DriverUnavailableError,
        ModuleNotFoundError: DriverUnavailableError,
        ValueError: ConfigurationError,
        TypeError: ConfigurationError,
    }

    exception_class = exception_mapping.get(code or "") or type_mapping.get(
        type(exc), AgentSqlException
    )

    return exception_class(
        error_message,
        code=code,
        context=context or {},
        cause=exc,
    )
