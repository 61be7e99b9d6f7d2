"""Connection wrapper for agentsql.

A ``Connection`` owns one native DB-API connection, the single result cursor
currently open on it, its autocommit state and the row count of the last
statement. It is used by one execution context at a time; the session
registry enforces that.
"""

import itertools
from datetime import datetime, timedelta
from types import ModuleType
from typing import Any, List, Optional, Sequence

from ..config.models import ConnectionConfig
from ..core.exceptions import (
    ConnectionCloseError,
    ErrorCodes,
    StateError,
    StatementError,
    create_error_from_exception,
)
from ..logging import get_logger, get_performance_logger
from .cursor import ResultCursor
from .dialects import Dialect, convert_placeholders
from .models import ColumnInfo, ExecutionKind, StatementResult

_connection_ids = itertools.count(1)


class Connection:
    """One native database connection bound to at most one context.

    Attributes:
        connection_id: Process-unique identifier used in log lines
        dialect: Brand descriptor the connection was opened with
        config: Settings the connection was opened with
        pooled: Whether the connection belongs to the pool
        context_id: Context currently holding the connection, if any
        cursor: Current result cursor, if any
        rowcount: Rows affected or returned by the last statement, -1 before any
        broken: Set when the native connection is no longer trustworthy
    """

    def __init__(
        self,
        native: Any,
        driver: ModuleType,
        dialect: Dialect,
        config: ConnectionConfig,
        *,
        pooled: bool = False,
        context_id: Any = None,
    ) -> None:
        self.connection_id = next(_connection_ids)
        self.native = native
        self.driver = driver
        self.dialect = dialect
        self.config = config
        self.pooled = pooled
        self.context_id = context_id
        self.cursor: Optional[ResultCursor] = None
        self.rowcount = -1
        self.broken = False
        self.created_at = datetime.now()
        self.last_used = self.created_at
        self.use_count = 0
        self._autocommit = True
        self._closed = False

        self.logger = get_logger(__name__).bind(
            connection_id=self.connection_id, brand=dialect.brand
        )
        self.perf_logger = get_performance_logger(__name__)

    @classmethod
    def open(
        cls,
        dialect: Dialect,
        config: ConnectionConfig,
        *,
        pooled: bool = False,
        context_id: Any = None,
    ) -> "Connection":
        """Open a native connection and wrap it, with autocommit on.

        Raises:
            ConnectionError: If the driver is missing or the connection fails
        """
        with get_performance_logger(__name__).measure("open_connection", brand=dialect.brand, pooled=pooled):
            native, driver = dialect.connect(config)

        connection = cls(native, driver, dialect, config, pooled=pooled, context_id=context_id)
        try:
            dialect.set_autocommit(native, True)
        except Exception as e:
            connection._close_native_quietly()
            raise create_error_from_exception(
                e,
                message=f"Could not initialize connection: {e}",
                code=ErrorCodes.CONNECTION_REFUSED,
                context={"brand": dialect.brand},
            ) from e

        connection.logger.debug(
            "Connection opened",
            url=dialect.build_url(config),
            pooled=pooled,
        )
        return connection

    @property
    def autocommit(self) -> bool:
        return self._autocommit

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def has_resultset(self) -> bool:
        """A cursor is open and not yet exhausted."""
        return self.cursor is not None and self.cursor.is_open

    @property
    def paramstyle(self) -> str:
        return getattr(self.driver, "paramstyle", "qmark")

    def mark_used(self, context_id: Any) -> None:
        """Record that a context took the connection."""
        self.context_id = context_id
        self.last_used = datetime.now()
        self.use_count += 1

    def get_age(self) -> timedelta:
        return datetime.now() - self.created_at

    def _ensure_open(self) -> None:
        if self._closed:
            raise StateError(
                "Connection is closed",
                code=ErrorCodes.NO_ACTIVE_CONNECTION,
                context={"connection_id": self.connection_id},
            )

    def execute(
        self,
        statement: str,
        kind: ExecutionKind = ExecutionKind.DIRECT,
        parameters: Optional[Sequence[Any]] = None,
    ) -> StatementResult:
        """Execute one statement, replacing any open cursor.

        Args:
            statement: SQL text, with ``?`` markers when parameters are given
            kind: Direct, query or update execution
            parameters: Positional parameter values

        Returns:
            Statement outcome; ``self.cursor`` holds the rows when there are any

        Raises:
            StatementError: If the driver rejects the statement. The connection
                stays usable.
        """
        self._ensure_open()
        self.close_cursor()

        sql, params = convert_placeholders(statement, self.paramstyle, parameters)
        native_cursor = self._new_native_cursor()
        try:
            with self.perf_logger.measure("execute", kind=kind.value, connection_id=self.connection_id) as timer:
                if params is None:
                    native_cursor.execute(sql)
                else:
                    native_cursor.execute(sql, params)
        except Exception as e:
            self._close_native_cursor(native_cursor)
            raise StatementError(
                f"Statement failed: {e}",
                code=ErrorCodes.QUERY_EXECUTION_FAILED,
                context={"statement": statement[:200], "kind": kind.value},
                cause=e,
            ) from e

        rowcount = native_cursor.rowcount
        self.rowcount = rowcount if isinstance(rowcount, int) else -1
        description = native_cursor.description

        if description is not None and kind is not ExecutionKind.UPDATE:
            columns = [ColumnInfo.from_description(entry) for entry in description]
            self.cursor = ResultCursor(native_cursor, columns)
            return StatementResult(kind, self.rowcount, columns, True, timer.duration or 0.0)

        self._close_native_cursor(native_cursor)
        if kind is ExecutionKind.QUERY:
            raise StatementError(
                "Statement did not produce a result set",
                code=ErrorCodes.QUERY_EXECUTION_FAILED,
                context={"statement": statement[:200]},
            )
        return StatementResult(kind, self.rowcount, [], False, timer.duration or 0.0)

    def run_internal(self, sql: str, parameters: Optional[Sequence[Any]] = None) -> List[Sequence[Any]]:
        """Run a housekeeping statement on its own cursor and return raw rows.

        The current result cursor is left alone.
        """
        self._ensure_open()
        converted, params = convert_placeholders(sql, self.paramstyle, parameters)
        native_cursor = self._new_native_cursor()
        try:
            if params is None:
                native_cursor.execute(converted)
            else:
                native_cursor.execute(converted, params)
            rows = list(native_cursor.fetchall()) if native_cursor.description is not None else []
        except Exception as e:
            raise StatementError(
                f"Statement failed: {e}",
                code=ErrorCodes.QUERY_EXECUTION_FAILED,
                context={"statement": sql},
                cause=e,
            ) from e
        finally:
            self._close_native_cursor(native_cursor)
        return rows

    def _new_native_cursor(self) -> Any:
        try:
            return self.native.cursor()
        except Exception as e:
            self.broken = True
            raise StatementError(
                f"Could not open a cursor: {e}",
                code=ErrorCodes.QUERY_EXECUTION_FAILED,
                context={"connection_id": self.connection_id},
                cause=e,
            ) from e

    def _close_native_cursor(self, native_cursor: Any) -> None:
        try:
            native_cursor.close()
        except Exception as e:
            self.logger.warning("Failed to close native cursor", error=str(e))

    def close_cursor(self) -> None:
        """Close and forget the current cursor, if any."""
        cursor, self.cursor = self.cursor, None
        if cursor is not None:
            cursor.close()

    def set_autocommit(self, enabled: bool) -> None:
        """Switch autocommit; switching it on commits pending work.

        Raises:
            StatementError: If the driver rejects the change
        """
        self._ensure_open()
        if enabled == self._autocommit:
            return
        try:
            if enabled:
                self.native.commit()
            self.dialect.set_autocommit(self.native, enabled)
        except Exception as e:
            raise StatementError(
                f"Could not {'enable' if enabled else 'disable'} autocommit: {e}",
                code=ErrorCodes.TRANSACTION_FAILED,
                cause=e,
            ) from e
        self._autocommit = enabled
        self.logger.debug("Autocommit changed", autocommit=enabled)

    def begin(self) -> None:
        """Start a transaction by switching autocommit off."""
        self.set_autocommit(False)

    def commit(self) -> None:
        self._transaction_call("commit")

    def rollback(self) -> None:
        self._transaction_call("rollback")

    def _transaction_call(self, operation: str) -> None:
        self._ensure_open()
        try:
            getattr(self.native, operation)()
        except Exception as e:
            raise StatementError(
                f"Transaction {operation} failed: {e}",
                code=ErrorCodes.TRANSACTION_FAILED,
                context={"operation": operation},
                cause=e,
            ) from e
        self.logger.debug("Transaction finished", operation=operation)

    def reset(self) -> None:
        """Prepare the connection for the next borrower.

        Closes the cursor, rolls back an open transaction and switches
        autocommit back on.
        """
        self.close_cursor()
        if not self._autocommit:
            self.rollback()
            self.set_autocommit(True)
        self.rowcount = -1
        self.context_id = None

    def _close_native_quietly(self) -> None:
        try:
            self.native.close()
        except Exception as e:
            self.logger.warning("Failed to close native connection", error=str(e))
        self._closed = True

    def close(self) -> None:
        """Close the cursor and the native connection.

        Closing is attempted even when closing the cursor fails, and the
        connection is marked closed either way.

        Raises:
            ConnectionCloseError: If the cursor or the native handle failed to close
        """
        if self._closed:
            return
        self._closed = True
        failures: List[Exception] = []

        try:
            self.close_cursor()
        except StatementError as e:
            failures.append(e)
        try:
            self.native.close()
        except Exception as e:
            failures.append(e)

        if failures:
            self.logger.error("Connection closed with errors", errors=[str(f) for f in failures])
            raise ConnectionCloseError(
                f"Failed to close connection {self.connection_id}: {failures[0]}",
                code=ErrorCodes.CONNECTION_CLOSE_FAILED,
                context={"connection_id": self.connection_id},
                cause=failures[0],
            ) from failures[0]

        self.logger.debug(
            "Connection closed",
            age_seconds=self.get_age().total_seconds(),
            use_count=self.use_count,
        )

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.connection_id}, brand={self.dialect.brand!r}, "
            f"pooled={self.pooled}, context={self.context_id!r}, closed={self._closed})"
        )
