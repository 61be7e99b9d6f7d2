"""Result cursor for agentsql.

Wraps a DB-API cursor positioned on a result set and hands rows out one at a
time, converted to the value types a simulation script understands: numbers
(always float), strings, booleans and lists. Reaching the end of the data is
not an error: ``fetch_row`` then returns an empty list, and keeps doing so.
"""

import datetime
import decimal
import uuid
from typing import Any, List, Optional, Sequence

from ..core.exceptions import ErrorCodes, StatementError, UnsupportedColumnTypeError
from ..logging import get_logger
from .models import ColumnInfo

logger = get_logger(__name__)

_END = object()


def convert_value(value: Any, column: Optional[ColumnInfo] = None) -> Any:
    """Convert one native column value to a scripting value.

    Args:
        value: Value returned by the driver
        column: Column the value was read from, used in error context

    Returns:
        float, str, bool or list

    Raises:
        UnsupportedColumnTypeError: If the value has no scripting equivalent
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, decimal.Decimal)):
        return float(value)
    if isinstance(value, str):
        return value
    if isinstance(value, datetime.datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (datetime.timedelta, uuid.UUID)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [convert_value(item, column) for item in value]

    column_name = column.name if column else None
    raise UnsupportedColumnTypeError(
        f"Column {column_name!r} holds an unsupported value of type {type(value).__name__}",
        code=ErrorCodes.UNSUPPORTED_COLUMN_TYPE,
        context={
            "column": column_name,
            "type_code": repr(column.type_code) if column else None,
            "python_type": type(value).__name__,
        },
    )


class ResultCursor:
    """Forward-only cursor over one statement's result set.

    Attributes:
        columns: Ordered column metadata
        rows_fetched: Number of rows handed out so far

    Example:
        >>> cursor = connection.execute("SELECT id, name FROM agents", ExecutionKind.QUERY).cursor
        >>> cursor.fetch_row()
        [1.0, 'alice']
        >>> cursor.fetch_row()
        []
    """

    def __init__(self, native_cursor: Any, columns: Sequence[ColumnInfo]) -> None:
        self._native = native_cursor
        self.columns: List[ColumnInfo] = list(columns)
        self.rows_fetched = 0
        self._lookahead: Any = None
        self._exhausted = False
        self._closed = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def is_open(self) -> bool:
        """True while the cursor is neither closed nor past its last row."""
        return not (self._closed or self._exhausted)

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    def _read_native_row(self) -> Any:
        if self._lookahead is not None:
            row, self._lookahead = self._lookahead, None
            return row
        try:
            row = self._native.fetchone()
        except Exception as e:
            raise StatementError(
                f"Failed to fetch row: {e}",
                code=ErrorCodes.QUERY_EXECUTION_FAILED,
                context={"rows_fetched": self.rows_fetched},
                cause=e,
            ) from e
        return _END if row is None else row

    def _convert_row(self, row: Sequence[Any]) -> List[Any]:
        return [convert_value(value, column) for value, column in zip(row, self.columns)]

    def fetch_row(self) -> List[Any]:
        """Return the next converted row, or an empty list past the end.

        Raises:
            UnsupportedColumnTypeError: If a value in this row cannot be converted
        """
        if not self.is_open:
            return []

        row = self._read_native_row()
        if row is _END:
            self._finish()
            return []

        self.rows_fetched += 1
        return self._convert_row(row)

    def fetch_all(self) -> List[List[Any]]:
        """Return all remaining rows and exhaust the cursor."""
        rows: List[List[Any]] = []
        while self.is_open:
            row = self._read_native_row()
            if row is _END:
                self._finish()
                break
            self.rows_fetched += 1
            rows.append(self._convert_row(row))
        return rows

    def row_available(self) -> bool:
        """Whether another row exists, reading one row ahead if needed."""
        if not self.is_open:
            return False
        if self._lookahead is None:
            row = self._read_native_row()
            if row is _END:
                self._finish()
                return False
            self._lookahead = row
        return True

    def _finish(self) -> None:
        self._exhausted = True
        logger.debug("Result set exhausted", rows_fetched=self.rows_fetched)
        self.close()

    def close(self) -> None:
        """Close the native cursor. Safe to call more than once.

        Raises:
            StatementError: If the driver fails to close the cursor
        """
        if self._closed:
            return
        self._closed = True
        self._lookahead = None
        try:
            self._native.close()
        except Exception as e:
            raise StatementError(
                f"Failed to close result set: {e}",
                code=ErrorCodes.QUERY_EXECUTION_FAILED,
                cause=e,
            ) from e

    def __repr__(self) -> str:
        return (
            f"ResultCursor(columns={self.column_names!r}, "
            f"rows_fetched={self.rows_fetched}, exhausted={self._exhausted})"
        )
