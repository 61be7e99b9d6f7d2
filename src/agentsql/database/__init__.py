"""
agentsql database layer.

Dialects, connections, result cursors, the connection pool and the session
registry that binds connections to execution contexts.

Supported brands:
- MySQL/MariaDB (PyMySQL)
- PostgreSQL (psycopg)
- SQLite (sqlite3)
- Any other DB-API 2.0 module through the generic brand
"""

from .connection import Connection
from .cursor import ResultCursor, convert_value
from .dialects import (
    BUILTIN_DIALECTS,
    Dialect,
    DialectRegistry,
    convert_placeholders,
    create_default_registry,
)
from .models import ColumnInfo, ExecutionKind, StatementResult
from .pool import ConnectionPool, Fingerprint
from .sessions import SessionRegistry

__all__ = [
    # Models
    "ColumnInfo",
    "ExecutionKind",
    "StatementResult",

    # Dialects
    "Dialect",
    "DialectRegistry",
    "BUILTIN_DIALECTS",
    "create_default_registry",
    "convert_placeholders",

    # Sessions
    "Connection",
    "ResultCursor",
    "convert_value",
    "ConnectionPool",
    "Fingerprint",
    "SessionRegistry",
]
