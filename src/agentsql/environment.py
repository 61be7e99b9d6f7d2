"""Environment facade for agentsql.

``Environment`` is the single object a scripting host talks to. It owns the
dialect registry, the connection pool, the session registry and the
configuration aspects, and exposes one method per scripting primitive. Every
primitive takes the calling execution context first; any hashable value
identifies a context.

Example:
    >>> env = Environment()
    >>> env.connect("observer", [["brand", "sqlite"], ["schema", "/tmp/sim.db"]])
    >>> env.exec_update("observer", "CREATE TABLE agents (id INTEGER, name TEXT)")
    -1
    >>> env.exec_query("observer", "SELECT * FROM agents")
    >>> env.fetch_row("observer")
    []
    >>> env.disconnect("observer")
    True
"""

import threading
from contextlib import contextmanager
from functools import partial
from typing import Any, Callable, Dict, Generator, Iterable, List, Optional, Sequence

from . import __version__
from .config.manager import ConfigurationManager
from .config.models import ConnectionConfig
from .config.resolver import ConfigurationResolver, SettingPairs
from .core.exceptions import AgentSqlException, ConfigurationError, ErrorCodes, StateError
from .database.connection import Connection
from .database.dialects import DialectRegistry, create_default_registry
from .database.models import ExecutionKind, StatementResult
from .database.pool import ConnectionPool, Fingerprint
from .database.sessions import SessionRegistry
from .logging import get_logger
from .logging.factory import LoggerFactory

# Level names accepted from models, mapped to logger methods
LOG_LEVELS = {
    "finest": "debug",
    "finer": "debug",
    "fine": "debug",
    "debug": "debug",
    "info": "info",
    "warning": "warning",
    "error": "error",
    "severe": "error",
}


class Environment:
    """Process-level entry point behind the scripting primitives.

    Attributes:
        dialects: Registry of supported brands
        pool: Connection pool shared by all contexts
        sessions: Context to connection bindings
        config: Configuration aspects and remembered explicit settings
    """

    def __init__(
        self,
        dialects: Optional[DialectRegistry] = None,
        pool: Optional[ConnectionPool] = None,
        logger_factory: Optional[LoggerFactory] = None,
    ) -> None:
        if dialects is None:
            dialects = pool.dialects if pool is not None else create_default_registry()
        self.dialects = dialects
        self.pool = pool or ConnectionPool(dialects)
        self.sessions = SessionRegistry(self.pool)
        self.resolver = ConfigurationResolver(dialects)
        self.config = ConfigurationManager(self.resolver, logger_factory)
        self._rowcounts: Dict[Any, int] = {}
        self._lock = threading.Lock()
        self.logger = get_logger(__name__)
        self.model_logger = get_logger("agentsql.model")
        self.logger.info("Environment created", version=__version__, brands=dialects.list_brands())

    # Connections

    def connect(self, context_id: Any, settings: SettingPairs) -> Connection:
        """Bind an explicit connection to a context, replacing any existing one.

        Settings merge over the previous explicit settings, or over the
        ``defaultconnection`` aspect on first use.

        Raises:
            ConfigurationError: If the settings are invalid; an existing
                binding is left untouched
            ConnectionError: If the connection cannot be opened; the context
                is left unbound
        """
        config = self.config.explicit_settings(settings)
        self._forget_rowcount(context_id)
        return self.sessions.bind(context_id, config)

    def disconnect(self, context_id: Any) -> bool:
        """Close or release the context's connection.

        Returns:
            False if the context had no connection
        """
        self._forget_rowcount(context_id)
        return self.sessions.unbind(context_id)

    def close_context(self, context_id: Any) -> None:
        """Tear down everything the context holds, for when the context dies."""
        self.disconnect(context_id)

    def set_connection_pooling(self, context_id: Any, settings: SettingPairs) -> ConnectionConfig:
        """Resolve pooled settings and enable pooled mode for every context.

        Unbound contexts acquire a pooled connection on their next statement.
        When the settings now point at another server, account or schema,
        connections made with the old settings are released and closed.

        Raises:
            ConfigurationError: If the settings are invalid or incomplete
        """
        with self._pooled_settings_change():
            config = self.config.pooled_settings(settings)
        self.logger.debug(
            "Pooled settings applied",
            context_id=str(context_id),
            fingerprint=self.pool.fingerprint(config).describe(),
            max_connections=config.max_connections,
        )
        return config

    @contextmanager
    def _pooled_settings_change(self) -> Generator[None, None, None]:
        """Retire pooled connections whose fingerprint the block replaces."""
        was_pooling = self.config.pooling_enabled
        previous = self.config.pool_config
        yield
        if not was_pooling:
            return
        stale = self.pool.fingerprint(previous)
        if stale != self.pool.fingerprint(self.config.pool_config):
            self._retire_pooled(stale)

    def _retire_pooled(self, stale: Fingerprint) -> None:
        def uses_stale(connection: Connection) -> bool:
            return connection.pooled and self.pool.fingerprint(connection.config) == stale

        failures = self._run_all((
            partial(self.sessions.unbind_all, matching=uses_stale),
            partial(self.pool.drain, stale),
        ))
        self.logger.info(
            "Pooled connections retired",
            fingerprint=stale.describe(),
            failures=len(failures),
        )
        if failures:
            raise failures[0]

    @staticmethod
    def _run_all(steps: Iterable[Callable[[], Any]]) -> List[AgentSqlException]:
        """Run every step even when an earlier one fails; return the failures."""
        failures: List[AgentSqlException] = []
        for step in steps:
            try:
                step()
            except AgentSqlException as e:
                failures.append(e)
        return failures

    def is_connected(self, context_id: Any) -> bool:
        return self.sessions.is_bound(context_id)

    def _connection_for(self, context_id: Any) -> Connection:
        connection = self.sessions.get(context_id)
        if connection is not None:
            return connection
        if self.config.pooling_enabled:
            return self.sessions.bind(context_id, self.config.pool_config)
        raise StateError(
            "No active database connection",
            code=ErrorCodes.NO_ACTIVE_CONNECTION,
            context={"context_id": str(context_id)},
        )

    def _autodisconnect(self, context_id: Any, connection: Connection) -> None:
        """Hand an idle pooled connection back to the pool."""
        if (
            connection.pooled
            and connection.config.autodisconnect
            and connection.autocommit
            and not connection.has_resultset
            and self.sessions.get(context_id) is connection
        ):
            self.logger.debug(
                "Autodisconnect",
                context_id=str(context_id),
                connection_id=connection.connection_id,
            )
            self.sessions.unbind(context_id)

    # Statements

    def _execute(
        self,
        context_id: Any,
        statement: str,
        kind: ExecutionKind,
        parameters: Optional[Sequence[Any]],
    ) -> StatementResult:
        connection = self._connection_for(context_id)
        result = connection.execute(statement, kind, parameters)
        with self._lock:
            self._rowcounts[context_id] = result.row_count
        self._autodisconnect(context_id, connection)
        return result

    def exec_direct(self, context_id: Any, statement: str, parameters: Optional[Sequence[Any]] = None) -> StatementResult:
        """Execute any statement; rows it returns can be fetched."""
        return self._execute(context_id, statement, ExecutionKind.DIRECT, parameters)

    def exec_query(self, context_id: Any, statement: str, parameters: Optional[Sequence[Any]] = None) -> StatementResult:
        """Execute a statement that must return rows.

        Raises:
            StatementError: If the statement fails or returns no result set
        """
        return self._execute(context_id, statement, ExecutionKind.QUERY, parameters)

    def exec_update(self, context_id: Any, statement: str, parameters: Optional[Sequence[Any]] = None) -> int:
        """Execute a data-changing statement.

        Returns:
            Affected row count, -1 if the driver does not report one
        """
        return self._execute(context_id, statement, ExecutionKind.UPDATE, parameters).row_count

    def get_rowcount(self, context_id: Any) -> int:
        """Row count of the context's last statement, -1 before any."""
        with self._lock:
            return self._rowcounts.get(context_id, -1)

    def _forget_rowcount(self, context_id: Any) -> None:
        with self._lock:
            self._rowcounts.pop(context_id, None)

    # Results

    def fetch_row(self, context_id: Any) -> List[Any]:
        """Next row of the context's result set; empty when there is none."""
        connection = self.sessions.get(context_id)
        if connection is None or connection.cursor is None:
            return []
        row = connection.cursor.fetch_row()
        if not row:
            self._autodisconnect(context_id, connection)
        return row

    def fetch_resultset(self, context_id: Any) -> List[List[Any]]:
        """All remaining rows of the context's result set."""
        connection = self.sessions.get(context_id)
        if connection is None or connection.cursor is None:
            return []
        rows = connection.cursor.fetch_all()
        self._autodisconnect(context_id, connection)
        return rows

    def resultset_available(self, context_id: Any) -> bool:
        """Whether the context has an open, unexhausted result set."""
        return self.sessions.available(context_id)

    def row_available(self, context_id: Any) -> bool:
        """Whether another row can be fetched, reading ahead one row."""
        connection = self.sessions.get(context_id)
        if connection is None or connection.cursor is None:
            return False
        if connection.cursor.row_available():
            return True
        self._autodisconnect(context_id, connection)
        return False

    # Transactions

    def autocommit_on(self, context_id: Any) -> None:
        connection = self.sessions.get(context_id, required=True)
        connection.set_autocommit(True)
        self._autodisconnect(context_id, connection)

    def autocommit_off(self, context_id: Any) -> None:
        self._connection_for(context_id).set_autocommit(False)

    def autocommit_enabled(self, context_id: Any) -> bool:
        """Autocommit state of the context's connection; new connections start with it on."""
        connection = self.sessions.get(context_id)
        return True if connection is None else connection.autocommit

    def start_transaction(self, context_id: Any) -> None:
        """Switch autocommit off until the transaction is committed or rolled back."""
        self._connection_for(context_id).begin()

    def commit_transaction(self, context_id: Any) -> None:
        """Commit and switch autocommit back on."""
        connection = self.sessions.get(context_id, required=True)
        connection.commit()
        connection.set_autocommit(True)
        self._autodisconnect(context_id, connection)

    def rollback_transaction(self, context_id: Any) -> None:
        """Roll back and switch autocommit back on."""
        connection = self.sessions.get(context_id, required=True)
        connection.rollback()
        connection.set_autocommit(True)
        self._autodisconnect(context_id, connection)

    # Schemas

    def use_database(self, context_id: Any, name: str) -> None:
        """Switch the context's explicit connection to another schema.

        Raises:
            StateError: POOLED_SCHEMA_SWITCH on a pooled connection, since the
                connection would return to the pool under the wrong fingerprint
            StatementError: If the brand cannot switch schema or the switch fails
        """
        connection = self.sessions.get(context_id, required=True)
        if connection.pooled:
            raise StateError(
                "Cannot switch schema on a pooled connection",
                code=ErrorCodes.POOLED_SCHEMA_SWITCH,
                context={"context_id": str(context_id), "schema": name},
            )
        connection.dialect.switch_schema(connection, name)
        self.logger.info("Schema switched", context_id=str(context_id), schema=name)

    def current_database(self, context_id: Any) -> str:
        connection = self._connection_for(context_id)
        schema = connection.dialect.current_schema(connection)
        self._autodisconnect(context_id, connection)
        return schema

    def find_database(self, context_id: Any, name: str) -> bool:
        """Whether a schema with this name exists on the context's server."""
        connection = self._connection_for(context_id)
        found = connection.dialect.schema_exists(connection, name)
        self._autodisconnect(context_id, connection)
        return found

    # Configuration

    def configure(self, aspect: str, settings: SettingPairs) -> None:
        """Change an aspect; pooled connections made with replaced settings are retired."""
        with self._pooled_settings_change():
            self.config.configure(aspect, settings)

    def get_configuration(self, aspect: str) -> List[Any]:
        return self.config.get_configuration(aspect)

    def get_full_configuration(self) -> List[List[Any]]:
        return self.config.get_full_configuration()

    @staticmethod
    def show_version() -> str:
        return f"agentsql version {__version__}"

    def log(self, context_id: Any, level: str, message: Any) -> None:
        """Write a model's message to the agentsql log.

        Args:
            context_id: Context the message is attributed to
            level: Level name, case-insensitive; see ``LOG_LEVELS``
            message: Message text

        Raises:
            ConfigurationError: CONFIG_INVALID_VALUE for an unknown level
        """
        method = LOG_LEVELS.get(str(level).strip().lower())
        if method is None:
            raise ConfigurationError(
                f"Unknown log level: {level}",
                code=ErrorCodes.CONFIG_INVALID_VALUE,
                context={"level": level, "allowed_levels": sorted(LOG_LEVELS)},
            )
        getattr(self.model_logger, method)(str(message), context_id=str(context_id))

    # Lifecycle

    def reset(self) -> None:
        """Close every binding, drain the pool and restore default configuration.

        Meant for tests and for a host that reloads its model. Every step
        runs even when an earlier one fails; the first failure is raised
        at the end.
        """
        failures = self._run_all((self.sessions.unbind_all, self.pool.drain))

        self.config.reset()
        with self._lock:
            self._rowcounts.clear()
        self.logger.info("Environment reset", failures=len(failures))
        if failures:
            raise failures[0]

    def close(self) -> None:
        """Reset and close the pool; the environment accepts no pooled work afterwards."""
        try:
            self.reset()
        finally:
            self.pool.close()

    def __repr__(self) -> str:
        return (
            f"Environment(version={__version__!r}, "
            f"contexts={len(self.sessions.contexts())}, "
            f"pooling={self.config.pooling_enabled})"
        )
