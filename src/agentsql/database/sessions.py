"""Session registry for agentsql.

Maps each execution context to at most one live connection. Explicit
connections are opened and closed here; pooled ones are loaned from and
returned to the ``ConnectionPool``. Bookkeeping is done under a single lock,
while driver I/O runs outside it with the context marked as "binding" so no
other thread can observe or disturb a half-made binding.
"""

import threading
from typing import Any, Callable, Dict, List, Optional, Set

from ..config.models import ConnectionConfig
from ..core.exceptions import ConnectionCloseError, ErrorCodes, StateError
from ..logging import get_logger
from .connection import Connection
from .pool import ConnectionPool


class SessionRegistry:
    """Thread-safe context id to connection bindings.

    Example:
        >>> sessions = SessionRegistry(pool)
        >>> sessions.bind("observer", config)
        >>> sessions.get("observer", required=True).execute("SELECT 1")
        >>> sessions.unbind("observer")
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self.pool = pool
        self._bindings: Dict[Any, Connection] = {}
        self._binding: Set[Any] = set()
        self._condition = threading.Condition()
        self.logger = get_logger(__name__)

    def get(self, context_id: Any, required: bool = False) -> Optional[Connection]:
        """Return the connection bound to a context.

        Raises:
            StateError: If ``required`` and the context has no connection
        """
        with self._condition:
            connection = self._bindings.get(context_id)
        if connection is None and required:
            raise StateError(
                "No active database connection",
                code=ErrorCodes.NO_ACTIVE_CONNECTION,
                context={"context_id": str(context_id)},
            )
        return connection

    def is_bound(self, context_id: Any) -> bool:
        with self._condition:
            return context_id in self._bindings

    def contexts(self) -> List[Any]:
        with self._condition:
            return list(self._bindings)

    def _claim(self, context_id: Any) -> Optional[Connection]:
        # Caller holds the condition
        while context_id in self._binding:
            self._condition.wait()
        self._binding.add(context_id)
        return self._bindings.pop(context_id, None)

    def _unclaim(self, context_id: Any) -> None:
        with self._condition:
            self._binding.discard(context_id)
            self._condition.notify_all()

    def bind(self, context_id: Any, config: ConnectionConfig) -> Connection:
        """Bind a fresh connection to a context, replacing any existing one.

        The previous connection is closed or returned to the pool first; a
        failure doing so is logged and does not stop the new binding.

        Raises:
            ConnectionError: If the new connection cannot be opened or
                acquired. The context is left unbound.
        """
        with self._condition:
            previous = self._claim(context_id)

        try:
            if previous is not None:
                try:
                    self._close(previous)
                except ConnectionCloseError as e:
                    self.logger.warning(
                        "Previous connection did not close cleanly",
                        context_id=str(context_id),
                        connection_id=previous.connection_id,
                        error=str(e),
                    )

            if config.pooled:
                connection = self.pool.acquire(config, context_id=context_id)
            else:
                dialect = self.pool.dialects.resolve(config.brand)
                connection = Connection.open(dialect, config, context_id=context_id)

            with self._condition:
                self._bindings[context_id] = connection
        finally:
            self._unclaim(context_id)

        self.logger.info(
            "Connection bound",
            context_id=str(context_id),
            connection_id=connection.connection_id,
            brand=connection.dialect.brand,
            pooled=connection.pooled,
        )
        return connection

    def unbind(self, context_id: Any) -> bool:
        """Remove a context's binding and close or release its connection.

        Unbinding an unbound context does nothing.

        Returns:
            True if a binding was removed

        Raises:
            ConnectionCloseError: If closing failed; the binding is gone regardless
        """
        with self._condition:
            connection = self._claim(context_id)

        try:
            if connection is None:
                return False
            self._close(connection)
        finally:
            self._unclaim(context_id)

        self.logger.info(
            "Connection unbound",
            context_id=str(context_id),
            connection_id=connection.connection_id,
        )
        return True

    def _close(self, connection: Connection) -> None:
        if connection.pooled:
            self.pool.release(connection)
        else:
            connection.close()

    def available(self, context_id: Any) -> bool:
        """Whether the context has a connection with an open, unexhausted cursor."""
        connection = self.get(context_id)
        return connection is not None and connection.has_resultset

    def unbind_all(self, matching: Optional[Callable[[Connection], bool]] = None) -> int:
        """Unbind every context, or those whose connection satisfies ``matching``.

        Returns:
            Number of bindings removed

        Raises:
            ConnectionCloseError: After every context was unbound, if any close failed
        """
        failures: List[ConnectionCloseError] = []
        removed = 0
        for context_id in self.contexts():
            if matching is not None:
                connection = self.get(context_id)
                if connection is None or not matching(connection):
                    continue
            try:
                if self.unbind(context_id):
                    removed += 1
            except ConnectionCloseError as e:
                removed += 1
                failures.append(e)
        if failures:
            raise failures[0]
        return removed
