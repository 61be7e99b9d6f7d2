"""
Connection pool implementation for agentsql.

Keeps idle connections grouped by configuration fingerprint, loans them to
execution contexts and enforces the per-fingerprint connection limit. All
bookkeeping happens under one condition variable; native connections are
opened and closed outside it.
"""

import threading
import time
from collections import deque
from typing import Any, Deque, Dict, List, NamedTuple, Optional, Set

from ..config.models import ConnectionConfig
from ..core.exceptions import (
    AgentSqlException,
    ConnectionCloseError,
    ConnectionPoolError,
    ErrorCodes,
    StateError,
)
from ..logging import get_logger
from .connection import Connection
from .dialects import DialectRegistry


class Fingerprint(NamedTuple):
    """Canonical identity of the server, credentials and schema of a config."""
    brand: str
    host: Optional[str]
    port: int
    username: Optional[str]
    password: str
    database: Optional[str]
    url: Optional[str]
    driver: Optional[str]

    def describe(self) -> str:
        """Printable form without the password."""
        return f"{self.brand}://{self.username or ''}@{self.host or ''}:{self.port}/{self.database or ''}"


class _Bucket:
    """Idle connections and loaned connection ids for one fingerprint."""

    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        self.idle: Deque[Connection] = deque()
        self.loaned: Set[int] = set()
        self.reserved = 0

    @property
    def size(self) -> int:
        return len(self.idle) + len(self.loaned) + self.reserved


class ConnectionPool:
    """Thread-safe pool of connections keyed by configuration fingerprint.

    Example:
        >>> pool = ConnectionPool(create_default_registry())
        >>> connection = pool.acquire(config, context_id="turtle 4")
        >>> pool.release(connection)
        >>> pool.get_stats()["idle_connections"]
        1
    """

    def __init__(self, dialects: DialectRegistry) -> None:
        self.dialects = dialects
        self._buckets: Dict[Fingerprint, _Bucket] = {}
        self._condition = threading.Condition()
        self._closed = False

        self._stats = {
            "total_created": 0,
            "total_closed": 0,
            "total_acquired": 0,
            "total_released": 0,
            "pool_exhausted_count": 0,
            "max_wait_time": 0.0,
        }

        self.logger = get_logger(__name__)

    def fingerprint(self, config: ConnectionConfig) -> Fingerprint:
        """Compute the pool key of a configuration; the password is part of it."""
        dialect = self.dialects.resolve(config.brand)
        return Fingerprint(
            brand=dialect.brand,
            host=config.host,
            port=dialect.get_port(config),
            username=config.username,
            password=config.password.get_secret_value(),
            database=config.database,
            url=config.url,
            driver=config.driver,
        )

    def acquire(self, config: ConnectionConfig, context_id: Any = None) -> Connection:
        """Loan a connection for ``config``.

        Hands out an idle connection when one exists, opens a new one while
        the fingerprint is below ``config.max_connections``, and otherwise
        waits up to ``config.timeout`` seconds for a release.

        Raises:
            ConnectionPoolError: If no slot frees up in time or the pool is closed
            ConnectionError: If opening a new connection fails
        """
        dialect = self.dialects.resolve(config.brand)
        key = self.fingerprint(config)
        start_time = time.monotonic()
        deadline = start_time + config.timeout

        with self._condition:
            self._ensure_open()
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = self._buckets[key] = _Bucket(config.max_connections)
            bucket.max_size = config.max_connections

            while True:
                self._ensure_open()
                if bucket.idle:
                    connection = bucket.idle.pop()
                    bucket.loaned.add(connection.connection_id)
                    connection.mark_used(context_id)
                    self._record_acquire(start_time)
                    self.logger.debug(
                        "Connection acquired",
                        connection_id=connection.connection_id,
                        fingerprint=key.describe(),
                        context_id=str(context_id),
                        use_count=connection.use_count,
                    )
                    return connection

                if bucket.size < bucket.max_size:
                    bucket.reserved += 1
                    break

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    self._stats["pool_exhausted_count"] += 1
                    self.logger.warning(
                        "Connection pool exhausted",
                        fingerprint=key.describe(),
                        max_connections=bucket.max_size,
                        timeout=config.timeout,
                    )
                    raise ConnectionPoolError(
                        f"Connection pool exhausted: {bucket.max_size} connections in use",
                        code=ErrorCodes.POOL_EXHAUSTED,
                        context={
                            "fingerprint": key.describe(),
                            "max_connections": bucket.max_size,
                            "timeout": config.timeout,
                        },
                    )
                self._condition.wait(remaining)

        try:
            connection = Connection.open(dialect, config, pooled=True, context_id=context_id)
        except Exception:
            with self._condition:
                bucket.reserved -= 1
                self._condition.notify()
            raise

        with self._condition:
            bucket.reserved -= 1
            bucket.loaned.add(connection.connection_id)
            connection.mark_used(context_id)
            self._stats["total_created"] += 1
            self._record_acquire(start_time)

        self.logger.debug(
            "New connection created",
            connection_id=connection.connection_id,
            fingerprint=key.describe(),
            context_id=str(context_id),
        )
        return connection

    def _ensure_open(self) -> None:
        if self._closed:
            raise ConnectionPoolError(
                "Connection pool is closed",
                code=ErrorCodes.CONNECTION_REFUSED,
            )

    def _record_acquire(self, start_time: float) -> None:
        self._stats["total_acquired"] += 1
        self._stats["max_wait_time"] = max(self._stats["max_wait_time"], time.monotonic() - start_time)

    def _checkin(self, connection: Connection) -> _Bucket:
        key = self.fingerprint(connection.config)
        bucket = self._buckets.get(key)
        if bucket is None or connection.connection_id not in bucket.loaned:
            raise StateError(
                f"Connection {connection.connection_id} is not loaned from this pool",
                code=ErrorCodes.NO_ACTIVE_CONNECTION,
                context={"connection_id": connection.connection_id},
            )
        bucket.loaned.discard(connection.connection_id)
        return bucket

    def release(self, connection: Connection) -> None:
        """Return a loaned connection to its idle bucket.

        The cursor is closed and an open transaction rolled back. Broken
        connections, and connections beyond a lowered limit, are closed
        instead of kept.
        """
        try:
            connection.reset()
        except AgentSqlException as e:
            self.logger.warning(
                "Connection reset failed, discarding",
                connection_id=connection.connection_id,
                error=str(e),
            )
            connection.broken = True

        with self._condition:
            bucket = self._checkin(connection)
            self._stats["total_released"] += 1
            keep = not (connection.broken or self._closed or bucket.size >= bucket.max_size)
            if keep:
                bucket.idle.append(connection)
            self._condition.notify()

        if keep:
            self.logger.debug("Connection returned to pool", connection_id=connection.connection_id)
        else:
            self._close_connection(connection)

    def _close_connection(self, connection: Connection) -> None:
        try:
            connection.close()
        finally:
            with self._condition:
                self._stats["total_closed"] += 1

    def drain(self, fingerprint: Optional[Fingerprint] = None) -> int:
        """Close idle connections of one fingerprint, or of all of them.

        Returns:
            Number of connections closed

        Raises:
            ConnectionCloseError: After all connections were attempted, if any failed to close
        """
        with self._condition:
            keys = [fingerprint] if fingerprint is not None else list(self._buckets)
            victims: List[Connection] = []
            for key in keys:
                bucket = self._buckets.get(key)
                if bucket is None:
                    continue
                victims.extend(bucket.idle)
                bucket.idle.clear()
                if not bucket.loaned and not bucket.reserved:
                    del self._buckets[key]
            self._condition.notify_all()

        failures: List[ConnectionCloseError] = []
        for connection in victims:
            try:
                self._close_connection(connection)
            except ConnectionCloseError as e:
                failures.append(e)

        self.logger.info("Connection pool drained", closed=len(victims), failures=len(failures))
        if failures:
            raise failures[0]
        return len(victims)

    def close(self) -> None:
        """Drain every bucket and refuse further acquires."""
        with self._condition:
            if self._closed:
                return
            self._closed = True
            self._condition.notify_all()
        self.drain()
        self.logger.info(
            "Connection pool closed",
            total_created=self._stats["total_created"],
            total_closed=self._stats["total_closed"],
        )

    def reopen(self) -> None:
        """Accept acquires again after ``close``."""
        with self._condition:
            self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def get_stats(self) -> Dict[str, Any]:
        """Get connection pool statistics."""
        with self._condition:
            buckets = {
                key.describe(): {
                    "idle": len(bucket.idle),
                    "loaned": len(bucket.loaned) + bucket.reserved,
                    "max_connections": bucket.max_size,
                }
                for key, bucket in self._buckets.items()
            }
            return {
                "idle_connections": sum(len(b.idle) for b in self._buckets.values()),
                "active_connections": sum(len(b.loaned) + b.reserved for b in self._buckets.values()),
                "fingerprints": buckets,
                "is_closed": self._closed,
                **self._stats,
            }
