"""Tests for the connection pool."""

import threading
import time

import pytest

from agentsql.config.models import ConnectionConfig
from agentsql.core.exceptions import (
    ConnectionCloseError,
    ConnectionPoolError,
    ErrorCodes,
    NetworkError,
    StateError,
)
from agentsql.database.connection import Connection
from agentsql.database.models import ExecutionKind

from fake_dbapi import FAKE_DIALECT, FakeDriverError


def pooled_config(**overrides):
    values = dict(
        brand="fakedb",
        host="db",
        username="u",
        password="pw",
        database="sim",
        pooled=True,
        max_connections=2,
    )
    values.update(overrides)
    return ConnectionConfig(**values)


class TestFingerprint:
    """Test cases for pool fingerprints."""

    def test_port_default_resolved(self, pool):
        assert pool.fingerprint(pooled_config()) == pool.fingerprint(pooled_config(port=4242))

    def test_password_part_of_fingerprint(self, pool):
        assert pool.fingerprint(pooled_config()) != pool.fingerprint(pooled_config(password="other"))

    def test_pool_settings_not_part_of_fingerprint(self, pool):
        assert pool.fingerprint(pooled_config()) == pool.fingerprint(pooled_config(max_connections=5, timeout=1))

    def test_describe_hides_password(self, pool):
        description = pool.fingerprint(pooled_config()).describe()

        assert description == "fakedb://u@db:4242/sim"
        assert "pw" not in description


class TestConnectionPool:
    """Test cases for ConnectionPool."""

    def test_acquire_opens_pooled_connection(self, fake_driver, pool):
        connection = pool.acquire(pooled_config(), context_id="turtle 1")

        assert connection.pooled is True
        assert connection.context_id == "turtle 1"
        assert fake_driver.opened == 1
        assert pool.get_stats()["active_connections"] == 1

    def test_release_keeps_native_open_and_reuses(self, fake_driver, pool):
        connection = pool.acquire(pooled_config())

        pool.release(connection)
        again = pool.acquire(pooled_config())

        assert again is connection
        assert fake_driver.opened == 1
        assert fake_driver.closed == 0
        assert again.use_count == 2

    def test_release_clears_cursor(self, fake_driver, pool):
        fake_driver.results["SELECT 1"] = (["1"], [(1,)])
        connection = pool.acquire(pooled_config())
        connection.execute("SELECT 1", ExecutionKind.QUERY)

        pool.release(connection)

        assert connection.cursor is None
        assert connection.context_id is None

    def test_exhaustion_and_recovery(self, pool):
        """The (N+1)-th acquire fails; one release allows exactly one more."""
        config = pooled_config(max_connections=2)
        first = pool.acquire(config)
        pool.acquire(config)

        with pytest.raises(ConnectionPoolError) as exc_info:
            pool.acquire(config)
        assert exc_info.value.code == ErrorCodes.POOL_EXHAUSTED

        pool.release(first)
        assert pool.acquire(config) is first
        with pytest.raises(ConnectionPoolError):
            pool.acquire(config)

        assert pool.get_stats()["pool_exhausted_count"] == 2

    def test_fingerprints_limited_separately(self, pool):
        pool.acquire(pooled_config(max_connections=1))

        other = pool.acquire(pooled_config(max_connections=1, database="other"))

        assert other.config.database == "other"

    def test_timeout_waits_then_fails(self, pool):
        config = pooled_config(max_connections=1, timeout=0.2)
        pool.acquire(config)

        started = time.monotonic()
        with pytest.raises(ConnectionPoolError):
            pool.acquire(config)

        assert time.monotonic() - started >= 0.15

    def test_release_during_wait_hands_over_slot(self, pool):
        config = pooled_config(max_connections=1, timeout=5)
        holder = pool.acquire(config)
        result = {}

        def waiter():
            result["connection"] = pool.acquire(config, context_id="waiter")

        thread = threading.Thread(target=waiter)
        thread.start()
        time.sleep(0.1)
        pool.release(holder)
        thread.join(timeout=5)

        assert result["connection"] is holder
        assert holder.context_id == "waiter"

    def test_concurrent_acquire_respects_limit(self, fake_driver, pool):
        config = pooled_config(max_connections=3)
        acquired, failures = [], []
        lock = threading.Lock()

        def worker():
            try:
                connection = pool.acquire(config)
            except ConnectionPoolError as e:
                with lock:
                    failures.append(e)
            else:
                with lock:
                    acquired.append(connection)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(acquired) == 3
        assert len(failures) == 7
        assert fake_driver.opened == 3

    def test_open_failure_frees_slot(self, fake_driver, pool):
        config = pooled_config(max_connections=1)
        fake_driver.connect_error = FakeDriverError(2003, "unreachable")

        with pytest.raises(NetworkError):
            pool.acquire(config)

        fake_driver.connect_error = None
        assert pool.acquire(config) is not None

    def test_release_foreign_connection(self, pool):
        stranger = Connection.open(FAKE_DIALECT, pooled_config(), pooled=True)

        with pytest.raises(StateError):
            pool.release(stranger)
        stranger.close()

    def test_broken_connection_closed_on_release(self, fake_driver, pool):
        connection = pool.acquire(pooled_config())
        connection.broken = True

        pool.release(connection)

        assert connection.is_closed
        assert pool.get_stats()["idle_connections"] == 0

    def test_drain_closes_idle(self, fake_driver, pool):
        connections = [pool.acquire(pooled_config()) for _ in range(2)]
        for connection in connections:
            pool.release(connection)

        assert pool.drain() == 2
        assert fake_driver.open_connections == 0
        assert pool.get_stats()["idle_connections"] == 0

    def test_drain_reports_close_failure(self, fake_driver, pool):
        pool.release(pool.acquire(pooled_config()))
        fake_driver.fail_close = True

        with pytest.raises(ConnectionCloseError):
            pool.drain()

        assert pool.get_stats()["idle_connections"] == 0
        fake_driver.fail_close = False

    def test_closed_pool_refuses(self, pool):
        pool.close()

        with pytest.raises(ConnectionPoolError) as exc_info:
            pool.acquire(pooled_config())
        assert exc_info.value.code == ErrorCodes.CONNECTION_REFUSED
        assert pool.is_closed

        pool.reopen()
        assert pool.acquire(pooled_config()).pooled

    def test_release_after_close_closes_connection(self, fake_driver, pool):
        connection = pool.acquire(pooled_config())
        pool.close()

        pool.release(connection)

        assert connection.is_closed
