"""Tests for the connection wrapper."""

import dataclasses

import pytest

from agentsql.config.models import ConnectionConfig
from agentsql.core.exceptions import (
    ConnectionCloseError,
    ErrorCodes,
    NetworkError,
    StateError,
    StatementError,
)
from agentsql.database.connection import Connection
from agentsql.database.dialects import SQLITE
from agentsql.database.models import ExecutionKind

from fake_dbapi import FAKE_DIALECT, FakeDriverError


@pytest.fixture
def config():
    return ConnectionConfig(brand="fakedb", host="db", username="u", password="pw", database="sim")


@pytest.fixture
def connection(fake_driver, config):
    fake_driver.results["SELECT name FROM agents"] = (["name"], [("wolf",), ("sheep",)])
    fake_driver.update_counts["UPDATE agents SET energy = 0"] = 2
    connection = Connection.open(FAKE_DIALECT, config, context_id="observer")
    yield connection
    connection.close()


class TestConnectionOpen:
    """Test cases for Connection.open."""

    def test_open_enables_autocommit(self, fake_driver, connection):
        assert fake_driver.opened == 1
        assert fake_driver.connections[0].autocommit is True
        assert connection.autocommit is True
        assert connection.rowcount == -1
        assert connection.context_id == "observer"
        assert connection.paramstyle == "qmark"

    def test_connect_failure(self, fake_driver, config):
        fake_driver.connect_error = FakeDriverError(2003, "unreachable")

        with pytest.raises(NetworkError):
            Connection.open(FAKE_DIALECT, config)

        assert fake_driver.opened == 0

    def test_initialization_failure_closes_native(self, fake_driver, config):
        """A connection that cannot be set up is not leaked."""
        broken_dialect = dataclasses.replace(FAKE_DIALECT, autocommit_mode="method")

        with pytest.raises(NetworkError) as exc_info:
            Connection.open(broken_dialect, config)

        assert exc_info.value.code == ErrorCodes.CONNECTION_REFUSED
        assert fake_driver.opened == 1
        assert fake_driver.open_connections == 0


class TestConnectionExecute:
    """Test cases for statement execution."""

    def test_query_opens_cursor(self, connection):
        result = connection.execute("SELECT name FROM agents", ExecutionKind.QUERY)

        assert result.has_result_set is True
        assert [c.name for c in result.columns] == ["name"]
        assert connection.has_resultset
        assert connection.cursor.fetch_row() == ["wolf"]

    def test_new_statement_closes_previous_cursor(self, connection):
        connection.execute("SELECT name FROM agents", ExecutionKind.QUERY)
        first = connection.cursor

        connection.execute("SELECT name FROM agents", ExecutionKind.DIRECT)

        assert first.is_open is False
        assert connection.cursor is not first
        assert connection.cursor.fetch_row() == ["wolf"]

    def test_update_returns_count_without_cursor(self, connection):
        connection.execute("SELECT name FROM agents", ExecutionKind.QUERY)

        result = connection.execute("UPDATE agents SET energy = 0", ExecutionKind.UPDATE)

        assert result.row_count == 2
        assert result.has_result_set is False
        assert connection.cursor is None
        assert connection.rowcount == 2

    def test_direct_without_rows(self, connection):
        result = connection.execute("CREATE TABLE x (a INT)")

        assert result.kind is ExecutionKind.DIRECT
        assert result.has_result_set is False
        assert connection.cursor is None

    def test_query_without_result_set(self, connection):
        with pytest.raises(StatementError) as exc_info:
            connection.execute("DELETE FROM agents", ExecutionKind.QUERY)

        assert exc_info.value.code == ErrorCodes.QUERY_EXECUTION_FAILED

    def test_failed_statement_keeps_connection_usable(self, fake_driver, connection):
        fake_driver.failing_statements.add("SELEC name")

        with pytest.raises(StatementError) as exc_info:
            connection.execute("SELEC name", ExecutionKind.QUERY)

        assert isinstance(exc_info.value.cause, FakeDriverError)
        assert connection.broken is False
        assert connection.execute("SELECT name FROM agents").has_result_set

    def test_parameters_passed_to_driver(self, fake_driver, connection):
        connection.execute("DELETE FROM agents WHERE id = ?", ExecutionKind.UPDATE, [3])

        assert fake_driver.connections[0].executed[-1] == ("DELETE FROM agents WHERE id = ?", [3])

    def test_run_internal_leaves_cursor(self, connection):
        connection.execute("SELECT name FROM agents", ExecutionKind.QUERY)
        cursor = connection.cursor

        rows = connection.run_internal("SELECT name FROM agents")

        assert rows == [("wolf",), ("sheep",)]
        assert connection.cursor is cursor
        assert cursor.is_open

    def test_execute_after_close(self, connection):
        connection.close()

        with pytest.raises(StateError) as exc_info:
            connection.execute("SELECT 1")

        assert exc_info.value.code == ErrorCodes.NO_ACTIVE_CONNECTION


class TestConnectionTransactions:
    """Test cases for autocommit and transactions."""

    def test_autocommit_toggle_commits(self, fake_driver, connection):
        native = fake_driver.connections[0]

        connection.begin()
        assert connection.autocommit is False
        assert native.autocommit is False

        connection.set_autocommit(True)
        assert native.autocommit is True
        assert native.commits == 1

    def test_reset_rolls_back_open_transaction(self, fake_driver, connection):
        native = fake_driver.connections[0]
        connection.execute("SELECT name FROM agents", ExecutionKind.QUERY)
        connection.begin()

        connection.reset()

        assert native.rollbacks == 1
        assert connection.autocommit is True
        assert connection.cursor is None
        assert connection.rowcount == -1
        assert connection.context_id is None

    def test_sqlite_rollback_discards_changes(self, temp_dir):
        config = ConnectionConfig(brand="sqlite", database=str(temp_dir / "sim.db"))
        connection = Connection.open(SQLITE, config)
        try:
            connection.execute("CREATE TABLE agents (name TEXT)", ExecutionKind.UPDATE)
            connection.begin()
            connection.execute("INSERT INTO agents VALUES (?)", ExecutionKind.UPDATE, ["wolf"])
            connection.rollback()
            connection.set_autocommit(True)
            connection.execute("INSERT INTO agents VALUES (?)", ExecutionKind.UPDATE, ["sheep"])

            connection.execute("SELECT name FROM agents", ExecutionKind.QUERY)
            assert connection.cursor.fetch_all() == [["sheep"]]
        finally:
            connection.close()


class TestConnectionClose:
    """Test cases for closing."""

    def test_close_is_idempotent(self, fake_driver, connection):
        connection.close()
        connection.close()

        assert connection.is_closed
        assert fake_driver.closed == 1

    def test_close_failure_reported(self, fake_driver, connection):
        fake_driver.fail_close = True

        with pytest.raises(ConnectionCloseError) as exc_info:
            connection.close()

        assert exc_info.value.code == ErrorCodes.CONNECTION_CLOSE_FAILED
        assert connection.is_closed
