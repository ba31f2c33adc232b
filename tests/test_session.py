"""Tests for the live session and its reconnect rules."""

from __future__ import annotations

from pathlib import Path

import pytest

from mysqlui.connections import (
    ConnectionBackendError,
    ConnectionLostError,
    DemoConnectionBackend,
    StatementResult,
)
from mysqlui.models import Connection
from mysqlui.query import QueryExecutionError
from mysqlui.registry import ConnectionRegistry
from mysqlui.session import ConnectivityState, Session, SessionLost, SessionState


def _session(backend: DemoConnectionBackend | None = None) -> tuple[Session, DemoConnectionBackend]:
    backend = backend or DemoConnectionBackend()
    return Session(backend), backend


def test_connect_records_state_and_saves_connection(tmp_path: Path) -> None:
    registry = ConnectionRegistry.load(tmp_path / "connections.json", tmp_path / "user_config.json")
    session = Session(DemoConnectionBackend(), registry=registry)
    conn = Connection(name="dev", default_database="shop")

    state = session.connect(conn)

    assert state.connected is True
    assert state.database == "shop"
    assert state.connected_at is not None
    assert state.latency_ms is not None
    assert registry.get(conn.id) == conn


def test_connect_failure_leaves_session_disconnected() -> None:
    backend = DemoConnectionBackend()
    backend.available = False
    session, _ = _session(backend)

    with pytest.raises(ConnectionBackendError):
        session.connect(Connection(name="dev"))

    assert session.connectivity is ConnectivityState.DISCONNECTED
    assert session.state.last_error and "2003" in session.state.last_error


def test_connect_replaces_previous_handle() -> None:
    session, backend = _session()
    session.connect(Connection(name="one"))
    session.connect(Connection(name="two"))

    assert backend.open_handles == 1
    assert session.state.connection is not None
    assert session.state.connection.name == "two"


def test_run_query_normalises_rows_and_writes() -> None:
    session, _ = _session()
    session.connect(Connection(name="dev", default_database="shop"))

    selected = session.run_query("SELECT * FROM customers")
    deleted = session.run_query("DELETE FROM orders")

    assert selected.columns == ("id", "email", "name", "created_at")
    assert selected.rows[2] == ("3", "carol@example.com", "Carol", "NULL")
    assert selected.status == "3 row(s) returned"
    assert deleted.returns_rows is False
    assert deleted.status == "3 row(s) affected"


def test_use_statement_updates_current_database() -> None:
    session, _ = _session()
    session.connect(Connection(name="dev"))

    session.run_query("use `analytics`;")

    assert session.state.database == "analytics"
    assert session.list_tables() == ("events",)


def test_query_errors_do_not_change_connectivity() -> None:
    session, _ = _session()
    session.connect(Connection(name="dev"))

    with pytest.raises(QueryExecutionError):
        session.run_query("SELEC 1")

    assert session.connectivity is ConnectivityState.CONNECTED


def test_browsing_helpers_hide_system_schemas() -> None:
    session, _ = _session()
    session.connect(Connection(name="dev"))

    assert session.list_databases() == ("analytics", "shop")
    session.use_database("shop")
    assert session.state.database == "shop"
    assert session.list_tables() == ("customers", "orders")


def test_fetch_table_labels_columns_with_types() -> None:
    session, backend = _session()
    session.connect(Connection(name="dev", default_database="shop"))

    result = session.fetch_table("orders", 2)

    assert result.columns == ("id (int)", "customer_id (int)", "total (decimal(10,2))", "status (varchar(20))")
    assert len(result.rows) == 2
    assert session.state.table == "orders"
    assert backend.executed[-1] == "SELECT * FROM `orders` LIMIT 2"


def test_dropped_transport_reconnects_once_and_notifies_once() -> None:
    session, backend = _session()
    session.connect(Connection(name="dev"))
    session.use_database("analytics")
    seen: list[SessionState] = []
    session.subscribe(seen.append)

    backend.drop_connections()
    result = session.run_query("SELECT * FROM events")

    assert result.row_count == 2
    assert [state.connectivity for state in seen] == [ConnectivityState.CONNECTED]
    assert seen[0].reconnects == 1
    assert seen[0].database == "analytics"
    assert backend.connect_attempts == 2


def test_failed_reconnect_raises_session_lost() -> None:
    session, backend = _session()
    session.connect(Connection(name="dev"))

    backend.drop_connections()
    backend.available = False

    with pytest.raises(SessionLost):
        session.run_query("SELECT 1")
    assert session.connectivity is ConnectivityState.DISCONNECTED
    assert backend.connect_attempts == 2


def test_operations_without_connection_raise_session_lost() -> None:
    session, _ = _session()

    with pytest.raises(SessionLost):
        session.list_databases()


class _DyingHandle:
    is_open = True

    def __init__(self) -> None:
        self.closed = False

    def execute(self, sql: str) -> StatementResult:
        raise ConnectionLostError("Lost connection to the server: (2013) gone")

    def select_database(self, name: str) -> None:
        return None

    def close(self) -> None:
        self.closed = True


class _DyingBackend:
    def __init__(self) -> None:
        self.handle = _DyingHandle()

    def connect(self, connection: Connection) -> _DyingHandle:
        return self.handle


def test_transport_lost_mid_query_is_not_retried() -> None:
    backend = _DyingBackend()
    session = Session(backend)
    session.connect(Connection(name="dev"))

    with pytest.raises(SessionLost):
        session.run_query("SELECT 1")

    assert backend.handle.closed is True
    assert session.connectivity is ConnectivityState.DISCONNECTED


def test_unsubscribe_stops_notifications() -> None:
    session, _ = _session()
    seen: list[SessionState] = []
    unsubscribe = session.subscribe(seen.append)

    session.connect(Connection(name="dev"))
    unsubscribe()
    session.disconnect()

    assert len(seen) == 1
    assert session.connectivity is ConnectivityState.DISCONNECTED
