"""Tests for the connection backends."""

from __future__ import annotations

from typing import Any

import aiomysql
import pytest

from mysqlui.connections import (
    AiomysqlConnectionBackend,
    ConnectionBackendError,
    ConnectionLostError,
    DemoConnectionBackend,
)
from mysqlui.models import Connection
from mysqlui.query import QueryExecutionError


def test_demo_backend_lists_databases_and_tables() -> None:
    backend = DemoConnectionBackend()
    handle = backend.connect(Connection(name="demo", default_database="shop"))

    databases = handle.execute("SHOW DATABASES")
    tables = handle.execute("SHOW TABLES")

    assert ("shop",) in databases.rows
    assert ("information_schema",) in databases.rows
    assert tables.rows == (("customers",), ("orders",))
    assert backend.executed == ["SHOW DATABASES", "SHOW TABLES"]


def test_demo_backend_describes_and_selects() -> None:
    handle = DemoConnectionBackend().connect(Connection(name="demo"))
    handle.execute("USE `shop`")

    described = handle.execute("DESCRIBE `customers`")
    limited = handle.execute("SELECT * FROM `customers` LIMIT 2")
    counted = handle.execute("select count(*) from shop.orders")

    assert described.columns[:2] == ("Field", "Type")
    assert described.rows[0][:2] == ("id", "int")
    assert limited.columns == ("id", "email", "name", "created_at")
    assert len(limited.rows) == 2
    assert counted.rows == ((3,),)


def test_demo_backend_applies_writes() -> None:
    backend = DemoConnectionBackend()
    handle = backend.connect(Connection(name="demo", default_database="shop"))

    deleted = handle.execute("DELETE FROM orders")
    handle.execute("DROP TABLE customers")

    assert deleted.affected_rows == 3
    assert deleted.returns_rows is False
    assert backend.databases["shop"]["orders"].rows == []
    assert "customers" not in backend.databases["shop"]


@pytest.mark.parametrize(
    ("sql", "code"),
    [
        ("SHOW TABLES", "(1046)"),
        ("USE nowhere", "(1049)"),
        ("SELECT * FROM shop.missing", "(1146)"),
        ("SELEC 1", "(1064)"),
    ],
)
def test_demo_backend_reports_server_errors(sql: str, code: str) -> None:
    handle = DemoConnectionBackend().connect(Connection(name="demo"))

    with pytest.raises(QueryExecutionError, match=code.replace("(", r"\(").replace(")", r"\)")):
        handle.execute(sql)


def test_demo_backend_simulates_outages_and_auth_failures() -> None:
    backend = DemoConnectionBackend(passwords={"root": "secret"})
    conn = Connection(name="demo", password="secret")
    handle = backend.connect(conn)

    backend.drop_connections()
    with pytest.raises(ConnectionLostError):
        handle.execute("SELECT 1")
    assert backend.open_handles == 0

    with pytest.raises(ConnectionBackendError) as excinfo:
        backend.connect(conn.with_password("wrong"))
    assert excinfo.value.auth_failed is True

    backend.available = False
    with pytest.raises(ConnectionBackendError) as excinfo:
        backend.connect(conn)
    assert excinfo.value.auth_failed is False
    assert backend.connect_attempts == 3


class _FakeCursor:
    def __init__(self, conn: "_FakeConnection") -> None:
        self._conn = conn
        self.description: tuple[tuple[str, ...], ...] | None = None
        self.rowcount = -1

    async def __aenter__(self) -> "_FakeCursor":
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    async def execute(self, sql: str) -> int:
        self._conn.statements.append(sql)
        if self._conn.error is not None:
            raise self._conn.error
        if sql.lower().startswith("select"):
            self.description = (("id",), ("email",))
            self.rowcount = len(self._conn.rows)
        else:
            self.rowcount = 2
        return self.rowcount

    async def fetchall(self) -> list[tuple[object, ...]]:
        return list(self._conn.rows)


class _FakeConnection:
    def __init__(self) -> None:
        self.rows = [(1, "alice@example.com"), (2, "bob@example.com")]
        self.statements: list[str] = []
        self.error: BaseException | None = None
        self.closed = False
        self.selected: str | None = None

    def cursor(self) -> _FakeCursor:
        return _FakeCursor(self)

    async def select_db(self, name: str) -> None:
        self.selected = name

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_mysql(monkeypatch: pytest.MonkeyPatch) -> tuple[_FakeConnection, list[dict[str, Any]]]:
    conn = _FakeConnection()
    calls: list[dict[str, Any]] = []

    async def _connect(**kwargs: Any) -> _FakeConnection:
        calls.append(kwargs)
        return conn

    monkeypatch.setattr("mysqlui.connections.aiomysql.connect", _connect)
    return conn, calls


def test_aiomysql_backend_runs_statements(fake_mysql: tuple[_FakeConnection, list[dict[str, Any]]]) -> None:
    conn, calls = fake_mysql
    backend = AiomysqlConnectionBackend()
    profile = Connection(name="Local", username="app", password="pw", default_database="shop")

    try:
        handle = backend.connect(profile)
        selected = handle.execute("SELECT id, email FROM customers")
        updated = handle.execute("UPDATE customers SET name = 'x' WHERE id < 3")
        handle.select_database("analytics")
    finally:
        backend.shutdown()

    assert calls[0]["user"] == "app"
    assert calls[0]["db"] == "shop"
    assert calls[0]["charset"] == "utf8mb4"
    assert "ssl" in calls[0]
    assert selected.columns == ("id", "email")
    assert selected.rows == ((1, "alice@example.com"), (2, "bob@example.com"))
    assert updated.returns_rows is False
    assert updated.affected_rows == 2
    assert conn.selected == "analytics"


def test_aiomysql_backend_skips_ssl_when_disabled(fake_mysql: tuple[_FakeConnection, list[dict[str, Any]]]) -> None:
    _, calls = fake_mysql
    backend = AiomysqlConnectionBackend()

    try:
        backend.connect(Connection(name="Local", use_ssl=False))
    finally:
        backend.shutdown()

    assert "ssl" not in calls[0]
    assert "db" not in calls[0]


def test_aiomysql_backend_maps_errors(fake_mysql: tuple[_FakeConnection, list[dict[str, Any]]]) -> None:
    conn, _ = fake_mysql
    backend = AiomysqlConnectionBackend()

    try:
        handle = backend.connect(Connection(name="Local"))
        conn.error = aiomysql.ProgrammingError(1146, "Table 'shop.nope' doesn't exist")
        with pytest.raises(QueryExecutionError, match="1146"):
            handle.execute("SELECT * FROM nope")
        conn.error = aiomysql.OperationalError(2013, "Lost connection to MySQL server during query")
        with pytest.raises(ConnectionLostError):
            handle.execute("SELECT 1")
        conn.error = None
        conn.closed = True
        with pytest.raises(ConnectionLostError):
            handle.execute("SELECT 1")
    finally:
        backend.shutdown()


def test_aiomysql_backend_flags_access_denied(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _denied(**kwargs: Any) -> None:
        raise aiomysql.OperationalError(1045, "Access denied for user 'root'@'localhost'")

    monkeypatch.setattr("mysqlui.connections.aiomysql.connect", _denied)
    backend = AiomysqlConnectionBackend()

    try:
        with pytest.raises(ConnectionBackendError) as excinfo:
            backend.connect(Connection(name="Broken"))
    finally:
        backend.shutdown()

    assert excinfo.value.auth_failed is True
    assert "Broken" in str(excinfo.value)


def test_aiomysql_backend_surfaces_network_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _refused(**kwargs: Any) -> None:
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr("mysqlui.connections.aiomysql.connect", _refused)
    backend = AiomysqlConnectionBackend()

    try:
        with pytest.raises(ConnectionBackendError) as excinfo:
            backend.connect(Connection(name="Down"))
    finally:
        backend.shutdown()

    assert excinfo.value.auth_failed is False
