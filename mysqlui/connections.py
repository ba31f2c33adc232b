"""Connection backends the session drives to reach a MySQL server."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import re
import ssl
import threading
import time
from typing import Any, Callable, Coroutine, Mapping, Protocol, Sequence, TypeVar, runtime_checkable

import aiomysql

from .models import Connection
from .query import QueryExecutionError, leading_keyword

LOG = logging.getLogger(__name__)

T = TypeVar("T")

# MySQL client error codes meaning the transport is gone.
LOST_CONNECTION_CODES = frozenset({2006, 2013, 2055})
ACCESS_DENIED_CODE = 1045
SET_NAMES = "SET NAMES utf8mb4 COLLATE utf8mb4_unicode_ci"


class ConnectionBackendError(RuntimeError):
    """Raised when a backend cannot establish a connection."""

    def __init__(self, message: str, *, auth_failed: bool = False) -> None:
        super().__init__(message)
        self.auth_failed = auth_failed


class ConnectionLostError(ConnectionBackendError):
    """Raised when an open handle finds its transport gone."""


@dataclass(frozen=True, slots=True)
class StatementResult:
    """Raw driver output for one statement."""

    columns: tuple[str, ...]
    rows: tuple[tuple[object, ...], ...]
    affected_rows: int
    returns_rows: bool


class ServerHandle(Protocol):
    """A live connection to one server."""

    @property
    def is_open(self) -> bool:
        """Whether the handle still believes its transport is usable."""

    def execute(self, sql: str) -> StatementResult:
        """Run one statement; raises QueryExecutionError or ConnectionLostError."""

    def select_database(self, name: str) -> None:
        """Switch the default database of the handle."""

    def close(self) -> None:
        """Release the transport."""


@runtime_checkable
class ConnectionBackend(Protocol):
    """Protocol implemented by connection backends."""

    def connect(self, connection: Connection) -> ServerHandle:
        """Open a handle for the connection; raises ConnectionBackendError."""


class AiomysqlConnectionBackend:
    """Connection backend that talks to MySQL through aiomysql.

    aiomysql is asyncio-only, so the backend owns a private event loop on a
    daemon thread and exposes blocking calls on top of it.
    """

    def __init__(self, *, connect_timeout: float = 10.0, query_timeout: float | None = None) -> None:
        self._connect_timeout = connect_timeout
        self._query_timeout = query_timeout
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever,
            name="mysqlui-aiomysql-backend",
            daemon=True,
        )
        self._loop_thread.start()

    def connect(self, connection: Connection) -> ServerHandle:
        started = time.perf_counter()
        conn = self.run(self._open(connection))
        LOG.info(
            "Connected to %s in %d ms",
            connection.label,
            int((time.perf_counter() - started) * 1000),
        )
        return _AiomysqlHandle(self, conn)

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run a coroutine on the backend loop and wait for its result."""

        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout=self._query_timeout)

    def call_soon(self, callback: Callable[[], object]) -> None:
        """Schedule a plain callback on the backend loop."""

        self._loop.call_soon_threadsafe(callback)

    def shutdown(self) -> None:
        """Stop the background event loop."""

        if not self._loop.is_running():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._loop_thread.join(timeout=1)

    def __del__(self) -> None:  # pragma: no cover - best effort cleanup
        try:
            self.shutdown()
        except Exception:
            pass

    async def _open(self, connection: Connection) -> Any:
        try:
            return await aiomysql.connect(**self._connect_kwargs(connection))
        except aiomysql.Error as exc:
            code = _error_code(exc)
            raise ConnectionBackendError(
                f"Failed to connect to '{connection.name}': {_error_message(exc)}",
                auth_failed=code == ACCESS_DENIED_CODE,
            ) from exc
        except (OSError, asyncio.TimeoutError) as exc:
            raise ConnectionBackendError(f"Failed to connect to '{connection.name}': {exc}") from exc

    def _connect_kwargs(self, connection: Connection) -> dict[str, object]:
        kwargs: dict[str, object] = {
            "host": connection.host or "localhost",
            "port": connection.port,
            "user": connection.username,
            "password": connection.password,
            "charset": "utf8mb4",
            "autocommit": True,
            "init_command": SET_NAMES,
            "connect_timeout": self._connect_timeout,
        }
        if connection.default_database:
            kwargs["db"] = connection.default_database
        if connection.use_ssl:
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            kwargs["ssl"] = context
        return kwargs


class _AiomysqlHandle:
    def __init__(self, backend: AiomysqlConnectionBackend, conn: Any) -> None:
        self._backend = backend
        self._conn = conn

    @property
    def is_open(self) -> bool:
        return not self._conn.closed

    def execute(self, sql: str) -> StatementResult:
        return self._guard(self._execute(sql))

    def select_database(self, name: str) -> None:
        self._guard(self._conn.select_db(name))

    def close(self) -> None:
        if self._conn.closed:
            return
        try:
            self._backend.call_soon(self._conn.close)
        except RuntimeError:  # pragma: no cover - loop already stopped
            LOG.debug("Error while closing MySQL connection", exc_info=True)

    def _guard(self, coro: Coroutine[Any, Any, T]) -> T:
        if self._conn.closed:
            coro.close()
            raise ConnectionLostError("Connection to the server is closed")
        try:
            return self._backend.run(coro)
        except aiomysql.InterfaceError as exc:
            raise ConnectionLostError(f"Lost connection to the server: {_error_message(exc)}") from exc
        except aiomysql.OperationalError as exc:
            if _error_code(exc) in LOST_CONNECTION_CODES:
                raise ConnectionLostError(f"Lost connection to the server: {_error_message(exc)}") from exc
            raise QueryExecutionError(_error_message(exc)) from exc
        except aiomysql.Error as exc:
            raise QueryExecutionError(_error_message(exc)) from exc
        except (ConnectionError, asyncio.IncompleteReadError) as exc:
            raise ConnectionLostError(f"Lost connection to the server: {exc}") from exc

    async def _execute(self, sql: str) -> StatementResult:
        async with self._conn.cursor() as cursor:
            affected = await cursor.execute(sql)
            if cursor.description:
                columns = tuple(str(column[0]) for column in cursor.description)
                rows = tuple(tuple(row) for row in await cursor.fetchall())
                return StatementResult(columns=columns, rows=rows, affected_rows=len(rows), returns_rows=True)
            count = cursor.rowcount if cursor.rowcount is not None and cursor.rowcount >= 0 else affected
            return StatementResult(columns=(), rows=(), affected_rows=int(count or 0), returns_rows=False)


def _error_code(exc: BaseException) -> int | None:
    if exc.args and isinstance(exc.args[0], int):
        return exc.args[0]
    return None


def _error_message(exc: BaseException) -> str:
    if len(exc.args) >= 2 and isinstance(exc.args[0], int):
        return f"({exc.args[0]}) {exc.args[1]}"
    return str(exc) or exc.__class__.__name__


@dataclass
class DemoTable:
    """Table held by the demo backend: ``(name, type)`` columns plus rows."""

    columns: tuple[tuple[str, str], ...]
    rows: list[tuple[object, ...]] = field(default_factory=list)


DEMO_DATABASES: Mapping[str, Mapping[str, tuple[Sequence[tuple[str, str]], Sequence[tuple[object, ...]]]]] = {
    "shop": {
        "customers": (
            (("id", "int"), ("email", "varchar(255)"), ("name", "varchar(120)"), ("created_at", "datetime")),
            (
                (1, "alice@example.com", "Alice", "2024-01-03 10:00:00"),
                (2, "bob@example.com", "Bob", "2024-02-11 16:30:00"),
                (3, "carol@example.com", "Carol", None),
            ),
        ),
        "orders": (
            (("id", "int"), ("customer_id", "int"), ("total", "decimal(10,2)"), ("status", "varchar(20)")),
            (
                (10, 1, "19.99", "paid"),
                (11, 1, "5.00", "refunded"),
                (12, 2, "42.50", "paid"),
            ),
        ),
    },
    "analytics": {
        "events": (
            (("id", "bigint"), ("name", "varchar(64)"), ("payload", "json")),
            ((1, "signup", '{"plan": "free"}'), (2, "login", "{}")),
        ),
    },
    "information_schema": {},
    "mysql": {},
    "performance_schema": {},
    "sys": {},
}


class DemoConnectionBackend:
    """In-memory stand-in for a MySQL server.

    It understands the handful of statements the client issues while
    browsing plus simple DDL/DML so the editor can be exercised offline.
    Tests use ``available``, ``passwords`` and ``drop_connections`` to
    simulate outages, authentication failures and dropped transports.
    """

    def __init__(
        self,
        databases: Mapping[str, Mapping[str, tuple[Sequence[tuple[str, str]], Sequence[tuple[object, ...]]]]]
        | None = None,
        *,
        passwords: Mapping[str, str] | None = None,
    ) -> None:
        source = DEMO_DATABASES if databases is None else databases
        self.databases: dict[str, dict[str, DemoTable]] = {
            db: {
                table: DemoTable(columns=tuple(columns), rows=list(rows))
                for table, (columns, rows) in tables.items()
            }
            for db, tables in source.items()
        }
        self.passwords = dict(passwords or {})
        self.available = True
        self.connect_attempts = 0
        self.executed: list[str] = []
        self._handles: list[_DemoHandle] = []

    def connect(self, connection: Connection) -> ServerHandle:
        self.connect_attempts += 1
        if not self.available:
            raise ConnectionBackendError(
                f"Failed to connect to '{connection.name}': (2003) Can't connect to MySQL server on "
                f"'{connection.host}:{connection.port}'"
            )
        expected = self.passwords.get(connection.username)
        if expected is not None and expected != connection.password:
            raise ConnectionBackendError(
                f"Failed to connect to '{connection.name}': (1045) Access denied for user "
                f"'{connection.username}'@'{connection.host}'",
                auth_failed=True,
            )
        handle = _DemoHandle(self)
        if connection.default_database:
            handle.select_database(connection.default_database)
        self._handles.append(handle)
        return handle

    def drop_connections(self) -> None:
        """Simulate the server closing every open connection."""

        for handle in self._handles:
            handle.lost = True
        self._handles.clear()

    @property
    def open_handles(self) -> int:
        return sum(1 for handle in self._handles if handle.is_open)


_IDENT = r"`?([A-Za-z0-9_$]+)`?"
_SELECT_FROM = re.compile(
    rf"^select\s+(.+?)\s+from\s+(?:{_IDENT}\.)?{_IDENT}(?:\s+limit\s+(\d+))?\s*;?\s*$",
    re.IGNORECASE | re.DOTALL,
)
_SELECT_LITERAL = re.compile(r"^select\s+(.+?)\s*;?\s*$", re.IGNORECASE | re.DOTALL)
_USE = re.compile(rf"^use\s+{_IDENT}\s*;?\s*$", re.IGNORECASE)
_DESCRIBE = re.compile(rf"^(?:describe|desc|show\s+columns\s+from)\s+{_IDENT}\s*;?\s*$", re.IGNORECASE)
_DROP = re.compile(rf"^drop\s+(table|database|schema)\s+(?:if\s+exists\s+)?{_IDENT}", re.IGNORECASE)
_TRUNCATE = re.compile(rf"^truncate\s+(?:table\s+)?{_IDENT}", re.IGNORECASE)
_DELETE = re.compile(rf"^delete\s+from\s+{_IDENT}(\s+where\s+.+)?", re.IGNORECASE | re.DOTALL)
_UPDATE = re.compile(rf"^update\s+{_IDENT}\s+set\s+.+?(\s+where\s+.+)?$", re.IGNORECASE | re.DOTALL)
_INSERT = re.compile(rf"^insert\s+into\s+{_IDENT}", re.IGNORECASE)
_CREATE_DB = re.compile(rf"^create\s+(?:database|schema)\s+(?:if\s+not\s+exists\s+)?{_IDENT}", re.IGNORECASE)


class _DemoHandle:
    def __init__(self, server: DemoConnectionBackend) -> None:
        self._server = server
        self._database: str | None = None
        self.lost = False
        self.closed = False

    @property
    def is_open(self) -> bool:
        return not (self.lost or self.closed)

    def close(self) -> None:
        self.closed = True

    def select_database(self, name: str) -> None:
        self._check_open()
        if name not in self._server.databases:
            raise QueryExecutionError(f"(1049) Unknown database '{name}'")
        self._database = name

    def execute(self, sql: str) -> StatementResult:
        self._check_open()
        statement = sql.strip().rstrip(";").strip()
        self._server.executed.append(statement)
        keyword = leading_keyword(statement)
        if keyword == "show":
            return self._show(statement)
        if keyword == "use":
            match = _USE.match(statement)
            if not match:
                raise _syntax_error()
            self.select_database(match.group(1))
            return StatementResult(columns=(), rows=(), affected_rows=0, returns_rows=False)
        if keyword in {"describe", "desc"}:
            return self._describe(statement)
        if keyword == "select":
            return self._select(statement)
        return self._modify(keyword, statement)

    def _check_open(self) -> None:
        if self.closed or self.lost:
            raise ConnectionLostError("Lost connection to the server: (2013) Lost connection to MySQL server during query")

    def _show(self, statement: str) -> StatementResult:
        lowered = " ".join(statement.lower().split())
        if lowered in {"show databases", "show schemas"}:
            rows = tuple((name,) for name in sorted(self._server.databases))
            return StatementResult(columns=("Database",), rows=rows, affected_rows=len(rows), returns_rows=True)
        if lowered == "show tables":
            tables = self._tables()
            rows = tuple((name,) for name in sorted(tables))
            return StatementResult(
                columns=(f"Tables_in_{self._database}",), rows=rows, affected_rows=len(rows), returns_rows=True
            )
        if lowered.startswith("show columns from"):
            return self._describe(statement)
        raise _syntax_error()

    def _describe(self, statement: str) -> StatementResult:
        match = _DESCRIBE.match(statement)
        if not match:
            raise _syntax_error()
        table = self._table(None, match.group(1))
        rows = tuple((name, kind, "YES", "", None, "") for name, kind in table.columns)
        return StatementResult(
            columns=("Field", "Type", "Null", "Key", "Default", "Extra"),
            rows=rows,
            affected_rows=len(rows),
            returns_rows=True,
        )

    def _select(self, statement: str) -> StatementResult:
        match = _SELECT_FROM.match(statement)
        if match:
            projection, database, name, limit = match.groups()
            table = self._table(database, name)
            rows = list(table.rows)
            if projection.strip().lower() == "count(*)":
                return StatementResult(columns=("COUNT(*)",), rows=((len(rows),),), affected_rows=1, returns_rows=True)
            if limit is not None:
                rows = rows[: int(limit)]
            columns = tuple(column for column, _ in table.columns)
            return StatementResult(columns=columns, rows=tuple(rows), affected_rows=len(rows), returns_rows=True)
        match = _SELECT_LITERAL.match(statement)
        if not match:
            raise _syntax_error()
        values = [value.strip() for value in match.group(1).split(",")]
        row = tuple(_literal(value) for value in values)
        return StatementResult(columns=tuple(values), rows=(row,), affected_rows=1, returns_rows=True)

    def _modify(self, keyword: str, statement: str) -> StatementResult:
        if keyword == "drop":
            match = _DROP.match(statement)
            if not match:
                raise _syntax_error()
            kind, name = match.group(1).lower(), match.group(2)
            if kind == "table":
                self._tables().pop(name, None)
            else:
                self._server.databases.pop(name, None)
                if self._database == name:
                    self._database = None
            return StatementResult(columns=(), rows=(), affected_rows=0, returns_rows=False)
        if keyword == "truncate":
            match = _TRUNCATE.match(statement)
            if not match:
                raise _syntax_error()
            self._table(None, match.group(1)).rows.clear()
            return StatementResult(columns=(), rows=(), affected_rows=0, returns_rows=False)
        if keyword == "delete":
            match = _DELETE.match(statement)
            if not match:
                raise _syntax_error()
            table = self._table(None, match.group(1))
            affected = 0
            if not match.group(2):
                affected = len(table.rows)
                table.rows.clear()
            return StatementResult(columns=(), rows=(), affected_rows=affected, returns_rows=False)
        if keyword == "update":
            match = _UPDATE.match(statement)
            if not match:
                raise _syntax_error()
            table = self._table(None, match.group(1))
            affected = 0 if match.group(2) else len(table.rows)
            return StatementResult(columns=(), rows=(), affected_rows=affected, returns_rows=False)
        if keyword == "insert":
            match = _INSERT.match(statement)
            if not match:
                raise _syntax_error()
            self._table(None, match.group(1))
            return StatementResult(columns=(), rows=(), affected_rows=1, returns_rows=False)
        if keyword == "create":
            match = _CREATE_DB.match(statement)
            if not match:
                raise _syntax_error()
            self._server.databases.setdefault(match.group(1), {})
            return StatementResult(columns=(), rows=(), affected_rows=1, returns_rows=False)
        raise _syntax_error()

    def _tables(self) -> dict[str, DemoTable]:
        if self._database is None:
            raise QueryExecutionError("(1046) No database selected")
        return self._server.databases[self._database]

    def _table(self, database: str | None, name: str) -> DemoTable:
        if database is not None:
            tables = self._server.databases.get(database)
            if tables is None:
                raise QueryExecutionError(f"(1049) Unknown database '{database}'")
        else:
            tables = self._tables()
        table = tables.get(name)
        if table is None:
            raise QueryExecutionError(
                f"(1146) Table '{database or self._database}.{name}' doesn't exist"
            )
        return table


def _literal(value: str) -> object:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    try:
        return int(value)
    except ValueError:
        return value


def _syntax_error() -> QueryExecutionError:
    return QueryExecutionError(
        "(1064) You have an error in your SQL syntax; check the manual that corresponds to your MySQL server version"
    )


__all__ = [
    "AiomysqlConnectionBackend",
    "ConnectionBackend",
    "ConnectionBackendError",
    "ConnectionLostError",
    "DEMO_DATABASES",
    "DemoConnectionBackend",
    "DemoTable",
    "ServerHandle",
    "StatementResult",
]
