"""The single live server session and its connectivity state."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
import logging
import re
import time
from typing import Callable, TypeVar

from .connections import ConnectionBackend, ConnectionBackendError, ConnectionLostError, ServerHandle
from .models import Connection, utcnow
from .query import QueryExecutionError, QueryResult, format_cell, leading_keyword, quote_identifier
from .registry import ConnectionRegistry

LOG = logging.getLogger(__name__)

SYSTEM_DATABASES = frozenset({"information_schema", "performance_schema", "mysql", "sys"})

_USE_STATEMENT = re.compile(r"^\s*use\s+`?([^`;\s]+)`?\s*;?\s*$", re.IGNORECASE)

T = TypeVar("T")
SessionListener = Callable[["SessionState"], None]


class SessionLost(RuntimeError):
    """Raised when the connection dropped and could not be re-established."""


class ConnectivityState(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass(frozen=True, slots=True)
class SessionState:
    """Current session snapshot."""

    connection: Connection | None
    connectivity: ConnectivityState = ConnectivityState.DISCONNECTED
    database: str | None = None
    table: str | None = None
    connected_at: datetime | None = None
    latency_ms: int | None = None
    last_error: str | None = None
    reconnects: int = 0

    @property
    def connected(self) -> bool:
        return self.connectivity is ConnectivityState.CONNECTED


class Session:
    """Mediates every statement sent to the active server.

    At most one handle is open at a time; ``connect`` tears down the previous
    one first. Reconnection is never implicit: ``ensure_connected`` makes a
    single attempt and ``run_query`` never retries after a dropped transport.
    """

    def __init__(self, backend: ConnectionBackend, *, registry: ConnectionRegistry | None = None) -> None:
        self._backend = backend
        self._registry = registry
        self._handle: ServerHandle | None = None
        self._state = SessionState(connection=None)
        self._listeners: set[SessionListener] = set()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connectivity(self) -> ConnectivityState:
        return self._state.connectivity

    def connect(self, connection: Connection) -> SessionState:
        """Open a handle for ``connection``, replacing any current one.

        A registry write failure after a successful connect is raised as
        ``PersistenceError``; the session stays connected in that case.
        """

        self._close_handle()
        started = time.perf_counter()
        try:
            handle = self._backend.connect(connection)
        except ConnectionBackendError as exc:
            LOG.warning("Connect to %s failed: %s", connection.label, exc)
            self._update(
                SessionState(connection=connection, last_error=str(exc)),
            )
            raise
        self._handle = handle
        self._update(
            SessionState(
                connection=connection,
                connectivity=ConnectivityState.CONNECTED,
                database=connection.default_database,
                connected_at=utcnow(),
                latency_ms=int((time.perf_counter() - started) * 1000),
            )
        )
        if self._registry is not None:
            self._registry.upsert(connection)
        return self._state

    def disconnect(self) -> None:
        """Close the handle; the last connection is kept for reconnects."""

        self._close_handle()
        if self._state.connected:
            self._update(replace(self._state, connectivity=ConnectivityState.DISCONNECTED))

    def ensure_connected(self) -> SessionState:
        """Make one reconnect attempt when the session is disconnected."""

        if self._state.connected and self._handle is not None and self._handle.is_open:
            return self._state
        connection = self._state.connection
        if connection is None:
            raise SessionLost("Not connected to a server")
        self._close_handle()
        database = self._state.database
        LOG.info("Reconnecting to %s", connection.label)
        started = time.perf_counter()
        handle: ServerHandle | None = None
        try:
            handle = self._backend.connect(connection)
            if database and database != connection.default_database:
                handle.select_database(database)
        except (ConnectionBackendError, QueryExecutionError) as exc:
            if handle is not None:
                handle.close()
            self._update(
                replace(self._state, connectivity=ConnectivityState.DISCONNECTED, last_error=str(exc))
            )
            raise SessionLost(f"Reconnect to '{connection.name}' failed: {exc}") from exc
        self._handle = handle
        self._update(
            replace(
                self._state,
                connectivity=ConnectivityState.CONNECTED,
                connected_at=utcnow(),
                latency_ms=int((time.perf_counter() - started) * 1000),
                last_error=None,
                reconnects=self._state.reconnects + 1,
            )
        )
        return self._state

    def run_query(self, sql: str) -> QueryResult:
        """Execute ``sql`` once and normalise the outcome."""

        started = time.perf_counter()
        result = self._call(lambda handle: handle.execute(sql))
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if leading_keyword(sql) == "use":
            match = _USE_STATEMENT.match(sql)
            if match:
                self._update(replace(self._state, database=match.group(1), table=None))
        if result.returns_rows:
            rows = tuple(tuple(format_cell(value) for value in row) for row in result.rows)
            return QueryResult(
                columns=result.columns,
                rows=rows,
                status=f"{len(rows)} row(s) returned",
                elapsed_ms=elapsed_ms,
                row_count=len(rows),
            )
        return QueryResult(
            columns=(),
            rows=(),
            status=f"{result.affected_rows} row(s) affected",
            elapsed_ms=elapsed_ms,
            affected_rows=result.affected_rows,
        )

    def list_databases(self) -> tuple[str, ...]:
        """Live database names, system schemas excluded."""

        result = self._call(lambda handle: handle.execute("SHOW DATABASES"))
        names = (format_cell(row[0]) for row in result.rows if row)
        return tuple(name for name in names if name.lower() not in SYSTEM_DATABASES)

    def use_database(self, name: str) -> None:
        self._call(lambda handle: handle.select_database(name))
        self._update(replace(self._state, database=name, table=None))

    def list_tables(self) -> tuple[str, ...]:
        result = self._call(lambda handle: handle.execute("SHOW TABLES"))
        return tuple(format_cell(row[0]) for row in result.rows if row)

    def fetch_table(self, table: str, limit: int) -> QueryResult:
        """Load up to ``limit`` rows with ``name (type)`` column headers."""

        quoted = quote_identifier(table)
        started = time.perf_counter()
        described = self._call(lambda handle: handle.execute(f"DESCRIBE {quoted}"))
        data = self._call(lambda handle: handle.execute(f"SELECT * FROM {quoted} LIMIT {int(limit)}"))
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        columns = tuple(f"{row[0]} ({row[1]})" for row in described.rows) or data.columns
        rows = tuple(tuple(format_cell(value) for value in row) for row in data.rows)
        self.select_table(table)
        return QueryResult(
            columns=columns,
            rows=rows,
            status=f"{len(rows)} row(s) from {table}",
            elapsed_ms=elapsed_ms,
            row_count=len(rows),
        )

    def select_table(self, name: str | None) -> None:
        if self._state.table != name:
            self._update(replace(self._state, table=name))

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Subscribe to session updates; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    def _call(self, operation: Callable[[ServerHandle], T]) -> T:
        self.ensure_connected()
        handle = self._handle
        assert handle is not None
        try:
            return operation(handle)
        except ConnectionLostError as exc:
            LOG.warning("Connection lost: %s", exc)
            self._close_handle()
            self._update(
                replace(self._state, connectivity=ConnectivityState.DISCONNECTED, last_error=str(exc))
            )
            raise SessionLost(str(exc)) from exc

    def _close_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()

    def _update(self, state: SessionState) -> None:
        self._state = state
        for listener in tuple(self._listeners):
            listener(state)


__all__ = [
    "ConnectivityState",
    "SYSTEM_DATABASES",
    "Session",
    "SessionLost",
    "SessionState",
]
