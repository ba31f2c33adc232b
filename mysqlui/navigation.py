"""Modal navigation state machine driving the browser and the SQL editor.

The navigator owns every piece of view state. The Textual layer feeds it
actions through :meth:`Navigation.dispatch` and renders the immutable
:class:`NavigationFrame` it exposes; it never touches the session, the
registry or the history directly.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from enum import Enum
import logging
import time
from typing import Any, Callable, Sequence, TypeVar

from .config import PersistenceError, UserPreferences
from .connections import ConnectionBackendError
from .history import HistoryFilter, HistoryStore
from .models import Connection, DatabaseEntry, HistoryEntry
from .query import QueryExecutionError, QueryResult, is_dangerous_query
from .registry import ConnectionRegistry, sort_database_entries
from .session import ConnectivityState, Session, SessionLost

LOG = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_VISIBLE_COLUMNS = 3
COLLAPSED_CELL_WIDTH = 30
EXPANDED_CELL_WIDTH = 100

HELP_TEXT = (
    "j/k move | l/enter open | h/esc back | g/G top/bottom | r refresh | 1-4 jump | "
    "space expand | f favorite | n/e new/edit connection | d delete | i SQL editor | q quit"
)


class ViewMode(str, Enum):
    CONNECTIONS = "connections"
    DATABASES = "databases"
    TABLES = "tables"
    DATA = "data"
    EDITOR = "editor"

    @property
    def title(self) -> str:
        return _TITLES[self]


_TITLES = {
    ViewMode.CONNECTIONS: "Connections",
    ViewMode.DATABASES: "Databases",
    ViewMode.TABLES: "Tables",
    ViewMode.DATA: "Data",
    ViewMode.EDITOR: "SQL Editor",
}

LIST_MODES = (ViewMode.CONNECTIONS, ViewMode.DATABASES, ViewMode.TABLES, ViewMode.DATA)


class Action(str, Enum):
    MOVE_UP = "move_up"
    MOVE_DOWN = "move_down"
    TOP = "top"
    BOTTOM = "bottom"
    FORWARD = "forward"
    BACK = "back"
    JUMP_CONNECTIONS = "jump_connections"
    JUMP_DATABASES = "jump_databases"
    JUMP_TABLES = "jump_tables"
    JUMP_DATA = "jump_data"
    REFRESH = "refresh"
    TOGGLE_EXPANSION = "toggle_expansion"
    SCROLL_LEFT = "scroll_left"
    SCROLL_RIGHT = "scroll_right"
    TOGGLE_FAVORITE = "toggle_favorite"
    DELETE_CONNECTION = "delete_connection"
    ENTER_EDITOR = "enter_editor"
    EXECUTE = "execute"
    HISTORY_UP = "history_up"
    HISTORY_DOWN = "history_down"
    EXIT_EDITOR = "exit_editor"
    CONFIRM_YES = "confirm_yes"
    CONFIRM_NO = "confirm_no"
    HELP = "help"
    QUIT = "quit"


_JUMP_TARGETS = {
    Action.JUMP_CONNECTIONS: ViewMode.CONNECTIONS,
    Action.JUMP_DATABASES: ViewMode.DATABASES,
    Action.JUMP_TABLES: ViewMode.TABLES,
    Action.JUMP_DATA: ViewMode.DATA,
}

_FAILURES = (ConnectionBackendError, SessionLost, QueryExecutionError, PersistenceError)


@dataclass(frozen=True, slots=True)
class StackFrame:
    """Ancestor view recorded by a forward transition."""

    mode: ViewMode
    selection: int


@dataclass(frozen=True, slots=True)
class Browsing:
    mode: ViewMode = ViewMode.CONNECTIONS
    stack: tuple[StackFrame, ...] = ()


@dataclass(frozen=True, slots=True)
class Editing:
    """Editor overlay; ``browsing`` is restored untouched on exit.

    ``history_cursor`` is ``-1`` at the draft position and otherwise indexes
    ``history``, the newest-first entries for the active connection and
    database, loaded on first use. With no database selected only entries
    recorded without one are recalled.
    """

    browsing: Browsing
    return_mode: ViewMode
    return_selection: int
    buffer: str = ""
    history_cursor: int = -1
    history: tuple[HistoryEntry, ...] | None = None
    result: QueryResult | None = None
    pending_sql: str | None = None
    in_flight: bool = False


NavigationState = Browsing | Editing


@dataclass(frozen=True, slots=True)
class Banner:
    message: str
    severity: str = "info"


@dataclass(frozen=True, slots=True)
class NavigationFrame:
    """Everything the renderer needs for one paint."""

    mode: ViewMode
    path: tuple[str, ...]
    columns: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    selection: int
    columns_expanded: bool = False
    column_offset: int = 0
    total_columns: int = 0
    banner: Banner | None = None
    buffer: str = ""
    history_position: int | None = None
    history_size: int = 0
    result: QueryResult | None = None
    pending_sql: str | None = None
    return_mode: ViewMode | None = None
    connectivity: ConnectivityState = ConnectivityState.DISCONNECTED
    busy: bool = False
    stale: bool = False
    password_request: Connection | None = None

    @property
    def editing(self) -> bool:
        return self.mode is ViewMode.EDITOR

    @property
    def confirming(self) -> bool:
        return self.pending_sql is not None


ChangeListener = Callable[[], None]


class Navigation:
    """Owns the navigation stack, selections, caches and the editor overlay."""

    def __init__(
        self,
        session: Session,
        registry: ConnectionRegistry,
        history: HistoryStore,
        *,
        preferences: UserPreferences | None = None,
        on_change: ChangeListener | None = None,
        visible_columns: int = DEFAULT_VISIBLE_COLUMNS,
    ) -> None:
        self._session = session
        self._registry = registry
        self._history = history
        self._preferences = preferences or registry.preferences
        self._on_change = on_change
        self._state: NavigationState = Browsing()
        self._selection = {mode: 0 for mode in LIST_MODES}
        self._connections: tuple[Connection, ...] = registry.list()
        self._databases: list[DatabaseEntry] = []
        self._tables: tuple[str, ...] = ()
        self._table_data: QueryResult | None = None
        self._active: Connection | None = None
        self._database: str | None = None
        self._table: str | None = None
        self._passwords: dict[str, str] = {}
        self._password_request: Connection | None = None
        self._columns_expanded = False
        self._horizontal_scroll = 0
        self._visible_columns = max(1, visible_columns)
        self._banner: Banner | None = None
        self._busy = False
        self._stale = False

    @property
    def state(self) -> NavigationState:
        return self._state

    @property
    def mode(self) -> ViewMode:
        if isinstance(self._state, Editing):
            return ViewMode.EDITOR
        return self._state.mode

    @property
    def busy(self) -> bool:
        return self._busy

    def set_listener(self, listener: ChangeListener | None) -> None:
        self._on_change = listener

    async def dispatch(self, action: Action) -> bool:
        """Apply one action; returns ``True`` when the app should exit.

        Connection, session, query and persistence failures end up in the
        banner and leave the navigation state as it was before the action.
        """

        if isinstance(self._state, Editing):
            handler = self._dispatch_editor
        else:
            handler = self._dispatch_browsing
        if self._busy and action is not Action.HELP:
            self._set_banner("Still working on the previous request", "warning")
            self._changed()
            return False
        self._banner = None
        try:
            return await handler(action)
        except _FAILURES as exc:
            LOG.warning("%s failed: %s", action.value, exc)
            self._set_banner(_describe_failure(exc), "error")
            return False
        finally:
            self._check_connectivity()
            self._changed()

    def set_buffer(self, text: str) -> None:
        """Replace the editor buffer with typed input."""

        state = self._state
        if not isinstance(state, Editing) or state.in_flight or state.pending_sql is not None:
            return
        if state.buffer == text:
            return
        self._state = replace(state, buffer=text)
        self._changed()

    def save_connection(self, connection: Connection) -> bool:
        """Persist a connection from the form and move the cursor onto it."""

        try:
            self._registry.upsert(connection)
        except PersistenceError as exc:
            LOG.error("Failed to save connection %s: %s", connection.label, exc)
            self._set_banner(f"Could not save connection: {exc}", "error")
            self._changed()
            return False
        if connection.password:
            self._passwords[connection.id] = connection.password
        self._connections = self._registry.list()
        ids = [conn.id for conn in self._connections]
        self._selection[ViewMode.CONNECTIONS] = ids.index(connection.id)
        self._set_banner(f"Saved connection {connection.label}", "success")
        self._changed()
        return True

    def provide_password(self, connection_id: str, password: str) -> None:
        """Remember a password for the rest of this run."""

        self._passwords[connection_id] = password
        self._password_request = None
        self._changed()

    def dismiss_password_request(self) -> None:
        self._password_request = None
        self._changed()

    def selected_connection(self) -> Connection | None:
        return _pick(self._connections, self._selection[ViewMode.CONNECTIONS])

    async def open_connection(self, connection_id: str, database: str | None = None) -> None:
        """Connect to a saved connection from the top level, optionally opening a database."""

        if isinstance(self._state, Editing) or self._busy:
            return
        self._pop_to(ViewMode.CONNECTIONS)
        ids = [conn.id for conn in self._connections]
        if connection_id not in ids:
            self._connections = self._registry.list()
            ids = [conn.id for conn in self._connections]
        if connection_id not in ids:
            self._set_banner("Unknown connection", "error")
            self._changed()
            return
        self._selection[ViewMode.CONNECTIONS] = ids.index(connection_id)
        await self.dispatch(Action.FORWARD)
        if database is None or self.mode is not ViewMode.DATABASES:
            return
        names = [entry.name for entry in self._databases]
        if database in names:
            self._selection[ViewMode.DATABASES] = names.index(database)
            await self.dispatch(Action.FORWARD)
        else:
            self._set_banner(f"Database '{database}' not found", "warning")
            self._changed()

    def frame(self) -> NavigationFrame:
        """Snapshot the current state for rendering."""

        session_state = self._session.state
        common: dict[str, Any] = {
            "banner": self._banner,
            "connectivity": session_state.connectivity,
            "busy": self._busy,
            "stale": self._stale,
            "password_request": self._password_request,
        }
        state = self._state
        if isinstance(state, Editing):
            result = state.result
            history_size = len(state.history) if state.history is not None else 0
            return NavigationFrame(
                mode=ViewMode.EDITOR,
                path=self._path(state.browsing.mode) + (ViewMode.EDITOR.title,),
                columns=result.columns if result is not None else (),
                rows=result.rows if result is not None else (),
                selection=0,
                buffer=state.buffer,
                history_position=state.history_cursor if state.history_cursor >= 0 else None,
                history_size=history_size,
                result=result,
                pending_sql=state.pending_sql,
                return_mode=state.return_mode,
                busy=self._busy or state.in_flight,
                **{key: value for key, value in common.items() if key != "busy"},
            )
        mode = state.mode
        columns, rows = self._listing(mode)
        total_columns = len(columns)
        offset = 0
        if mode is ViewMode.DATA:
            width = EXPANDED_CELL_WIDTH if self._columns_expanded else COLLAPSED_CELL_WIDTH
            if self._columns_expanded:
                offset = self._horizontal_scroll
                end = offset + self._visible_columns
                columns = columns[offset:end]
                rows = tuple(row[offset:end] for row in rows)
            rows = tuple(tuple(truncate_cell(cell, width) for cell in row) for row in rows)
        return NavigationFrame(
            mode=mode,
            path=self._path(mode),
            columns=columns,
            rows=rows,
            selection=self._selection[mode],
            columns_expanded=self._columns_expanded and mode is ViewMode.DATA,
            column_offset=offset,
            total_columns=total_columns,
            **common,
        )

    async def _dispatch_browsing(self, action: Action) -> bool:
        mode = self.mode
        if action is Action.QUIT:
            return True
        if action is Action.MOVE_UP:
            self._move(-1)
        elif action is Action.MOVE_DOWN:
            self._move(1)
        elif action is Action.TOP:
            self._selection[mode] = 0
        elif action is Action.BOTTOM:
            self._selection[mode] = max(0, self._list_length(mode) - 1)
        elif action is Action.FORWARD:
            await self._forward()
        elif action is Action.BACK:
            self._back()
        elif action in _JUMP_TARGETS:
            self._jump(_JUMP_TARGETS[action])
        elif action is Action.REFRESH:
            await self._refresh()
        elif action is Action.TOGGLE_EXPANSION:
            self._toggle_expansion()
        elif action is Action.SCROLL_LEFT:
            if mode is ViewMode.DATA and self._columns_expanded:
                self._horizontal_scroll = max(0, self._horizontal_scroll - 1)
        elif action is Action.SCROLL_RIGHT:
            if mode is ViewMode.DATA and self._columns_expanded:
                self._horizontal_scroll = min(self._max_scroll(), self._horizontal_scroll + 1)
        elif action is Action.TOGGLE_FAVORITE:
            self._toggle_favorite()
        elif action is Action.DELETE_CONNECTION:
            await self._delete_connection()
        elif action is Action.ENTER_EDITOR:
            browsing = self._browsing()
            self._state = Editing(
                browsing=browsing,
                return_mode=browsing.mode,
                return_selection=self._selection[browsing.mode],
            )
        elif action is Action.HELP:
            self._set_banner(HELP_TEXT, "info")
        return False

    async def _dispatch_editor(self, action: Action) -> bool:
        state = self._editing()
        if state.in_flight:
            self._set_banner("A query is already running", "warning")
            return False
        if state.pending_sql is not None:
            if action is Action.CONFIRM_YES:
                await self._run_editor_query(state.pending_sql)
            elif action is Action.QUIT:
                self._set_banner("Confirm or cancel the pending query before quitting", "warning")
            else:
                self._cancel_pending(state)
            return False
        if action is Action.QUIT:
            return True
        if action is Action.EXECUTE:
            sql = state.buffer.strip()
            if not sql:
                self._set_banner("Nothing to execute", "warning")
            elif self._preferences.confirm_dangerous_queries and is_dangerous_query(sql):
                self._state = replace(state, pending_sql=sql)
                self._set_banner(
                    "This query may destroy data. Press y to run it, any other key to cancel.",
                    "warning",
                )
            else:
                await self._run_editor_query(sql)
        elif action is Action.HISTORY_UP:
            self._recall(state, 1)
        elif action is Action.HISTORY_DOWN:
            self._recall(state, -1)
        elif action is Action.EXIT_EDITOR:
            self._state = state.browsing
            self._selection[state.return_mode] = state.return_selection
        elif action is Action.HELP:
            self._set_banner("enter run | up/down history | esc leave editor", "info")
        return False

    async def _io(self, func: Callable[..., T], /, *args: Any) -> T:
        self._busy = True
        self._changed()
        try:
            return await asyncio.to_thread(func, *args)
        finally:
            self._busy = False

    async def _forward(self) -> None:
        mode = self.mode
        if mode is ViewMode.CONNECTIONS:
            connection = self.selected_connection()
            if connection is None:
                self._set_banner("No saved connections. Press n to add one.", "info")
                return
            await self._connect(connection)
        elif mode is ViewMode.DATABASES:
            entry = _pick(self._databases, self._selection[mode])
            if entry is not None:
                await self._open_database(entry)
        elif mode is ViewMode.TABLES:
            table = _pick(self._tables, self._selection[mode])
            if table is not None:
                await self._open_table(table)

    async def _connect(self, connection: Connection) -> None:
        password = self._passwords.get(connection.id)
        target = connection.with_password(password) if password is not None else connection
        notes: list[str] = []
        try:
            await self._io(self._session.connect, target)
        except PersistenceError as exc:
            notes.append(f"could not save connection: {exc}")
        except ConnectionBackendError as exc:
            if exc.auth_failed and password is None and not connection.password:
                self._password_request = connection
            raise
        try:
            names: Sequence[str] = await self._io(self._session.list_databases)
        except (SessionLost, QueryExecutionError) as exc:
            names = ()
            notes.append(f"could not list databases: {exc}")
        entries, note = self._merge_databases(connection.id, names)
        if note:
            notes.append(note)
        self._push(ViewMode.DATABASES)
        self._active = target
        self._database = None
        self._table = None
        self._databases = entries
        self._selection[ViewMode.DATABASES] = self._initial_database_index(connection.id, entries)
        self._stale = False
        if notes:
            self._set_banner(f"Connected to {connection.label}, but " + "; ".join(notes), "error")
        else:
            self._set_banner(f"Connected to {connection.label}", "success")

    async def _open_database(self, entry: DatabaseEntry) -> None:
        await self._io(self._session.use_database, entry.name)
        tables = await self._io(self._session.list_tables)
        self._push(ViewMode.TABLES)
        self._database = entry.name
        self._tables = tables
        self._selection[ViewMode.TABLES] = 0
        try:
            updated = self._registry.record_access(entry.connection_id, entry.name)
        except PersistenceError as exc:
            self._set_banner(f"Opened {entry.name}, but could not save access time: {exc}", "error")
            return
        self._databases = [updated if item.name == updated.name else item for item in self._databases]
        self._set_banner(f"{len(tables)} table(s) in {entry.name}", "info")

    async def _open_table(self, table: str) -> None:
        data = await self._io(self._session.fetch_table, table, self._preferences.default_limit)
        self._push(ViewMode.DATA)
        self._table = table
        self._table_data = data
        self._selection[ViewMode.DATA] = 0
        self._columns_expanded = False
        self._horizontal_scroll = 0
        self._set_banner(
            f"{data.count} row(s) from {table} (showing at most {self._preferences.default_limit})",
            "info",
        )

    def _back(self) -> None:
        browsing = self._browsing()
        if not browsing.stack:
            return
        self._restore(browsing.stack[-1], browsing.stack[:-1])

    def _jump(self, target: ViewMode) -> None:
        browsing = self._browsing()
        if browsing.mode is target:
            self._set_banner(f"Already viewing {target.title.lower()}", "info")
            return
        if not any(frame.mode is target for frame in browsing.stack):
            self._set_banner(f"{target.title} is not open yet", "info")
            return
        self._pop_to(target)

    def _pop_to(self, target: ViewMode) -> None:
        while not isinstance(self._state, Editing) and self._state.mode is not target and self._state.stack:
            self._back()

    def _restore(self, frame: StackFrame, stack: tuple[StackFrame, ...]) -> None:
        leaving = self._browsing().mode
        if leaving is ViewMode.DATA:
            self._session.select_table(None)
            self._table = None
            self._columns_expanded = False
            self._horizontal_scroll = 0
        if leaving is ViewMode.TABLES:
            self._database = None
        self._state = Browsing(mode=frame.mode, stack=stack)
        self._selection[frame.mode] = frame.selection

    def _push(self, target: ViewMode) -> None:
        browsing = self._browsing()
        frame = StackFrame(mode=browsing.mode, selection=self._selection[browsing.mode])
        self._state = Browsing(mode=target, stack=browsing.stack + (frame,))

    async def _refresh(self) -> None:
        mode = self.mode
        if mode is ViewMode.CONNECTIONS:
            self._connections = self._registry.list()
            self._clamp(mode)
            self._set_banner(f"{len(self._connections)} saved connection(s)", "info")
            return
        if mode is ViewMode.DATABASES:
            active = self._active
            if active is None:
                return
            current = _pick(self._databases, self._selection[mode])
            names = await self._io(self._session.list_databases)
            entries, note = self._merge_databases(active.id, names)
            self._databases = entries
            self._reselect(mode, [entry.name for entry in entries], current.name if current else None)
            if note:
                self._set_banner(note, "error")
            else:
                self._set_banner(f"{len(entries)} database(s)", "info")
        elif mode is ViewMode.TABLES:
            current_table = _pick(self._tables, self._selection[mode])
            tables = await self._io(self._session.list_tables)
            self._tables = tables
            self._reselect(mode, list(tables), current_table)
            self._set_banner(f"{len(tables)} table(s)", "info")
        elif mode is ViewMode.DATA and self._table is not None:
            data = await self._io(self._session.fetch_table, self._table, self._preferences.default_limit)
            self._table_data = data
            self._clamp(mode)
            self._horizontal_scroll = min(self._horizontal_scroll, self._max_scroll())
            self._set_banner(f"{data.count} row(s) from {self._table}", "info")
        self._stale = False

    def _toggle_expansion(self) -> None:
        if self.mode is not ViewMode.DATA:
            self._set_banner("Column expansion is only available for table data", "info")
            return
        self._columns_expanded = not self._columns_expanded
        self._horizontal_scroll = 0
        if self._columns_expanded:
            self._set_banner("Expanded columns: use left/right to scroll, space to compress", "info")
        else:
            self._set_banner("Compressed columns: press space to expand", "info")

    def _toggle_favorite(self) -> None:
        if self.mode is not ViewMode.DATABASES:
            self._set_banner("Favorites can only be toggled on databases", "info")
            return
        entry = _pick(self._databases, self._selection[ViewMode.DATABASES])
        if entry is None:
            return
        favorite = self._registry.toggle_favorite(entry.connection_id, entry.name)
        self._databases = self._registry.list_databases(entry.connection_id)
        self._reselect(ViewMode.DATABASES, [item.name for item in self._databases], entry.name)
        verb = "added to" if favorite else "removed from"
        self._set_banner(f"{entry.name} {verb} favorites", "success")

    async def _delete_connection(self) -> None:
        if self.mode is not ViewMode.CONNECTIONS:
            self._set_banner("Connections can only be deleted from the connection list", "info")
            return
        connection = self.selected_connection()
        if connection is None:
            return
        current = self._session.state.connection
        if current is not None and current.id == connection.id:
            await self._io(self._session.disconnect)
            self._active = None
        self._registry.remove(connection.id)
        self._passwords.pop(connection.id, None)
        self._connections = self._registry.list()
        self._clamp(ViewMode.CONNECTIONS)
        self._set_banner(f"Deleted connection {connection.label}", "success")

    async def _run_editor_query(self, sql: str) -> None:
        state = self._editing()
        session_state = self._session.state
        connection_id = session_state.connection.id if session_state.connection else ""
        database = session_state.database
        self._state = replace(state, pending_sql=None, in_flight=True)
        self._changed()
        started = time.perf_counter()
        try:
            result = await asyncio.to_thread(self._session.run_query, sql)
        except (QueryExecutionError, SessionLost) as exc:
            duration_ms = int((time.perf_counter() - started) * 1000)
            self._state = replace(
                self._editing(), in_flight=False, buffer="", history_cursor=-1, history=None, result=None
            )
            note = self._record(
                HistoryEntry.failed(sql, connection_id, database, duration_ms=duration_ms, message=str(exc))
            )
            self._set_banner(_describe_failure(exc) + note, "error")
            return
        except BaseException:
            self._state = replace(self._editing(), in_flight=False)
            raise
        self._state = replace(
            self._editing(), in_flight=False, buffer="", history_cursor=-1, history=None, result=result
        )
        note = self._record(
            HistoryEntry.succeeded(
                sql, connection_id, database, duration_ms=result.elapsed_ms, row_count=result.count
            )
        )
        message = result.status
        if self._preferences.show_execution_time:
            message += f" in {result.elapsed_ms} ms"
        self._set_banner(message + note, "warning" if note else "success")

    def _cancel_pending(self, state: Editing) -> None:
        session_state = self._session.state
        connection_id = session_state.connection.id if session_state.connection else ""
        sql = state.pending_sql or ""
        self._state = replace(state, pending_sql=None)
        note = self._record(HistoryEntry.cancelled(sql, connection_id, session_state.database))
        self._set_banner("Query cancelled" + note, "warning" if note else "info")

    def _recall(self, state: Editing, step: int) -> None:
        if state.history is None:
            state = replace(state, history=tuple(self._history.query(self._history_filter())))
        entries = state.history or ()
        cursor = state.history_cursor + step
        if cursor >= len(entries):
            self._state = state
            self._set_banner("No older queries in history", "info")
            return
        if cursor < -1:
            self._state = state
            return
        buffer = entries[cursor].sql if cursor >= 0 else ""
        self._state = replace(state, history_cursor=cursor, buffer=buffer)

    def _history_filter(self) -> HistoryFilter:
        session_state = self._session.state
        connection = session_state.connection
        return HistoryFilter(
            connection_id=connection.id if connection is not None else None,
            database=session_state.database,
            exact_database=True,
        )

    def _record(self, entry: HistoryEntry) -> str:
        """Append to history; returns a banner suffix when the write failed."""

        try:
            self._history.append(entry)
        except PersistenceError as exc:
            LOG.warning("History not saved: %s", exc)
            return f" (history not saved: {exc})"
        return ""

    def _merge_databases(self, connection_id: str, names: Sequence[str]) -> tuple[list[DatabaseEntry], str | None]:
        try:
            return self._registry.merge_databases(connection_id, names), None
        except PersistenceError as exc:
            LOG.error("Failed to save database list: %s", exc)
            entries = self._registry.list_databases(connection_id)
            known = {entry.name for entry in entries}
            entries.extend(
                DatabaseEntry(name=name, connection_id=connection_id) for name in names if name not in known
            )
            return sort_database_entries(entries), f"could not save database list: {exc}"

    def _initial_database_index(self, connection_id: str, entries: Sequence[DatabaseEntry]) -> int:
        last = self._registry.last_used()
        if last is None or last[0].id != connection_id or last[1] is None:
            return 0
        for index, entry in enumerate(entries):
            if entry.name == last[1]:
                return index
        return 0

    def _listing(self, mode: ViewMode) -> tuple[tuple[str, ...], tuple[tuple[str, ...], ...]]:
        if mode is ViewMode.CONNECTIONS:
            return (
                ("Name", "Server", "User", "Database"),
                tuple(
                    (conn.name, f"{conn.host}:{conn.port}", conn.username, conn.default_database or "")
                    for conn in self._connections
                ),
            )
        if mode is ViewMode.DATABASES:
            return (
                ("", "Database", "Last accessed"),
                tuple(
                    (
                        "*" if entry.favorite else "",
                        entry.name,
                        entry.last_accessed.strftime("%Y-%m-%d %H:%M") if entry.last_accessed else "",
                    )
                    for entry in self._databases
                ),
            )
        if mode is ViewMode.TABLES:
            return ("Table",), tuple((name,) for name in self._tables)
        data = self._table_data
        if data is None:
            return (), ()
        return data.columns, data.rows

    def _path(self, mode: ViewMode) -> tuple[str, ...]:
        path = [ViewMode.CONNECTIONS.title]
        depth = LIST_MODES.index(mode)
        if depth >= 1 and self._active is not None:
            path.append(self._active.name)
        if depth >= 2 and self._database is not None:
            path.append(self._database)
        if depth >= 3 and self._table is not None:
            path.append(self._table)
        return tuple(path)

    def _list_length(self, mode: ViewMode) -> int:
        if mode is ViewMode.CONNECTIONS:
            return len(self._connections)
        if mode is ViewMode.DATABASES:
            return len(self._databases)
        if mode is ViewMode.TABLES:
            return len(self._tables)
        return len(self._table_data.rows) if self._table_data is not None else 0

    def _move(self, delta: int) -> None:
        mode = self.mode
        length = self._list_length(mode)
        if length == 0:
            return
        self._selection[mode] = max(0, min(length - 1, self._selection[mode] + delta))

    def _clamp(self, mode: ViewMode) -> None:
        length = self._list_length(mode)
        self._selection[mode] = max(0, min(self._selection[mode], length - 1))

    def _reselect(self, mode: ViewMode, names: list[str], current: str | None) -> None:
        if current is not None and current in names:
            self._selection[mode] = names.index(current)
        else:
            self._clamp(mode)

    def _max_scroll(self) -> int:
        columns = len(self._table_data.columns) if self._table_data is not None else 0
        return max(0, columns - self._visible_columns)

    def _check_connectivity(self) -> None:
        if self._session.connectivity is ConnectivityState.DISCONNECTED and self._active is not None:
            self._stale = True

    def _browsing(self) -> Browsing:
        state = self._state
        assert isinstance(state, Browsing)
        return state

    def _editing(self) -> Editing:
        state = self._state
        assert isinstance(state, Editing)
        return state

    def _set_banner(self, message: str, severity: str) -> None:
        self._banner = Banner(message=message, severity=severity)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change()


def truncate_cell(value: str, width: int) -> str:
    """Shorten ``value`` to ``width`` characters with a trailing ellipsis."""

    if len(value) <= width:
        return value
    return value[: max(0, width - 3)] + "..."


def _pick(items: Sequence[T], index: int) -> T | None:
    if 0 <= index < len(items):
        return items[index]
    return None


def _describe_failure(exc: BaseException) -> str:
    if isinstance(exc, SessionLost):
        return f"Connection lost: {exc}"
    if isinstance(exc, QueryExecutionError):
        return f"Query failed: {exc}"
    if isinstance(exc, PersistenceError):
        return f"Could not save: {exc}"
    return str(exc)


__all__ = [
    "Action",
    "Banner",
    "Browsing",
    "Editing",
    "LIST_MODES",
    "Navigation",
    "NavigationFrame",
    "NavigationState",
    "StackFrame",
    "ViewMode",
    "truncate_cell",
]
