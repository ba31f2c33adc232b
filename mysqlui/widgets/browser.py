"""Read-only list/table view for the four browsing modes."""

from __future__ import annotations

from rich.markup import escape
from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Static

from mysqlui.navigation import NavigationFrame, ViewMode

_HINTS = {
    ViewMode.CONNECTIONS: "enter connect | n new | e edit | d delete | i SQL editor | q quit",
    ViewMode.DATABASES: "enter open | h back | f favorite | r refresh | i SQL editor",
    ViewMode.TABLES: "enter show data | h back | r refresh | i SQL editor",
    ViewMode.DATA: "space expand | h back | r refresh | i SQL editor",
}


class BrowserView(Container):
    """Renders the current list and keeps the cursor on the navigator's selection.

    The table never takes focus; keys are routed through the app's keymap.
    """

    DEFAULT_CSS = """
    BrowserView {
        layout: vertical;
        border: round $primary 40%;
        padding: 0 1;
        height: 1fr;
        background: $surface;
    }

    BrowserView .panel-title {
        text-style: bold;
    }

    BrowserView #browser-hints {
        color: $text-muted;
    }

    BrowserView #browser-table {
        height: 1fr;
        margin-top: 1;
    }
    """

    def __init__(self) -> None:
        super().__init__(id="browser")
        self._title: Static | None = None
        self._hints: Static | None = None
        self._table: DataTable | None = None
        self._signature: tuple[object, ...] | None = None

    def compose(self) -> ComposeResult:
        yield Static("", id="browser-title", classes="panel-title")
        yield Static("", id="browser-hints")
        yield DataTable(id="browser-table", zebra_stripes=True)

    async def on_mount(self) -> None:
        self._title = self.query_one("#browser-title", Static)
        self._hints = self.query_one("#browser-hints", Static)
        self._table = self.query_one("#browser-table", DataTable)
        self._table.cursor_type = "row"
        self._table.can_focus = False

    def show(self, frame: NavigationFrame) -> None:
        if not self._table or not self._title or not self._hints:
            return
        self._title.update(escape(self.title_for(frame)))
        self._hints.update(_HINTS.get(frame.mode, ""))
        signature = (frame.mode, frame.columns, frame.rows)
        if signature != self._signature:
            self._signature = signature
            self._render_rows(frame)
        if frame.rows:
            self._table.move_cursor(row=min(frame.selection, len(frame.rows) - 1))

    @staticmethod
    def title_for(frame: NavigationFrame) -> str:
        title = " > ".join(frame.path)
        if frame.mode is ViewMode.DATA and frame.columns_expanded and frame.total_columns:
            first = frame.column_offset + 1
            last = frame.column_offset + len(frame.columns)
            title += f" [EXPANDED {first}-{last}/{frame.total_columns}]"
        if frame.stale:
            title += " (disconnected, press r to refresh)"
        return title

    def _render_rows(self, frame: NavigationFrame) -> None:
        table = self._table
        if table is None:
            return
        table.clear(columns=True)
        if not frame.columns:
            return
        table.add_columns(*(Text(label) for label in frame.columns))
        width = len(frame.columns)
        for row in frame.rows:
            values = list(row[:width])
            if len(values) < width:
                values.extend([""] * (width - len(values)))
            table.add_row(*(Text(value) for value in values))


__all__ = ["BrowserView"]
