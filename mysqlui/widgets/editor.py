"""SQL editor panel: single-line buffer, inline results and status line."""

from __future__ import annotations

from rich.markup import escape
from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Container
from textual.message import Message
from textual.widgets import DataTable, Input, Static

from mysqlui.navigation import NavigationFrame

RESULT_ROW_LIMIT = 200


class EditorPanel(Container):
    """Mirrors the editor state of the navigator.

    Typed text is reported with :class:`EditorPanel.BufferChanged`; the app
    forwards it to the navigator, which stays the single owner of the buffer.
    """

    DEFAULT_CSS = """
    EditorPanel {
        layout: vertical;
        border: round $primary 40%;
        padding: 1 2;
        height: 1fr;
        background: $surface;
    }

    EditorPanel .panel-title {
        text-style: bold;
    }

    EditorPanel Input {
        border: heavy $primary;
    }

    EditorPanel #editor-pending {
        color: $warning;
    }

    EditorPanel #editor-status {
        color: $text-muted;
    }

    EditorPanel #editor-results {
        height: 1fr;
        margin-top: 1;
        border-top: solid $surface-darken-2;
    }
    """

    class BufferChanged(Message):
        def __init__(self, text: str) -> None:
            super().__init__()
            self.text = text

    class Submitted(Message):
        """Enter pressed in the buffer."""

    def __init__(self) -> None:
        super().__init__(id="editor")
        self._heading: Static | None = None
        self._pending: Static | None = None
        self._status: Static | None = None
        self._input: Input | None = None
        self._table: DataTable | None = None
        self._shown_result: object | None = None

    def compose(self) -> ComposeResult:
        yield Static("SQL Editor", id="editor-heading", classes="panel-title")
        yield Input(placeholder="SELECT * FROM customers LIMIT 10", id="editor-input")
        yield Static("", id="editor-pending")
        yield Static("enter run | up/down history | esc back", id="editor-status")
        yield DataTable(id="editor-results", zebra_stripes=True)

    async def on_mount(self) -> None:
        self._heading = self.query_one("#editor-heading", Static)
        self._pending = self.query_one("#editor-pending", Static)
        self._status = self.query_one("#editor-status", Static)
        self._input = self.query_one("#editor-input", Input)
        self._table = self.query_one("#editor-results", DataTable)
        self._table.cursor_type = "row"
        self._table.can_focus = False

    def show(self, frame: NavigationFrame) -> None:
        if not self._input or not self._heading or not self._pending or not self._status:
            return
        heading = "SQL Editor"
        if frame.history_position is not None:
            heading += f" (history {frame.history_position + 1}/{frame.history_size})"
        self._heading.update(heading)
        if self._input.value != frame.buffer:
            self._input.value = frame.buffer
            self._input.cursor_position = len(frame.buffer)
        locked = frame.busy or frame.confirming
        self._input.disabled = locked
        if not locked and self.display:
            self._input.focus()
        if frame.confirming:
            self._pending.update(escape(f"Run {frame.pending_sql!r}? [y/N]"))
        else:
            self._pending.update("")
        if frame.busy:
            self._status.update("Executing...")
        elif frame.result is not None:
            self._status.update(escape(f"{frame.result.status} ({frame.result.elapsed_ms} ms)"))
        else:
            self._status.update("enter run | up/down history | esc back")
        if frame.result is not self._shown_result:
            self._shown_result = frame.result
            self._render_result(frame)

    def on_input_changed(self, event: Input.Changed) -> None:
        event.stop()
        self.post_message(self.BufferChanged(event.value))

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self.post_message(self.Submitted())

    def _render_result(self, frame: NavigationFrame) -> None:
        table = self._table
        if table is None:
            return
        table.clear(columns=True)
        if not frame.columns:
            return
        table.add_columns(*(Text(label) for label in frame.columns))
        width = len(frame.columns)
        for row in frame.rows[:RESULT_ROW_LIMIT]:
            values = list(row[:width])
            if len(values) < width:
                values.extend([""] * (width - len(values)))
            table.add_row(*(Text(value) for value in values))


__all__ = ["EditorPanel"]
