"""Status bar widget that mirrors session information."""

from __future__ import annotations

from typing import Callable

from rich.markup import escape
from textual.message import Message
from textual.widgets import Static

from mysqlui.navigation import Banner, NavigationFrame
from mysqlui.session import Session, SessionState

_SEVERITY_PREFIX = {
    "info": "i",
    "success": "+",
    "warning": "!",
    "error": "x",
}


class StatusBar(Static):
    """Compact status strip rendered above Textual's footer."""

    DEFAULT_CSS = """
    StatusBar {
        height: 2;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }

    StatusBar.-error {
        color: $error;
    }

    StatusBar.-warning {
        color: $warning;
    }
    """

    class SessionUpdated(Message):
        def __init__(self, state: SessionState) -> None:
            super().__init__()
            self.state = state

    def __init__(self, session: Session) -> None:
        super().__init__("", id="status-bar")
        self._session = session
        self._state = session.state
        self._frame: NavigationFrame | None = None
        self._unsubscribe: Callable[[], None] | None = None

    async def on_mount(self) -> None:
        self._unsubscribe = self._session.subscribe(self._handle_session_update)
        self._refresh_text()

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def show(self, frame: NavigationFrame) -> None:
        self._frame = frame
        self._refresh_text()

    def on_status_bar_session_updated(self, message: SessionUpdated) -> None:
        self._state = message.state
        self._refresh_text()

    def _handle_session_update(self, state: SessionState) -> None:
        # Session calls run on worker threads; post_message hands over to the UI loop.
        self.post_message(self.SessionUpdated(state))

    def _refresh_text(self) -> None:
        state = self._state
        parts: list[str] = []
        if state.connection is None:
            parts.append("Not connected")
        else:
            status = "Connected" if state.connected else "Disconnected"
            latency = f" ({state.latency_ms} ms)" if state.latency_ms is not None and state.connected else ""
            parts.append(f"{state.connection.label}: {status}{latency}")
            if state.database:
                parts.append(f"DB: {state.database}")
            if state.table:
                parts.append(f"Table: {state.table}")
            if state.reconnects:
                parts.append(f"Reconnects: {state.reconnects}")
        frame = self._frame
        if frame is not None:
            parts.append(f"Mode: {frame.mode.title}")
            if frame.busy:
                parts.append("Working...")
        line = " | ".join(parts)
        banner = frame.banner if frame is not None else None
        self.set_class(banner is not None and banner.severity == "error", "-error")
        self.set_class(banner is not None and banner.severity == "warning", "-warning")
        self.update(escape(f"{line}\n{_format_banner(banner)}"))


def _format_banner(banner: Banner | None) -> str:
    if banner is None:
        return ""
    prefix = _SEVERITY_PREFIX.get(banner.severity, "-")
    return f"[{prefix}] {banner.message}"


__all__ = ["StatusBar"]
