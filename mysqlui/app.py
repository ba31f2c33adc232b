"""Textual application rendering the navigator."""

from __future__ import annotations

import logging
from typing import Iterable

from textual import events
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import Footer, Header

from .keymap import Command, resolve
from .models import Connection
from .navigation import Action, Navigation, NavigationFrame
from .providers import ConnectionSwitchProvider, RefreshProvider
from .registry import ConnectionRegistry
from .screens import ConnectionFormScreen, PasswordScreen
from .session import Session
from .widgets import BrowserView, EditorPanel, StatusBar

LOG = logging.getLogger(__name__)


class MysqluiApp(App[None]):
    """Terminal MySQL browser with a modal, vim-style navigation model."""

    TITLE = "mysqlui"
    COMMANDS = App.COMMANDS | {ConnectionSwitchProvider, RefreshProvider}
    CSS = """
    Screen {
        layout: vertical;
    }
    #main-column {
        layout: vertical;
        padding: 0 1;
        height: 1fr;
    }
    """

    BINDINGS = [
        ("ctrl+c", "quit", "Quit"),
        ("ctrl+r", "refresh", "Refresh"),
        ("ctrl+p", "command_palette", "Command Palette"),
    ]

    def __init__(
        self,
        navigation: Navigation,
        session: Session,
        registry: ConnectionRegistry,
        *,
        startup: tuple[str, str | None] | None = None,
        messages: Iterable[tuple[str, str]] = (),
    ) -> None:
        super().__init__()
        self._navigation = navigation
        self._session = session
        self._connection_registry = registry
        self._startup = startup
        self._pending_notifications: list[tuple[str, str]] = list(messages)
        self._browser: BrowserView | None = None
        self._editor: EditorPanel | None = None
        self._status_bar: StatusBar | None = None
        self._prompting_password = False
        navigation.set_listener(self._render_frame)

    def compose(self) -> ComposeResult:
        """Compose the root layout."""

        yield Header(show_clock=True)
        self._browser = BrowserView()
        self._editor = EditorPanel()
        self._editor.display = False
        yield Container(self._browser, self._editor, id="main-column")
        self._status_bar = StatusBar(self._session)
        yield self._status_bar
        yield Footer()

    async def on_mount(self) -> None:
        self._flush_pending_notifications()
        self._render_frame()
        if self._startup is not None:
            connection_id, database = self._startup
            self.run_worker(self._navigation.open_connection(connection_id, database), group="navigation")

    @property
    def navigation(self) -> Navigation:
        """Expose the navigator for tests and providers."""

        return self._navigation

    @property
    def registry(self) -> ConnectionRegistry:
        return self._connection_registry

    @property
    def startup(self) -> tuple[str, str | None] | None:
        """Connection id and database opened right after mount."""

        return self._startup

    @property
    def pending_notifications(self) -> tuple[tuple[str, str], ...]:
        return tuple(self._pending_notifications)

    def on_key(self, event: events.Key) -> None:
        if len(self.screen_stack) > 1:
            return
        frame = self._navigation.frame()
        if frame.editing and not frame.confirming and event.key == "enter":
            # Enter in the editor arrives as Input.Submitted.
            return
        resolved = resolve(
            frame.mode,
            event.key,
            columns_expanded=frame.columns_expanded,
            confirming=frame.confirming,
        )
        if resolved is None:
            return
        event.stop()
        event.prevent_default()
        if isinstance(resolved, Command):
            self._run_command(resolved)
        else:
            self.submit(resolved)

    def submit(self, action: Action) -> None:
        """Dispatch an action without blocking the UI loop."""

        self.run_worker(self._dispatch(action), group="navigation")

    def action_refresh(self) -> None:
        self.submit(Action.REFRESH)

    def open_connection(self, connection_id: str) -> None:
        self.run_worker(self._navigation.open_connection(connection_id), group="navigation")

    def on_editor_panel_buffer_changed(self, message: EditorPanel.BufferChanged) -> None:
        self._navigation.set_buffer(message.text)

    def on_editor_panel_submitted(self, message: EditorPanel.Submitted) -> None:
        self.submit(Action.EXECUTE)

    async def _dispatch(self, action: Action) -> None:
        if await self._navigation.dispatch(action):
            self.exit()

    def _run_command(self, command: Command) -> None:
        if command is Command.NEW_CONNECTION:
            self.push_screen(ConnectionFormScreen(), self._handle_form_result)
        elif command is Command.EDIT_CONNECTION:
            connection = self._navigation.selected_connection()
            if connection is None:
                self._safe_notify("No connection selected.", severity="warning")
                return
            self.push_screen(ConnectionFormScreen(connection), self._handle_form_result)

    def _handle_form_result(self, connection: Connection | None) -> None:
        if connection is None:
            return
        self._navigation.save_connection(connection)

    def _render_frame(self) -> None:
        if self._browser is None or self._editor is None or self._status_bar is None:
            return
        frame = self._navigation.frame()
        self._browser.display = not frame.editing
        self._editor.display = frame.editing
        if frame.editing:
            self._editor.show(frame)
        else:
            if self.focused is not None and self._editor in self.focused.ancestors:
                self.set_focus(None)
            self._browser.show(frame)
        self._status_bar.show(frame)
        self._maybe_prompt_password(frame)

    def _maybe_prompt_password(self, frame: NavigationFrame) -> None:
        connection = frame.password_request
        if connection is None or self._prompting_password:
            return
        self._prompting_password = True

        def _handle(password: str | None) -> None:
            self._prompting_password = False
            if password is None:
                self._navigation.dismiss_password_request()
                return
            self._navigation.provide_password(connection.id, password)
            self.submit(Action.FORWARD)

        self.push_screen(PasswordScreen(connection.name), _handle)

    def _safe_notify(self, message: str, *, severity: str = "information") -> None:
        if self.is_running:
            try:
                self.notify(message, severity=severity)
            except Exception:
                LOG.exception("Failed to display notification", extra={"notification": message})
        else:
            self._pending_notifications.append((message, severity))

    def _flush_pending_notifications(self) -> None:
        if not self._pending_notifications:
            return
        pending = list(self._pending_notifications)
        self._pending_notifications.clear()
        for message, severity in pending:
            try:
                self.notify(message, severity=severity)
            except Exception:
                LOG.exception("Failed to display queued notification", extra={"notification": message})


__all__ = ["MysqluiApp"]
