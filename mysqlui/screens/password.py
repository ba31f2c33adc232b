"""Password prompt shown when the server rejects a connection without one."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import ModalScreen
from textual.widgets import Input, Static


class PasswordScreen(ModalScreen[str | None]):
    """Modal screen asking for a connection password.

    Dismisses with the entered text, or ``None`` when cancelled. The password
    is only kept in memory for the current run.
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", priority=True),
    ]

    CSS = """
    PasswordScreen {
        align: center middle;
    }

    #password-dialog {
        width: 50;
        height: auto;
        border: solid $primary;
        background: $surface;
        padding: 1;
        border-title-color: $primary;
    }

    #password-description {
        margin-bottom: 1;
        color: $text-muted;
    }
    """

    def __init__(self, connection_name: str) -> None:
        super().__init__()
        self.connection_name = connection_name

    def compose(self) -> ComposeResult:
        dialog = Container(id="password-dialog")
        dialog.border_title = "Password Required"
        with dialog:
            yield Static(f"Enter password for '{self.connection_name}':", id="password-description", markup=False)
            yield Input(value="", id="password-input", password=True)

    def on_mount(self) -> None:
        self.query_one("#password-input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "password-input":
            event.stop()
            self.dismiss(event.value)

    def action_cancel(self) -> None:
        self.dismiss(None)


__all__ = ["PasswordScreen"]
