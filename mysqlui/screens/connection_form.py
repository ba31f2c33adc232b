"""Add/edit connection form."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Checkbox, Input, Static

from mysqlui.models import Connection

_FIELDS = (
    ("name", "Name", "local"),
    ("host", "Host", "localhost"),
    ("port", "Port", "3306"),
    ("username", "Username", "root"),
    ("password", "Password", "optional, kept for this run only"),
    ("default_database", "Default database", "optional"),
)


def build_connection(values: dict[str, str], *, use_ssl: bool, existing: Connection | None = None) -> Connection:
    """Validate raw form values into a Connection; raises ``ValueError``."""

    name = values.get("name", "").strip()
    if not name:
        raise ValueError("Name is required")
    username = values.get("username", "").strip()
    if not username:
        raise ValueError("Username is required")
    port_text = values.get("port", "").strip() or "3306"
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Port must be a number, got {port_text!r}") from None
    if not 0 < port < 65536:
        raise ValueError("Port must be between 1 and 65535")
    fields = {
        "name": name,
        "host": values.get("host", "").strip() or "localhost",
        "port": port,
        "username": username,
        "password": values.get("password", ""),
        "default_database": values.get("default_database", "").strip() or None,
        "use_ssl": use_ssl,
    }
    if existing is not None:
        if not fields["password"]:
            fields["password"] = existing.password
        return existing.model_copy(update=fields)
    return Connection(**fields)


class ConnectionFormScreen(ModalScreen[Connection | None]):
    """Modal screen for adding or editing a saved connection."""

    AUTO_FOCUS = "#field-name"

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("ctrl+s", "save", "Save", priority=True),
    ]

    CSS = """
    ConnectionFormScreen {
        align: center middle;
    }

    #connection-dialog {
        width: 62;
        height: auto;
        border: solid $primary;
        background: $surface;
        padding: 1;
        border-title-color: $primary;
        border-title-style: bold;
    }

    #connection-dialog .field-label {
        color: $text-muted;
        margin-top: 1;
    }

    #connection-error {
        color: $error;
        height: auto;
    }

    #connection-actions {
        height: auto;
        margin-top: 1;
    }

    #connection-actions Button {
        margin-right: 1;
    }
    """

    def __init__(self, connection: Connection | None = None) -> None:
        super().__init__()
        self._existing = connection

    def compose(self) -> ComposeResult:
        dialog = Container(id="connection-dialog")
        dialog.border_title = "Edit Connection" if self._existing else "New Connection"
        with dialog:
            for key, label, placeholder in _FIELDS:
                yield Static(label, classes="field-label")
                yield Input(
                    value=self._initial_value(key),
                    placeholder=placeholder,
                    id=f"field-{key}",
                    password=key == "password",
                )
            yield Checkbox("Use SSL", value=self._existing.use_ssl if self._existing else True, id="field-ssl")
            yield Static("", id="connection-error", markup=False)
            with Horizontal(id="connection-actions"):
                yield Button("Save", id="connection-save", variant="primary")
                yield Button("Cancel", id="connection-cancel")

    def action_save(self) -> None:
        values = {key: self.query_one(f"#field-{key}", Input).value for key, _, _ in _FIELDS}
        use_ssl = self.query_one("#field-ssl", Checkbox).value
        try:
            connection = build_connection(values, use_ssl=use_ssl, existing=self._existing)
        except ValueError as exc:
            self.query_one("#connection-error", Static).update(str(exc))
            return
        self.dismiss(connection)

    def action_cancel(self) -> None:
        self.dismiss(None)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self.action_save()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        if event.button.id == "connection-save":
            self.action_save()
        elif event.button.id == "connection-cancel":
            self.action_cancel()

    def _initial_value(self, key: str) -> str:
        existing = self._existing
        if existing is None:
            return ""
        if key == "port":
            return str(existing.port)
        if key == "password":
            return ""
        value = getattr(existing, key)
        return "" if value is None else str(value)


__all__ = ["ConnectionFormScreen", "build_connection"]
