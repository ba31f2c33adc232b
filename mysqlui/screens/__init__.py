"""Modal screens."""

from __future__ import annotations

from .connection_form import ConnectionFormScreen
from .password import PasswordScreen

__all__ = ["ConnectionFormScreen", "PasswordScreen"]
