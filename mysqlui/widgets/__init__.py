"""Widget library for the Textual UI."""

from __future__ import annotations

from .browser import BrowserView
from .editor import EditorPanel
from .status_bar import StatusBar

__all__ = ["BrowserView", "EditorPanel", "StatusBar"]
