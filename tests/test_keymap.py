"""Tests for key resolution."""

from __future__ import annotations

import pytest

from mysqlui.keymap import Command, resolve
from mysqlui.navigation import Action, ViewMode


@pytest.mark.parametrize(
    ("key", "action"),
    [
        ("j", Action.MOVE_DOWN),
        ("k", Action.MOVE_UP),
        ("enter", Action.FORWARD),
        ("l", Action.FORWARD),
        ("h", Action.BACK),
        ("escape", Action.BACK),
        ("G", Action.BOTTOM),
        ("r", Action.REFRESH),
        ("space", Action.TOGGLE_EXPANSION),
        ("i", Action.ENTER_EDITOR),
        ("2", Action.JUMP_DATABASES),
        ("q", Action.QUIT),
    ],
)
def test_browsing_keys(key: str, action: Action) -> None:
    assert resolve(ViewMode.TABLES, key) is action


def test_mode_specific_keys() -> None:
    assert resolve(ViewMode.CONNECTIONS, "n") is Command.NEW_CONNECTION
    assert resolve(ViewMode.CONNECTIONS, "e") is Command.EDIT_CONNECTION
    assert resolve(ViewMode.CONNECTIONS, "d") is Action.DELETE_CONNECTION
    assert resolve(ViewMode.DATABASES, "f") is Action.TOGGLE_FAVORITE
    assert resolve(ViewMode.TABLES, "f") is None
    assert resolve(ViewMode.TABLES, "n") is None


def test_expanded_data_view_scrolls_horizontally() -> None:
    assert resolve(ViewMode.DATA, "l", columns_expanded=True) is Action.SCROLL_RIGHT
    assert resolve(ViewMode.DATA, "left", columns_expanded=True) is Action.SCROLL_LEFT
    assert resolve(ViewMode.DATA, "escape", columns_expanded=True) is Action.BACK
    assert resolve(ViewMode.DATA, "h") is Action.BACK


def test_editor_keys() -> None:
    assert resolve(ViewMode.EDITOR, "enter") is Action.EXECUTE
    assert resolve(ViewMode.EDITOR, "up") is Action.HISTORY_UP
    assert resolve(ViewMode.EDITOR, "escape") is Action.EXIT_EDITOR
    assert resolve(ViewMode.EDITOR, "ctrl+q") is Action.QUIT
    assert resolve(ViewMode.EDITOR, "q") is None


def test_confirmation_treats_other_keys_as_cancel() -> None:
    assert resolve(ViewMode.EDITOR, "y", confirming=True) is Action.CONFIRM_YES
    assert resolve(ViewMode.EDITOR, "Y", confirming=True) is Action.CONFIRM_YES
    assert resolve(ViewMode.EDITOR, "n", confirming=True) is Action.CONFIRM_NO
    assert resolve(ViewMode.EDITOR, "enter", confirming=True) is Action.CONFIRM_NO
    assert resolve(ViewMode.EDITOR, "ctrl+q", confirming=True) is Action.QUIT
