"""Key to action resolution for each view mode."""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from .navigation import Action, ViewMode


class Command(str, Enum):
    """Keys handled by the app itself rather than the navigator."""

    NEW_CONNECTION = "new_connection"
    EDIT_CONNECTION = "edit_connection"


BROWSING_KEYS: Mapping[str, Action | Command] = {
    "j": Action.MOVE_DOWN,
    "down": Action.MOVE_DOWN,
    "k": Action.MOVE_UP,
    "up": Action.MOVE_UP,
    "enter": Action.FORWARD,
    "l": Action.FORWARD,
    "right": Action.FORWARD,
    "h": Action.BACK,
    "left": Action.BACK,
    "escape": Action.BACK,
    "g": Action.TOP,
    "G": Action.BOTTOM,
    "home": Action.TOP,
    "end": Action.BOTTOM,
    "r": Action.REFRESH,
    "space": Action.TOGGLE_EXPANSION,
    "i": Action.ENTER_EDITOR,
    "1": Action.JUMP_CONNECTIONS,
    "2": Action.JUMP_DATABASES,
    "3": Action.JUMP_TABLES,
    "4": Action.JUMP_DATA,
    "?": Action.HELP,
    "question_mark": Action.HELP,
    "q": Action.QUIT,
}

MODE_KEYS: Mapping[ViewMode, Mapping[str, Action | Command]] = {
    ViewMode.CONNECTIONS: {
        "n": Command.NEW_CONNECTION,
        "e": Command.EDIT_CONNECTION,
        "d": Action.DELETE_CONNECTION,
    },
    ViewMode.DATABASES: {
        "f": Action.TOGGLE_FAVORITE,
    },
}

# In expanded data view the horizontal keys scroll columns instead of navigating.
EXPANDED_KEYS: Mapping[str, Action] = {
    "h": Action.SCROLL_LEFT,
    "left": Action.SCROLL_LEFT,
    "l": Action.SCROLL_RIGHT,
    "right": Action.SCROLL_RIGHT,
}

EDITOR_KEYS: Mapping[str, Action] = {
    "enter": Action.EXECUTE,
    "up": Action.HISTORY_UP,
    "down": Action.HISTORY_DOWN,
    "escape": Action.EXIT_EDITOR,
    "ctrl+q": Action.QUIT,
    "f1": Action.HELP,
}


def resolve(
    mode: ViewMode,
    key: str,
    *,
    columns_expanded: bool = False,
    confirming: bool = False,
) -> Action | Command | None:
    """Map a Textual key name to what it does in ``mode``.

    While a dangerous query awaits confirmation only ``y`` confirms; every
    other key cancels.
    """

    if mode is ViewMode.EDITOR:
        if confirming:
            if key in ("y", "Y"):
                return Action.CONFIRM_YES
            if key == "ctrl+q":
                return Action.QUIT
            return Action.CONFIRM_NO
        return EDITOR_KEYS.get(key)
    if mode is ViewMode.DATA and columns_expanded and key in EXPANDED_KEYS:
        return EXPANDED_KEYS[key]
    specific = MODE_KEYS.get(mode, {})
    if key in specific:
        return specific[key]
    return BROWSING_KEYS.get(key)


__all__ = ["BROWSING_KEYS", "Command", "EDITOR_KEYS", "resolve"]
