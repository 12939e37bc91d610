from __future__ import annotations

from enum import Enum
from typing import Mapping, Optional


class Action(Enum):
    MOVE_UP = "move_up"
    MOVE_DOWN = "move_down"
    ENTER = "enter"
    GO_UP = "go_up"
    TRANSFER = "transfer"
    DELETE = "delete"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    SWITCH = "switch"
    REFRESH = "refresh"


DEFAULT_KEYMAP: dict[str, Action] = {
    "up": Action.MOVE_UP,
    "k": Action.MOVE_UP,
    "down": Action.MOVE_DOWN,
    "j": Action.MOVE_DOWN,
    "enter": Action.ENTER,
    "right": Action.ENTER,
    "l": Action.ENTER,
    "backspace": Action.GO_UP,
    "left": Action.GO_UP,
    "h": Action.GO_UP,
    "d": Action.TRANSFER,
    "x": Action.DELETE,
    "delete": Action.DELETE,
    "y": Action.CONFIRM,
    "n": Action.CANCEL,
    "tab": Action.SWITCH,
    "s": Action.SWITCH,
    "r": Action.REFRESH,
}


def build_keymap(overrides: Optional[Mapping[str, str]] = None) -> dict[str, Action]:
    """Default bindings with ``{"key": "action_name"}`` overrides applied.

    Unknown action names are ignored.
    """
    keymap = dict(DEFAULT_KEYMAP)
    if not overrides:
        return keymap
    by_value = {action.value: action for action in Action}
    for key, name in overrides.items():
        action = by_value.get(str(name).strip().lower())
        if action is None or not isinstance(key, str) or not key:
            continue
        keymap[key] = action
    return keymap


def keys_for(keymap: Mapping[str, Action], action: Action) -> list[str]:
    return [key for key, bound in keymap.items() if bound is action]
