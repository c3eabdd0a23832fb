"""Closed vocabulary of UI actions the computer-use model may request.

Every action the model sends arrives as a loosely-typed mapping (the
``action`` object of a ``computer_call`` output item). ``parse_action`` turns
it into exactly one of the frozen dataclasses below; anything it cannot
express, including known kinds with missing or mistyped parameters, becomes
an ``UnknownAction`` so the run can carry on.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from execution_common import DEFAULT_WAIT_MS


MOUSE_BUTTONS = ("left", "middle", "right")
# Wire names the model uses for buttons Playwright spells differently.
_BUTTON_ALIASES = {"wheel": "middle"}
WAIT_POLICIES = ("load", "domcontentloaded", "networkidle")
DEFAULT_WAIT_POLICY = "load"


@dataclass(frozen=True)
class ClickAction:
    x: int
    y: int
    button: str = "left"


@dataclass(frozen=True)
class DoubleClickAction:
    x: int
    y: int
    button: str = "left"


@dataclass(frozen=True)
class ScrollAction:
    x: int
    y: int
    scroll_x: int
    scroll_y: int


@dataclass(frozen=True)
class TypeTextAction:
    text: str


@dataclass(frozen=True)
class KeyPressAction:
    keys: tuple[str, ...]


@dataclass(frozen=True)
class WaitAction:
    duration_ms: int = DEFAULT_WAIT_MS


@dataclass(frozen=True)
class NavigateAction:
    # Not validated here: the dispatcher refuses anything but a non-empty str.
    url: Any
    wait_until: str = DEFAULT_WAIT_POLICY


@dataclass(frozen=True)
class ScreenshotAction:
    pass


@dataclass(frozen=True)
class UnknownAction:
    kind: str
    reason: str = "unrecognized action type"
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)


Action = Union[
    ClickAction,
    DoubleClickAction,
    ScrollAction,
    TypeTextAction,
    KeyPressAction,
    WaitAction,
    NavigateAction,
    ScreenshotAction,
    UnknownAction,
]


class _InvalidParams(ValueError):
    pass


def _coord(payload: Mapping[str, Any], name: str) -> int:
    value = payload.get(name)
    # bool is an int subclass but never a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _InvalidParams(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise _InvalidParams(f"{name} must be finite, got {value!r}")
    return int(value)


def _optional_int(payload: Mapping[str, Any], name: str, default: int) -> int:
    if payload.get(name) is None:
        return default
    return _coord(payload, name)


def _button(payload: Mapping[str, Any]) -> str:
    button = payload.get("button") or "left"
    button = _BUTTON_ALIASES.get(button, button) if isinstance(button, str) else button
    if button not in MOUSE_BUTTONS:
        raise _InvalidParams(f"unsupported mouse button {button!r}")
    return str(button)


def _parse_click(payload: Mapping[str, Any]) -> ClickAction:
    return ClickAction(_coord(payload, "x"), _coord(payload, "y"), _button(payload))


def _parse_double_click(payload: Mapping[str, Any]) -> DoubleClickAction:
    return DoubleClickAction(_coord(payload, "x"), _coord(payload, "y"), _button(payload))


def _parse_scroll(payload: Mapping[str, Any]) -> ScrollAction:
    return ScrollAction(
        x=_coord(payload, "x"),
        y=_coord(payload, "y"),
        scroll_x=_optional_int(payload, "scroll_x", 0),
        scroll_y=_optional_int(payload, "scroll_y", 0),
    )


def _parse_type(payload: Mapping[str, Any]) -> TypeTextAction:
    text = payload.get("text")
    if not isinstance(text, str):
        raise _InvalidParams(f"text must be a string, got {text!r}")
    return TypeTextAction(text)


def _parse_keypress(payload: Mapping[str, Any]) -> KeyPressAction:
    keys = payload.get("keys")
    if isinstance(keys, str):
        keys = [keys]
    if not isinstance(keys, (list, tuple)) or not all(isinstance(k, str) for k in keys):
        raise _InvalidParams(f"keys must be a list of key names, got {keys!r}")
    return KeyPressAction(tuple(keys))


def _parse_wait(payload: Mapping[str, Any]) -> WaitAction:
    for name in ("duration", "ms"):
        if payload.get(name) is not None:
            return WaitAction(max(0, _coord(payload, name)))
    return WaitAction()


def _parse_navigate(payload: Mapping[str, Any]) -> NavigateAction:
    wait_until = payload.get("wait_until")
    if wait_until not in WAIT_POLICIES:
        wait_until = DEFAULT_WAIT_POLICY
    return NavigateAction(url=payload.get("url"), wait_until=wait_until)


def _parse_screenshot(payload: Mapping[str, Any]) -> ScreenshotAction:
    return ScreenshotAction()


_PARSERS = {
    "click": _parse_click,
    "double_click": _parse_double_click,
    "scroll": _parse_scroll,
    "type": _parse_type,
    "type_text": _parse_type,
    "keypress": _parse_keypress,
    "key_press": _parse_keypress,
    "wait": _parse_wait,
    "navigate": _parse_navigate,
    "goto": _parse_navigate,
    "open_url": _parse_navigate,
    "screenshot": _parse_screenshot,
}


def parse_action(payload: Any) -> Action:
    """Build an ``Action`` from a wire payload. Never raises."""
    if hasattr(payload, "model_dump"):
        payload = payload.model_dump()
    if not isinstance(payload, Mapping):
        return UnknownAction(kind=type(payload).__name__, reason="action payload is not a mapping")

    kind = str(payload.get("type") or "").strip()
    parser = _PARSERS.get(kind)
    if parser is None:
        return UnknownAction(kind=kind, raw=dict(payload))
    try:
        return parser(payload)
    except _InvalidParams as exc:
        return UnknownAction(kind=kind, reason=str(exc), raw=dict(payload))


def action_kind(action: Action) -> str:
    if isinstance(action, UnknownAction):
        return action.kind or "unknown"
    return {
        ClickAction: "click",
        DoubleClickAction: "double_click",
        ScrollAction: "scroll",
        TypeTextAction: "type",
        KeyPressAction: "keypress",
        WaitAction: "wait",
        NavigateAction: "navigate",
        ScreenshotAction: "screenshot",
    }[type(action)]
