from __future__ import annotations

from typing import Any, Protocol

from playwright.async_api import Error as PlaywrightError

from actions import (
    Action,
    ClickAction,
    DoubleClickAction,
    KeyPressAction,
    NavigateAction,
    ScreenshotAction,
    ScrollAction,
    TypeTextAction,
    UnknownAction,
    WaitAction,
)
from execution_common import log


class SessionPrimitives(Protocol):
    async def open(self) -> None: ...

    async def click(self, x: int, y: int, button: str = "left") -> None: ...

    async def double_click(self, x: int, y: int, button: str = "left") -> None: ...

    async def scroll(self, x: int, y: int, scroll_x: int, scroll_y: int) -> None: ...

    async def type_text(self, text: str) -> None: ...

    async def press_keys(self, keys: Any) -> None: ...

    async def wait(self, duration_ms: int) -> None: ...

    async def navigate(self, url: str, wait_until: str = "load") -> None: ...

    async def capture_screenshot(self) -> str: ...

    async def close(self) -> None: ...


def _shorten(text: str, limit: int = 40) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


async def dispatch_action(session: SessionPrimitives, action: Action) -> None:
    """Run ``action`` against ``session``. Never raises for recoverable failures."""
    try:
        await _dispatch(session, action)
    except PlaywrightError as exc:
        log(f"action {type(action).__name__} failed: {exc}")


async def _dispatch(session: SessionPrimitives, action: Action) -> None:
    if isinstance(action, ClickAction):
        log(f"click ({action.x}, {action.y}) button={action.button}")
        await session.click(action.x, action.y, action.button)

    elif isinstance(action, DoubleClickAction):
        log(f"double_click ({action.x}, {action.y}) button={action.button}")
        await session.double_click(action.x, action.y, action.button)

    elif isinstance(action, ScrollAction):
        log(f"scroll at ({action.x}, {action.y}) delta=({action.scroll_x}, {action.scroll_y})")
        await session.scroll(action.x, action.y, action.scroll_x, action.scroll_y)

    elif isinstance(action, TypeTextAction):
        log(f'type "{_shorten(action.text)}"')
        await session.type_text(action.text)

    elif isinstance(action, KeyPressAction):
        log(f"keypress {list(action.keys)}")
        await session.press_keys(action.keys)

    elif isinstance(action, WaitAction):
        log(f"wait {action.duration_ms}ms")
        await session.wait(action.duration_ms)

    elif isinstance(action, NavigateAction):
        if not isinstance(action.url, str) or not action.url.strip():
            log(f"missing or invalid URL in navigate action: {action.url!r}")
            return
        log(f"navigate {action.url} wait_until={action.wait_until}")
        await session.navigate(action.url, action.wait_until)

    elif isinstance(action, ScreenshotAction):
        # Every step ends with a capture anyway.
        log("screenshot (requested by model)")

    elif isinstance(action, UnknownAction):
        log(f"unknown action type: {action.kind!r} ({action.reason})")

    else:
        log(f"unhandled action object: {action!r}")
