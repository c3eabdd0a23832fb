import asyncio
import base64
import sys
from io import BytesIO
from pathlib import Path

from PIL import Image
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

sys.path.append(str(Path(__file__).resolve().parents[1]))

from browser_session import BrowserSession  # noqa: E402


def _png(color_fn) -> bytes:
    img = Image.new("RGB", (64, 48), (255, 255, 255))
    color_fn(img)
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class _Mouse:
    def __init__(self, calls) -> None:
        self.calls = calls

    async def click(self, x, y, button="left"):
        self.calls.append(("mouse.click", x, y, button))

    async def dblclick(self, x, y, button="left"):
        self.calls.append(("mouse.dblclick", x, y, button))

    async def move(self, x, y):
        self.calls.append(("mouse.move", x, y))

    async def wheel(self, dx, dy):
        self.calls.append(("mouse.wheel", dx, dy))


class _Keyboard:
    def __init__(self, calls) -> None:
        self.calls = calls

    async def type(self, text):
        self.calls.append(("keyboard.type", text))

    async def press(self, key):
        self.calls.append(("keyboard.press", key))


class _Page:
    def __init__(self, *, goto_error=None, screenshot_bytes=b"PNGDATA") -> None:
        self.calls: list[tuple] = []
        self.mouse = _Mouse(self.calls)
        self.keyboard = _Keyboard(self.calls)
        self.goto_error = goto_error
        self.screenshot_bytes = screenshot_bytes

    async def goto(self, url, wait_until="load", timeout=None):
        self.calls.append(("goto", url, wait_until, timeout))
        if self.goto_error is not None:
            raise self.goto_error

    async def screenshot(self, full_page=False):
        self.calls.append(("screenshot", full_page))
        return self.screenshot_bytes


class _Closable:
    def __init__(self, name, log, error=None) -> None:
        self.name = name
        self.log = log
        self.error = error

    async def close(self):
        self.log.append(self.name)
        if self.error is not None:
            raise self.error

    async def stop(self):
        self.log.append(self.name)


def _session(page: _Page) -> BrowserSession:
    session = BrowserSession(navigation_timeout_ms=1234)
    session._page = page
    return session


def test_pointer_primitives() -> None:
    page = _Page()
    session = _session(page)

    async def _run():
        await session.click(10, 20, "right")
        await session.double_click(3, 4)
        await session.scroll(100, 200, 0, 350)

    asyncio.run(_run())
    assert page.calls == [
        ("mouse.click", 10, 20, "right"),
        ("mouse.dblclick", 3, 4, "left"),
        ("mouse.move", 100, 200),
        ("mouse.wheel", 0, 350),
    ]


def test_keyboard_primitives_normalize_key_names() -> None:
    page = _Page()
    session = _session(page)

    async def _run():
        await session.type_text("hello")
        await session.press_keys(["ctrl+l", "enter", "a", "ESC"])

    asyncio.run(_run())
    assert page.calls == [
        ("keyboard.type", "hello"),
        ("keyboard.press", "Control+l"),
        ("keyboard.press", "Enter"),
        ("keyboard.press", "a"),
        ("keyboard.press", "Escape"),
    ]


def test_navigate_passes_wait_policy_and_timeout() -> None:
    page = _Page()
    asyncio.run(_session(page).navigate("https://example.com", "networkidle"))
    assert page.calls == [("goto", "https://example.com", "networkidle", 1234)]


def test_navigate_failure_is_logged_not_raised(capsys) -> None:
    page = _Page(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
    asyncio.run(_session(page).navigate("https://nope.invalid"))
    assert "failed to navigate to https://nope.invalid" in capsys.readouterr().out


def test_navigate_timeout_with_rendered_page(capsys) -> None:
    content = _png(lambda img: img.paste((0, 0, 0), (10, 10, 40, 30)))
    page = _Page(goto_error=PlaywrightTimeoutError("Timeout 1234ms exceeded"), screenshot_bytes=content)
    asyncio.run(_session(page).navigate("https://slow.example"))
    assert "continuing with partially loaded page" in capsys.readouterr().out


def test_navigate_timeout_with_blank_page(capsys) -> None:
    page = _Page(goto_error=PlaywrightTimeoutError("Timeout 1234ms exceeded"), screenshot_bytes=_png(lambda img: None))
    asyncio.run(_session(page).navigate("https://slow.example"))
    assert "timed out with a blank page" in capsys.readouterr().out


def test_capture_screenshot_is_full_page_base64() -> None:
    page = _Page(screenshot_bytes=b"\x89PNG-bytes")
    encoded = asyncio.run(_session(page).capture_screenshot())
    assert base64.b64decode(encoded) == b"\x89PNG-bytes"
    assert page.calls == [("screenshot", True)]


def test_close_releases_everything_once() -> None:
    released: list[str] = []
    session = _session(_Page())
    session._context = _Closable("context", released)
    session._browser = _Closable("browser", released)
    session._playwright = _Closable("playwright", released)

    asyncio.run(session.close())
    asyncio.run(session.close())

    assert released == ["context", "browser", "playwright"]


def test_primitives_after_close_raise() -> None:
    session = _session(_Page())
    asyncio.run(session.close())
    try:
        asyncio.run(session.click(1, 1))
    except RuntimeError as exc:
        assert "not open" in str(exc)
    else:
        raise AssertionError("expected RuntimeError")


def test_context_close_failure_still_closes_browser(capsys) -> None:
    released: list[str] = []
    session = _session(_Page())
    session._context = _Closable("context", released, error=PlaywrightError("Target closed"))
    session._browser = _Closable("browser", released)
    session._playwright = _Closable("playwright", released)

    asyncio.run(session.close())

    assert released == ["context", "browser", "playwright"]
    assert "error while closing context: Target closed" in capsys.readouterr().out
