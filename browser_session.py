from __future__ import annotations

import asyncio
import base64
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from execution_common import (
    CHROMIUM_ARGS,
    DISPLAY_HEIGHT,
    DISPLAY_WIDTH,
    NAVIGATION_TIMEOUT_MS,
    _normalize_key,
    _screenshot_is_single_color,
    log,
)


class BrowserSession:
    """One sandboxed Chromium page, owned by a single automation run.

    The page keeps a fixed 1024x768 logical viewport so model coordinates map
    one-to-one onto it. ``close()`` is idempotent; ``open()`` releases whatever
    it already acquired before re-raising a launch failure.
    """

    def __init__(self, *, headless: bool = True, navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS) -> None:
        self.headless = headless
        self.navigation_timeout_ms = navigation_timeout_ms

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._closed = False

    async def __aenter__(self) -> BrowserSession:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("browser session is not open")
        return self._page

    async def open(self) -> None:
        if self._closed:
            raise RuntimeError("browser session already closed")
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                chromium_sandbox=True,
                env={},
                args=list(CHROMIUM_ARGS),
            )
            self._context = await self._browser.new_context(
                viewport={"width": DISPLAY_WIDTH, "height": DISPLAY_HEIGHT},
                device_scale_factor=1,
                accept_downloads=False,
            )
            self._page = await self._context.new_page()
        except BaseException:
            await self.close()
            raise
        log(f"launched sandboxed browser ({DISPLAY_WIDTH}x{DISPLAY_HEIGHT}, headless={self.headless})")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        context, browser, playwright = self._context, self._browser, self._playwright
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
        try:
            for name, resource in (("context", context), ("browser", browser)):
                if resource is None:
                    continue
                try:
                    await resource.close()
                except PlaywrightError as exc:
                    log(f"error while closing {name}: {exc}")
        finally:
            if playwright is not None:
                await playwright.stop()
        log("browser closed")

    async def click(self, x: int, y: int, button: str = "left") -> None:
        await self.page.mouse.click(x, y, button=button)

    async def double_click(self, x: int, y: int, button: str = "left") -> None:
        await self.page.mouse.dblclick(x, y, button=button)

    async def scroll(self, x: int, y: int, scroll_x: int, scroll_y: int) -> None:
        await self.page.mouse.move(x, y)
        await self.page.mouse.wheel(scroll_x, scroll_y)

    async def type_text(self, text: str) -> None:
        await self.page.keyboard.type(text)

    async def press_keys(self, keys: list[str] | tuple[str, ...]) -> None:
        for key in keys:
            await self.page.keyboard.press(_normalize_key(key))

    async def wait(self, duration_ms: int) -> None:
        await asyncio.sleep(max(0, duration_ms) / 1000)

    async def navigate(self, url: str, wait_until: str = "load") -> None:
        try:
            await self.page.goto(url, wait_until=wait_until, timeout=self.navigation_timeout_ms)
        except PlaywrightTimeoutError as exc:
            if await self._page_rendered():
                log(f"navigation to {url} timed out waiting for '{wait_until}'; continuing with partially loaded page")
            else:
                log(f"navigation to {url} timed out with a blank page: {exc}")
        except PlaywrightError as exc:
            log(f"failed to navigate to {url}: {exc}")

    async def capture_screenshot(self) -> str:
        """Full-page PNG of the current state as a base64 string."""
        raw = await self.page.screenshot(full_page=True)
        return base64.b64encode(raw).decode("ascii")

    async def _page_rendered(self) -> bool:
        try:
            png_bytes = await self.page.screenshot()
        except PlaywrightError:
            return False
        return not _screenshot_is_single_color(png_bytes)


def screenshot_data_url(screenshot_b64: str) -> str:
    return f"data:image/png;base64,{screenshot_b64}"
