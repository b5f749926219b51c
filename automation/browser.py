from __future__ import annotations

import asyncio
import functools
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .driver import DriverUnavailable

T = TypeVar("T")


def _translate_timeouts(method: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Surface Playwright timeouts as the builtin ``TimeoutError``."""

    @functools.wraps(method)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await method(*args, **kwargs)
        except PlaywrightTimeoutError as exc:
            raise TimeoutError(exc.message) from exc

    return wrapper


class PlaywrightPage:
    """Chromium page with the waiting behaviour the task scripts expect."""

    def __init__(self, page: Page, *, timeout: float) -> None:
        self._page = page
        self._timeout = timeout
        self._page.set_default_timeout(timeout * 1000)

    @_translate_timeouts
    async def goto(self, url: str) -> None:
        """Navigate to ``url`` and wait until the network is idle."""
        await self._page.goto(url, wait_until="commit")
        await self._page.wait_for_load_state("networkidle")

    @_translate_timeouts
    async def wait_for_selector(self, selector: str, *, timeout: Optional[float] = None) -> None:
        await self._page.wait_for_selector(selector, timeout=(timeout or self._timeout) * 1000)

    @_translate_timeouts
    async def click(self, selector: str) -> None:
        """Click on the specified selector once it is available."""
        await self.wait_for_selector(selector)
        await self._page.click(selector)

    @_translate_timeouts
    async def fill(self, selector: str, value: str) -> None:
        await self.wait_for_selector(selector)
        await self._page.fill(selector, value)

    @_translate_timeouts
    async def wait_for_navigation(self) -> None:
        await self._page.wait_for_load_state("networkidle")

    @_translate_timeouts
    async def text_content(self, selector: str) -> Optional[str]:
        return await self._page.text_content(selector)

    async def wait_for_timeout(self, seconds: float) -> None:
        await self._page.wait_for_timeout(seconds * 1000)

    async def close(self) -> None:
        await self._page.close()


class PlaywrightContext:
    def __init__(self, context: BrowserContext, *, timeout: float) -> None:
        self._context = context
        self._timeout = timeout

    async def new_page(self) -> PlaywrightPage:
        page = await self._context.new_page()
        return PlaywrightPage(page, timeout=self._timeout)


class PlaywrightBrowser:
    """Own a Chromium instance together with the Playwright server behind it."""

    def __init__(self, playwright: Playwright, browser: Browser, *, timeout: float) -> None:
        self._playwright: Optional[Playwright] = playwright
        self._browser: Optional[Browser] = browser
        self._timeout = timeout
        self._lock = asyncio.Lock()

    async def new_context(self) -> PlaywrightContext:
        if self._browser is None:
            raise RuntimeError("Browser is already closed.")
        context = await self._browser.new_context(
            ignore_https_errors=True,
            accept_downloads=True,
        )
        return PlaywrightContext(context, timeout=self._timeout)

    async def close(self) -> None:
        """Close the browser (and every context it owns), then stop Playwright."""
        async with self._lock:
            try:
                if self._browser is not None:
                    await self._browser.close()
                    self._browser = None
            finally:
                if self._playwright is not None:
                    await self._playwright.stop()
                    self._playwright = None


class PlaywrightDriver:
    """Real automation driver backed by headless Chromium."""

    def __init__(self, *, timeout: float = 30.0) -> None:
        self._timeout = timeout

    async def probe(self) -> None:
        """Fail with :class:`DriverUnavailable` when Chromium is not installed."""
        try:
            playwright = await async_playwright().start()
        except PlaywrightError as exc:
            raise DriverUnavailable(f"Playwright could not start: {exc.message}") from exc
        try:
            executable = playwright.chromium.executable_path
        finally:
            await playwright.stop()
        if not executable or not Path(executable).exists():
            raise DriverUnavailable(
                "Chromium is not installed. Run `playwright install chromium`."
            )

    async def launch(self, *, headless: bool = True) -> PlaywrightBrowser:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(headless=headless)
        except BaseException:
            await playwright.stop()
            raise
        return PlaywrightBrowser(playwright, browser, timeout=self._timeout)
