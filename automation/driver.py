from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Protocol

from .models import ExecutionContext


# What the stand-in page reports for any text lookup. Never a valid confirmation.
STAND_IN_CONTENT = "MOCK-CONTENT"


class DriverUnavailable(RuntimeError):
    """Raised by a driver loader when real browser automation cannot run here."""


class Page(Protocol):
    """Page operations the task scripts rely on. Durations are in seconds."""

    async def goto(self, url: str) -> None: ...

    async def fill(self, selector: str, value: str) -> None: ...

    async def click(self, selector: str) -> None: ...

    async def wait_for_navigation(self) -> None: ...

    async def wait_for_selector(self, selector: str, *, timeout: Optional[float] = None) -> None: ...

    async def text_content(self, selector: str) -> Optional[str]: ...

    async def wait_for_timeout(self, seconds: float) -> None: ...

    async def close(self) -> None: ...


class Context(Protocol):
    async def new_page(self) -> Page: ...


class Browser(Protocol):
    async def new_context(self) -> Context: ...

    async def close(self) -> None: ...


class Driver(Protocol):
    async def launch(self, *, headless: bool = True) -> Browser: ...


class StandInPage:
    async def goto(self, url: str) -> None:
        return None

    async def fill(self, selector: str, value: str) -> None:
        return None

    async def click(self, selector: str) -> None:
        return None

    async def wait_for_navigation(self) -> None:
        return None

    async def wait_for_selector(self, selector: str, *, timeout: Optional[float] = None) -> None:
        return None

    async def text_content(self, selector: str) -> Optional[str]:
        return STAND_IN_CONTENT

    async def wait_for_timeout(self, seconds: float) -> None:
        return None

    async def close(self) -> None:
        return None


class StandInContext:
    async def new_page(self) -> StandInPage:
        return StandInPage()


class StandInBrowser:
    async def new_context(self) -> StandInContext:
        return StandInContext()

    async def close(self) -> None:
        return None


class StandInDriver:
    """
    Interface-compatible driver used when real automation cannot run.

    Every call succeeds immediately, so scripts run unchanged and end up
    rejecting the sentinel text instead of reporting a confirmation.
    """

    async def launch(self, *, headless: bool = True) -> StandInBrowser:
        return StandInBrowser()


DriverLoader = Callable[[], Awaitable[Driver]]


async def load_playwright_driver() -> Driver:
    """Import the Playwright-backed driver and make sure Chromium is installed."""
    try:
        from .browser import PlaywrightDriver
    except ImportError as exc:
        raise DriverUnavailable(f"Playwright is not installed: {exc}") from exc

    driver = PlaywrightDriver()
    await driver.probe()
    return driver


class DriverProvider:
    """
    Resolve, once, which driver this process can use.

    The real driver is only attempted in a trusted context; any loader
    failure falls back to :class:`StandInDriver`. The choice is cached
    because the capability does not change while the process runs.
    """

    def __init__(
        self,
        context: ExecutionContext,
        *,
        loader: Optional[DriverLoader] = None,
    ) -> None:
        self._context = context
        self._loader = loader or load_playwright_driver
        self._driver: Optional[Driver] = None
        self._stand_in = False
        self._unavailable_reason: Optional[str] = None
        self._lock: Optional[asyncio.Lock] = None

    @property
    def is_stand_in(self) -> bool:
        return self._stand_in

    @property
    def unavailable_reason(self) -> Optional[str]:
        """Why the real driver was not picked, once resolved."""
        return self._unavailable_reason

    async def get_driver(self) -> Driver:
        if self._driver is not None:
            return self._driver
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            if self._driver is None:
                self._driver = await self._load()
        return self._driver

    async def _load(self) -> Driver:
        if self._context is not ExecutionContext.TRUSTED:
            self._stand_in = True
            self._unavailable_reason = "automation unavailable in this context"
            return StandInDriver()
        try:
            driver = await self._loader()
        except Exception as exc:
            self._stand_in = True
            self._unavailable_reason = str(exc) or exc.__class__.__name__
            return StandInDriver()
        self._stand_in = False
        return driver
