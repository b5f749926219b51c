from __future__ import annotations

import asyncio
from contextlib import AbstractAsyncContextManager
from typing import Awaitable, Callable, Optional, TypeVar

from .driver import Browser, Driver, Page

T = TypeVar("T")

# Seconds allowed for closing the browser once the task is over.
CLOSE_GRACE = 1.0


class SessionTimeout(TimeoutError):
    """Raised when a task exceeds its wall-clock budget."""

    def __init__(self, budget: float) -> None:
        super().__init__(f"task exceeded its {budget:g}s budget")
        self.budget = budget


class BrowserSession(AbstractAsyncContextManager["BrowserSession"]):
    """Browser, context and page owned by a single automation task."""

    def __init__(self, driver: Driver, *, headless: bool = True) -> None:
        self._driver = driver
        self._headless = headless
        self._browser: Optional[Browser] = None
        self._page: Optional[Page] = None
        self._closed = False
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "BrowserSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser page is not initialized yet.")
        return self._page

    @property
    def closed(self) -> bool:
        return self._closed

    async def open(self) -> None:
        if self._closed:
            raise RuntimeError("Session has already been closed.")
        self._browser = await self._driver.launch(headless=self._headless)
        context = await self._browser.new_context()
        self._page = await context.new_page()

    async def close(self) -> None:
        """Close page and browser. Later calls do nothing."""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            page, self._page = self._page, None
            browser, self._browser = self._browser, None
            try:
                if page is not None:
                    await page.close()
            finally:
                if browser is not None:
                    await browser.close()


async def with_session(
    driver: Driver,
    fn: Callable[[Page], Awaitable[T]],
    *,
    budget: Optional[float] = None,
    headless: bool = True,
    close_timeout: float = CLOSE_GRACE,
) -> T:
    """
    Run ``fn`` against a fresh page and always tear the browser down.

    The budget covers launching the browser as well as ``fn`` itself. When it
    runs out the in-flight step is cancelled, the session is closed and
    :class:`SessionTimeout` is raised. Teardown gets ``close_timeout`` more
    seconds; a close that fails or hangs is abandoned so it cannot replace
    what ``fn`` produced.
    """
    session = BrowserSession(driver, headless=headless)

    async def _run() -> T:
        await session.open()
        return await fn(session.page)

    try:
        if budget is None:
            return await _run()
        task = asyncio.ensure_future(_run())
        try:
            done, _ = await asyncio.wait({task}, timeout=budget)
        except BaseException:
            task.cancel()
            raise
        if task not in done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise SessionTimeout(budget)
        return task.result()
    finally:
        await _close_quietly(session, close_timeout)


async def _close_quietly(session: BrowserSession, timeout: float) -> None:
    """Close ``session`` within ``timeout``; teardown errors never replace the task's result."""
    closing = asyncio.ensure_future(session.close())
    closing.add_done_callback(_consume_result)
    done, _ = await asyncio.wait({closing}, timeout=timeout)
    if closing not in done:
        closing.cancel()


def _consume_result(future: "asyncio.Future[None]") -> None:
    if not future.cancelled():
        future.exception()
