"""Tests for the capability provider and the stand-in driver."""

import asyncio

import pytest

from automation.driver import (
    STAND_IN_CONTENT,
    DriverProvider,
    DriverUnavailable,
    StandInDriver,
)
from automation.models import ExecutionContext
from tests.fakes import ScriptedDriver


@pytest.mark.asyncio
async def test_stand_in_driver_is_a_no_op_session():
    browser = await StandInDriver().launch(headless=True)
    context = await browser.new_context()
    page = await context.new_page()

    await page.goto("https://www.union.gr/login")
    await page.fill("input[name='username']", "someone")
    await page.click("button[type='submit']")
    await page.wait_for_navigation()
    await page.wait_for_selector(".dashboard", timeout=1)
    await page.wait_for_timeout(2)

    assert await page.text_content(".invoice-number") == STAND_IN_CONTENT
    await page.close()
    await browser.close()


@pytest.mark.asyncio
async def test_trusted_provider_loads_real_driver_once():
    driver = ScriptedDriver()
    loads = 0

    async def loader():
        nonlocal loads
        loads += 1
        await asyncio.sleep(0)
        return driver

    provider = DriverProvider(ExecutionContext.TRUSTED, loader=loader)

    results = await asyncio.gather(*(provider.get_driver() for _ in range(5)))

    assert all(result is driver for result in results)
    assert loads == 1
    assert not provider.is_stand_in
    assert provider.unavailable_reason is None


@pytest.mark.asyncio
async def test_untrusted_provider_skips_the_loader():
    async def loader():
        raise AssertionError("loader must not run outside a trusted context")

    provider = DriverProvider(ExecutionContext.UNTRUSTED, loader=loader)

    driver = await provider.get_driver()

    assert isinstance(driver, StandInDriver)
    assert provider.is_stand_in
    assert provider.unavailable_reason == "automation unavailable in this context"


@pytest.mark.asyncio
async def test_loader_failure_falls_back_and_is_cached():
    attempts = 0

    async def loader():
        nonlocal attempts
        attempts += 1
        raise DriverUnavailable("Chromium is not installed. Run `playwright install chromium`.")

    provider = DriverProvider(ExecutionContext.TRUSTED, loader=loader)

    first = await provider.get_driver()
    second = await provider.get_driver()

    assert isinstance(first, StandInDriver)
    assert first is second
    assert attempts == 1
    assert "playwright install" in provider.unavailable_reason
