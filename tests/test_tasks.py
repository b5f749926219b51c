"""Tests for AutomationRunner - the caller contract of the automation core."""

import asyncio
import dataclasses
from datetime import date
from decimal import Decimal

import pytest

from automation.config import AutomationSettings
from automation.driver import DriverProvider
from automation.models import (
    Credentials,
    ExecutionContext,
    Failure,
    InvoiceDraft,
    LineItem,
    ReservationDraft,
    Success,
    TargetPortal,
)
from automation.session import CLOSE_GRACE
from automation.tasks import AutomationRunner
from tests.fakes import INVOICE, PASSWORD, RESERVATION, USERNAME, ScriptedDriver, SpyProvider


def make_invoice() -> InvoiceDraft:
    return InvoiceDraft(
        customer_name="Harrods",
        items=[LineItem(description="Service", quantity=1, unit_price=Decimal("100"))],
    )


def make_reservation() -> ReservationDraft:
    return ReservationDraft(
        guest_name="Jane Smith",
        date=date(2024, 6, 15),
        time="19:30",
        guests=4,
    )


@pytest.mark.asyncio
async def test_invoice_success_scenario(settings):
    driver = ScriptedDriver(texts={INVOICE.confirmation_id: "UNI-2024-001"})
    runner = AutomationRunner(settings, provider=SpyProvider(driver))
    draft = make_invoice()

    outcome = await runner.run_automated_task(TargetPortal.INVOICING, draft)

    assert isinstance(outcome, Success)
    assert outcome.confirmation_id == "UNI-2024-001"
    assert draft.outcome == outcome
    assert driver.browser_closes == 1


@pytest.mark.asyncio
async def test_reservation_success_reports_assigned_table(settings):
    driver = ScriptedDriver(
        texts={
            RESERVATION.confirmation_id: " RSV-8812 ",
            RESERVATION.table_number: "T14",
        }
    )
    runner = AutomationRunner(settings, provider=SpyProvider(driver))

    outcome = await runner.run_automated_task(TargetPortal.RESERVATION, make_reservation())

    assert outcome == Success(confirmation_id="RSV-8812", extra={"table": "T14"})


@pytest.mark.asyncio
@pytest.mark.parametrize("portal,draft_factory", [
    (TargetPortal.INVOICING, make_invoice),
    (TargetPortal.RESERVATION, make_reservation),
])
async def test_untrusted_context_never_requests_a_driver(settings, portal, draft_factory):
    untrusted = dataclasses.replace(settings, execution_context=ExecutionContext.UNTRUSTED)
    provider = SpyProvider(ScriptedDriver())
    runner = AutomationRunner(untrusted, provider=provider)

    outcome = await runner.run_automated_task(portal, draft_factory())

    assert outcome == Failure(reason="automation unavailable in this context", stage="context")
    assert provider.requests == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("explicit", [
    None,
    Credentials(username="", password="pw"),
    Credentials(username="user", password=""),
])
async def test_missing_credentials_fail_at_login(explicit):
    provider = SpyProvider(ScriptedDriver())
    runner = AutomationRunner(AutomationSettings(), provider=provider)

    outcome = await runner.run_automated_task(TargetPortal.INVOICING, make_invoice(), explicit)

    assert outcome == Failure(reason="missing credentials", stage="login")
    assert provider.requests == 0


@pytest.mark.asyncio
async def test_explicit_credentials_are_typed_into_the_portal(settings):
    driver = ScriptedDriver(texts={INVOICE.confirmation_id: "UNI-1"})
    runner = AutomationRunner(settings, provider=SpyProvider(driver))

    await runner.run_automated_task(
        TargetPortal.INVOICING,
        make_invoice(),
        Credentials(username="override", password="pw"),
    )

    assert driver.filled[INVOICE.username_field] == "override"
    assert driver.filled[INVOICE.password_field] == "pw"


@pytest.mark.asyncio
@pytest.mark.parametrize("portal,draft_factory", [
    (TargetPortal.INVOICING, make_invoice),
    (TargetPortal.RESERVATION, make_reservation),
])
async def test_stand_in_driver_never_reports_success(settings, portal, draft_factory):
    async def missing_playwright():
        raise ImportError("No module named 'playwright'")

    provider = DriverProvider(ExecutionContext.TRUSTED, loader=missing_playwright)
    runner = AutomationRunner(settings, provider=provider)

    outcome = await runner.run_automated_task(portal, draft_factory())

    assert outcome == Failure(reason="no confirmation received", stage="confirm")
    assert provider.is_stand_in


@pytest.mark.asyncio
@pytest.mark.parametrize("stage,driver_kwargs", [
    ("navigate", {"fail_on": {INVOICE.login_url: RuntimeError("net::ERR_NAME_NOT_RESOLVED")}}),
    ("login", {"fail_on": {INVOICE.username_field: RuntimeError("element detached")}}),
    ("fill", {"fail_on": {INVOICE.customer: RuntimeError("input is disabled")}}),
    ("submit", {"fail_on": {INVOICE.submit_create: RuntimeError("button not found")}}),
    ("confirm", {"present": {INVOICE.dashboard_marker}}),
])
async def test_session_closed_exactly_once_whatever_step_fails(settings, stage, driver_kwargs):
    driver = ScriptedDriver(**driver_kwargs)
    runner = AutomationRunner(settings, provider=SpyProvider(driver))

    outcome = await runner.run_automated_task(TargetPortal.INVOICING, make_invoice())

    assert isinstance(outcome, Failure)
    assert outcome.stage == stage
    assert driver.browser_closes == 1
    assert driver.page_closes == 1


@pytest.mark.asyncio
async def test_reservation_login_rejected(settings):
    driver = ScriptedDriver(present={RESERVATION.error_marker, RESERVATION.confirmation_marker})
    runner = AutomationRunner(settings, provider=SpyProvider(driver))

    outcome = await runner.run_automated_task(TargetPortal.RESERVATION, make_reservation())

    assert outcome == Failure(reason="portal rejected the credentials", stage="login")
    assert RESERVATION.submit_create not in driver.targets("click")


@pytest.mark.asyncio
async def test_hanging_step_times_out_within_budget(settings):
    budget = 0.3
    tight = dataclasses.replace(settings, task_budget=budget)
    driver = ScriptedDriver(hang_on={INVOICE.submit_create})
    runner = AutomationRunner(tight, provider=SpyProvider(driver))
    loop = asyncio.get_running_loop()

    started = loop.time()
    outcome = await runner.run_automated_task(TargetPortal.INVOICING, make_invoice())
    elapsed = loop.time() - started

    assert outcome == Failure(reason="timeout", stage="submit")
    assert elapsed < budget + 0.5
    assert driver.browser_closes == 1


@pytest.mark.asyncio
async def test_failure_reasons_never_contain_credentials(settings):
    driver = ScriptedDriver(
        fail_on={INVOICE.password_field: RuntimeError(f"cannot type {PASSWORD} for {USERNAME}")}
    )
    runner = AutomationRunner(settings, provider=SpyProvider(driver))

    outcome = await runner.run_automated_task(TargetPortal.INVOICING, make_invoice())

    assert outcome.stage == "login"
    assert PASSWORD not in outcome.reason
    assert USERNAME not in outcome.reason


@pytest.mark.asyncio
async def test_unexpected_launch_error_becomes_unknown_failure(settings):
    class BrokenDriver:
        async def launch(self, *, headless=True):
            raise OSError("browser crashed on start")

    runner = AutomationRunner(settings, provider=SpyProvider(BrokenDriver()))

    outcome = await runner.run_automated_task(TargetPortal.INVOICING, make_invoice())

    assert outcome == Failure(reason="browser crashed on start", stage="unknown")


@pytest.mark.asyncio
async def test_draft_for_the_wrong_portal_is_rejected(settings):
    driver = ScriptedDriver()
    runner = AutomationRunner(settings, provider=SpyProvider(driver))

    outcome = await runner.run_automated_task(TargetPortal.INVOICING, make_reservation())

    assert isinstance(outcome, Failure)
    assert outcome.stage == "fill"
    assert driver.browser_closes == 1


@pytest.mark.asyncio
async def test_concurrent_tasks_use_separate_sessions(settings):
    driver = ScriptedDriver(
        texts={
            INVOICE.confirmation_id: "UNI-7",
            RESERVATION.confirmation_id: "RSV-7",
        }
    )
    runner = AutomationRunner(settings, provider=SpyProvider(driver))

    invoice, reservation = await asyncio.gather(
        runner.run_automated_task(TargetPortal.INVOICING, make_invoice()),
        runner.run_automated_task(TargetPortal.RESERVATION, make_reservation()),
    )

    assert invoice.confirmation_id == "UNI-7"
    assert reservation.confirmation_id == "RSV-7"
    assert driver.launches == 2
    assert driver.browser_closes == 2


@pytest.mark.asyncio
async def test_validate_credentials_is_repeatable(settings):
    driver = ScriptedDriver()
    runner = AutomationRunner(settings, provider=SpyProvider(driver))

    first = await runner.validate_credentials(TargetPortal.INVOICING)
    second = await runner.validate_credentials(TargetPortal.INVOICING)

    assert first is True
    assert second is True
    assert driver.launches == 2
    assert driver.max_active_sessions == 1


@pytest.mark.asyncio
async def test_validate_credentials_false_on_error_marker(settings):
    driver = ScriptedDriver(present={RESERVATION.error_marker})
    runner = AutomationRunner(settings, provider=SpyProvider(driver))

    assert await runner.validate_credentials(TargetPortal.RESERVATION) is False
    assert driver.browser_closes == 1


@pytest.mark.asyncio
async def test_validate_credentials_false_when_no_marker_appears(settings):
    driver = ScriptedDriver(present=set())
    runner = AutomationRunner(settings, provider=SpyProvider(driver))

    assert await runner.validate_credentials(TargetPortal.INVOICING) is False


@pytest.mark.asyncio
async def test_validate_credentials_false_when_untrusted(settings):
    untrusted = dataclasses.replace(settings, execution_context=ExecutionContext.UNTRUSTED)
    provider = SpyProvider(ScriptedDriver())
    runner = AutomationRunner(untrusted, provider=provider)

    assert await runner.validate_credentials(TargetPortal.INVOICING) is False
    assert provider.requests == 0


@pytest.mark.asyncio
async def test_teardown_error_does_not_replace_portal_success(settings):
    driver = ScriptedDriver(
        texts={INVOICE.confirmation_id: "UNI-2024-001"},
        close_error=RuntimeError("Target closed"),
    )
    runner = AutomationRunner(settings, provider=SpyProvider(driver))

    outcome = await runner.run_automated_task(TargetPortal.INVOICING, make_invoice())

    assert outcome == Success(confirmation_id="UNI-2024-001", extra={"document": "pdf"})
    assert driver.browser_closes == 1


@pytest.mark.asyncio
async def test_teardown_error_does_not_hide_budget_timeout(settings):
    tight = dataclasses.replace(settings, task_budget=0.2)
    driver = ScriptedDriver(
        hang_on={INVOICE.submit_create},
        close_error=RuntimeError("Target closed"),
    )
    runner = AutomationRunner(tight, provider=SpyProvider(driver))

    outcome = await runner.run_automated_task(TargetPortal.INVOICING, make_invoice())

    assert outcome == Failure(reason="timeout", stage="submit")


@pytest.mark.asyncio
async def test_hanging_teardown_is_abandoned_after_grace(settings):
    driver = ScriptedDriver(
        texts={INVOICE.confirmation_id: "UNI-2024-004"},
        close_delay=30,
    )
    runner = AutomationRunner(settings, provider=SpyProvider(driver))
    loop = asyncio.get_running_loop()

    started = loop.time()
    outcome = await runner.run_automated_task(TargetPortal.INVOICING, make_invoice())
    elapsed = loop.time() - started

    assert outcome.ok
    assert elapsed < settings.task_budget + CLOSE_GRACE + 0.5


@pytest.mark.asyncio
async def test_validate_credentials_false_with_stand_in_driver(settings):
    async def missing_playwright():
        raise ImportError("No module named 'playwright'")

    provider = DriverProvider(ExecutionContext.TRUSTED, loader=missing_playwright)
    runner = AutomationRunner(settings, provider=provider)

    assert await runner.validate_credentials(TargetPortal.INVOICING) is False
    assert await runner.validate_credentials(TargetPortal.RESERVATION) is False
    assert provider.is_stand_in


@pytest.mark.asyncio
async def test_unexpected_error_keeps_its_message_without_secrets(settings, monkeypatch):
    def broken_resolver(portal, explicit=None, *, settings):
        raise RuntimeError(f"resolver failed for {USERNAME}\nstack details")

    monkeypatch.setattr("automation.tasks.resolve_credentials", broken_resolver)
    runner = AutomationRunner(settings, provider=SpyProvider(ScriptedDriver()))
    draft = make_invoice()

    outcome = await runner.run_automated_task(TargetPortal.INVOICING, draft)

    assert outcome == Failure(reason="resolver failed for ***", stage="unknown")
    assert draft.outcome == outcome
