from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import ClassVar, Dict, List, Mapping, Optional, Tuple, Type

from .driver import STAND_IN_CONTENT, Page
from .models import (
    AutomationOutcome,
    Credentials,
    DraftRecord,
    Failure,
    InvoiceDraft,
    ReservationDraft,
    Stage,
    Success,
    TargetPortal,
)


NO_CONFIRMATION = "no confirmation received"
DASHBOARD = "dashboard"
LOGIN_ERROR = "error"


class ScriptStepError(RuntimeError):
    """Raised by a script step that can tell exactly what went wrong."""

    def __init__(self, stage: str, reason: str) -> None:
        super().__init__(reason)
        self.stage = stage
        self.reason = reason


@dataclass(frozen=True)
class PortalSelectors:
    """Login and creation-flow selectors shared by every portal."""

    login_url: str = ""
    username_field: str = "input[name='username']"
    password_field: str = "input[name='password']"
    submit_login: str = "button[type='submit']"
    dashboard_marker: str = ".dashboard"
    error_marker: str = ".error-message"
    creation_flow: Tuple[str, ...] = ()
    submit_create: str = ""
    confirmation_marker: str = ""
    confirmation_id: str = ""


@dataclass(frozen=True)
class InvoicePortalSelectors(PortalSelectors):
    login_url: str = "https://www.union.gr/login"
    creation_flow: Tuple[str, ...] = (
        "a[href*='invoices']",
        "button:has-text('New Invoice')",
    )
    submit_create: str = "button:has-text('Create Invoice')"
    confirmation_marker: str = ".invoice-confirmation"
    confirmation_id: str = ".invoice-number"

    customer: str = "input[name='customer']"
    vat: str = "input[name='vat']"
    item_description: str = "input[name='description-{index}']"
    item_quantity: str = "input[name='quantity-{index}']"
    item_price: str = "input[name='price-{index}']"
    add_item: str = "button:has-text('Add Item')"
    notes: str = "textarea[name='notes']"
    download_pdf: str = "button:has-text('Download PDF')"


@dataclass(frozen=True)
class ReservationPortalSelectors(PortalSelectors):
    login_url: str = "https://reservations.bros-mayfair.com/login"
    creation_flow: Tuple[str, ...] = (
        "a[href*='reservations']",
        "button:has-text('New Reservation')",
    )
    submit_create: str = "button:has-text('Create Reservation')"
    confirmation_marker: str = ".reservation-confirmation"
    confirmation_id: str = ".confirmation-code"

    guest_name: str = "input[name='customer-name']"
    date: str = "input[name='date']"
    time: str = "input[name='time']"
    guests: str = "input[name='guests']"
    phone: str = "input[name='phone']"
    email: str = "input[name='email']"
    special_requests: str = "textarea[name='special-requests']"
    table_number: str = ".table-number"


class StepTracker:
    """Remember which stage a script is in, so a timeout can be attributed."""

    def __init__(self) -> None:
        self.stage = Stage.NAVIGATE
        self.history: List[str] = []

    def enter(self, stage: str) -> None:
        self.stage = stage
        self.history.append(stage)


async def race_markers(
    page: Page,
    markers: Mapping[str, str],
    *,
    timeout: float,
) -> Optional[str]:
    """
    Wait for whichever of ``markers`` (name -> selector) shows up first.

    Returns the winning name, or ``None`` when no marker appeared before the
    deadline. A wait that fails (for example because the element never
    showed) drops out of the race without ending it. If several markers are
    already present, the earliest declared one wins.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    waits: Dict[str, "asyncio.Future[None]"] = {
        name: asyncio.ensure_future(page.wait_for_selector(selector, timeout=timeout))
        for name, selector in markers.items()
    }
    try:
        pending = set(waits.values())
        while pending:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            _, pending = await asyncio.wait(
                pending,
                timeout=remaining,
                return_when=asyncio.FIRST_COMPLETED,
            )
            for name, wait in waits.items():
                if wait.done() and not wait.cancelled() and wait.exception() is None:
                    return name
        return None
    finally:
        for wait in waits.values():
            wait.cancel()
        await asyncio.gather(*waits.values(), return_exceptions=True)


class TaskScript:
    """
    Fixed interaction sequence for one portal.

    ``run`` walks the steps in order: open the login page, authenticate,
    open the creation flow, fill the form, submit, then wait for and read
    the confirmation. Any error becomes a :class:`Failure` naming the stage
    it happened in; a success is only reported with a real confirmation id.
    """

    portal: ClassVar[TargetPortal]
    draft_type: ClassVar[Type[DraftRecord]]

    def __init__(
        self,
        selectors: Optional[PortalSelectors] = None,
        *,
        confirm_timeout: float = 10.0,
        login_timeout: float = 5.0,
    ) -> None:
        self.selectors = selectors or self.default_selectors()
        self._confirm_timeout = confirm_timeout
        self._login_timeout = login_timeout

    @classmethod
    def default_selectors(cls) -> PortalSelectors:
        raise NotImplementedError

    async def run(
        self,
        page: Page,
        draft: DraftRecord,
        credentials: Credentials,
        tracker: Optional[StepTracker] = None,
    ) -> AutomationOutcome:
        tracker = tracker or StepTracker()
        if not isinstance(draft, self.draft_type):
            return Failure(
                reason=f"{self.portal.value} portal cannot create a {type(draft).__name__}",
                stage=Stage.FILL,
            )
        try:
            tracker.enter(Stage.NAVIGATE)
            await page.goto(self.selectors.login_url)

            tracker.enter(Stage.LOGIN)
            await self._log_in(page, credentials)
            await page.wait_for_navigation()
            await self._ensure_logged_in(page)

            tracker.enter(Stage.NAVIGATE)
            await self._open_creation_flow(page)

            tracker.enter(Stage.FILL)
            await self._fill_record(page, draft)

            tracker.enter(Stage.SUBMIT)
            await page.click(self.selectors.submit_create)

            tracker.enter(Stage.CONFIRM)
            await self._await_confirmation(page)
            return await self._collect_result(page, draft)
        except ScriptStepError as exc:
            return Failure(reason=redact(exc.reason, credentials), stage=exc.stage)
        except Exception as exc:
            return Failure(reason=redact(describe_error(exc), credentials), stage=tracker.stage)

    async def authenticate(self, page: Page, credentials: Credentials) -> bool:
        """Log in and report whether the portal showed its dashboard."""
        await page.goto(self.selectors.login_url)
        await self._log_in(page, credentials)
        winner = await self._login_race(page)
        return winner == DASHBOARD

    async def _log_in(self, page: Page, credentials: Credentials) -> None:
        await page.fill(self.selectors.username_field, credentials.username)
        await page.fill(self.selectors.password_field, credentials.password)
        await page.click(self.selectors.submit_login)

    async def _login_race(self, page: Page) -> Optional[str]:
        return await race_markers(
            page,
            {
                DASHBOARD: self.selectors.dashboard_marker,
                LOGIN_ERROR: self.selectors.error_marker,
            },
            timeout=self._login_timeout,
        )

    async def _ensure_logged_in(self, page: Page) -> None:
        winner = await self._login_race(page)
        if winner == LOGIN_ERROR:
            raise ScriptStepError(Stage.LOGIN, "portal rejected the credentials")
        if winner is None:
            raise ScriptStepError(Stage.LOGIN, "dashboard did not load after login")

    async def _open_creation_flow(self, page: Page) -> None:
        for selector in self.selectors.creation_flow:
            await page.click(selector)

    async def _fill_record(self, page: Page, draft: DraftRecord) -> None:
        raise NotImplementedError

    async def _await_confirmation(self, page: Page) -> None:
        try:
            await page.wait_for_selector(
                self.selectors.confirmation_marker,
                timeout=self._confirm_timeout,
            )
        except TimeoutError as exc:
            raise ScriptStepError(
                Stage.CONFIRM,
                f"confirmation did not appear within {self._confirm_timeout:g}s",
            ) from exc

    async def _read_confirmation_id(self, page: Page) -> str:
        value = _clean(await page.text_content(self.selectors.confirmation_id))
        if value is None:
            raise ScriptStepError(Stage.CONFIRM, NO_CONFIRMATION)
        return value

    async def _collect_result(self, page: Page, draft: DraftRecord) -> Success:
        raise NotImplementedError


class InvoiceScript(TaskScript):
    portal = TargetPortal.INVOICING
    draft_type = InvoiceDraft
    selectors: InvoicePortalSelectors

    # Give the confirmation page time to render the PDF link.
    download_delay: ClassVar[float] = 2.0

    @classmethod
    def default_selectors(cls) -> InvoicePortalSelectors:
        return InvoicePortalSelectors()

    async def _fill_record(self, page: Page, draft: InvoiceDraft) -> None:  # type: ignore[override]
        selectors = self.selectors
        if not draft.items:
            raise ScriptStepError(Stage.FILL, "invoice has no line items")

        await page.fill(selectors.customer, draft.customer_name)
        if draft.customer_vat:
            await page.fill(selectors.vat, draft.customer_vat)

        for index, item in enumerate(draft.items, start=1):
            if index > 1:
                await page.click(selectors.add_item)
            await page.fill(selectors.item_description.format(index=index), item.description)
            await page.fill(selectors.item_quantity.format(index=index), str(item.quantity))
            await page.fill(selectors.item_price.format(index=index), f"{item.unit_price:.2f}")

        if draft.notes:
            await page.fill(selectors.notes, draft.notes)

    async def _collect_result(self, page: Page, draft: InvoiceDraft) -> Success:  # type: ignore[override]
        invoice_number = await self._read_confirmation_id(page)
        try:
            await page.wait_for_timeout(self.download_delay)
            await page.click(self.selectors.download_pdf)
        except Exception as exc:
            raise ScriptStepError(
                Stage.CONFIRM,
                f"invoice {invoice_number} was created but the PDF download failed: {describe_error(exc)}",
            ) from exc
        return Success(confirmation_id=invoice_number, extra={"document": "pdf"})


class ReservationScript(TaskScript):
    portal = TargetPortal.RESERVATION
    draft_type = ReservationDraft
    selectors: ReservationPortalSelectors

    @classmethod
    def default_selectors(cls) -> ReservationPortalSelectors:
        return ReservationPortalSelectors()

    async def _fill_record(self, page: Page, draft: ReservationDraft) -> None:  # type: ignore[override]
        selectors = self.selectors
        await page.fill(selectors.guest_name, draft.guest_name)
        await page.fill(selectors.date, draft.date.isoformat())
        await page.fill(selectors.time, draft.time)
        await page.fill(selectors.guests, str(draft.guests))

        if draft.phone:
            await page.fill(selectors.phone, draft.phone)
        if draft.email:
            await page.fill(selectors.email, draft.email)
        if draft.special_requests:
            await page.fill(selectors.special_requests, draft.special_requests)

    async def _collect_result(self, page: Page, draft: ReservationDraft) -> Success:  # type: ignore[override]
        confirmation_code = await self._read_confirmation_id(page)
        extra: Dict[str, str] = {}
        table = _clean(await page.text_content(self.selectors.table_number))
        if table is not None:
            extra["table"] = table
        return Success(confirmation_id=confirmation_code, extra=extra)


SCRIPTS: Dict[TargetPortal, Type[TaskScript]] = {
    TargetPortal.INVOICING: InvoiceScript,
    TargetPortal.RESERVATION: ReservationScript,
}


def script_for(
    portal: TargetPortal,
    *,
    confirm_timeout: float = 10.0,
    login_timeout: float = 5.0,
) -> TaskScript:
    return SCRIPTS[portal](confirm_timeout=confirm_timeout, login_timeout=login_timeout)


def _clean(text: Optional[str]) -> Optional[str]:
    """Strip portal text; the stand-in sentinel counts as nothing."""
    value = (text or "").strip()
    if not value or value == STAND_IN_CONTENT:
        return None
    return value


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    if not message:
        return exc.__class__.__name__
    return message.splitlines()[0]


def redact(message: str, credentials: Credentials) -> str:
    for secret in (credentials.password, credentials.username):
        if secret:
            message = message.replace(secret, "***")
    return message
