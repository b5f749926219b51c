from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional

from automation import (
    AutomationOutcome,
    AutomationRunner,
    Credentials,
    Failure,
    InvoiceDraft,
    ReservationDraft,
    Success,
    TargetPortal,
)

logger = logging.getLogger(__name__)

VAT_RATE = Decimal("0.20")
CURRENCY = "GBP"
PAYMENT_TERMS = "Net 30"
ISSUER: Dict[str, str] = {
    "name": "BROS Mayfair",
    "address": "42 Berkeley Square, London, W1J 5AW",
    "vat": "GB123456789",
    "phone": "+44 20 1234 5678",
}

# (max party size, first table, last table)
TABLE_RANGES = (
    (2, 1, 10),
    (4, 11, 20),
    (8, 21, 25),
)
LARGE_PARTY_TABLES = (26, 28)

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
_CENT = Decimal("0.01")


class DraftValidationError(ValueError):
    """Raised when a draft misses the fields a portal requires."""


@dataclass(slots=True)
class Invoice:
    number: str
    issued_on: date
    draft: InvoiceDraft
    status: str = "DRAFT"
    currency: str = CURRENCY
    payment_terms: str = PAYMENT_TERMS
    issuer: Dict[str, str] = field(default_factory=lambda: dict(ISSUER))
    portal_number: Optional[str] = None
    automation_note: Optional[str] = None

    @property
    def subtotal(self) -> Decimal:
        return sum((item.total for item in self.draft.items), Decimal("0")).quantize(
            _CENT, rounding=ROUND_HALF_UP
        )

    @property
    def vat(self) -> Decimal:
        return (self.subtotal * VAT_RATE).quantize(_CENT, rounding=ROUND_HALF_UP)

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.vat


@dataclass(slots=True)
class Reservation:
    id: str
    draft: ReservationDraft
    table_number: str
    status: str = "confirmed"
    created_at: datetime = field(default_factory=datetime.now)
    confirmation_code: Optional[str] = None
    automation_note: Optional[str] = None


def validate_invoice_draft(draft: InvoiceDraft) -> None:
    if not draft.customer_name or not draft.customer_name.strip():
        raise DraftValidationError("Customer name is required.")
    if not draft.items:
        raise DraftValidationError("At least one line item is required.")
    for index, item in enumerate(draft.items, start=1):
        if not item.description or not item.description.strip():
            raise DraftValidationError(f"Item {index} needs a description.")
        if item.quantity < 1:
            raise DraftValidationError(f"Item {index} needs a positive quantity.")
        if item.unit_price < 0:
            raise DraftValidationError(f"Item {index} cannot have a negative price.")


def validate_reservation_draft(draft: ReservationDraft) -> None:
    if not draft.guest_name or not draft.guest_name.strip():
        raise DraftValidationError("Guest name is required.")
    if draft.guests < 1:
        raise DraftValidationError("At least one guest is required.")
    if not _TIME_RE.match(draft.time):
        raise DraftValidationError(f"Time must be HH:MM, got {draft.time!r}.")


def generate_invoice_number(today: Optional[date] = None, rng: Optional[random.Random] = None) -> str:
    today = today or date.today()
    rng = rng or random.Random()
    return f"BM-{today:%y%m%d}-{rng.randrange(1000):03d}"


def generate_reservation_id(today: Optional[date] = None, rng: Optional[random.Random] = None) -> str:
    today = today or date.today()
    rng = rng or random.Random()
    return f"RES-{today:%y%m%d}-{rng.randrange(1000):03d}"


def assign_table(guests: int, rng: Optional[random.Random] = None) -> str:
    """Pick a table from the block that fits the party size."""
    rng = rng or random.Random()
    for max_guests, first, last in TABLE_RANGES:
        if guests <= max_guests:
            return f"T{rng.randint(first, last)}"
    first, last = LARGE_PARTY_TABLES
    return f"T{rng.randint(first, last)}"


def apply_invoice_outcome(invoice: Invoice, outcome: AutomationOutcome) -> Invoice:
    invoice.draft.outcome = outcome
    if isinstance(outcome, Success):
        invoice.status = "CREATED"
        invoice.portal_number = outcome.confirmation_id
        invoice.automation_note = None
    else:
        invoice.automation_note = _describe_failure(outcome)
    return invoice


def apply_reservation_outcome(reservation: Reservation, outcome: AutomationOutcome) -> Reservation:
    reservation.draft.outcome = outcome
    if isinstance(outcome, Success):
        reservation.confirmation_code = outcome.confirmation_id
        reservation.table_number = outcome.extra.get("table") or reservation.table_number
        reservation.automation_note = None
    else:
        reservation.automation_note = _describe_failure(outcome)
    return reservation


async def generate_invoice(
    runner: AutomationRunner,
    draft: InvoiceDraft,
    *,
    credentials: Optional[Credentials] = None,
    automate: bool = True,
    today: Optional[date] = None,
    rng: Optional[random.Random] = None,
) -> Invoice:
    """
    Build an invoice locally and, when asked, create it on the invoicing portal.

    The local invoice (number, totals, issuer) is always returned; a failed
    automation only adds a note to it.
    """
    validate_invoice_draft(draft)
    invoice = Invoice(
        number=generate_invoice_number(today, rng),
        issued_on=today or date.today(),
        draft=draft,
    )
    if not automate:
        return invoice

    outcome = await runner.run_automated_task(TargetPortal.INVOICING, draft, credentials)
    apply_invoice_outcome(invoice, outcome)
    _log_outcome("Invoice", invoice.number, outcome)
    return invoice


async def generate_reservation(
    runner: AutomationRunner,
    draft: ReservationDraft,
    *,
    credentials: Optional[Credentials] = None,
    automate: bool = True,
    today: Optional[date] = None,
    rng: Optional[random.Random] = None,
) -> Reservation:
    validate_reservation_draft(draft)
    rng = rng or random.Random()
    reservation = Reservation(
        id=generate_reservation_id(today, rng),
        draft=draft,
        table_number=assign_table(draft.guests, rng),
    )
    if not automate:
        return reservation

    outcome = await runner.run_automated_task(TargetPortal.RESERVATION, draft, credentials)
    apply_reservation_outcome(reservation, outcome)
    _log_outcome("Reservation", reservation.id, outcome)
    return reservation


def _describe_failure(outcome: Failure) -> str:
    return f"Portal automation failed at {outcome.stage}: {outcome.reason}"


def _log_outcome(kind: str, reference: str, outcome: AutomationOutcome) -> None:
    if isinstance(outcome, Success):
        logger.info("%s %s created on portal as %s", kind, reference, outcome.confirmation_id)
    else:
        logger.warning(
            "%s %s kept as local draft: stage=%s reason=%s",
            kind,
            reference,
            outcome.stage,
            outcome.reason,
        )
