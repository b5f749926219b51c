from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union


class ExecutionContext(Enum):
    TRUSTED = "trusted"
    UNTRUSTED = "untrusted"


class TargetPortal(Enum):
    INVOICING = "invoicing"
    RESERVATION = "reservation"


class Stage:
    """Names reported in ``Failure.stage``."""

    CONTEXT = "context"
    LOGIN = "login"
    NAVIGATE = "navigate"
    FILL = "fill"
    SUBMIT = "submit"
    CONFIRM = "confirm"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Credentials:
    """Username/password pair for a portal. Never rendered in reprs."""

    username: str = field(repr=False)
    password: str = field(repr=False)

    @property
    def complete(self) -> bool:
        return bool(self.username) and bool(self.password)


@dataclass(frozen=True, slots=True)
class Success:
    confirmation_id: str
    extra: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Failure:
    reason: str
    stage: str

    @property
    def ok(self) -> bool:
        return False


AutomationOutcome = Union[Success, Failure]


@dataclass(slots=True)
class LineItem:
    description: str
    quantity: int
    unit_price: Decimal

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(slots=True)
class InvoiceDraft:
    """Invoice fields the invoicing portal needs. ``outcome`` is written back."""

    customer_name: str
    items: List[LineItem]
    customer_vat: Optional[str] = None
    notes: Optional[str] = None
    outcome: Optional[AutomationOutcome] = None


@dataclass(slots=True)
class ReservationDraft:
    """Reservation fields the booking portal needs. ``outcome`` is written back."""

    guest_name: str
    date: date
    time: str
    guests: int
    phone: Optional[str] = None
    email: Optional[str] = None
    special_requests: Optional[str] = None
    outcome: Optional[AutomationOutcome] = None


DraftRecord = Union[InvoiceDraft, ReservationDraft]
