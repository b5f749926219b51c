from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from automation import InvoiceDraft, LineItem, ReservationDraft

FIELD_SEPARATOR = "|"
DEFAULT_RESERVATION_TIME = "19:00"

_ITEM_RE = re.compile(
    r"^(?P<description>.+?)\s+(?:x\s*(?P<quantity>\d+)\s*)?@\s*£?\s*(?P<price>\d+(?:\.\d{1,2})?)$",
    re.IGNORECASE,
)
_KEYED_RE = re.compile(r"^(?P<key>vat|notes|phone|email|requests)\s*[:=]\s*(?P<value>.+)$", re.IGNORECASE)
_TIME_12H_RE = re.compile(r"^(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<suffix>am|pm)$", re.IGNORECASE)
_TIME_24H_RE = re.compile(r"^(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?$")
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d.%m.%Y")


class CommandParseError(ValueError):
    """The command text does not describe a usable draft."""


def parse_invoice_command(text: str) -> InvoiceDraft:
    """
    Parse ``Customer | Description x2 @ 12.50 | ... [| vat: GB1] [| notes: ...]``.

    The quantity defaults to 1 when ``xN`` is omitted.
    """
    parts = _split(text)
    if not parts:
        raise CommandParseError("Specify a customer, e.g. /invoice Harrods | Service x1 @ 100")

    customer, *rest = parts
    keyed, positional = _partition_keyed(rest)
    items: List[LineItem] = []
    for chunk in positional:
        items.append(_parse_item(chunk))
    if not items:
        raise CommandParseError("Add at least one item, e.g. Service x1 @ 100")

    return InvoiceDraft(
        customer_name=customer,
        items=items,
        customer_vat=keyed.get("vat"),
        notes=keyed.get("notes"),
    )


def parse_reservation_command(text: str, *, today: Optional[date] = None) -> ReservationDraft:
    """Parse ``Name | date | time | guests [| requests] [| phone: ...] [| email: ...]``."""
    parts = _split(text)
    keyed, positional = _partition_keyed(parts)
    if len(positional) < 4:
        raise CommandParseError(
            "Use: /reserve Name | 2024-06-15 | 19:30 | 4 [| special requests]"
        )

    name, raw_date, raw_time, raw_guests, *extra = positional
    try:
        guests = int(raw_guests)
    except ValueError as exc:
        raise CommandParseError(f"Guest count must be a number, got «{raw_guests}».") from exc

    special_requests = keyed.get("requests") or (" | ".join(extra) if extra else None)
    return ReservationDraft(
        guest_name=name,
        date=parse_date(raw_date, today=today),
        time=parse_time(raw_time),
        guests=guests,
        phone=keyed.get("phone"),
        email=keyed.get("email"),
        special_requests=special_requests,
    )


def parse_date(raw: str, *, today: Optional[date] = None) -> date:
    value = raw.strip().lower()
    if value == "today":
        return today or date.today()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise CommandParseError(f"Unrecognised date «{raw}». Use YYYY-MM-DD or DD/MM/YYYY.")


def parse_time(raw: str) -> str:
    """Normalise ``7pm``, ``7:30 pm`` or ``19`` to ``HH:MM``."""
    value = raw.strip()
    if not value:
        return DEFAULT_RESERVATION_TIME

    match = _TIME_12H_RE.match(value)
    if match:
        hour = int(match["hour"])
        minute = int(match["minute"] or 0)
        if not 1 <= hour <= 12:
            raise CommandParseError(f"Unrecognised time «{raw}».")
        is_pm = match["suffix"].lower() == "pm"
        if is_pm and hour < 12:
            hour += 12
        if not is_pm and hour == 12:
            hour = 0
    else:
        match = _TIME_24H_RE.match(value)
        if not match:
            raise CommandParseError(f"Unrecognised time «{raw}».")
        hour = int(match["hour"])
        minute = int(match["minute"] or 0)

    if hour > 23 or minute > 59:
        raise CommandParseError(f"Unrecognised time «{raw}».")
    return f"{hour:02d}:{minute:02d}"


def _split(text: str) -> List[str]:
    return [part.strip() for part in text.split(FIELD_SEPARATOR) if part.strip()]


def _partition_keyed(parts: List[str]) -> Tuple[Dict[str, str], List[str]]:
    keyed: Dict[str, str] = {}
    positional: List[str] = []
    for part in parts:
        match = _KEYED_RE.match(part)
        if match:
            keyed[match["key"].lower()] = match["value"].strip()
        else:
            positional.append(part)
    return keyed, positional


def _parse_item(chunk: str) -> LineItem:
    match = _ITEM_RE.match(chunk)
    if not match:
        raise CommandParseError(f"Could not read item «{chunk}». Use: Description x2 @ 12.50")
    try:
        price = Decimal(match["price"])
    except InvalidOperation as exc:  # pragma: no cover - the pattern only admits decimals
        raise CommandParseError(f"Invalid price in «{chunk}».") from exc
    return LineItem(
        description=match["description"].strip(),
        quantity=int(match["quantity"] or 1),
        unit_price=price,
    )
