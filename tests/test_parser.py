"""Tests for the chat command parsers."""

from datetime import date
from decimal import Decimal

import pytest

from bot.parser import (
    CommandParseError,
    parse_date,
    parse_invoice_command,
    parse_reservation_command,
    parse_time,
)

TODAY = date(2024, 6, 15)


def test_invoice_command_with_items_vat_and_notes():
    draft = parse_invoice_command(
        "Fortnum & Mason | Truffle Risotto x2 @ £28.50 | Burrata @ 16 "
        "| vat: GB987654321 | notes: Private dining"
    )

    assert draft.customer_name == "Fortnum & Mason"
    assert [(item.description, item.quantity, item.unit_price) for item in draft.items] == [
        ("Truffle Risotto", 2, Decimal("28.50")),
        ("Burrata", 1, Decimal("16")),
    ]
    assert draft.customer_vat == "GB987654321"
    assert draft.notes == "Private dining"


def test_invoice_command_without_optional_fields():
    draft = parse_invoice_command("Harrods | Service x 1 @ 100")

    assert draft.customer_vat is None
    assert draft.notes is None
    assert draft.items[0].quantity == 1


@pytest.mark.parametrize("text", [
    "",
    "Harrods",
    "Harrods | vat: GB1",
    "Harrods | just some words",
])
def test_unusable_invoice_commands_raise(text):
    with pytest.raises(CommandParseError):
        parse_invoice_command(text)


def test_reservation_command_with_contact_details():
    draft = parse_reservation_command(
        "Jane Smith | 15/06/2024 | 7:30pm | 4 | phone: +44 7700 900123 "
        "| email: jane@example.com | requests: Window seat",
        today=TODAY,
    )

    assert draft.guest_name == "Jane Smith"
    assert draft.date == date(2024, 6, 15)
    assert draft.time == "19:30"
    assert draft.guests == 4
    assert draft.phone == "+44 7700 900123"
    assert draft.email == "jane@example.com"
    assert draft.special_requests == "Window seat"


def test_trailing_positional_text_becomes_special_requests():
    draft = parse_reservation_command("Okafor | today | 20:00 | 6 | Birthday cake", today=TODAY)

    assert draft.date == TODAY
    assert draft.special_requests == "Birthday cake"
    assert draft.phone is None


@pytest.mark.parametrize("text", [
    "Jane Smith | 2024-06-15 | 19:30",
    "Jane Smith | 2024-06-15 | 19:30 | four",
    "Jane Smith | next week | 19:30 | 4",
])
def test_unusable_reservation_commands_raise(text):
    with pytest.raises(CommandParseError):
        parse_reservation_command(text, today=TODAY)


@pytest.mark.parametrize("raw,expected", [
    ("2024-06-15", date(2024, 6, 15)),
    ("15/06/2024", date(2024, 6, 15)),
    ("15.06.2024", date(2024, 6, 15)),
    (" Today ", TODAY),
])
def test_parse_date_formats(raw, expected):
    assert parse_date(raw, today=TODAY) == expected


@pytest.mark.parametrize("raw,expected", [
    ("19:30", "19:30"),
    ("7pm", "19:00"),
    ("7:45 PM", "19:45"),
    ("12am", "00:00"),
    ("12:15pm", "12:15"),
    ("9", "09:00"),
    ("", "19:00"),
])
def test_parse_time_normalises(raw, expected):
    assert parse_time(raw) == expected


@pytest.mark.parametrize("raw", ["25:00", "13pm", "19:75", "evening"])
def test_parse_time_rejects_nonsense(raw):
    with pytest.raises(CommandParseError):
        parse_time(raw)
