from __future__ import annotations

from decimal import Decimal
from html import escape
from typing import List

from aiogram.utils.keyboard import InlineKeyboardBuilder

from automation import TargetPortal

from .records import Invoice, Reservation

RETRY_CALLBACK_PREFIX = "retry:"
CHECK_CALLBACK_PREFIX = "check:"

PORTAL_LABELS = {
    TargetPortal.INVOICING: "union.gr invoicing",
    TargetPortal.RESERVATION: "reservation system",
}


def build_retry_keyboard(kind: str) -> InlineKeyboardBuilder:
    builder = InlineKeyboardBuilder()
    builder.button(
        text="🔁 Try again",
        callback_data=f"{RETRY_CALLBACK_PREFIX}{kind}",
    )
    return builder


def build_check_keyboard() -> InlineKeyboardBuilder:
    builder = InlineKeyboardBuilder()
    for portal, label in PORTAL_LABELS.items():
        builder.button(
            text=f"🔑 {label}",
            callback_data=f"{CHECK_CALLBACK_PREFIX}{portal.value}",
        )
    builder.adjust(1)
    return builder


def format_money(amount: Decimal, currency: str = "GBP") -> str:
    symbol = "£" if currency == "GBP" else f"{currency} "
    return f"{symbol}{amount:,.2f}"


def format_invoice(invoice: Invoice) -> str:
    draft = invoice.draft
    lines: List[str] = [
        f"<b>🧾 Invoice {escape(invoice.number)}</b> ({escape(invoice.status)})",
        f"Customer: <b>{escape(draft.customer_name)}</b>",
    ]
    if draft.customer_vat:
        lines.append(f"VAT no.: {escape(draft.customer_vat)}")
    lines.append(f"Date: {invoice.issued_on:%d/%m/%Y} · {escape(invoice.payment_terms)}")
    for item in draft.items:
        lines.append(
            f"• {escape(item.description)} × {item.quantity} @ "
            f"{format_money(item.unit_price, invoice.currency)} = "
            f"{format_money(item.total, invoice.currency)}"
        )
    lines.append(f"Subtotal: {format_money(invoice.subtotal, invoice.currency)}")
    lines.append(f"VAT 20%: {format_money(invoice.vat, invoice.currency)}")
    lines.append(f"<b>Total: {format_money(invoice.total, invoice.currency)}</b>")
    if invoice.portal_number:
        lines.append(f"✅ union.gr number: <code>{escape(invoice.portal_number)}</code>")
    if invoice.automation_note:
        lines.append(f"⚠️ {escape(invoice.automation_note)}")
    return "\n".join(lines)


def format_reservation(reservation: Reservation) -> str:
    draft = reservation.draft
    lines: List[str] = [
        f"<b>📅 Reservation {escape(reservation.id)}</b> ({escape(reservation.status)})",
        f"Guest: <b>{escape(draft.guest_name)}</b>",
        f"When: {draft.date:%d/%m/%Y} at {escape(draft.time)}",
        f"Party: {draft.guests} · Table {escape(reservation.table_number)}",
    ]
    if draft.phone:
        lines.append(f"Phone: {escape(draft.phone)}")
    if draft.email:
        lines.append(f"Email: {escape(draft.email)}")
    if draft.special_requests:
        lines.append(f"Requests: {escape(draft.special_requests)}")
    if reservation.confirmation_code:
        lines.append(f"✅ Confirmation: <code>{escape(reservation.confirmation_code)}</code>")
    if reservation.automation_note:
        lines.append(f"⚠️ {escape(reservation.automation_note)}")
    return "\n".join(lines)
