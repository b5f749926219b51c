from __future__ import annotations

import logging
from contextlib import suppress
from html import escape

from aiogram import Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery, Message

from automation import AutomationRunner, TargetPortal

from .parser import CommandParseError, parse_invoice_command, parse_reservation_command
from .records import (
    DraftValidationError,
    generate_invoice,
    generate_reservation,
    validate_invoice_draft,
    validate_reservation_draft,
)
from .utils import (
    CHECK_CALLBACK_PREFIX,
    PORTAL_LABELS,
    RETRY_CALLBACK_PREFIX,
    build_check_keyboard,
    build_retry_keyboard,
    format_invoice,
    format_reservation,
)

logger = logging.getLogger(__name__)

router = Router()

INVOICE = "invoice"
RESERVATION = "reservation"

WELCOME_MESSAGE = (
    "👋 Hi! I create invoices on union.gr and table reservations on the "
    "booking system for BROS Mayfair.\n\n"
    "<code>/invoice Harrods | Service x1 @ 100 | vat: GB123</code>\n"
    "<code>/reserve Jane Smith | 2024-06-15 | 7:30 pm | 4 | window seat</code>\n"
    "<code>/check</code>: verify portal logins"
)
WORKING_MESSAGE = "⏳ Talking to the {portal}. This can take up to a minute…"
NO_PREVIOUS_MESSAGE = "Nothing to retry. Send the command again."


@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext) -> None:
    await state.clear()
    await message.answer(WELCOME_MESSAGE)


@router.message(Command("invoice"))
async def cmd_invoice(
    message: Message,
    command: CommandObject,
    state: FSMContext,
    runner: AutomationRunner,
) -> None:
    args = command.args or ""
    await state.update_data(last_invoice=args)
    await _create_invoice(message, args, runner)


@router.message(Command("reserve"))
async def cmd_reserve(
    message: Message,
    command: CommandObject,
    state: FSMContext,
    runner: AutomationRunner,
) -> None:
    args = command.args or ""
    await state.update_data(last_reservation=args)
    await _create_reservation(message, args, runner)


@router.message(Command("check"))
async def cmd_check(message: Message) -> None:
    keyboard = build_check_keyboard().as_markup()
    await message.answer("Which portal login should I check?", reply_markup=keyboard)


@router.callback_query(lambda c: c.data and c.data.startswith(RETRY_CALLBACK_PREFIX))
async def handle_retry(callback: CallbackQuery, state: FSMContext, runner: AutomationRunner) -> None:
    await callback.answer()
    message = callback.message
    if message is None:
        return
    kind = (callback.data or "")[len(RETRY_CALLBACK_PREFIX) :]
    data = await state.get_data()

    if kind == INVOICE and isinstance(data.get("last_invoice"), str):
        await _create_invoice(message, data["last_invoice"], runner)
    elif kind == RESERVATION and isinstance(data.get("last_reservation"), str):
        await _create_reservation(message, data["last_reservation"], runner)
    else:
        await message.answer(NO_PREVIOUS_MESSAGE)
        return

    with suppress(TelegramBadRequest):
        await message.edit_reply_markup(reply_markup=None)


@router.callback_query(lambda c: c.data and c.data.startswith(CHECK_CALLBACK_PREFIX))
async def handle_check(callback: CallbackQuery, runner: AutomationRunner) -> None:
    await callback.answer()
    message = callback.message
    if message is None:
        return
    raw_portal = (callback.data or "")[len(CHECK_CALLBACK_PREFIX) :]
    try:
        portal = TargetPortal(raw_portal)
    except ValueError:
        await message.answer("Unknown portal.")
        return

    label = PORTAL_LABELS[portal]
    status_message = await message.answer(f"⏳ Checking the {label} login…")
    valid = await runner.validate_credentials(portal)
    logger.info("Credential check for %s: %s", portal.value, "ok" if valid else "failed")
    text = f"✅ {label} login works." if valid else f"⚠️ Could not log into the {label}."
    await _replace(status_message, text)


async def _create_invoice(message: Message, args: str, runner: AutomationRunner) -> None:
    try:
        draft = parse_invoice_command(args)
        validate_invoice_draft(draft)
    except (CommandParseError, DraftValidationError) as exc:
        await message.answer(f"⚠️ {escape(str(exc))}")
        return

    status_message = await message.answer(
        WORKING_MESSAGE.format(portal=PORTAL_LABELS[TargetPortal.INVOICING])
    )
    invoice = await generate_invoice(runner, draft)

    keyboard = None
    if invoice.automation_note:
        keyboard = build_retry_keyboard(INVOICE).as_markup()
    await _replace(status_message, format_invoice(invoice), keyboard)


async def _create_reservation(message: Message, args: str, runner: AutomationRunner) -> None:
    try:
        draft = parse_reservation_command(args)
        validate_reservation_draft(draft)
    except (CommandParseError, DraftValidationError) as exc:
        await message.answer(f"⚠️ {escape(str(exc))}")
        return

    status_message = await message.answer(
        WORKING_MESSAGE.format(portal=PORTAL_LABELS[TargetPortal.RESERVATION])
    )
    reservation = await generate_reservation(runner, draft)

    keyboard = None
    if reservation.automation_note:
        keyboard = build_retry_keyboard(RESERVATION).as_markup()
    await _replace(status_message, format_reservation(reservation), keyboard)


async def _replace(status_message: Message, text: str, keyboard=None) -> None:
    try:
        await status_message.edit_text(text, reply_markup=keyboard)
    except TelegramBadRequest:
        await status_message.answer(text, reply_markup=keyboard)
