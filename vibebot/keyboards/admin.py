from __future__ import annotations

from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from ..constants import TELEGRAM_CALLBACK_DATA_LIMIT


def fits_callback_data(data: str) -> bool:
    return len(data.encode("utf-8")) <= TELEGRAM_CALLBACK_DATA_LIMIT


def registration_keyboard(reference: str) -> Optional[InlineKeyboardMarkup]:
    """Operator buttons for a new registration.

    Telegram rejects callback data over 64 bytes, so buttons whose data would
    not fit are left out; ``None`` when none fit.
    """
    rows = []
    for text, data in (
        ("💳 Mark as Paid", f"paid_{reference}"),
        ("❌ Reject", f"reject_{reference}"),
    ):
        if fits_callback_data(data):
            rows.append([InlineKeyboardButton(text, callback_data=data)])
    return InlineKeyboardMarkup(rows) if rows else None
