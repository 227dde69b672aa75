from __future__ import annotations

import html
import logging
from datetime import datetime
from typing import List, Optional

from telegram import InlineKeyboardMarkup, LinkPreviewOptions
from telegram.constants import MessageLimit, ParseMode
from telegram.error import TelegramError

from ..constants import PAYMENT_CURRENCY
from ..keyboards.admin import fits_callback_data, registration_keyboard
from ..models import Registration
from ..utils.errors import UpstreamError

logger = logging.getLogger(__name__)

NO_PREVIEW = LinkPreviewOptions(is_disabled=True)
MAX_TEXT_LENGTH = MessageLimit.MAX_TEXT_LENGTH
# free-text fields are clipped to this when the full notice is too long
NOTICE_DETAIL_LIMIT = 100


def _clip(value: str, limit: Optional[int]) -> str:
    if limit is None or len(value) <= limit:
        return value
    return value[: max(limit - 1, 0)] + "…"


def format_registration_notice(
    registration: Registration,
    payload_token: Optional[str],
    amount: int,
    payment_email_sent: bool,
    submitted_at: Optional[datetime] = None,
    detail_limit: Optional[int] = None,
) -> str:
    """HTML notice for the operator chat.

    Without ``payload_token`` the approve command is left out and the notice
    points at ``/confirm_`` instead. ``detail_limit`` clips the free-text
    fields; ``0`` drops them.
    """
    esc = html.escape
    reference = esc(registration.reference)
    lines = [
        "🎨 <b>NEW VIBE CODING REGISTRATION</b>",
        "",
        f"👤 <b>Name:</b> {esc(registration.name)}",
        f"📧 <b>Email:</b> {esc(registration.email)}",
        f"📱 <b>Phone:</b> {esc(registration.phone)}",
    ]
    if detail_limit != 0:
        if registration.company:
            lines.append(f"🏢 <b>Company:</b> {esc(_clip(registration.company, detail_limit))}")
        if registration.linkedin_profile:
            lines.append(f"🔗 <b>LinkedIn:</b> {esc(_clip(registration.linkedin_profile, detail_limit))}")
        tools = _clip(registration.tools_used or "Not specified", detail_limit)
        lines += [
            f"🔧 <b>Experience:</b> {'Yes - ' + esc(tools) if registration.has_experience else 'No'}",
            f"💡 <b>Project Idea:</b> {esc(_clip(registration.project_idea, detail_limit))}",
        ]
    submitted = (submitted_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    lines += [
        "",
        f"🆔 <b>Reference:</b> {reference}",
        f"💰 <b>Payment:</b> ${amount} {PAYMENT_CURRENCY}",
        f"📅 <b>Submitted:</b> {submitted}",
        "",
        "✅ <b>Payment email sent to participant!</b>"
        if payment_email_sent
        else "⚠️ <b>Payment email could not be sent.</b> Resend with the command below.",
        "",
        "<b>Commands:</b>",
    ]
    if payload_token is not None:
        lines.append(f"📧 Resend payment email: <code>/approve_{esc(payload_token)}</code>")
    else:
        lines.append(f"📧 Resend payment email: <code>/confirm_{reference}</code>")
    lines.append(f"💳 Mark as paid: <code>/paid_{reference}</code>")
    if not fits_callback_data(f"reject_{registration.reference}"):
        lines.append(f"❌ Reject: <code>/reject_{reference}</code>")
    return "\n".join(lines)


def registration_notice_messages(
    registration: Registration,
    payload_token: str,
    amount: int,
    payment_email_sent: bool,
    submitted_at: Optional[datetime] = None,
) -> List[str]:
    """The notice, split so that every message fits Telegram's text limit.

    A notice that is too long loses its approve command, which then follows
    as a second message when it fits on its own; otherwise the operator is
    pointed at ``/confirm_``. Free-text fields are clipped as a last resort.
    """
    text = format_registration_notice(registration, payload_token, amount, payment_email_sent, submitted_at)
    if len(text) <= MAX_TEXT_LENGTH:
        return [text]

    approve = f"📧 Approve {html.escape(registration.reference)}:\n<code>/approve_{html.escape(payload_token)}</code>"
    for detail_limit in (None, NOTICE_DETAIL_LIMIT, 0):
        text = format_registration_notice(
            registration, None, amount, payment_email_sent, submitted_at, detail_limit=detail_limit
        )
        if len(text) <= MAX_TEXT_LENGTH:
            break
    if len(approve) > MAX_TEXT_LENGTH:
        logger.warning("Approve command for %s is too long for Telegram, left out", registration.reference)
        return [text]
    return [text, approve]


class TelegramNotifier:
    """Thin wrapper over ``telegram.Bot`` for operator chat messages."""

    def __init__(self, bot, admin_chat_id: Optional[int]):
        self.bot = bot
        self.admin_chat_id = admin_chat_id

    async def send(self, chat_id: int, text: str, reply_markup: Optional[InlineKeyboardMarkup] = None):
        try:
            return await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                reply_markup=reply_markup,
                link_preview_options=NO_PREVIEW,
            )
        except TelegramError as exc:
            logger.error("Telegram sendMessage to chat_id=%s failed: %s", chat_id, exc)
            raise UpstreamError(f"Telegram error: {exc}") from exc

    async def notify_registration(self, registration: Registration, payload_token: str, amount: int, payment_email_sent: bool):
        if self.admin_chat_id is None:
            raise UpstreamError("Telegram admin chat is not configured")
        notice, *rest = registration_notice_messages(registration, payload_token, amount, payment_email_sent)
        await self.send(self.admin_chat_id, notice, reply_markup=registration_keyboard(registration.reference))
        for text in rest:
            try:
                await self.send(self.admin_chat_id, text)
            except UpstreamError:
                # the notice itself went out and carries /confirm_
                logger.warning("Follow-up for %s was not delivered", registration.reference)
        logger.info("Operator notified about registration %s", registration.reference)

    async def answer_callback(self, callback_query_id: str, text: str = ""):
        try:
            await self.bot.answer_callback_query(callback_query_id=callback_query_id, text=text or None)
        except TelegramError as exc:
            # the button spinner just times out on the operator side
            logger.warning("answerCallbackQuery failed: %s", exc)
