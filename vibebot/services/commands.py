from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Tuple

from telegram import Update

from ..config import Config
from ..constants import Action, CommandKind, PAYMENT_CURRENCY
from ..models import Registration
from ..utils.errors import ConfigurationError, InvalidReference, PermissionDenied, UpstreamError
from ..utils.validators import is_valid_email
from .email import EmailService
from .messaging import TelegramNotifier
from .permissions import require_operator
from .references import PayloadCodec, extract_linkedin_handle, parse_reference, registration_from_reference

logger = logging.getLogger(__name__)

PREFIXES: Tuple[Tuple[str, CommandKind], ...] = (
    ("approve_", CommandKind.APPROVE),
    ("reject_", CommandKind.REJECT),
    ("paid_", CommandKind.PAID),
    ("confirm_", CommandKind.CONFIRM),
)
HELP_WORDS = ("help", "start")

HELP_TEXT = """🤖 <b>Vibe Coding Registration Bot</b>

<b>Available Commands:</b>
• <code>/approve_[DATA]</code> - Send the payment email to the participant
• <code>/reject_[DATA or REFERENCE]</code> - Reject a registration
• <code>/paid_[REFERENCE or DATA]</code> - Mark as paid &amp; send confirmation email
• <code>/confirm_[REFERENCE]</code> - Post PayNow instructions for a reference
• <code>REFERENCE|email[|linkedin]</code> - Supply a missing email and send the confirmation

<b>How it works:</b>
1. 📝 User submits registration → payment email goes out, you get a notification here
2. 💳 When payment is received → press <b>Mark as Paid</b> or send <code>/paid_[REFERENCE]</code>
3. 🎉 Participant gets the confirmation email with namecard and calendar invite

<i>No database: everything needed travels in the commands.</i>"""

UNKNOWN_TEXT = "❓ Unknown command. Send /help for available commands."


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    argument: str = ""


@dataclass
class CommandResult:
    body: Dict[str, Any] = field(default_factory=lambda: {"ok": True})
    status: int = 200


def parse_command(text: str) -> Command:
    stripped = (text or "").strip()
    if not stripped:
        return Command(CommandKind.UNKNOWN)

    body = stripped[1:] if stripped.startswith("/") else stripped
    lowered = body.lower()

    if lowered.split("@", 1)[0] in HELP_WORDS:
        return Command(CommandKind.HELP)

    for prefix, kind in PREFIXES:
        if lowered.startswith(prefix):
            # argument keeps its case: payloads are base64
            return Command(kind, body[len(prefix):].strip())

    if "|" in stripped and not stripped.startswith("/"):
        return Command(CommandKind.EMAIL_REPLY, stripped)

    return Command(CommandKind.UNKNOWN, stripped)


def _ok(action: Action, reference: str) -> CommandResult:
    return CommandResult({"success": True, "action": action.value, "reference": reference})


class OperatorCommands:
    """Interprets operator messages and button presses.

    Nothing is stored between commands: every command carries (or lets us
    recover) the registration it acts on, so the same reference can be
    approved or marked paid any number of times.
    """

    def __init__(self, notifier: TelegramNotifier, email_service: EmailService, codec: PayloadCodec, config: Config):
        self.notifier = notifier
        self.email_service = email_service
        self.codec = codec
        self.config = config
        self._handlers: Dict[CommandKind, Callable[[int, str], Awaitable[CommandResult]]] = {
            CommandKind.APPROVE: self.approve,
            CommandKind.REJECT: self.reject,
            CommandKind.PAID: self.paid,
            CommandKind.CONFIRM: self.confirm,
            CommandKind.HELP: self.help,
            CommandKind.EMAIL_REPLY: self.email_reply,
            CommandKind.UNKNOWN: self.unknown,
        }

    async def handle_update(self, update: Update) -> CommandResult:
        query = update.callback_query
        if query is not None:
            text = query.data or ""
            chat_id = query.message.chat.id if query.message else query.from_user.id
            await self.notifier.answer_callback(query.id)
        else:
            message = update.effective_message
            if message is None or not message.text:
                return CommandResult()
            text = message.text
            chat_id = message.chat.id

        command = parse_command(text)
        try:
            return await self.dispatch(chat_id, command)
        except PermissionDenied as exc:
            logger.warning("Ignored %s command: %s", command.kind.value, exc)
            return CommandResult()

    @require_operator
    async def dispatch(self, chat_id: int, command: Command) -> CommandResult:
        logger.info("Operator command %s from chat_id=%s", command.kind.value, chat_id)
        return await self._handlers[command.kind](chat_id, command.argument)

    async def _report_email_failure(self, chat_id: int, title: str, detail: str, exc: Exception, reference: str) -> CommandResult:
        logger.error("%s for %s: %s", title, reference, exc)
        await self.notifier.send(
            chat_id,
            f"❌ <b>{title}</b>\n\n{detail}\n\nError: {html.escape(str(exc))}",
        )
        return CommandResult({"error": "Email sending failed", "reference": reference}, status=500)

    async def approve(self, chat_id: int, argument: str) -> CommandResult:
        registration = self.codec.decode(argument)
        if registration is None:
            await self.notifier.send(chat_id, "❌ Invalid registration data. Please use the original approve command.")
            return CommandResult({"error": "Invalid data"}, status=400)

        try:
            await self.email_service.send_payment_email(registration)
        except (UpstreamError, ConfigurationError) as exc:
            return await self._report_email_failure(
                chat_id,
                "ERROR",
                f"Failed to send payment email to {html.escape(registration.email)}.\n"
                "Please check email configuration and try again.",
                exc,
                registration.reference,
            )

        await self.notifier.send(
            chat_id,
            "✅ <b>REGISTRATION APPROVED &amp; EMAIL SENT</b>\n\n"
            f"<b>Participant:</b> {html.escape(registration.name)} ({html.escape(registration.email)})\n"
            f"<b>Reference:</b> {html.escape(registration.reference)}\n\n"
            "📧 Payment email with QR code sent to participant.\n\n"
            f"<b>Next step:</b> 💳 When paid: <code>/paid_{html.escape(registration.reference)}</code>",
        )
        return _ok(Action.APPROVED, registration.reference)

    async def reject(self, chat_id: int, argument: str) -> CommandResult:
        registration = self.codec.decode(argument)
        if registration is not None:
            reference = registration.reference
            who = f"{html.escape(registration.name)} ({html.escape(registration.email)})"
        else:
            try:
                parts = parse_reference(argument)
            except InvalidReference:
                await self.notifier.send(chat_id, "❌ Invalid registration data.")
                return CommandResult({"error": "Invalid data"}, status=400)
            reference = parts.raw
            who = html.escape(parts.name) + (f" ({html.escape(parts.email)})" if parts.email else "")

        await self.notifier.send(
            chat_id,
            "❌ <b>REGISTRATION REJECTED</b>\n\n"
            f"Registration for {who} has been rejected.\n\n"
            f"Reference: {html.escape(reference)}",
        )
        return _ok(Action.REJECTED, reference)

    async def paid(self, chat_id: int, argument: str) -> CommandResult:
        registration = self.codec.decode(argument)
        if registration is None:
            try:
                parts = parse_reference(argument)
            except InvalidReference as exc:
                await self.notifier.send(chat_id, f"❌ {exc}. Expected NAME_EMAIL_SUFFIX.")
                return CommandResult({"error": str(exc)}, status=400)

            if not parts.email:
                await self.notifier.send(
                    chat_id,
                    "⚠️ <b>LIMITED INFO AVAILABLE</b>\n\n"
                    "To send the confirmation email I need the participant's email address.\n"
                    f"Please reply with: <code>{html.escape(parts.raw)}|email@example.com</code>\n"
                    f"(optionally <code>{html.escape(parts.raw)}|email@example.com|linkedin-handle</code>)",
                )
                return _ok(Action.PAID_PARTIAL, parts.raw)
            registration = registration_from_reference(parts.raw)

        return await self._send_confirmation(chat_id, registration)

    async def email_reply(self, chat_id: int, argument: str) -> CommandResult:
        pieces = [piece.strip() for piece in argument.split("|")]
        reference = pieces[0]
        email = pieces[1] if len(pieces) > 1 else ""
        linkedin = extract_linkedin_handle(pieces[2]) if len(pieces) > 2 else None

        if not is_valid_email(email):
            await self.notifier.send(chat_id, f"❌ Invalid email address: {html.escape(email)}")
            return CommandResult({"error": "Invalid email"}, status=400)
        try:
            registration = registration_from_reference(reference, email=email, linkedin_handle=linkedin or None)
        except InvalidReference as exc:
            await self.notifier.send(chat_id, f"❌ {exc}.")
            return CommandResult({"error": str(exc)}, status=400)

        return await self._send_confirmation(chat_id, registration)

    async def _send_confirmation(self, chat_id: int, registration: Registration) -> CommandResult:
        reference = registration.reference
        try:
            await self.email_service.send_confirmation_email(registration)
        except (UpstreamError, ConfigurationError) as exc:
            return await self._report_email_failure(
                chat_id,
                "EMAIL ERROR",
                f"Payment marked as confirmed for {html.escape(reference)}, but failed to send confirmation email.\n"
                "Please manually contact participant or retry email sending.",
                exc,
                reference,
            )

        await self.notifier.send(
            chat_id,
            "💳 <b>PAYMENT CONFIRMED &amp; EMAIL SENT</b>\n\n"
            f"<b>Participant:</b> {html.escape(registration.name)} ({html.escape(registration.email)})\n"
            f"<b>Reference:</b> {html.escape(reference)}\n"
            "<b>Status:</b> ✅ FULLY CONFIRMED\n\n"
            "📧 Event confirmation email with namecard and calendar invite sent to participant.",
        )
        return _ok(Action.PAID, reference)

    def payment_instructions(self, reference: str) -> str:
        amount = self.config.payment_amount
        mobile = html.escape(self.config.paynow_mobile)
        ref = html.escape(reference)
        qr_url = html.escape(self.email_service.qr_client.url_for(amount, reference))
        return (
            "🏦 <b>Payment Instructions</b>\n\n"
            f"💰 <b>Amount:</b> ${amount} {PAYMENT_CURRENCY}\n"
            f"🆔 <b>Reference:</b> {ref}\n"
            f"📱 <b>Mobile:</b> {mobile}\n\n"
            f'<a href="{qr_url}">📱 View QR Code</a>\n\n'
            "<b>Payment Options:</b>\n"
            "1. Scan QR code with your banking app\n"
            f"2. Manual PayNow transfer using mobile: {mobile}\n\n"
            f"⚠️ <b>Important:</b> Use reference: <code>{ref}</code>\n\n"
            f"Reply with <code>/paid_{ref}</code> when payment is complete."
        )

    async def confirm(self, chat_id: int, argument: str) -> CommandResult:
        try:
            parts = parse_reference(argument)
        except InvalidReference as exc:
            await self.notifier.send(chat_id, f"❌ {exc}.")
            return CommandResult({"error": str(exc)}, status=400)

        note = "⚠️ No email in this reference, payment email not sent."
        if parts.email:
            registration = registration_from_reference(parts.raw)
            try:
                await self.email_service.send_payment_email(registration)
                note = f"📧 Payment email sent to {html.escape(registration.email)}."
            except (UpstreamError, ConfigurationError) as exc:
                return await self._report_email_failure(
                    chat_id,
                    "ERROR",
                    f"Failed to send payment email to {html.escape(registration.email)}.",
                    exc,
                    parts.raw,
                )

        await self.notifier.send(
            chat_id,
            f"✅ <b>Registration Confirmed!</b>\n\nRegistration {html.escape(parts.raw)} has been approved.\n"
            f"{note}\n\n{self.payment_instructions(parts.raw)}",
        )
        return _ok(Action.CONFIRMED, parts.raw)

    async def help(self, chat_id: int, argument: str = "") -> CommandResult:
        await self.notifier.send(chat_id, HELP_TEXT)
        return CommandResult({"success": True, "action": Action.HELP.value})

    async def unknown(self, chat_id: int, argument: str = "") -> CommandResult:
        await self.notifier.send(chat_id, UNKNOWN_TEXT)
        return CommandResult()
