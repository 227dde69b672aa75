from __future__ import annotations

import pytest

from vibebot.constants import CommandKind
from vibebot.services.commands import UNKNOWN_TEXT, Command, OperatorCommands, parse_command
from vibebot.services.email import CONFIRMATION_SUBJECT, PAYMENT_SUBJECT
from vibebot.services.permissions import is_operator_chat, require_operator
from vibebot.utils.errors import PermissionDenied

from conftest import ADMIN_CHAT_ID, make_callback_update, make_message_update

REFERENCE = "ALICETAN_ALICE@EXAMPLE.COM_4321"
BARE_REFERENCE = "ALICETAN_ALICETAN_4321"


@pytest.mark.parametrize(
    "text,expected",
    [
        ("/approve_eyJhIjoxfQ==", Command(CommandKind.APPROVE, "eyJhIjoxfQ==")),
        ("APPROVE_eyJhIjoxfQ==", Command(CommandKind.APPROVE, "eyJhIjoxfQ==")),
        ("/reject_AbC", Command(CommandKind.REJECT, "AbC")),
        (f"paid_{REFERENCE}", Command(CommandKind.PAID, REFERENCE)),
        (f"/Confirm_{REFERENCE}", Command(CommandKind.CONFIRM, REFERENCE)),
        ("/help", Command(CommandKind.HELP)),
        ("/start@VibeCodingBot", Command(CommandKind.HELP)),
        (f"{BARE_REFERENCE}|alice@example.com", Command(CommandKind.EMAIL_REPLY, f"{BARE_REFERENCE}|alice@example.com")),
        ("hello there", Command(CommandKind.UNKNOWN, "hello there")),
        ("", Command(CommandKind.UNKNOWN)),
    ],
)
def test_parse_command(text, expected):
    assert parse_command(text) == expected


def test_operator_chat_check():
    assert is_operator_chat(5, [5, 6]) is True
    assert is_operator_chat(7, [5, 6]) is False
    assert is_operator_chat(7, []) is True


async def test_require_operator_guards_methods(config):
    class Handler:
        def __init__(self, cfg):
            self.config = cfg

        @require_operator
        async def run(self, chat_id):
            return "ok"

    handler = Handler(config)
    assert await handler.run(ADMIN_CHAT_ID) == "ok"
    with pytest.raises(PermissionDenied):
        await handler.run(42)


async def test_approve_sends_payment_email(commands: OperatorCommands, codec, registration, transport, fake_bot):
    result = await commands.handle_update(make_message_update(f"/approve_{codec.encode(registration)}"))

    assert result.status == 200
    assert result.body == {"success": True, "action": "approved", "reference": registration.reference}
    assert [m.subject for m in transport.sent] == [PAYMENT_SUBJECT]
    assert "REGISTRATION APPROVED" in fake_bot.sent_messages[-1]["text"]


async def test_approve_with_corrupt_payload(commands: OperatorCommands, transport, fake_bot):
    result = await commands.handle_update(make_message_update("/approve_%%%notbase64"))

    assert result.status == 400
    assert result.body == {"error": "Invalid data"}
    assert transport.sent == []
    assert "Invalid registration data" in fake_bot.sent_messages[-1]["text"]


async def test_paid_by_reference_sends_exactly_one_confirmation(commands: OperatorCommands, transport):
    result = await commands.handle_update(make_message_update(f"/paid_{REFERENCE}"))

    assert result.body == {"success": True, "action": "paid", "reference": REFERENCE}
    assert len(transport.sent) == 1
    assert transport.sent[0].subject == CONFIRMATION_SUBJECT
    assert transport.sent[0].to == ["alice@example.com"]


async def test_paid_by_payload_uses_full_registration(commands: OperatorCommands, codec, registration, transport):
    result = await commands.handle_update(make_message_update(f"/paid_{codec.encode(registration)}"))

    assert result.body["action"] == "paid"
    assert "A neighbourhood recipe swap app" in transport.sent[0].html


async def test_paid_is_repeatable(commands: OperatorCommands, transport):
    for _ in range(2):
        result = await commands.handle_update(make_message_update(f"/paid_{REFERENCE}"))
        assert result.body["action"] == "paid"
    assert len(transport.sent) == 2


async def test_paid_without_email_asks_operator(commands: OperatorCommands, transport, fake_bot):
    result = await commands.handle_update(make_message_update(f"/paid_{BARE_REFERENCE}"))

    assert result.body == {"success": True, "action": "paid_partial", "reference": BARE_REFERENCE}
    assert transport.sent == []
    assert f"{BARE_REFERENCE}|email@example.com" in fake_bot.sent_messages[-1]["text"]


async def test_paid_with_bad_reference(commands: OperatorCommands, transport):
    result = await commands.handle_update(make_message_update("/paid_NOPE"))

    assert result.status == 400
    assert result.body == {"error": "Invalid reference format"}
    assert transport.sent == []


async def test_email_reply_completes_partial_payment(commands: OperatorCommands, transport):
    result = await commands.handle_update(
        make_message_update(f"{BARE_REFERENCE}|alice@example.com|https://linkedin.com/in/alice-tan")
    )

    assert result.body == {"success": True, "action": "paid", "reference": BARE_REFERENCE}
    assert transport.sent[0].to == ["alice@example.com"]


async def test_email_reply_rejects_bad_address(commands: OperatorCommands, transport, fake_bot):
    result = await commands.handle_update(make_message_update(f"{BARE_REFERENCE}|not-an-email"))

    assert result.status == 400
    assert transport.sent == []
    assert "Invalid email address" in fake_bot.sent_messages[-1]["text"]


async def test_reject_by_reference_and_payload(commands: OperatorCommands, codec, registration, transport):
    by_ref = await commands.handle_update(make_message_update(f"/reject_{REFERENCE}"))
    by_payload = await commands.handle_update(make_message_update(f"/reject_{codec.encode(registration)}"))

    assert by_ref.body == {"success": True, "action": "rejected", "reference": REFERENCE}
    assert by_payload.body["reference"] == registration.reference
    assert transport.sent == []


async def test_reject_garbage(commands: OperatorCommands):
    result = await commands.handle_update(make_message_update("/reject_nothing"))
    assert result.status == 400


async def test_confirm_posts_instructions_and_payment_email(commands: OperatorCommands, transport, fake_bot):
    result = await commands.handle_update(make_message_update(f"/confirm_{REFERENCE}"))

    assert result.body == {"success": True, "action": "confirmed", "reference": REFERENCE}
    assert [m.subject for m in transport.sent] == [PAYMENT_SUBJECT]
    text = fake_bot.sent_messages[-1]["text"]
    assert "Payment Instructions" in text
    assert "$10 SGD" in text
    assert f"/paid_{REFERENCE}" in text


async def test_confirm_without_email_skips_payment_email(commands: OperatorCommands, transport, fake_bot):
    result = await commands.handle_update(make_message_update(f"/confirm_{BARE_REFERENCE}"))

    assert result.body["action"] == "confirmed"
    assert transport.sent == []
    assert "payment email not sent" in fake_bot.sent_messages[-1]["text"]


async def test_email_failure_is_reported_to_operator(commands: OperatorCommands, transport, fake_bot):
    transport.fail = True
    result = await commands.handle_update(make_message_update(f"/paid_{REFERENCE}"))

    assert result.status == 500
    assert result.body == {"error": "Email sending failed", "reference": REFERENCE}
    text = fake_bot.sent_messages[-1]["text"]
    assert "EMAIL ERROR" in text
    assert "The from address is not verified" in text


async def test_help_and_unknown(commands: OperatorCommands, fake_bot):
    help_result = await commands.handle_update(make_message_update("/help"))
    unknown_result = await commands.handle_update(make_message_update("what now?"))

    assert help_result.body == {"success": True, "action": "help"}
    assert "Available Commands" in fake_bot.sent_messages[0]["text"]
    assert unknown_result.body == {"ok": True}
    assert fake_bot.sent_messages[1]["text"] == UNKNOWN_TEXT


async def test_callback_button_is_answered_and_dispatched(commands: OperatorCommands, fake_bot, transport):
    result = await commands.handle_update(make_callback_update(f"paid_{REFERENCE}", query_id="cbq-9"))

    assert result.body["action"] == "paid"
    assert fake_bot.answered_callbacks == [{"callback_query_id": "cbq-9", "text": None}]
    assert len(transport.sent) == 1


async def test_commands_from_other_chats_are_ignored(commands: OperatorCommands, fake_bot, transport):
    result = await commands.handle_update(make_message_update(f"/paid_{REFERENCE}", chat_id=666))

    assert result.body == {"ok": True}
    assert fake_bot.sent_messages == []
    assert transport.sent == []
