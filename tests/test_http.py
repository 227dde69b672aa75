from __future__ import annotations

import dataclasses
import re
from types import SimpleNamespace

from vibebot.handlers.common import CAPTCHA as CAPTCHA_KEY
from vibebot.services.email import CONFIRMATION_SUBJECT, PAYMENT_SUBJECT
from vibebot.services.vibe import VibeGenerator

from conftest import ADMIN_CHAT_ID, ALLOWED_ORIGIN, telegram_callback, telegram_message, valid_form

REFERENCE_PATTERN = re.compile(r"^[A-Z]+_[^_]+_([0-9]{4}|[a-z0-9-]+)$")
BROWSER = {
    "Origin": ALLOWED_ORIGIN,
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) Gecko/20100101 Firefox/131.0",
    "Accept": "application/json",
    "Accept-Language": "en-SG",
    "Accept-Encoding": "gzip",
}


async def register(client, form=None, **headers):
    return await client.post(
        "/api/telegram-simple",
        json={"formData": form or valid_form(), "timestamp": "2025-10-20T09:30:00Z"},
        headers={**BROWSER, **headers},
    )


async def test_registration_then_paid_command_end_to_end(client, transport, fake_bot, webhook_client):
    response = await register(client)
    assert response.status == 200
    body = await response.json()
    assert body["success"] is True
    reference = body["reference"]
    assert REFERENCE_PATTERN.match(reference)
    assert reference.startswith("ALICETAN_ALICE@EXAMPLE.COM_")

    assert [m.subject for m in transport.sent] == [PAYMENT_SUBJECT]
    assert [r.reference for r in webhook_client.notified] == [reference]
    notice = fake_bot.sent_messages[-1]
    assert notice["chat_id"] == ADMIN_CHAT_ID
    assert reference in notice["text"]
    assert notice["reply_markup"].inline_keyboard[0][0].callback_data == f"paid_{reference}"

    sent_before = len(transport.sent)
    response = await client.post("/api/telegram-bot", json=telegram_message(f"paid_{reference}"))
    assert response.status == 200
    assert await response.json() == {"success": True, "action": "paid", "reference": reference}
    assert len(transport.sent) == sent_before + 1
    assert transport.sent[-1].subject == CONFIRMATION_SUBJECT


async def test_non_latin_name_can_still_be_marked_paid(client, transport):
    response = await register(client, valid_form(name="李明", email="liming@example.com", linkedinProfile=""))
    assert response.status == 200
    reference = (await response.json())["reference"]
    assert reference.startswith("PARTICIPANT_LIMING@EXAMPLE.COM_")

    response = await client.post("/api/telegram-bot", json=telegram_message(f"paid_{reference}"))
    assert response.status == 200
    assert await response.json() == {"success": True, "action": "paid", "reference": reference}
    assert transport.sent[-1].subject == CONFIRMATION_SUBJECT
    assert transport.sent[-1].to == ["liming@example.com"]


async def test_mark_as_paid_button_via_webhook_route(client, transport, fake_bot):
    reference = (await (await register(client)).json())["reference"]

    response = await client.post("/api/telegram-webhook", json=telegram_callback(f"paid_{reference}"))
    assert (await response.json())["action"] == "paid"
    assert fake_bot.answered_callbacks[-1]["callback_query_id"] == "cbq-2"
    assert transport.sent[-1].subject == CONFIRMATION_SUBJECT


async def test_payment_email_failure_does_not_block_registration(client, transport, fake_bot):
    transport.fail = True
    response = await register(client)

    assert response.status == 200
    assert "could not be sent" in fake_bot.sent_messages[-1]["text"]


async def test_notification_failure_is_a_server_error(client, fake_bot):
    fake_bot.fail_send = True
    response = await register(client)

    assert response.status == 500
    assert await response.json() == {"error": "Failed to process registration"}


async def test_spam_is_rejected_with_reasons(client, transport):
    response = await register(client, valid_form(name="ab", projectIdea="test idea"))

    assert response.status == 400
    body = await response.json()
    assert body["error"] == "spam_detected"
    assert body["reasons"]
    assert transport.sent == []


async def test_duplicate_submission_conflicts(client):
    assert (await register(client)).status == 200
    response = await register(client, valid_form(email="ALICE@example.com"))

    assert response.status == 409
    assert (await response.json())["error"] == "duplicate"


async def test_validation_errors_are_field_level(client):
    response = await register(client, valid_form(email="nope", phone=""))

    assert response.status == 400
    body = await response.json()
    assert body["error"] == "validation_error"
    assert set(body["details"]) == {"email", "phone"}


async def test_malformed_json(client):
    response = await client.post("/api/telegram-simple", data="{not json", headers=BROWSER)
    assert response.status == 400
    assert (await response.json())["error"] == "invalid_json"


async def test_foreign_origin_is_forbidden(client, fake_bot):
    response = await register(client, Origin="https://evil.example")

    assert response.status == 403
    assert fake_bot.sent_messages == []


async def test_registration_rate_limit(client):
    statuses = []
    for index in range(4):
        response = await register(client, valid_form(email=f"user{index}@example.com"))
        statuses.append(response.status)

    assert statuses == [200, 200, 200, 429]
    assert response.headers["Retry-After"] == "300"
    assert response.headers["X-RateLimit-Limit"] == "3"
    assert response.headers["X-RateLimit-Remaining"] == "0"

    other = await register(client, valid_form(email="other@example.com"), **{"X-Forwarded-For": "203.0.113.9"})
    assert other.status == 200


async def test_signups_closed(make_client, config):
    client = await make_client(dataclasses.replace(config, signups_disabled=True))

    response = await register(client)
    assert response.status == 403
    status = await (await client.get("/api/signup-status")).json()
    assert status == {"enabled": False, "message": "Registration is currently closed. Thank you for your interest!"}


async def test_signup_status_open(client):
    assert await (await client.get("/api/signup-status")).json() == {"enabled": True}


async def test_missing_telegram_config(make_client, config):
    client = await make_client(dataclasses.replace(config, admin_chat_ids=[]))

    response = await register(client)
    assert response.status == 500
    assert (await response.json())["error"] == "Telegram configuration missing"


async def test_captcha_required_flow(make_client, config):
    client = await make_client(dataclasses.replace(config, captcha_required=True))

    response = await register(client)
    assert response.status == 400
    assert (await response.json())["error"] == "captcha_failed"

    challenge = await (await client.get("/api/captcha")).json()
    assert challenge["image"].startswith("<svg")
    service = client.app[CAPTCHA_KEY]
    answer = service._challenges[challenge["challengeId"]].text  # noqa: SLF001

    form = valid_form(email="captcha@example.com", captchaId=challenge["challengeId"], captchaAnswer=answer.lower())
    response = await register(client, form)
    assert response.status == 200


async def test_captcha_regeneration_is_limited(client):
    statuses = [(await client.get("/api/captcha")).status for _ in range(5)]
    assert statuses == [200, 200, 200, 200, 429]


async def test_webhook_secret_is_enforced(make_client, config):
    client = await make_client(dataclasses.replace(config, telegram_webhook_secret="hook-secret"))

    denied = await client.post("/api/telegram-bot", json=telegram_message("/help"))
    assert denied.status == 401

    allowed = await client.post(
        "/api/telegram-bot",
        json=telegram_message("/help"),
        headers={"X-Telegram-Bot-Api-Secret-Token": "hook-secret"},
    )
    assert await allowed.json() == {"success": True, "action": "help"}


async def test_bot_update_without_text_is_acknowledged(client):
    update = {
        "update_id": 5,
        "message": {
            "message_id": 50,
            "date": 1_700_000_000,
            "chat": {"id": ADMIN_CHAT_ID, "type": "private"},
            "sticker_set_name": "none",
        },
    }
    response = await client.post("/api/telegram-bot", json=update)
    assert await response.json() == {"ok": True}


async def test_set_webhook_requires_admin_key(client, fake_bot):
    response = await client.post("/api/set-webhook", json={"webhookUrl": "https://vibe.example/api/telegram-bot"})
    assert response.status == 401
    assert fake_bot.webhooks == []


async def test_set_webhook_and_read_it_back(client, fake_bot):
    headers = {"X-API-Key": "admin-key"}
    response = await client.post(
        "/api/set-webhook", json={"webhookUrl": "https://vibe.example/api/telegram-bot"}, headers=headers
    )
    assert response.status == 200
    assert (await response.json())["webhook_url"] == "https://vibe.example/api/telegram-bot"
    assert fake_bot.webhooks[-1]["allowed_updates"] == ["message", "callback_query"]

    info = await (await client.get("/api/set-webhook", headers=headers)).json()
    assert info["result"]["url"] == "https://vibe.example/api/telegram-bot"


async def test_set_webhook_defaults_to_domain_and_requires_https(make_client, config, fake_bot):
    headers = {"X-API-Key": "admin-key"}
    client = await make_client(dataclasses.replace(config, webhook_domain="https://vibe.example"))
    response = await client.post("/api/set-webhook", headers=headers)
    assert (await response.json())["webhook_url"] == "https://vibe.example/api/telegram-bot"

    response = await client.post("/api/set-webhook", json={"webhookUrl": "http://plain.example/hook"}, headers=headers)
    assert response.status == 400


async def test_namecard_download(client):
    response = await client.post(
        "/api/namecard",
        json={"name": "Alice Tan", "email": "alice@example.com"},
        headers={"X-API-Key": "internal-key"},
    )
    assert response.status == 200
    assert response.content_type == "image/svg+xml"
    assert response.headers["Content-Disposition"] == 'attachment; filename="Alice_Tan_namecard.svg"'
    assert b"ALICE TAN" in await response.read()


async def test_namecard_requires_name_and_email(client):
    response = await client.post("/api/namecard", json={"name": "Alice"}, headers={"Origin": ALLOWED_ORIGIN})
    assert response.status == 400


async def test_namecard_rejects_unknown_callers(client):
    response = await client.post("/api/namecard", json={"name": "Alice", "email": "a@example.com"})
    assert response.status == 403


async def test_honeypot_claims_success(client):
    response = await client.post("/api/admin", json={"user": "root"})
    assert response.status == 200
    assert await response.json() == {"success": True}


class FakeCompletions:
    def __init__(self):
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content="**Core Purpose:** A cosy recipe swap.")
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


async def test_generate_vibe(make_client):
    completions = FakeCompletions()
    fake_openai = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    client = await make_client(vibe_generator=VibeGenerator("", client=fake_openai))

    response = await client.post(
        "/api/generate-vibe",
        json={"name": "Alice", "projectIdea": "A recipe swap app", "hasExperience": False},
        headers=BROWSER,
    )
    assert response.status == 200
    body = await response.json()
    assert body["vibeCode"].startswith("**Core Purpose:**")
    assert completions.calls[0]["model"] == "gpt-4o-mini"
    assert completions.calls[0]["temperature"] == 0.7
    assert "No previous experience" in completions.calls[0]["messages"][0]["content"]


async def test_generate_vibe_without_api_key(client):
    response = await client.post(
        "/api/generate-vibe",
        json={"name": "Alice", "projectIdea": "A recipe swap app"},
        headers=BROWSER,
    )
    assert response.status == 503


async def test_generate_vibe_geo_block_and_payload_size(client):
    blocked = await client.post(
        "/api/generate-vibe",
        json={"name": "Alice", "projectIdea": "A recipe swap app"},
        headers={**BROWSER, "CF-IPCountry": "IR"},
    )
    assert blocked.status == 403

    huge = await client.post(
        "/api/generate-vibe",
        json={"name": "Alice", "projectIdea": "x" * (60 * 1024)},
        headers=BROWSER,
    )
    assert huge.status == 413


async def test_generate_vibe_validates_input(client):
    response = await client.post("/api/generate-vibe", json={"name": "Alice"}, headers=BROWSER)
    assert response.status == 400
    assert "projectIdea" in (await response.json())["details"]


async def test_legacy_relay(client, fake_bot):
    response = await client.post(
        "/api/telegram",
        json={"message": "<b>New registration</b>", "formData": {"reference": "ALICE_X_1234"}},
        headers=BROWSER,
    )
    assert await response.json() == {"success": True, "reference": "ALICE_X_1234"}
    assert fake_bot.sent_messages[-1]["text"] == "<b>New registration</b>"


