from __future__ import annotations

from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Optional

import pytest
from aiohttp.test_utils import TestClient, TestServer
from telegram.error import TelegramError

from vibebot.config import Config
from vibebot.main import build_application
from vibebot.models import EmailMessage, Registration
from vibebot.services.commands import OperatorCommands
from vibebot.services.email import EmailService, paynow_qr_url
from vibebot.services.messaging import TelegramNotifier
from vibebot.services.references import PayloadCodec
from vibebot.utils.errors import EmailDeliveryError

ADMIN_CHAT_ID = 1001
ALLOWED_ORIGIN = "http://localhost:3000"
FAKE_NOW = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = FAKE_NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@dataclass
class FakeUser:
    id: int


@dataclass
class FakeChat:
    id: int


@dataclass
class FakeMessage:
    chat_id: int
    text: str = ""
    chat: FakeChat = field(init=False)

    def __post_init__(self):
        self.chat = FakeChat(self.chat_id)


@dataclass
class FakeCallbackQuery:
    id: str
    data: str
    from_user: FakeUser
    message: Optional[FakeMessage]


@dataclass
class FakeUpdate:
    message: Optional[FakeMessage] = None
    callback_query: Optional[FakeCallbackQuery] = None

    @property
    def effective_message(self) -> Optional[FakeMessage]:
        if self.message is not None:
            return self.message
        return self.callback_query.message if self.callback_query else None


class FakeBot:
    def __init__(self):
        self.sent_messages: list[dict[str, Any]] = []
        self.answered_callbacks: list[dict[str, Any]] = []
        self.webhooks: list[dict[str, Any]] = []
        self.fail_send = False
        self.initialized = False

    async def initialize(self):
        self.initialized = True

    async def shutdown(self):
        self.initialized = False

    async def send_message(self, chat_id: int, text: str, reply_markup: Any = None, **kwargs: Any):
        if self.fail_send:
            raise TelegramError("Forbidden: bot was blocked by the user")
        payload = {"chat_id": chat_id, "text": text, "reply_markup": reply_markup, "kwargs": kwargs}
        self.sent_messages.append(payload)
        return SimpleNamespace(message_id=len(self.sent_messages), chat=SimpleNamespace(id=chat_id))

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None, **kwargs: Any):
        self.answered_callbacks.append({"callback_query_id": callback_query_id, "text": text})
        return True

    async def set_webhook(self, url: str, **kwargs: Any):
        self.webhooks.append({"url": url, **kwargs})
        return True

    async def get_webhook_info(self):
        url = self.webhooks[-1]["url"] if self.webhooks else ""
        return SimpleNamespace(to_dict=lambda: {"url": url, "pending_update_count": 0})


class FakeTransport:
    def __init__(self):
        self.sent: list[EmailMessage] = []
        self.fail = False

    async def send(self, message: EmailMessage):
        if self.fail:
            raise EmailDeliveryError("Resend error 422: The from address is not verified")
        self.sent.append(message)
        return f"email-{len(self.sent)}"


class FakeQRClient:
    def __init__(self, png: Optional[bytes] = b"\x89PNG\r\n\x1a\nfake"):
        self.png = png
        self.requests: list[tuple[int, str]] = []

    def url_for(self, amount: int, reference: str) -> str:
        return paynow_qr_url("https://api.qrserver.com/v1/create-qr-code/", amount, reference, "+65 9123 4567")

    async def fetch(self, amount: int, reference: str):
        self.requests.append((amount, reference))
        return self.png


class FakeWebhookClient:
    def __init__(self):
        self.notified: list[Registration] = []

    async def notify(self, registration: Registration) -> bool:
        self.notified.append(registration)
        return True


def make_message_update(text: str, chat_id: int = ADMIN_CHAT_ID) -> FakeUpdate:
    return FakeUpdate(message=FakeMessage(chat_id=chat_id, text=text))


def make_callback_update(data: str, chat_id: int = ADMIN_CHAT_ID, query_id: str = "cbq-1") -> FakeUpdate:
    query = FakeCallbackQuery(
        id=query_id,
        data=data,
        from_user=FakeUser(chat_id),
        message=FakeMessage(chat_id=chat_id, text="notice"),
    )
    return FakeUpdate(callback_query=query)


def telegram_message(text: str, chat_id: int = ADMIN_CHAT_ID, update_id: int = 1) -> dict[str, Any]:
    """Raw webhook body for a text message, as Telegram posts it."""
    return {
        "update_id": update_id,
        "message": {
            "message_id": 10 + update_id,
            "date": 1_700_000_000,
            "chat": {"id": chat_id, "type": "private"},
            "from": {"id": chat_id, "is_bot": False, "first_name": "Operator"},
            "text": text,
        },
    }


def telegram_callback(data: str, chat_id: int = ADMIN_CHAT_ID, update_id: int = 2) -> dict[str, Any]:
    return {
        "update_id": update_id,
        "callback_query": {
            "id": f"cbq-{update_id}",
            "from": {"id": chat_id, "is_bot": False, "first_name": "Operator"},
            "chat_instance": "instance-1",
            "data": data,
            "message": {
                "message_id": 10 + update_id,
                "date": 1_700_000_000,
                "chat": {"id": chat_id, "type": "private"},
                "text": "notice",
            },
        },
    }


def valid_form(**overrides: Any) -> dict[str, Any]:
    form = {
        "name": "Alice Tan",
        "email": "alice@example.com",
        "phone": "+65 9123 4567",
        "company": "Acme Labs",
        "linkedinProfile": "",
        "hasExperience": True,
        "toolsUsed": "Lovable, Cursor",
        "projectIdea": "A neighbourhood recipe swap app with weekly themes and photo galleries",
    }
    form.update(overrides)
    return form


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> Config:
    return Config(
        telegram_bot_token="TEST_TOKEN",
        admin_chat_ids=[ADMIN_CHAT_ID],
        resend_api_key="re_test",
        email_from="Vibe Coding <hello@vibe.test>",
        admin_api_key="admin-key",
        internal_api_key="internal-key",
        captcha_required=False,
        honeypot_delay=0,
        log_file="",
    )


@pytest.fixture
def fake_bot() -> FakeBot:
    return FakeBot()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def qr_client() -> FakeQRClient:
    return FakeQRClient()


@pytest.fixture
def webhook_client() -> FakeWebhookClient:
    return FakeWebhookClient()


@pytest.fixture
def notifier(fake_bot: FakeBot, config: Config) -> TelegramNotifier:
    return TelegramNotifier(fake_bot, config.admin_chat_id)


@pytest.fixture
def email_service(transport: FakeTransport, qr_client: FakeQRClient, config: Config) -> EmailService:
    return EmailService(transport, qr_client, config)


@pytest.fixture
def codec() -> PayloadCodec:
    return PayloadCodec()


@pytest.fixture
def commands(notifier, email_service, codec, config) -> OperatorCommands:
    return OperatorCommands(notifier, email_service, codec, config)


@pytest.fixture
def registration() -> Registration:
    return Registration(
        name="Alice Tan",
        email="alice@example.com",
        phone="+65 9123 4567",
        company="Acme Labs",
        linkedin_profile="https://linkedin.com/in/alice-tan",
        has_experience=True,
        tools_used="Lovable",
        project_idea="A neighbourhood recipe swap app",
        reference="ALICETAN_ALICE@EXAMPLE.COM_alice-tan",
        timestamp="2025-10-20T09:30:00.000Z",
    )


@pytest.fixture
async def make_client(config, fake_bot, transport, qr_client, webhook_client, clock):
    """Factory for an aiohttp test client; keyword overrides go to ``build_application``."""
    clients: list[TestClient] = []

    async def factory(app_config: Optional[Config] = None, **overrides: Any) -> TestClient:
        kwargs = {
            "bot": fake_bot,
            "transport": transport,
            "qr_client": qr_client,
            "webhook_client": webhook_client,
            "clock": clock,
        }
        kwargs.update(overrides)
        app = build_application(app_config or config, **kwargs)
        client = TestClient(TestServer(app))
        await client.start_server()
        clients.append(client)
        return client

    try:
        yield factory
    finally:
        for client in clients:
            await client.close()


@pytest.fixture
async def client(make_client) -> TestClient:
    return await make_client()
