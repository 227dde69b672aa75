from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


@dataclass
class Config:
    telegram_bot_token: str = ""
    admin_chat_ids: List[int] = field(default_factory=list)
    telegram_webhook_secret: str = ""
    resend_api_key: str = ""
    email_from: str = "Vibe Coding <noreply@yourdomain.com>"
    paynow_mobile: str = "+65 9123 4567"
    paynow_api_key: str = ""
    paynow_qr_url: str = "https://api.qrserver.com/v1/create-qr-code/"
    payment_amount: int = 10
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    admin_api_key: str = ""
    internal_api_key: str = ""
    signups_disabled: bool = False
    vibing_webhook_url: str = ""
    vibing_webhook_secret: str = ""
    app_url: str = ""
    webhook_domain: str = ""
    payload_signing_secret: str = ""
    captcha_required: bool = True
    environment: str = "production"
    host: str = "0.0.0.0"
    port: int = 8080
    honeypot_delay: float = 5.0
    log_level: str = "INFO"
    log_file: str = os.path.join("data", "vibebot.log")
    security_log_file: str = os.path.join("data", "security.log")
    log_max_bytes: int = 5 * 1024 * 1024
    log_backup_count: int = 3

    @property
    def admin_chat_id(self) -> Optional[int]:
        return self.admin_chat_ids[0] if self.admin_chat_ids else None

    @property
    def telegram_configured(self) -> bool:
        return bool(self.telegram_bot_token and self.admin_chat_ids)

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def allowed_origins(self) -> List[str]:
        origins = [
            "http://localhost:3000",
            "https://vibe-coding.pages.dev",
            "https://*.pages.dev",
        ]
        if self.app_url:
            origins.append(self.app_url.rstrip("/"))
        return origins


def _parse_ids(raw: str) -> List[int]:
    ids: List[int] = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            ids.append(int(chunk))
        except ValueError:
            continue
    return ids


def _parse_bool(raw: str | None, default: bool = False) -> bool:
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "y", "on"):
        return True
    if value in ("0", "false", "no", "n", "off"):
        return False
    return default


def _parse_int(raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _parse_float(raw: str | None, default: float) -> float:
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def load_config() -> Config:
    load_dotenv()
    defaults = Config()
    log_file = os.getenv("LOG_FILE", defaults.log_file)

    return Config(
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        admin_chat_ids=_parse_ids(os.getenv("TELEGRAM_ADMIN_CHAT_ID", "")),
        telegram_webhook_secret=os.getenv("TELEGRAM_WEBHOOK_SECRET", ""),
        resend_api_key=os.getenv("RESEND_API_KEY", ""),
        email_from=os.getenv("EMAIL_FROM") or defaults.email_from,
        paynow_mobile=os.getenv("PAYNOW_MOBILE") or defaults.paynow_mobile,
        paynow_api_key=os.getenv("PAYNOW_API_KEY", ""),
        paynow_qr_url=os.getenv("PAYNOW_QR_URL") or defaults.paynow_qr_url,
        payment_amount=_parse_int(os.getenv("PAYMENT_AMOUNT"), defaults.payment_amount),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_model=os.getenv("OPENAI_MODEL") or defaults.openai_model,
        admin_api_key=os.getenv("ADMIN_API_KEY", ""),
        internal_api_key=os.getenv("INTERNAL_API_KEY", ""),
        signups_disabled=_parse_bool(os.getenv("SIGNUPS_DISABLED"), default=False),
        vibing_webhook_url=os.getenv("VIBING_WEBHOOK_URL", ""),
        vibing_webhook_secret=os.getenv("VIBING_WEBHOOK_SECRET", ""),
        app_url=os.getenv("NEXT_PUBLIC_APP_URL", ""),
        webhook_domain=os.getenv("WEBHOOK_DOMAIN", ""),
        payload_signing_secret=os.getenv("PAYLOAD_SIGNING_SECRET", ""),
        captcha_required=_parse_bool(os.getenv("CAPTCHA_REQUIRED"), default=True),
        environment=os.getenv("APP_ENV", defaults.environment).strip().lower(),
        host=os.getenv("HOST", defaults.host),
        port=_parse_int(os.getenv("PORT"), defaults.port),
        honeypot_delay=_parse_float(os.getenv("HONEYPOT_DELAY_SECONDS"), defaults.honeypot_delay),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_file=log_file,
        security_log_file=os.getenv("SECURITY_LOG_FILE", defaults.security_log_file),
        log_max_bytes=_parse_int(os.getenv("LOG_MAX_BYTES"), defaults.log_max_bytes),
        log_backup_count=_parse_int(os.getenv("LOG_BACKUP_COUNT"), defaults.log_backup_count),
    )
