from __future__ import annotations

from enum import Enum


class CommandKind(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    PAID = "paid"
    CONFIRM = "confirm"
    HELP = "help"
    EMAIL_REPLY = "email_reply"
    UNKNOWN = "unknown"


class Action(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    PAID_PARTIAL = "paid_partial"
    CONFIRMED = "confirmed"
    HELP = "help"


EVENT_TITLE = "Vibe Coding Nov 2025"
EVENT_NAME = "Vibe Coding Workshop"
EVENT_DATE_ISO = "2025-11-06"
EVENT_DATE_LABEL = "November 6, 2025"
EVENT_TIME_LABEL = "6:30 PM - 9:00 PM"
EVENT_START = "20251106T183000"
EVENT_END = "20251106T210000"
EVENT_TIMEZONE = "Asia/Singapore"
EVENT_LOCATION = "182 Cecil St, #35-01 Frasers Tower, Singapore 069547"
EVENT_FOOTER = "© 2025 Vibe Coding Event • Organized by IndoTechSg • Sponsored by Cloudflare • Powered by Lovable"

PAYMENT_CURRENCY = "SGD"

# (window seconds, max requests)
RATE_LIMITS = {
    "registration": (5 * 60, 3),
    "public": (15 * 60, 10),
    "ai": (5 * 60, 3),
    "admin": (5 * 60, 50),
}
RATE_LIMIT_SWEEP_SECONDS = 60

DUPLICATE_WINDOW_SECONDS = 24 * 60 * 60
DUPLICATE_RETENTION_SECONDS = 7 * 24 * 60 * 60
DUPLICATE_CLEANUP_THRESHOLD = 1000

SERVER_SPAM_THRESHOLD = 8
PRECHECK_SPAM_THRESHOLD = 5

CAPTCHA_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CAPTCHA_LENGTH = 5
CAPTCHA_MAX_REGENERATIONS = 3
CAPTCHA_TTL_SECONDS = 10 * 60

AI_DAILY_LIMIT = 50
AI_MAX_PROMPT_TOKENS = 2000
MAX_PAYLOAD_BYTES = 50 * 1024
BLOCKED_COUNTRIES = ("CN", "RU", "IR")

TELEGRAM_CALLBACK_DATA_LIMIT = 64
