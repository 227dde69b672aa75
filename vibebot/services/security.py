from __future__ import annotations

import hmac
import logging
import math
import re
from datetime import date, datetime, time as dtime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from ..constants import AI_DAILY_LIMIT, BLOCKED_COUNTRIES, MAX_PAYLOAD_BYTES

logger = logging.getLogger(__name__)

_BOT_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (r"bot", r"crawl", r"spider", r"scrape", r"python-requests", r"curl", r"wget", r"postman", r"insomnia")
]


def log_security_event(event: str, ip: str, headers: Mapping[str, str], url: str = "", **details: Any) -> None:
    extra = " ".join(f"{key}={value!r}" for key, value in details.items())
    logger.warning(
        "[SECURITY] %s ip=%s ua=%r url=%s %s",
        event,
        ip,
        headers.get("User-Agent", ""),
        url,
        extra,
    )


def log_threat(event: str, severity: str, ip: str, headers: Mapping[str, str], url: str = "") -> None:
    logger.warning(
        "[THREAT-%s] %s ip=%s ua=%r country=%s url=%s",
        severity.upper(),
        event,
        ip,
        headers.get("User-Agent", ""),
        headers.get("CF-IPCountry", ""),
        url,
    )


def _origin_of(url: str) -> str:
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc}"


class OriginValidator:
    """Allow-list of origins; an entry may contain one ``*`` wildcard."""

    def __init__(self, allowed: Iterable[str], allow_missing: bool = False):
        self.exact: List[str] = []
        self.patterns: List[re.Pattern[str]] = []
        for origin in allowed:
            if not origin:
                continue
            if "*" in origin:
                head, _, tail = origin.partition("*")
                self.patterns.append(re.compile(f"^{re.escape(head)}[A-Za-z0-9.-]+{re.escape(tail)}$"))
            else:
                self.exact.append(origin)
        self.allow_missing = allow_missing

    def request_origin(self, headers: Mapping[str, str]) -> str:
        origin = headers.get("Origin")
        if origin:
            return origin
        referer = headers.get("Referer")
        return _origin_of(referer) if referer else ""

    def is_allowed(self, headers: Mapping[str, str]) -> bool:
        origin = self.request_origin(headers)
        if not origin:
            return self.allow_missing
        if origin in self.exact:
            return True
        return any(pattern.match(origin) for pattern in self.patterns)


def check_api_key(headers: Mapping[str, str], expected: str) -> bool:
    if not expected:
        logger.warning("API key check requested but no key is configured")
        return False
    provided = headers.get("X-API-Key", "")
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / 4)


def is_blocked_country(headers: Mapping[str, str]) -> Optional[str]:
    country = headers.get("CF-IPCountry")
    if country and country.upper() in BLOCKED_COUNTRIES:
        return country.upper()
    return None


def payload_too_large(headers: Mapping[str, str], limit: int = MAX_PAYLOAD_BYTES) -> bool:
    raw = headers.get("Content-Length")
    if not raw:
        return False
    try:
        return int(raw) > limit
    except ValueError:
        return False


def looks_like_bot(headers: Mapping[str, str]) -> bool:
    user_agent = headers.get("User-Agent", "")
    if any(pattern.search(user_agent) for pattern in _BOT_PATTERNS):
        return True
    return not (headers.get("Accept") and headers.get("Accept-Language") and headers.get("Accept-Encoding"))


class DailyUsage:
    """Per-key request counter that resets at local midnight."""

    def __init__(self, limit: int = AI_DAILY_LIMIT, today: Callable[[], date] = date.today):
        self.limit = limit
        self.today = today
        self._usage: Dict[str, Tuple[date, int]] = {}

    def count(self, key: str) -> int:
        entry = self._usage.get(key)
        if entry is None or entry[0] != self.today():
            return 0
        return entry[1]

    def exceeded(self, key: str) -> bool:
        return self.count(key) >= self.limit

    def increment(self, key: str) -> int:
        value = self.count(key) + 1
        self._usage[key] = (self.today(), value)
        return value

    def next_reset(self) -> str:
        tomorrow = datetime.combine(self.today() + timedelta(days=1), dtime.min)
        return tomorrow.isoformat()
