from __future__ import annotations

import logging
import re
import time
from collections import Counter
from typing import Any, Callable, Dict, Mapping

from ..constants import (
    DUPLICATE_CLEANUP_THRESHOLD,
    DUPLICATE_RETENTION_SECONDS,
    DUPLICATE_WINDOW_SECONDS,
    PRECHECK_SPAM_THRESHOLD,
    SERVER_SPAM_THRESHOLD,
)
from ..models import SpamCheckResult

logger = logging.getLogger(__name__)

SUSPICIOUS_DOMAINS = ("tempmail", "10minutemail", "guerrillamail", "mailinator", "throwaway")
SPAM_KEYWORDS = ("spam", "test", "fake", "bot", "scam", "money", "crypto", "bitcoin")
PRECHECK_KEYWORDS = ("spam", "test", "fake", "bot", "scam")

_NAME_CHARS = re.compile(r"^[a-zA-Z\s'-]+$")
_PHONE_FORMAT = re.compile(r"^[+]?[\d\s\-()]{8,15}$")
_CONSONANTS = re.compile(r"[bcdfghjklmnpqrstvwxyz]", re.IGNORECASE)
_VOWELS = re.compile(r"[aeiou]", re.IGNORECASE)


def _field(form: Mapping[str, Any], key: str) -> str:
    value = form.get(key)
    return value if isinstance(value, str) else ""


def detect_spam(form: Mapping[str, Any]) -> SpamCheckResult:
    """Server-side additive spam score; spam at ``SERVER_SPAM_THRESHOLD``."""
    name = _field(form, "name")
    email = _field(form, "email")
    phone = _field(form, "phone")
    idea = _field(form, "projectIdea")
    reasons = []
    score = 0

    if len(name) < 2:
        reasons.append("Name too short")
        score += 2
    if len(name) > 50:
        reasons.append("Name too long")
        score += 1
    if not _NAME_CHARS.match(name):
        reasons.append("Name contains invalid characters")
        score += 3
    if "spam" in name.lower():
        reasons.append("Suspicious name content")
        score += 5

    domain = email.split("@")[1].lower() if "@" in email else ""
    if domain and any(bad in domain for bad in SUSPICIOUS_DOMAINS):
        reasons.append("Suspicious email domain")
        score += 4
    if "+" in email and "@" in email.split("+", 1)[1]:
        # aliases make repeat registrations cheap
        score += 1

    if not _PHONE_FORMAT.match(phone):
        reasons.append("Invalid phone format")
        score += 2
    digits = re.sub(r"\D", "", phone)
    if len(digits) >= 8 and len(set(digits)) <= 3:
        reasons.append("Phone number has too many repeated digits")
        score += 3

    if len(idea) < 10:
        reasons.append("Project idea too short")
        score += 2
    if len(idea) > 500:
        reasons.append("Project idea too long")
        score += 1

    idea_lower = idea.lower()
    found = [keyword for keyword in SPAM_KEYWORDS if keyword in idea_lower]
    if found:
        reasons.append(f"Suspicious keywords: {', '.join(found)}")
        score += len(found) * 2

    counts = Counter(word for word in idea_lower.split() if len(word) > 3)
    if counts and max(counts.values()) > 3:
        reasons.append("Excessive word repetition")
        score += 2

    consonants = len(_CONSONANTS.findall(idea))
    vowels = len(_VOWELS.findall(idea))
    if consonants and vowels and consonants / (consonants + vowels) > 0.8:
        reasons.append("Text appears to be gibberish")
        score += 3

    return SpamCheckResult(is_spam=score >= SERVER_SPAM_THRESHOLD, reasons=reasons, score=score)


def precheck_spam(form: Mapping[str, Any]) -> SpamCheckResult:
    """Cheap screen run before the full check; stricter threshold, fewer signals."""
    name = _field(form, "name")
    idea = _field(form, "projectIdea")
    reasons = []
    score = 0

    if len(name) < 2 or len(name) > 50:
        reasons.append("Invalid name length")
        score += 2
    if len(idea) < 10 or len(idea) > 500:
        reasons.append("Invalid project idea length")
        score += 2

    text = f"{name} {idea}".lower()
    for keyword in PRECHECK_KEYWORDS:
        if keyword in text:
            reasons.append(f"Suspicious keyword: {keyword}")
            score += 3

    return SpamCheckResult(is_spam=score >= PRECHECK_SPAM_THRESHOLD, reasons=reasons, score=score)


class DuplicateChecker:
    """Remembers email+phone pairs for a day.

    Only accepted submissions are recorded, so retries inside the window do
    not push it forward.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._seen: Dict[str, float] = {}

    @staticmethod
    def make_key(email: str, phone: str) -> str:
        return f"{email.lower()}_{re.sub(r'[^0-9]', '', phone)}"

    def is_duplicate(self, email: str, phone: str) -> bool:
        key = self.make_key(email, phone)
        now = self.clock()
        last = self._seen.get(key)
        duplicate = last is not None and now - last < DUPLICATE_WINDOW_SECONDS

        if duplicate:
            return True

        self._seen[key] = now
        if len(self._seen) > DUPLICATE_CLEANUP_THRESHOLD:
            self.cleanup(now)
        return False

    def cleanup(self, now: float | None = None) -> int:
        now = self.clock() if now is None else now
        cutoff = now - DUPLICATE_RETENTION_SECONDS
        stale = [key for key, seen_at in self._seen.items() if seen_at < cutoff]
        for key in stale:
            del self._seen[key]
        if stale:
            logger.debug("Dropped %s stale submission records", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._seen)
