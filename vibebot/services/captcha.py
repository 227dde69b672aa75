from __future__ import annotations

import html
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Dict

from ..constants import (
    CAPTCHA_ALPHABET,
    CAPTCHA_LENGTH,
    CAPTCHA_MAX_REGENERATIONS,
    CAPTCHA_TTL_SECONDS,
)
from ..models import CaptchaChallenge
from ..utils.errors import PermissionDenied

logger = logging.getLogger(__name__)


@dataclass
class _IssueWindow:
    issued: int
    reset_at: float


def render_captcha_svg(text: str, rng: secrets.SystemRandom | None = None) -> str:
    rng = rng or secrets.SystemRandom()
    width, height = 160, 56
    pieces = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" viewBox="0 0 {width} {height}">',
        f'<rect width="{width}" height="{height}" fill="#1f2937"/>',
    ]
    for _ in range(6):
        x1, y1 = rng.randint(0, width), rng.randint(0, height)
        x2, y2 = rng.randint(0, width), rng.randint(0, height)
        pieces.append(f'<line x1="{x1}" y1="{y1}" x2="{x2}" y2="{y2}" stroke="#6b7280" stroke-width="1"/>')
    for index, char in enumerate(text):
        x = 18 + index * 28
        y = 36 + rng.randint(-6, 6)
        angle = rng.randint(-20, 20)
        pieces.append(
            f'<text x="{x}" y="{y}" transform="rotate({angle} {x} {y})" font-family="monospace" '
            f'font-size="28" font-weight="bold" fill="#e5e7eb">{html.escape(char)}</text>'
        )
    pieces.append("</svg>")
    return "".join(pieces)


class CaptchaService:
    """Server-held text challenges.

    Each client key may request ``1 + CAPTCHA_MAX_REGENERATIONS`` challenges
    per TTL window. A challenge is removed on the first verification attempt,
    right or wrong.
    """

    def __init__(self, clock: Callable[[], float] = time.time, ttl: float = CAPTCHA_TTL_SECONDS):
        self.clock = clock
        self.ttl = ttl
        self._challenges: Dict[str, CaptchaChallenge] = {}
        self._issued: Dict[str, _IssueWindow] = {}
        self._rng = secrets.SystemRandom()

    def issue(self, client_key: str) -> CaptchaChallenge:
        now = self.clock()
        self._purge(now)
        window = self._issued.get(client_key)
        if window is None or now > window.reset_at:
            window = _IssueWindow(issued=0, reset_at=now + self.ttl)
            self._issued[client_key] = window
        if window.issued > CAPTCHA_MAX_REGENERATIONS:
            raise PermissionDenied("Too many CAPTCHA regenerations")
        window.issued += 1

        text = "".join(self._rng.choice(CAPTCHA_ALPHABET) for _ in range(CAPTCHA_LENGTH))
        challenge = CaptchaChallenge(
            challenge_id=secrets.token_urlsafe(16),
            text=text,
            expires_at=now + self.ttl,
            image=render_captcha_svg(text, self._rng),
        )
        self._challenges[challenge.challenge_id] = challenge
        return challenge

    def verify(self, challenge_id: str, answer: str) -> bool:
        challenge = self._challenges.pop(challenge_id or "", None)
        if challenge is None:
            return False
        if self.clock() > challenge.expires_at:
            return False
        given = (answer or "").strip().upper().encode("utf-8")
        return secrets.compare_digest(given, challenge.text.encode("utf-8"))

    def _purge(self, now: float) -> None:
        expired = [cid for cid, challenge in self._challenges.items() if now > challenge.expires_at]
        for cid in expired:
            del self._challenges[cid]
        stale = [key for key, window in self._issued.items() if now > window.reset_at]
        for key in stale:
            del self._issued[key]
