from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional

from ..constants import RATE_LIMITS, RATE_LIMIT_SWEEP_SECONDS
from ..models import RateLimitResult

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    count: int
    reset_at: float


def client_ip(headers: Mapping[str, str], remote: Optional[str] = None) -> str:
    forwarded = headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    cf_ip = headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip
    return remote or "unknown"


class RateLimiter:
    """Fixed-window counter per key, kept in process memory.

    Entries expire passively on lookup and are dropped by :meth:`sweep`.
    """

    def __init__(self, window_seconds: float, max_requests: int, clock: Callable[[], float] = time.time):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.clock = clock
        self._store: Dict[str, _Entry] = {}

    def hit(self, key: str) -> RateLimitResult:
        now = self.clock()
        entry = self._store.get(key)

        if entry is None or now > entry.reset_at:
            reset_at = now + self.window_seconds
            self._store[key] = _Entry(count=1, reset_at=reset_at)
            return RateLimitResult(True, self.max_requests, self.max_requests - 1, reset_at)

        if entry.count >= self.max_requests:
            retry_after = max(1, math.ceil(entry.reset_at - now))
            return RateLimitResult(False, self.max_requests, 0, entry.reset_at, retry_after)

        entry.count += 1
        return RateLimitResult(True, self.max_requests, self.max_requests - entry.count, entry.reset_at)

    def sweep(self) -> int:
        now = self.clock()
        expired = [key for key, entry in self._store.items() if now > entry.reset_at]
        for key in expired:
            del self._store[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._store)


def build_rate_limiters(clock: Callable[[], float] = time.time) -> Dict[str, RateLimiter]:
    return {
        name: RateLimiter(window, max_requests, clock=clock)
        for name, (window, max_requests) in RATE_LIMITS.items()
    }


async def sweep_forever(limiters: Iterable[RateLimiter], interval: float = RATE_LIMIT_SWEEP_SECONDS):
    limiters = list(limiters)
    while True:
        await asyncio.sleep(interval)
        removed = sum(limiter.sweep() for limiter in limiters)
        if removed:
            logger.debug("Rate limit sweep removed %s expired entries", removed)
