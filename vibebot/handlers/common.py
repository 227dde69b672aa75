from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from aiohttp import web
from telegram import Bot

from ..config import Config
from ..models import RateLimitResult
from ..services.captcha import CaptchaService
from ..services.commands import OperatorCommands
from ..services.messaging import TelegramNotifier
from ..services.rate_limit import RateLimiter, client_ip
from ..services.registration import RegistrationService
from ..services.security import DailyUsage, OriginValidator, log_security_event
from ..services.vibe import VibeGenerator
from ..utils.errors import InvalidPayload

logger = logging.getLogger(__name__)

CONFIG = web.AppKey("config", Config)
BOT = web.AppKey("bot", Bot)
NOTIFIER = web.AppKey("notifier", TelegramNotifier)
COMMANDS = web.AppKey("commands", OperatorCommands)
REGISTRATIONS = web.AppKey("registration_service", RegistrationService)
RATE_LIMITERS = web.AppKey("rate_limiters", dict)
ORIGINS = web.AppKey("origin_validator", OriginValidator)
CAPTCHA = web.AppKey("captcha_service", CaptchaService)
VIBE = web.AppKey("vibe_generator", VibeGenerator)
AI_USAGE = web.AppKey("ai_usage", DailyUsage)
CLOSEABLES = web.AppKey("closeables", list)


def json_error(error: str, status: int = 400, message: Optional[str] = None, **extra: Any) -> web.Response:
    body: Dict[str, Any] = {"error": error}
    if message:
        body["message"] = message
    body.update(extra)
    return web.json_response(body, status=status)


def request_ip(request: web.Request) -> str:
    return client_ip(request.headers, request.remote)


def check_rate_limit(request: web.Request, preset: str) -> RateLimitResult:
    limiter: RateLimiter = request.app[RATE_LIMITERS][preset]
    result = limiter.hit(request_ip(request))
    if not result.allowed:
        log_security_event(
            "RATE_LIMIT_EXCEEDED",
            request_ip(request),
            request.headers,
            str(request.url),
            preset=preset,
        )
    return result


def rate_limited(result: RateLimitResult, message: str = "Too many requests. Please try again later.") -> web.Response:
    response = json_error("rate_limited", status=429, message=message, retryAfter=result.retry_after)
    response.headers["Retry-After"] = str(result.retry_after)
    response.headers["X-RateLimit-Limit"] = str(result.limit)
    response.headers["X-RateLimit-Remaining"] = str(result.remaining)
    return response


def origin_allowed(request: web.Request) -> bool:
    validator: OriginValidator = request.app[ORIGINS]
    if validator.is_allowed(request.headers):
        return True
    log_security_event(
        "INVALID_ORIGIN",
        request_ip(request),
        request.headers,
        str(request.url),
        origin=validator.request_origin(request.headers),
    )
    return False


async def read_json(request: web.Request) -> Dict[str, Any]:
    """Parsed JSON object body; anything else raises :class:`InvalidPayload`."""
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidPayload("Invalid JSON body") from exc
    if not isinstance(data, dict):
        raise InvalidPayload("JSON body must be an object")
    return data
