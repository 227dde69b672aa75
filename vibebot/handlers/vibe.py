from __future__ import annotations

import logging

from aiohttp import web

from ..constants import AI_MAX_PROMPT_TOKENS
from ..models import utcnow_iso
from ..services.security import (
    estimate_tokens,
    is_blocked_country,
    log_security_event,
    log_threat,
    looks_like_bot,
    payload_too_large,
)
from ..services.vibe import build_vibe_prompt
from ..utils.errors import ConfigurationError, InvalidPayload, UpstreamError
from ..utils.validators import VIBE_SCHEMA, validate_input
from .common import AI_USAGE, VIBE, check_rate_limit, json_error, origin_allowed, rate_limited, read_json, request_ip

logger = logging.getLogger(__name__)


async def generate_vibe(request: web.Request) -> web.Response:
    ip = request_ip(request)
    url = str(request.url)

    if payload_too_large(request.headers):
        log_security_event("LARGE_PAYLOAD_BLOCKED", ip, request.headers, url, size=request.headers.get("Content-Length"))
        return json_error("payload_too_large", status=413, message="Request body too large")

    country = is_blocked_country(request.headers)
    if country:
        log_security_event("GEO_BLOCKED", ip, request.headers, url, country=country)
        return json_error("geo_restricted", status=403, message="Service not available in your region")

    if looks_like_bot(request.headers):
        # logged only, never blocked
        log_threat("BOT_DETECTED", "low", ip, request.headers, url)

    limit = check_rate_limit(request, "ai")
    if not limit.allowed:
        return rate_limited(limit)

    if not origin_allowed(request):
        return json_error("forbidden", status=403, message="Origin not allowed")

    try:
        body = await read_json(request)
    except InvalidPayload as exc:
        return json_error("invalid_json", message=str(exc))

    errors, sanitized = validate_input(body, VIBE_SCHEMA)
    if errors:
        return json_error("validation_error", message="Invalid input", details=errors)

    prompt = build_vibe_prompt(
        sanitized["name"],
        sanitized["projectIdea"],
        bool(sanitized.get("hasExperience", False)),
        sanitized.get("toolsUsed"),
    )
    tokens = estimate_tokens(prompt)
    if tokens > AI_MAX_PROMPT_TOKENS:
        log_security_event("LARGE_PROMPT_BLOCKED", ip, request.headers, url, estimated_tokens=tokens)
        return json_error("prompt_too_large", message="Request too complex")

    usage = request.app[AI_USAGE]
    if usage.exceeded(ip):
        return json_error(
            "daily_limit_exceeded",
            status=429,
            message="Daily AI generation limit reached. Try again tomorrow.",
            nextReset=usage.next_reset(),
        )

    generator = request.app[VIBE]
    if not generator.configured:
        logger.error("OpenAI API key not configured")
        return json_error("service_unavailable", status=503, message="AI service not configured")

    usage.increment(ip)
    try:
        vibe_code = await generator.generate(prompt)
    except (UpstreamError, ConfigurationError) as exc:
        return json_error("generation_failed", status=500, message=str(exc))

    return web.json_response({"success": True, "vibeCode": vibe_code, "timestamp": utcnow_iso()})
