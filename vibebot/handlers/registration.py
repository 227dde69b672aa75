from __future__ import annotations

import logging

from aiohttp import web

from ..services.registration import RegistrationService
from ..utils.errors import (
    DuplicateSubmission,
    InvalidPayload,
    SpamDetected,
    UpstreamError,
    ValidationError,
)
from .common import (
    CAPTCHA,
    CONFIG,
    NOTIFIER,
    REGISTRATIONS,
    check_rate_limit,
    json_error,
    origin_allowed,
    rate_limited,
    read_json,
)

logger = logging.getLogger(__name__)

SIGNUPS_CLOSED_MESSAGE = "Registration is currently closed. Thank you for your interest!"


async def submit_registration(request: web.Request) -> web.Response:
    config = request.app[CONFIG]

    limit = check_rate_limit(request, "registration")
    if not limit.allowed:
        return rate_limited(limit, "Too many submissions. Please try again later.")

    if config.signups_disabled:
        return json_error("signups_closed", status=403, message=SIGNUPS_CLOSED_MESSAGE)

    if not config.telegram_configured:
        logger.error("Missing Telegram configuration")
        return json_error("Telegram configuration missing", status=500)

    try:
        body = await read_json(request)
    except InvalidPayload as exc:
        return json_error("invalid_json", message=str(exc))

    if not origin_allowed(request):
        return json_error("forbidden", status=403, message="Origin not allowed")

    form = body.get("formData") if isinstance(body.get("formData"), dict) else body
    service: RegistrationService = request.app[REGISTRATIONS]

    try:
        sanitized = service.validate(form)
    except ValidationError as exc:
        return json_error("validation_error", message=str(exc), details=exc.errors)

    if config.captcha_required:
        solved = request.app[CAPTCHA].verify(str(form.get("captchaId") or ""), str(form.get("captchaAnswer") or ""))
        if not solved:
            return json_error("captcha_failed", message="Please solve the CAPTCHA again")

    try:
        registration = await service.register(sanitized)
    except SpamDetected as exc:
        return json_error("spam_detected", message=str(exc), reasons=exc.reasons)
    except DuplicateSubmission as exc:
        return json_error("duplicate", status=409, message=str(exc))
    except UpstreamError as exc:
        logger.error("Registration failed: %s", exc)
        return json_error("Failed to process registration", status=500)

    return web.json_response({"success": True, "reference": registration.reference})


async def signup_status(request: web.Request) -> web.Response:
    if request.app[CONFIG].signups_disabled:
        return web.json_response({"enabled": False, "message": SIGNUPS_CLOSED_MESSAGE})
    return web.json_response({"enabled": True})


async def relay_message(request: web.Request) -> web.Response:
    """Forward an already rendered notice to the operator chat."""
    config = request.app[CONFIG]

    limit = check_rate_limit(request, "public")
    if not limit.allowed:
        return rate_limited(limit)

    if not config.telegram_configured:
        logger.error("Missing Telegram configuration")
        return json_error("Telegram configuration missing", status=500)

    try:
        body = await read_json(request)
    except InvalidPayload as exc:
        return json_error("invalid_json", message=str(exc))

    if not origin_allowed(request):
        return json_error("forbidden", status=403, message="Origin not allowed")

    message = body.get("message")
    if not isinstance(message, str) or not message.strip():
        return json_error("validation_error", message="message is required")
    form = body.get("formData") if isinstance(body.get("formData"), dict) else {}

    try:
        await request.app[NOTIFIER].send(config.admin_chat_id, message)
    except UpstreamError:
        return json_error("Failed to process registration", status=500)

    logger.info("Relayed registration notice for %s", form.get("reference"))
    return web.json_response({"success": True, "reference": form.get("reference")})
