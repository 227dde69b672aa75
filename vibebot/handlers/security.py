from __future__ import annotations

import asyncio
import logging

from aiohttp import web

from ..services.security import log_security_event
from ..utils.errors import PermissionDenied
from .common import CAPTCHA, CONFIG, json_error, request_ip

logger = logging.getLogger(__name__)


async def issue_captcha(request: web.Request) -> web.Response:
    try:
        challenge = request.app[CAPTCHA].issue(request_ip(request))
    except PermissionDenied as exc:
        log_security_event("CAPTCHA_REGENERATION_LIMIT", request_ip(request), request.headers, str(request.url))
        return json_error("rate_limited", status=429, message=str(exc))
    return web.json_response(
        {"challengeId": challenge.challenge_id, "image": challenge.image},
        headers={"Cache-Control": "no-store"},
    )


async def honeypot(request: web.Request) -> web.Response:
    """Decoy admin endpoint: log the visit, stall, claim success."""
    log_security_event(
        "HONEYPOT_TRIGGERED",
        request_ip(request),
        request.headers,
        str(request.url),
        path=request.path,
    )
    await asyncio.sleep(request.app[CONFIG].honeypot_delay)
    return web.json_response({"success": True})
