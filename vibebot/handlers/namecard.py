from __future__ import annotations

import logging

from aiohttp import web

from ..services.namecard import generate_namecard, namecard_filename
from ..services.security import check_api_key
from ..utils.errors import InvalidPayload
from .common import CONFIG, check_rate_limit, json_error, origin_allowed, rate_limited, read_json

logger = logging.getLogger(__name__)


async def download_namecard(request: web.Request) -> web.Response:
    config = request.app[CONFIG]

    limit = check_rate_limit(request, "public")
    if not limit.allowed:
        return rate_limited(limit)

    # internal callers use the api key, browsers must come from an allowed origin
    has_key = bool(config.internal_api_key) and check_api_key(request.headers, config.internal_api_key)
    if not has_key and not origin_allowed(request):
        return json_error("forbidden", status=403, message="Origin not allowed")

    try:
        body = await read_json(request)
    except InvalidPayload as exc:
        return json_error("invalid_json", message=str(exc))

    name = body.get("name")
    email = body.get("email")
    if not isinstance(name, str) or not isinstance(email, str) or not name.strip() or not email.strip():
        return json_error("Name and email are required")
    linkedin = body.get("linkedinProfile") if isinstance(body.get("linkedinProfile"), str) else None

    card = generate_namecard(name.strip(), email.strip(), linkedin or None)
    return web.Response(
        body=card,
        content_type="image/svg+xml",
        headers={
            "Content-Disposition": f'attachment; filename="{namecard_filename(name.strip())}"',
            "Cache-Control": "no-cache",
        },
    )
