from __future__ import annotations

import hmac
import logging

from aiohttp import web
from telegram import Update
from telegram.error import TelegramError

from ..services.security import check_api_key, log_security_event
from ..utils.errors import InvalidPayload
from .common import BOT, COMMANDS, CONFIG, check_rate_limit, json_error, rate_limited, read_json, request_ip

logger = logging.getLogger(__name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"
ALLOWED_UPDATES = ["message", "callback_query"]


async def telegram_update(request: web.Request) -> web.Response:
    """Webhook target for operator messages and button presses."""
    config = request.app[CONFIG]

    if config.telegram_webhook_secret:
        provided = request.headers.get(SECRET_HEADER, "")
        if not hmac.compare_digest(provided.encode("utf-8"), config.telegram_webhook_secret.encode("utf-8")):
            log_security_event("BAD_WEBHOOK_SECRET", request_ip(request), request.headers, str(request.url))
            return json_error("unauthorized", status=401)

    if not config.telegram_bot_token:
        return json_error("Bot token not configured", status=500)

    try:
        data = await read_json(request)
        update = Update.de_json(data, None)
    except (InvalidPayload, KeyError, TypeError, ValueError) as exc:
        logger.warning("Malformed Telegram update: %s", exc)
        return json_error("invalid_update", message="Malformed update")
    if update is None:
        return json_error("invalid_update", message="Malformed update")

    result = await request.app[COMMANDS].handle_update(update)
    return web.json_response(result.body, status=result.status)


def _authorize_admin(request: web.Request):
    limit = check_rate_limit(request, "admin")
    if not limit.allowed:
        return rate_limited(limit)
    if not check_api_key(request.headers, request.app[CONFIG].admin_api_key):
        log_security_event("INVALID_API_KEY", request_ip(request), request.headers, str(request.url))
        return json_error("unauthorized", status=401, message="Valid API key required")
    if not request.app[CONFIG].telegram_bot_token:
        return json_error("Bot token not configured", status=500)
    return None


async def get_webhook(request: web.Request) -> web.Response:
    denied = _authorize_admin(request)
    if denied is not None:
        return denied
    try:
        info = await request.app[BOT].get_webhook_info()
    except TelegramError as exc:
        logger.error("getWebhookInfo failed: %s", exc)
        return json_error("Failed to get webhook info", status=500, message=str(exc))
    return web.json_response({"ok": True, "result": info.to_dict()})


async def set_webhook(request: web.Request) -> web.Response:
    denied = _authorize_admin(request)
    if denied is not None:
        return denied
    config = request.app[CONFIG]

    try:
        body = await read_json(request)
    except InvalidPayload:
        body = {}

    webhook_url = body.get("webhookUrl")
    if not webhook_url and config.webhook_domain:
        webhook_url = f"{config.webhook_domain.rstrip('/')}/api/telegram-bot"
    if not isinstance(webhook_url, str) or not webhook_url.startswith("https://"):
        return json_error("Valid HTTPS webhook URL required")

    try:
        await request.app[BOT].set_webhook(
            url=webhook_url,
            allowed_updates=ALLOWED_UPDATES,
            secret_token=config.telegram_webhook_secret or None,
        )
    except TelegramError as exc:
        logger.error("setWebhook failed: %s", exc)
        return json_error("Failed to set webhook", message=str(exc))

    logger.info("Telegram webhook set to %s", webhook_url)
    return web.json_response({"success": True, "message": "Webhook set successfully", "webhook_url": webhook_url})
