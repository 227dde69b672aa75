from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from datetime import date
from typing import Callable, Optional

from aiohttp import web
from telegram import Bot
from telegram.error import TelegramError

from .config import Config, load_config
from .handlers import namecard as namecard_handlers
from .handlers import registration as registration_handlers
from .handlers import security as security_handlers
from .handlers import telegram as telegram_handlers
from .handlers import vibe as vibe_handlers
from .handlers.common import (
    AI_USAGE,
    BOT,
    CAPTCHA,
    CLOSEABLES,
    COMMANDS,
    CONFIG,
    NOTIFIER,
    ORIGINS,
    RATE_LIMITERS,
    REGISTRATIONS,
    VIBE,
    json_error,
)
from .logging_config import ACCESS_LOG_FORMAT, setup_logging
from .services.captcha import CaptchaService
from .services.commands import OperatorCommands
from .services.email import EmailService, PayNowQRClient, ResendTransport
from .services.messaging import TelegramNotifier
from .services.rate_limit import build_rate_limiters, sweep_forever
from .services.references import PayloadCodec
from .services.registration import RegistrationService, VibingWebhookClient
from .services.security import DailyUsage, OriginValidator
from .services.spam import DuplicateChecker
from .services.vibe import VibeGenerator

logger = logging.getLogger(__name__)

SWEEPER = web.AppKey("rate_limit_sweeper", asyncio.Task)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return json_error("internal_server_error", status=500, message="An unexpected error occurred")


async def on_startup(app: web.Application):
    config = app[CONFIG]
    bot = app[BOT]
    if bot is not None:
        try:
            await bot.initialize()
            logger.info("Telegram bot initialized")
        except TelegramError:
            logger.exception("Failed to initialize Telegram bot; commands will fail until it is reachable")
    app[SWEEPER] = asyncio.create_task(sweep_forever(app[RATE_LIMITERS].values()))
    logger.info(
        "Service started (env=%s, telegram=%s, captcha_required=%s, signups_disabled=%s)",
        config.environment,
        config.telegram_configured,
        config.captcha_required,
        config.signups_disabled,
    )


async def on_cleanup(app: web.Application):
    sweeper = app.get(SWEEPER)
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    for client in app[CLOSEABLES]:
        await client.close()
    bot = app[BOT]
    if bot is not None:
        try:
            await bot.shutdown()
        except TelegramError:
            logger.exception("Failed to shut down Telegram bot cleanly")
    logger.info("Service shutdown complete")


def build_application(
    config: Optional[Config] = None,
    *,
    bot=None,
    transport=None,
    qr_client=None,
    webhook_client=None,
    vibe_generator: Optional[VibeGenerator] = None,
    clock: Callable[[], float] = time.time,
    today: Callable[[], date] = date.today,
) -> web.Application:
    config = config or load_config()

    if bot is None and config.telegram_bot_token:
        bot = Bot(config.telegram_bot_token)
    transport = transport or ResendTransport(config.resend_api_key)
    qr_client = qr_client or PayNowQRClient(config.paynow_qr_url, config.paynow_mobile, config.paynow_api_key)
    if webhook_client is None and config.vibing_webhook_url:
        webhook_client = VibingWebhookClient(config.vibing_webhook_url, config.vibing_webhook_secret)
    vibe_generator = vibe_generator or VibeGenerator(config.openai_api_key, config.openai_model)

    codec = PayloadCodec(config.payload_signing_secret or None)
    notifier = TelegramNotifier(bot, config.admin_chat_id)
    email_service = EmailService(transport, qr_client, config)

    app = web.Application(middlewares=[error_middleware])
    app[CONFIG] = config
    app[BOT] = bot
    app[NOTIFIER] = notifier
    app[COMMANDS] = OperatorCommands(notifier, email_service, codec, config)
    app[REGISTRATIONS] = RegistrationService(
        notifier,
        email_service,
        codec,
        DuplicateChecker(clock=clock),
        config,
        webhook=webhook_client,
    )
    app[RATE_LIMITERS] = build_rate_limiters(clock=clock)
    app[ORIGINS] = OriginValidator(config.allowed_origins, allow_missing=config.is_development)
    app[CAPTCHA] = CaptchaService(clock=clock)
    app[VIBE] = vibe_generator
    app[AI_USAGE] = DailyUsage(today=today)
    app[CLOSEABLES] = [
        client for client in (transport, qr_client, webhook_client) if client is not None and hasattr(client, "close")
    ]

    app.router.add_post("/api/telegram-simple", registration_handlers.submit_registration)
    app.router.add_post("/api/telegram", registration_handlers.relay_message)
    app.router.add_get("/api/signup-status", registration_handlers.signup_status)
    app.router.add_post("/api/telegram-bot", telegram_handlers.telegram_update)
    app.router.add_post("/api/telegram-webhook", telegram_handlers.telegram_update)
    app.router.add_get("/api/set-webhook", telegram_handlers.get_webhook)
    app.router.add_post("/api/set-webhook", telegram_handlers.set_webhook)
    app.router.add_post("/api/generate-vibe", vibe_handlers.generate_vibe)
    app.router.add_post("/api/namecard", namecard_handlers.download_namecard)
    app.router.add_get("/api/captcha", security_handlers.issue_captcha)
    app.router.add_get("/api/admin", security_handlers.honeypot)
    app.router.add_post("/api/admin", security_handlers.honeypot)

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    logger.info(
        "Application built (admins=%s, email=%s, vibing_webhook=%s, ai=%s)",
        len(config.admin_chat_ids),
        bool(config.resend_api_key),
        webhook_client is not None,
        vibe_generator.configured,
    )
    return app


def main():
    config = load_config()
    setup_logging(
        config.log_level,
        log_file=config.log_file,
        max_bytes=config.log_max_bytes,
        backup_count=config.log_backup_count,
        security_log_file=config.security_log_file,
    )
    app = build_application(config)
    logger.info("Listening on %s:%s", config.host, config.port)
    web.run_app(app, host=config.host, port=config.port, access_log_format=ACCESS_LOG_FORMAT, print=None)


if __name__ == "__main__":
    main()
