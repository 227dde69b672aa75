from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Mapping, Optional

import aiohttp

from ..config import Config
from ..constants import EVENT_DATE_ISO, EVENT_TITLE
from ..models import Registration, utcnow_iso
from ..utils.errors import (
    ConfigurationError,
    DuplicateSubmission,
    SpamDetected,
    UpstreamError,
    ValidationError,
)
from ..utils.validators import REGISTRATION_SCHEMA, validate_input
from .email import EmailService
from .http_session import HttpSessionMixin
from .messaging import TelegramNotifier
from .references import PayloadCodec, generate_reference
from .spam import DuplicateChecker, detect_spam, precheck_spam

logger = logging.getLogger(__name__)


class VibingWebhookClient(HttpSessionMixin):
    """Pushes new registrations to the external attendee tracker."""

    def __init__(self, url: str, secret: str = ""):
        self.url = url
        self.secret = secret

    def sign(self, body: bytes) -> str:
        """Hex HMAC-SHA256 of the request body under the shared secret."""
        return hmac.new(self.secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

    @staticmethod
    def build_payload(registration: Registration) -> Dict[str, Any]:
        return {
            "id": registration.reference,
            "name": registration.name,
            "email": registration.email,
            "phone": registration.phone,
            "company": registration.company or "Not specified",
            "registration_time": registration.timestamp,
            "event_title": EVENT_TITLE,
            "event_date": EVENT_DATE_ISO,
            "payment_status": "pending",
        }

    async def notify(self, registration: Registration) -> bool:
        if not self.url:
            logger.debug("Vibing webhook not configured, skipping %s", registration.reference)
            return False
        body = json.dumps(self.build_payload(registration)).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers["X-Vibing-Signature"] = self.sign(body)
        session = await self._get_session()
        try:
            async with session.post(self.url, data=body, headers=headers) as response:
                if response.status >= 400:
                    logger.error("Vibing webhook failed: HTTP %s %s", response.status, response.reason)
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error("Error calling vibing webhook for %s: %s", registration.reference, exc)
            return False
        logger.info("Vibing webhook delivered for %s", registration.reference)
        return True


class RegistrationService:
    """Turns a validated signup form into a reference, emails and a notification.

    The pipeline is fail-soft for the tracker webhook and the payment email,
    but the operator notification must succeed: without it nobody can act on
    the registration.
    """

    def __init__(
        self,
        notifier: TelegramNotifier,
        email_service: EmailService,
        codec: PayloadCodec,
        duplicates: DuplicateChecker,
        config: Config,
        webhook: Optional[VibingWebhookClient] = None,
    ):
        self.notifier = notifier
        self.email_service = email_service
        self.codec = codec
        self.duplicates = duplicates
        self.config = config
        self.webhook = webhook

    @staticmethod
    def validate(form: Mapping[str, Any]) -> Dict[str, Any]:
        errors, sanitized = validate_input(form, REGISTRATION_SCHEMA)
        if errors:
            raise ValidationError("Invalid input", errors)
        return sanitized

    @staticmethod
    def check_spam(form: Mapping[str, Any]) -> None:
        for check in (precheck_spam, detect_spam):
            result = check(form)
            if result.is_spam:
                logger.info("Spam detected (score=%s): %s", result.score, result.reasons)
                raise SpamDetected(result.reasons)

    async def register(self, form: Mapping[str, Any]) -> Registration:
        """Run the post-validation steps for an already sanitized form."""
        self.check_spam(form)
        if self.duplicates.is_duplicate(form["email"], form["phone"]):
            raise DuplicateSubmission("You have already registered with this email/phone combination")

        registration = Registration(
            name=form["name"],
            email=form["email"],
            phone=form["phone"],
            company=form.get("company"),
            linkedin_profile=form.get("linkedinProfile"),
            has_experience=bool(form.get("hasExperience", False)),
            tools_used=form.get("toolsUsed"),
            project_idea=form["projectIdea"],
            timestamp=utcnow_iso(),
        )
        registration.reference = generate_reference(
            registration.name, registration.email, registration.linkedin_profile
        )

        if self.webhook is not None:
            await self.webhook.notify(registration)

        payment_email_sent = False
        try:
            await self.email_service.send_payment_email(registration)
            payment_email_sent = True
        except (UpstreamError, ConfigurationError) as exc:
            logger.error("Failed to send payment email to %s: %s", registration.email, exc)

        await self.notifier.notify_registration(
            registration,
            self.codec.encode(registration),
            self.config.payment_amount,
            payment_email_sent,
        )
        logger.info("Registration submitted: %s", registration.reference)
        return registration
