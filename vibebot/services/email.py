from __future__ import annotations

import asyncio
import base64
import html
import logging
from string import Template
from typing import Optional
from urllib.parse import quote

import aiohttp

from ..config import Config
from ..constants import (
    EVENT_DATE_LABEL,
    EVENT_FOOTER,
    EVENT_LOCATION,
    EVENT_TIME_LABEL,
    PAYMENT_CURRENCY,
)
from ..models import EmailAttachment, EmailMessage, Registration
from ..utils.errors import ConfigurationError, EmailDeliveryError
from .calendar import build_invite
from .http_session import HttpSessionMixin
from .namecard import generate_namecard, namecard_filename

logger = logging.getLogger(__name__)

RESEND_ENDPOINT = "https://api.resend.com/emails"
QR_CONTENT_ID = "paynow-qr"

PAYMENT_SUBJECT = "🎨 Vibe Coding - Payment Required to Secure Your Spot"
CONFIRMATION_SUBJECT = "🎉 Vibe Coding - You're Confirmed! Event Details Inside"

_BASE_STYLE = """
      body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; line-height: 1.6; color: #333; margin: 0; padding: 20px; background: #f8fafc; }
      .container { max-width: 600px; margin: 0 auto; background: white; border-radius: 12px; overflow: hidden; box-shadow: 0 4px 6px rgba(0,0,0,0.1); }
      .header { padding: 30px; text-align: center; color: white; }
      .header h1 { margin: 0; font-size: 28px; font-weight: 700; }
      .header p { margin: 8px 0 0 0; opacity: 0.9; font-size: 16px; }
      .content { padding: 30px; }
      .status-badge { display: inline-block; color: white; padding: 8px 16px; border-radius: 20px; font-size: 14px; font-weight: 600; margin-bottom: 20px; }
      .footer { background: #f1f5f9; padding: 20px; text-align: center; color: #64748b; font-size: 14px; }
"""

PAYMENT_TEMPLATE = Template("""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Vibe Coding - Payment Required</title>
    <style>$base_style
      .header { background: linear-gradient(135deg, #8b5cf6 0%, #3b82f6 100%); }
      .status-badge { background: linear-gradient(135deg, #f59e0b, #d97706); }
      .qr-section { text-align: center; background: #f8fafc; padding: 30px; border-radius: 8px; margin: 20px 0; }
      .qr-code { max-width: 250px; border-radius: 8px; margin-bottom: 15px; }
      .qr-placeholder { font-family: monospace; background: white; border: 1px dashed #94a3b8; padding: 16px; border-radius: 8px; }
      .payment-details { background: #fef3c7; border: 1px solid #fbbf24; border-radius: 8px; padding: 20px; margin: 20px 0; }
      .payment-label { font-weight: 600; color: #92400e; }
      .payment-value { font-family: monospace; background: white; padding: 4px 8px; border-radius: 4px; }
      .instructions { background: #dbeafe; border: 1px solid #3b82f6; border-radius: 8px; padding: 20px; margin: 20px 0; }
      .event-details { border-left: 4px solid #8b5cf6; padding-left: 16px; margin: 20px 0; }
    </style>
  </head>
  <body>
    <div class="container">
      <div class="header">
        <h1>🎨 Vibe Coding Registration</h1>
        <p>Complete your registration with payment</p>
      </div>
      <div class="content">
        <div class="status-badge">⏳ Payment Required</div>
        <h2>Hi $name! 👋</h2>
        <p>Great news! Your registration for Vibe Coding has been <strong>approved</strong>. To secure your spot, please complete the payment below.</p>
        <div class="event-details">
          <h3>📅 Event Details</h3>
          <p><strong>Date:</strong> $event_date<br>
          <strong>Time:</strong> $event_time<br>
          <strong>Location:</strong> $event_location<br>
          <strong>Your Reference:</strong> <code>$reference</code></p>
        </div>
        <div class="qr-section">
          <h3>💳 Payment via PayNow QR</h3>
          $qr_block
        </div>
        <div class="payment-details">
          <h3>🏦 Payment Details</h3>
          <p><span class="payment-label">Amount:</span> <span class="payment-value">$$$amount.00 $currency</span></p>
          <p><span class="payment-label">PayNow Mobile:</span> <span class="payment-value">$mobile</span></p>
          <p><span class="payment-label">Reference:</span> <span class="payment-value">$reference</span></p>
        </div>
        <div class="instructions">
          <h3>📱 How to Pay</h3>
          <ol>
            <li><strong>Option 1:</strong> Scan the QR code above with your banking app</li>
            <li><strong>Option 2:</strong> Manual PayNow transfer using mobile: <code>$mobile</code></li>
            <li><strong>Important:</strong> Include reference <code>$reference</code> in your transfer</li>
          </ol>
          <p><strong>⚠️ Payment Deadline:</strong> Please complete payment within 24 hours to secure your spot.</p>
        </div>
        <p>Once payment is confirmed, you'll receive another email with your event card and additional details.</p>
        <p>Questions? Reply to this email or contact us for assistance.</p>
      </div>
      <div class="footer"><p>$footer</p></div>
    </div>
  </body>
</html>
""")

CONFIRMATION_TEMPLATE = Template("""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Vibe Coding - Registration Confirmed!</title>
    <style>$base_style
      .header { background: linear-gradient(135deg, #059669, #10b981); }
      .status-badge { background: linear-gradient(135deg, #059669, #10b981); }
      .event-card { background: linear-gradient(135deg, #8b5cf6, #3b82f6); color: white; padding: 25px; border-radius: 12px; margin: 20px 0; text-align: center; }
      .event-info { background: #f8fafc; padding: 20px; border-radius: 8px; margin: 20px 0; }
      .info-label { font-weight: 600; color: #4a5568; }
      .checklist { background: #ecfdf5; border: 1px solid #10b981; border-radius: 8px; padding: 20px; margin: 20px 0; }
      .timeline { background: #fef3c7; border: 1px solid #fbbf24; border-radius: 8px; padding: 20px; margin: 20px 0; }
    </style>
  </head>
  <body>
    <div class="container">
      <div class="header">
        <h1>🎉 You're All Set!</h1>
        <p>Registration confirmed for Vibe Coding</p>
      </div>
      <div class="content">
        <div class="status-badge">✅ Confirmed &amp; Paid</div>
        <h2>Welcome to Vibe Coding, $name! 🚀</h2>
        <p>Payment confirmed! We're excited to have you join us for an amazing coding experience.</p>
        <div class="event-card">
          <h2>🎨 VIBE CODING WORKSHOP</h2>
          <p style="font-size: 18px; margin: 0;">$name</p>
          <p style="opacity: 0.9; margin: 5px 0;">Reference: $reference</p>
        </div>
        <div class="event-info">
          <h3>📅 Event Information</h3>
          <p><span class="info-label">Date &amp; Time:</span> $event_date • $event_time</p>
          <p><span class="info-label">Location:</span> $event_location</p>
          <p><span class="info-label">Duration:</span> 2.5 hours</p>
          <p><span class="info-label">What to build:</span> $project_idea</p>
        </div>
        <div class="checklist">
          <h3>📋 What to Bring</h3>
          <ul>
            <li><strong>Your laptop</strong> (any OS - Windows, Mac, or Linux)</li>
            <li><strong>Charger</strong> for your device</li>
            <li><strong>Enthusiasm and curiosity!</strong></li>
          </ul>
        </div>
        <div class="timeline">
          <h3>⏰ Workshop Timeline</h3>
          <p><strong>6:30 PM</strong> - Kickoff &amp; Icebreaker</p>
          <p><strong>6:45 PM</strong> - Lovable Demo &amp; Tool Introduction</p>
          <p><strong>7:05 PM</strong> - Team Formation</p>
          <p><strong>7:15 PM</strong> - Build Your Vibe (45 min)</p>
          <p><strong>8:00 PM</strong> - Deploy to Cloudflare (15 min)</p>
          <p><strong>8:15 PM</strong> - Showcase &amp; Demo (40 min)</p>
          <p><strong>8:55 PM</strong> - Wrap-up &amp; Networking</p>
        </div>
        <p>Your namecard and a calendar invite are attached to this email.</p>
        <p>Questions? Reply to this email or contact us. See you there! 🎉</p>
      </div>
      <div class="footer"><p>$footer</p></div>
    </div>
  </body>
</html>
""")


def paynow_payload(amount: int, reference: str, mobile: str) -> str:
    return f"paynow://pay?mobile={mobile}&amount={amount}&ref={reference}&editable=0"


def paynow_qr_url(base_url: str, amount: int, reference: str, mobile: str) -> str:
    data = quote(paynow_payload(amount, reference, mobile), safe="")
    return f"{base_url}?size=300x300&data={data}"


def render_payment_email(registration: Registration, amount: int, mobile: str, qr_attached: bool) -> str:
    reference = html.escape(registration.reference)
    if qr_attached:
        qr_block = (
            f'<img src="cid:{QR_CONTENT_ID}" alt="PayNow QR Code" class="qr-code" />'
            "<p><strong>Scan with your banking app</strong></p>"
        )
    else:
        qr_block = (
            '<p class="qr-placeholder">QR code unavailable. Please pay via PayNow to '
            f"<strong>{html.escape(mobile)}</strong> with reference <strong>{reference}</strong>.</p>"
        )
    return PAYMENT_TEMPLATE.substitute(
        base_style=_BASE_STYLE,
        name=html.escape(registration.name),
        reference=reference,
        event_date=EVENT_DATE_LABEL,
        event_time=EVENT_TIME_LABEL,
        event_location=html.escape(EVENT_LOCATION),
        qr_block=qr_block,
        amount=amount,
        currency=PAYMENT_CURRENCY,
        mobile=html.escape(mobile),
        footer=EVENT_FOOTER,
    )


def render_confirmation_email(registration: Registration) -> str:
    return CONFIRMATION_TEMPLATE.substitute(
        base_style=_BASE_STYLE,
        name=html.escape(registration.name),
        reference=html.escape(registration.reference),
        event_date=EVENT_DATE_LABEL,
        event_time=EVENT_TIME_LABEL,
        event_location=html.escape(EVENT_LOCATION),
        project_idea=html.escape(registration.project_idea),
        footer=EVENT_FOOTER,
    )


class ResendTransport(HttpSessionMixin):
    """Sends :class:`EmailMessage` through the Resend HTTP API."""

    def __init__(self, api_key: str, endpoint: str = RESEND_ENDPOINT):
        self.api_key = api_key
        self.endpoint = endpoint

    @staticmethod
    def to_payload(message: EmailMessage) -> dict:
        payload = {
            "from": message.sender,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }
        if message.attachments:
            attachments = []
            for attachment in message.attachments:
                item = {
                    "filename": attachment.filename,
                    "content": base64.b64encode(attachment.content).decode("ascii"),
                    "content_type": attachment.content_type,
                }
                if attachment.content_id:
                    item["content_id"] = attachment.content_id
                attachments.append(item)
            payload["attachments"] = attachments
        return payload

    async def send(self, message: EmailMessage) -> Optional[str]:
        if not self.api_key:
            raise ConfigurationError("RESEND_API_KEY is not configured")
        session = await self._get_session()
        try:
            async with session.post(
                self.endpoint,
                json=self.to_payload(message),
                headers={"Authorization": f"Bearer {self.api_key}"},
            ) as response:
                data = await response.json(content_type=None)
                if response.status >= 400:
                    detail = data.get("message") if isinstance(data, dict) else data
                    raise EmailDeliveryError(f"Resend error {response.status}: {detail}")
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise EmailDeliveryError(f"Resend request failed: {exc}") from exc
        return data.get("id") if isinstance(data, dict) else None


class PayNowQRClient(HttpSessionMixin):
    def __init__(self, base_url: str, mobile: str, api_key: str = ""):
        self.base_url = base_url
        self.mobile = mobile
        self.api_key = api_key

    def url_for(self, amount: int, reference: str) -> str:
        return paynow_qr_url(self.base_url, amount, reference, self.mobile)

    async def fetch(self, amount: int, reference: str) -> Optional[bytes]:
        """PNG bytes of the PayNow QR, or ``None`` if the QR service fails."""
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        session = await self._get_session()
        try:
            async with session.get(self.url_for(amount, reference), headers=headers) as response:
                if response.status != 200:
                    logger.warning("PayNow QR service returned HTTP %s", response.status)
                    return None
                return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("PayNow QR request failed: %s", exc)
            return None


class EmailService:
    def __init__(self, transport, qr_client: PayNowQRClient, config: Config):
        self.transport = transport
        self.qr_client = qr_client
        self.config = config

    async def send_payment_email(self, registration: Registration) -> Optional[str]:
        amount = self.config.payment_amount
        qr_png = await self.qr_client.fetch(amount, registration.reference)
        attachments = []
        if qr_png:
            attachments.append(
                EmailAttachment("paynow-qr.png", qr_png, "image/png", content_id=QR_CONTENT_ID)
            )
        message = EmailMessage(
            to=[registration.email],
            subject=PAYMENT_SUBJECT,
            html=render_payment_email(registration, amount, self.config.paynow_mobile, qr_attached=bool(qr_png)),
            sender=self.config.email_from,
            attachments=attachments,
        )
        message_id = await self.transport.send(message)
        logger.info("Payment email sent to %s (id=%s, qr=%s)", registration.email, message_id, bool(qr_png))
        return message_id

    async def send_confirmation_email(self, registration: Registration) -> Optional[str]:
        namecard = generate_namecard(registration.name, registration.email, registration.linkedin_profile)
        invite = build_invite(registration)
        message = EmailMessage(
            to=[registration.email],
            subject=CONFIRMATION_SUBJECT,
            html=render_confirmation_email(registration),
            sender=self.config.email_from,
            attachments=[
                EmailAttachment(namecard_filename(registration.name), namecard, "image/svg+xml"),
                EmailAttachment("vibe-coding.ics", invite.encode("utf-8"), "text/calendar"),
            ],
        )
        message_id = await self.transport.send(message)
        logger.info("Confirmation email sent to %s (id=%s)", registration.email, message_id)
        return message_id
