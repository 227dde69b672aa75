from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import re
import time
from typing import Optional

from ..models import ReferenceParts, Registration
from ..utils.errors import InvalidReference

logger = logging.getLogger(__name__)

_LINKEDIN_PREFIX = re.compile(r"^https?://(www\.)?linkedin\.com/in/", re.IGNORECASE)
_NON_LETTERS = re.compile(r"[^a-zA-Z]")
_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")
_NON_HANDLE = re.compile(r"[^a-zA-Z0-9\-]")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z])(?=[A-Z])")
_TIMESTAMP_SUFFIX = re.compile(r"^\d{4}$")

PLACEHOLDER_PROJECT = "Workshop Project"
PLACEHOLDER_NAME = "Participant"


def extract_linkedin_handle(profile: Optional[str]) -> str:
    if not profile or not profile.strip():
        return ""
    handle = _LINKEDIN_PREFIX.sub("", profile.strip())
    handle = handle.rstrip("/")
    return _NON_HANDLE.sub("", handle).lower()


def generate_reference(
    name: str,
    email: str,
    linkedin_profile: Optional[str] = None,
    *,
    now_ms: Optional[int] = None,
    email_part: str = "full",
) -> str:
    """Build ``NAME_EMAIL_SUFFIX``.

    ``email_part="full"`` keeps the whole address (upper-cased) so that
    :func:`parse_reference` can recover it later. ``email_part="local"``
    keeps only the alphanumeric local part, which is shorter but loses the
    address. The suffix is the LinkedIn handle when one is given, otherwise
    the last four digits of the millisecond timestamp.
    """
    clean_name = _NON_LETTERS.sub("", name).upper() or PLACEHOLDER_NAME.upper()
    if email_part == "local":
        email_segment = _NON_ALNUM.sub("", email.split("@")[0]).upper()
    elif email_part == "full":
        email_segment = email.strip().upper()
    else:
        raise ValueError(f"unknown email_part {email_part!r}")

    handle = extract_linkedin_handle(linkedin_profile)
    if handle:
        return f"{clean_name}_{email_segment}_{handle}"

    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{clean_name}_{email_segment}_{str(now_ms)[-4:]}"


def _uncamel(segment: str) -> str:
    spaced = _CAMEL_BOUNDARY.sub(" ", segment)
    if spaced.isupper():
        return spaced.title()
    return spaced


def parse_reference(reference: str) -> ReferenceParts:
    """Best-effort recovery of identity fields from a reference."""
    raw = (reference or "").strip()
    parts = raw.split("_")
    if len(parts) < 3:
        raise InvalidReference("Invalid reference format")

    name = _uncamel(parts[0]) or PLACEHOLDER_NAME
    middle = "_".join(parts[1:-1])
    last = parts[-1]

    email = middle.lower() if "@" in middle else None
    if _TIMESTAMP_SUFFIX.match(last):
        suffix, linkedin = last, None
    else:
        suffix, linkedin = None, last.lower() or None

    return ReferenceParts(name=name, email=email, linkedin_handle=linkedin, suffix=suffix, raw=raw)


def registration_from_reference(
    reference: str,
    email: Optional[str] = None,
    linkedin_handle: Optional[str] = None,
) -> Registration:
    """Reconstruct a placeholder registration when only the reference is known.

    Fields the reference cannot carry (phone, project idea) are filled with
    placeholders. Raises :class:`InvalidReference` if no email is available.
    """
    parts = parse_reference(reference)
    address = (email or parts.email or "").strip()
    if not address:
        raise InvalidReference("Reference does not contain an email address")
    handle = linkedin_handle or parts.linkedin_handle
    return Registration(
        name=parts.name,
        email=address,
        phone="",
        linkedin_profile=f"https://linkedin.com/in/{handle}" if handle else None,
        project_idea=PLACEHOLDER_PROJECT,
        reference=parts.raw,
    )


class PayloadCodec:
    """base64(JSON(registration)), optionally tagged with an HMAC.

    With a secret the token is ``<base64>.<tag>`` and :meth:`decode` rejects
    tokens whose tag is missing or wrong.
    """

    TAG_LENGTH = 16

    def __init__(self, secret: Optional[str] = None):
        self.secret = secret.encode("utf-8") if secret else None

    def _tag(self, body: str) -> str:
        digest = hmac.new(self.secret, body.encode("ascii"), hashlib.sha256).hexdigest()
        return digest[: self.TAG_LENGTH]

    def encode(self, registration: Registration) -> str:
        raw = json.dumps(registration.to_dict(), ensure_ascii=False, separators=(",", ":"))
        body = base64.b64encode(raw.encode("utf-8")).decode("ascii")
        if self.secret:
            return f"{body}.{self._tag(body)}"
        return body

    def decode(self, token: str) -> Optional[Registration]:
        token = (token or "").strip()
        if not token:
            return None

        if self.secret:
            body, _, tag = token.rpartition(".")
            if not body or not token.isascii() or not hmac.compare_digest(tag, self._tag(body)):
                logger.warning("Rejected payload with missing or bad signature")
                return None
        else:
            body = token

        try:
            normalized = body.replace("-", "+").replace("_", "/")
            normalized += "=" * (-len(normalized) % 4)
            raw = base64.b64decode(normalized, validate=True)
            data = json.loads(raw.decode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            logger.debug("Failed to decode registration payload: %s", exc)
            return None

        if not isinstance(data, dict):
            return None
        try:
            return Registration.from_dict(data)
        except (KeyError, TypeError):
            return None
