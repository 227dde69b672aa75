from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Pattern, Tuple


EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PHONE_REGEX = re.compile(r"^[+]?[\d\s\-()]{8,}$")

_UNSAFE_CHARS = re.compile(r"[<>\"']")
_WHITESPACE = re.compile(r"\s+")


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_REGEX.match(email))


def sanitize_string(value: str) -> str:
    value = value.strip()
    value = _UNSAFE_CHARS.sub("", value)
    value = _WHITESPACE.sub(" ", value)
    return value.replace("\0", "")


@dataclass(frozen=True)
class FieldRule:
    required: bool = False
    type: type = str
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[Pattern[str]] = None
    sanitize: bool = False


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_input(data: Mapping[str, Any], schema: Mapping[str, FieldRule]) -> Tuple[Dict[str, str], Dict[str, Any]]:
    """Check ``data`` against ``schema``.

    Returns ``(errors, sanitized)``. Only fields named in the schema end up in
    ``sanitized``; optional blank fields are left out. ``False`` is a value,
    not a blank.
    """
    errors: Dict[str, str] = {}
    sanitized: Dict[str, Any] = {}

    for name, rule in schema.items():
        value = data.get(name)

        if _is_blank(value):
            if rule.required:
                errors[name] = f"{name} is required"
            continue

        # bool is a subclass of int, so check it explicitly
        if (rule.type is not bool and isinstance(value, bool)) or not isinstance(value, rule.type):
            errors[name] = f"{name} must be a {rule.type.__name__}"
            continue

        if isinstance(value, str):
            if rule.min_length is not None and len(value) < rule.min_length:
                errors[name] = f"{name} must be at least {rule.min_length} characters"
                continue
            if rule.max_length is not None and len(value) > rule.max_length:
                errors[name] = f"{name} must be no more than {rule.max_length} characters"
                continue
            if rule.pattern is not None and not rule.pattern.match(value):
                errors[name] = f"{name} format is invalid"
                continue
            if rule.sanitize:
                value = sanitize_string(value)

        sanitized[name] = value

    return errors, sanitized


SCHEMAS: Dict[str, FieldRule] = {
    "projectIdea": FieldRule(required=True, min_length=5, max_length=500, sanitize=True),
    "name": FieldRule(required=True, min_length=1, max_length=100, sanitize=True),
    "email": FieldRule(required=True, max_length=255, pattern=EMAIL_REGEX),
    "phone": FieldRule(required=True, max_length=20, pattern=PHONE_REGEX),
}

REGISTRATION_SCHEMA: Dict[str, FieldRule] = {
    "name": SCHEMAS["name"],
    "email": SCHEMAS["email"],
    "phone": SCHEMAS["phone"],
    "projectIdea": SCHEMAS["projectIdea"],
    "company": FieldRule(max_length=100, sanitize=True),
    "linkedinProfile": FieldRule(max_length=200),
    "hasExperience": FieldRule(type=bool),
    "toolsUsed": FieldRule(max_length=200, sanitize=True),
}

VIBE_SCHEMA: Dict[str, FieldRule] = {
    "projectIdea": SCHEMAS["projectIdea"],
    "hasExperience": FieldRule(type=bool),
    "toolsUsed": FieldRule(max_length=200, sanitize=True),
    "name": SCHEMAS["name"],
}
