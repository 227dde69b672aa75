from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from ..constants import EVENT_END, EVENT_LOCATION, EVENT_NAME, EVENT_START, EVENT_TIMEZONE
from ..models import Registration


def _escape(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _fold(line: str) -> str:
    # RFC 5545 caps content lines at 75 octets
    encoded = line.encode("utf-8")
    if len(encoded) <= 75:
        return line
    chunks = []
    current = b""
    for char in line:
        piece = char.encode("utf-8")
        if len(current) + len(piece) > (75 if not chunks else 74):
            chunks.append(current.decode("utf-8"))
            current = b""
        current += piece
    chunks.append(current.decode("utf-8"))
    return "\r\n ".join(chunks)


def build_invite(registration: Registration, now: Optional[datetime] = None) -> str:
    """Single-event iCalendar text for the workshop."""
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%SZ")
    uid = f"{registration.reference or registration.email}@vibe-coding"
    description = (
        f"Registration reference: {registration.reference}\n"
        f"Project: {registration.project_idea}"
    )
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Vibe Coding//Registration//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{_escape(uid)}",
        f"DTSTAMP:{stamp}",
        f"DTSTART;TZID={EVENT_TIMEZONE}:{EVENT_START}",
        f"DTEND;TZID={EVENT_TIMEZONE}:{EVENT_END}",
        f"SUMMARY:{_escape(EVENT_NAME)}",
        f"LOCATION:{_escape(EVENT_LOCATION)}",
        f"DESCRIPTION:{_escape(description)}",
        f'ATTENDEE;CN="{registration.name.replace(chr(34), "")}":mailto:{registration.email}',
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(_fold(line) for line in lines) + "\r\n"
