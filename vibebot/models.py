from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class Registration:
    name: str
    email: str
    phone: str = ""
    company: Optional[str] = None
    linkedin_profile: Optional[str] = None
    has_experience: bool = False
    tools_used: Optional[str] = None
    project_idea: str = ""
    reference: str = ""
    timestamp: str = field(default_factory=utcnow_iso)

    def __post_init__(self):
        # blank optionals are stored as None
        self.company = self.company or None
        self.linkedin_profile = self.linkedin_profile or None
        self.tools_used = self.tools_used or None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
            "linkedinProfile": self.linkedin_profile,
            "hasExperience": self.has_experience,
            "toolsUsed": self.tools_used,
            "projectIdea": self.project_idea,
            "reference": self.reference,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Registration":
        """Build from the camelCase wire form. ``name`` and ``email`` are required."""
        return cls(
            name=str(data["name"]),
            email=str(data["email"]),
            phone=str(data.get("phone") or ""),
            company=data.get("company") or None,
            linkedin_profile=data.get("linkedinProfile") or None,
            has_experience=bool(data.get("hasExperience", False)),
            tools_used=data.get("toolsUsed") or None,
            project_idea=str(data.get("projectIdea") or ""),
            reference=str(data.get("reference") or ""),
            timestamp=str(data.get("timestamp") or utcnow_iso()),
        )


@dataclass
class ReferenceParts:
    name: str
    email: Optional[str]
    linkedin_handle: Optional[str]
    suffix: Optional[str]
    raw: str


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int = 0


@dataclass
class SpamCheckResult:
    is_spam: bool
    reasons: List[str]
    score: int


@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"
    content_id: Optional[str] = None


@dataclass
class EmailMessage:
    to: List[str]
    subject: str
    html: str
    sender: str = ""
    attachments: List[EmailAttachment] = field(default_factory=list)


@dataclass
class CaptchaChallenge:
    challenge_id: str
    text: str
    expires_at: float
    image: str = ""
