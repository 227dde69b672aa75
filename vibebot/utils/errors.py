from __future__ import annotations

from typing import Dict, List, Optional


class AppError(Exception):
    """Base class for domain errors."""


class PermissionDenied(AppError):
    """Raised when a caller is not allowed to use an endpoint or command."""


class ValidationError(AppError):
    """Raised when input fails validation."""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


class InvalidReference(ValidationError):
    """Raised when a registration reference cannot be parsed."""


class InvalidPayload(ValidationError):
    """Raised when an encoded registration payload cannot be decoded."""


class ConfigurationError(AppError):
    """Raised when a required setting is missing."""


class UpstreamError(AppError):
    """Raised when an external service call fails."""


class EmailDeliveryError(UpstreamError):
    """Raised when the email provider rejects or fails a send."""


class SpamDetected(ValidationError):
    """Raised when a submission scores as spam."""

    def __init__(self, reasons: List[str]):
        super().__init__("Submission flagged as spam")
        self.reasons = list(reasons)


class DuplicateSubmission(AppError):
    """Raised when the same email and phone registered within the window."""
