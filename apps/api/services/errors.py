"""Service-level error taxonomy mapped to HTTP responses in main.py."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ServiceError(Exception):
    """Base class for errors that are reported to the caller."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message}


class InvalidRequest(ServiceError):
    status_code = 400
    default_message = "Missing required parameters"


class InsufficientCredits(ServiceError):
    status_code = 403
    default_message = "Not enough credits"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "details": "Earn credits by referring friends or purchase more to continue generating content.",
        }


class PolicyViolation(ServiceError):
    """A designed outcome: the prompt was refused and a rewrite suggested."""

    status_code = 403
    default_message = "Haram content detected"

    def __init__(
        self,
        explanation: str,
        haram_phrases: List[str],
        suggested_rewrite: str,
        categories: Optional[List[str]] = None,
    ):
        super().__init__()
        self.explanation = explanation
        self.haram_phrases = list(haram_phrases)
        self.suggested_rewrite = suggested_rewrite
        self.categories = list(categories or [])

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "details": self.explanation,
            "haramPhrases": self.haram_phrases,
            "categories": self.categories,
            "halalSuggestion": self.suggested_rewrite,
        }


class UpstreamError(ServiceError):
    status_code = 500
    default_message = "Internal server error"


class InvalidReferrer(ServiceError):
    status_code = 400
    default_message = "Invalid referrer"


class InvalidReferred(ServiceError):
    status_code = 400
    default_message = "Invalid referred user"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class ClassifierDegraded(Exception):
    """Primary classifier unusable; the zero-shot fallback takes over. Never surfaced."""
