"""Error taxonomy for the try-on relay.

Every failure that reaches a client is a :class:`TryOnError` subclass. The
class carries a stable machine ``code`` and the HTTP ``status_code``; the
instance carries a user-facing ``message`` and an optional ``detail`` that is
only echoed outside production.
"""
from __future__ import annotations

from typing import Any, Optional


class TryOnError(Exception):
    """Base class for errors rendered as ``{error, code}`` responses."""

    code: str = "UNHANDLED_ERROR"
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, detail: str | None = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(detail or self.message)

    def to_payload(self, *, include_detail: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message, "code": self.code}
        if include_detail and self.detail:
            payload["details"] = self.detail
        return payload


# ---------------------------------------------------------------------------
# Caller / input validation
# ---------------------------------------------------------------------------


class Unauthorized(TryOnError):
    code = "INVALID_EXTENSION_ID"
    status_code = 403
    default_message = "Extension not authorized"


class InvalidRequest(TryOnError):
    code = "INVALID_REQUEST"
    status_code = 400
    default_message = "Request body is invalid"


class InvalidUserImage(TryOnError):
    code = "INVALID_USER_IMAGE"
    status_code = 400
    default_message = "userImage must be a data URI"


class MalformedInput(TryOnError):
    code = "INVALID_IMAGE_FORMAT"
    status_code = 400
    default_message = "Invalid image format. Please use JPG, PNG, or WebP images."


class UnsupportedMediaType(TryOnError):
    code = "INVALID_IMAGE_FORMAT"
    status_code = 422
    default_message = "Invalid image format. Please use JPG, PNG, or WebP images."


class PayloadTooLarge(TryOnError):
    code = "IMAGE_TOO_LARGE"
    status_code = 413
    default_message = "Image too large. Please try a smaller image."


class RequestTooLarge(TryOnError):
    code = "REQUEST_TOO_LARGE"
    status_code = 413
    default_message = "Request too large"


class NoOverlayImages(TryOnError):
    code = "NO_OVERLAY_IMAGES"
    status_code = 422
    default_message = "No valid overlay images provided"


class MissingImage(TryOnError):
    code = "NO_IMAGE"
    status_code = 400
    default_message = "No image provided"


class ConsentRequired(TryOnError):
    code = "CONSENT_REQUIRED"
    status_code = 400
    default_message = "User consent required"


class NotFound(TryOnError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Endpoint not found"


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------


class ServiceMisconfigured(TryOnError):
    code = "SERVICE_UNAVAILABLE"
    status_code = 500
    default_message = "AI service not configured. Please contact support."


class RateLimited(TryOnError):
    code = "RATE_LIMITED"
    status_code = 429
    default_message = "Service temporarily at capacity. Please try again in a moment."


class SynthesisFailed(TryOnError):
    code = "GENERATION_FAILED"
    status_code = 500
    default_message = "AI generation temporarily unavailable. Please try again."


class NoImageProduced(SynthesisFailed):
    """The external call completed but returned no recognizable image."""


class TransientUpstreamError(SynthesisFailed):
    """Timeout or 500/502/503 from the generative API; eligible for retry."""

    def __init__(self, detail: str, *, status: Optional[int] = None):
        super().__init__(detail=detail)
        self.status = status
