"""
Domain errors + DRF exception handler.

Every error leaves the API in the same envelope:
    {"error": {"code": "...", "message": "...", "details": {...}}}
"""
import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class StudioflowError(Exception):
    code = "ERROR"
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Request failed"

    def __init__(self, message: str | None = None, details: dict | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def as_payload(self) -> dict:
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class QuotaExceeded(StudioflowError):
    code = "QUOTA_EXCEEDED"
    http_status = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Quota exceeded"

    def __init__(self, reason: str, used: int, limit: int | None, remaining: int | None):
        self.reason = reason
        self.used = used
        self.limit = limit
        self.remaining = remaining
        super().__init__(reason, {"reason": reason, "used": used, "limit": limit, "remaining": remaining})


class ProviderError(StudioflowError):
    """Base for failures reported by (or on the way to) a generation backend."""

    def __init__(self, message: str | None = None, details: dict | None = None, provider: str = ""):
        self.provider = provider
        super().__init__(message, details)


class ProviderRejected(ProviderError):
    code = "PROVIDER_REJECTED"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Provider rejected the request"


class ProviderUnavailable(ProviderError):
    code = "PROVIDER_UNAVAILABLE"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Provider unavailable"


class InvalidTransition(StudioflowError):
    code = "INVALID_TRANSITION"
    http_status = status.HTTP_409_CONFLICT
    default_message = "Illegal job state transition"


class InvalidState(StudioflowError):
    code = "INVALID_STATE"
    http_status = status.HTTP_409_CONFLICT
    default_message = "Operation not allowed in the current job state"


class NotFound(StudioflowError):
    code = "NOT_FOUND"
    http_status = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class InvalidParameters(StudioflowError):
    code = "INVALID_PARAMETERS"
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid generation parameters"


class InvalidSignature(StudioflowError):
    code = "INVALID_SIGNATURE"
    http_status = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid or missing signature"


class IdempotencyClaimTimeout(StudioflowError):
    code = "IDEMPOTENCY_TIMEOUT"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Concurrent operation still in progress"


# DRF exception class -> stable code
_DRF_CODES = {
    "ValidationError": "VALIDATION_ERROR",
    "ParseError": "INVALID_JSON",
    "AuthenticationFailed": "UNAUTHORIZED",
    "NotAuthenticated": "UNAUTHORIZED",
    "PermissionDenied": "FORBIDDEN",
    "NotFound": "NOT_FOUND",
    "Http404": "NOT_FOUND",
    "MethodNotAllowed": "METHOD_NOT_ALLOWED",
    "Throttled": "RATE_LIMITED",
}


def api_exception_handler(exc, context):
    if isinstance(exc, StudioflowError):
        if exc.http_status >= 500:
            logger.warning("%s: %s", exc.code, exc.message)
        return Response(exc.as_payload(), status=exc.http_status)

    response = exception_handler(exc, context)
    if response is None:
        # unexpected: DRF turns this into a 500
        return None

    code = _DRF_CODES.get(exc.__class__.__name__, "ERROR")
    data = response.data
    if code == "VALIDATION_ERROR":
        message, details = "Invalid request", {"fields": data}
    else:
        message = data.get("detail", str(exc)) if isinstance(data, dict) else str(exc)
        details = {}
        if code == "RATE_LIMITED" and getattr(exc, "wait", None) is not None:
            details["retry_after_s"] = int(exc.wait)
    response.data = {"error": {"code": code, "message": str(message), "details": details}}
    return response
