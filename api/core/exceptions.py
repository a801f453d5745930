"""
Error taxonomy shared by the chat, share, analytics and CRM surfaces.

Every error carries the HTTP status it maps to and renders as the
``{error, message, details}`` body the widget expects.
"""
from typing import Any, Dict, List, Optional


class JewelryStudioError(Exception):
    """Base class for errors raised by the studio services"""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.error, "message": self.message, "details": self.details}


class InputError(JewelryStudioError):
    """Malformed upload, unparsable history or invalid request fields"""

    status_code = 400
    error = "Invalid request"


class OracleError(JewelryStudioError):
    """The design consultation call failed; the turn cannot proceed"""

    status_code = 500
    error = "API Error"


class VisionAnalysisError(JewelryStudioError):
    """Reference image analysis failed (always recovered with a neutral description)"""


class ProviderError(JewelryStudioError):
    """A single generation adapter failed"""

    status_code = 502
    error = "Generation provider failed"

    def __init__(self, provider_name: str, cause: Any, status_code: Optional[int] = None):
        self.provider_name = provider_name
        self.cause = cause
        self.provider_status = status_code if status_code is not None else getattr(cause, "status_code", None)
        super().__init__(
            f"{provider_name}: {cause}",
            details={"provider": provider_name, "providerStatus": self.provider_status},
        )


class AllProvidersExhausted(JewelryStudioError):
    """Every adapter in a fallback chain failed"""

    status_code = 500
    error = "Generation failed"

    def __init__(self, last_error: Optional[ProviderError], errors: List[ProviderError]):
        self.errors = list(errors)
        self.last_error = last_error
        providers = [e.provider_name for e in self.errors]
        last = self.last_error.message if self.last_error else "no providers configured"
        super().__init__(
            f"All generation providers failed ({', '.join(providers) or 'none'}); last error: {last}",
            details={"providers": providers},
        )


class QuotaExceeded(JewelryStudioError):
    """Provider quota still exhausted after the backoff budget was spent"""

    status_code = 429
    error = "Quota exceeded"
    user_message = (
        "Video generation quota exceeded despite rate limiting. Please try again later or contact support."
    )

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.user_message, details)


class QueueTimeoutError(JewelryStudioError):
    """A queued request went stale before it could be dispatched"""

    status_code = 504
    error = "Request timed out in queue"


class StorageError(JewelryStudioError):
    """Durable artifact storage failed"""

    status_code = 500
    error = "Storage error"


class ShareNotFound(JewelryStudioError):
    status_code = 404
    error = "Shared conversation not found or expired"


class ShareExpired(JewelryStudioError):
    status_code = 410
    error = "Shared conversation has expired"


class CrmError(JewelryStudioError):
    """CRM upsert or note creation failed"""

    status_code = 502
    error = "CRM sync failed"
