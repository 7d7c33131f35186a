"""Custom exceptions for the relay application."""

from typing import Any, Dict, Optional


class MurmurException(Exception):
    """Base class for relay exceptions with HTTP status code.

    All custom exceptions inherit from this class and define their
    specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str = "Relay error"):
        self.message = message
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        """Convert to the `{success: false, error}` API error shape."""
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(MurmurException):
    """Raised when submitted input is empty, oversized or malformed.

    Rejected before any external call and never retried.
    Maps to HTTP 400 Bad Request.
    """
    status_code = 400
    code = "validation_error"


class InvalidPersonaError(ValidationError):
    """Raised when a persona name is not in the catalog."""
    code = "invalid_persona"

    def __init__(self, persona: str):
        self.persona = persona
        super().__init__(f"Unknown persona: {persona}")


class QuotaExceededError(MurmurException):
    """Raised when an identity has used up its requests for the window.

    The counter is not incremented when this is raised.
    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429
    code = "rate_limit_exceeded"

    def __init__(self, count: int, reset_at: float, limit: int):
        self.count = count
        self.reset_at = reset_at
        self.limit = limit
        super().__init__("Rate limit exceeded. Please try again later.")

    def to_response(self) -> Dict[str, Any]:
        response = super().to_response()
        response.update({
            "rateLimitRemaining": 0,
            "rateLimitReset": int(self.reset_at),
            "rateLimitLimit": self.limit,
        })
        return response


class ProviderError(MurmurException):
    """Raised by a text completion provider on any upstream failure.

    Carries the HTTP status (if any), the upstream error type and an
    optional Retry-After hint in seconds.
    """
    status_code = 502
    code = "provider_error"

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        error_type: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        self.status = status
        self.error_type = error_type
        self.retry_after = retry_after
        super().__init__(message)


class TransformationError(MurmurException):
    """Raised when a message could not be rewritten.

    The operation as a whole fails; the untransformed text is never passed
    on in its place.
    """
    RATE_LIMIT = "rate_limit_error"
    AUTHENTICATION = "authentication_error"
    NETWORK = "network_error"
    API = "api_error"
    EMPTY_CONTENT = "empty_content"

    _STATUS_BY_CODE = {
        RATE_LIMIT: 503,
        AUTHENTICATION: 502,
        NETWORK: 504,
        API: 502,
        EMPTY_CONTENT: 502,
    }

    def __init__(self, code: str, message: str, retry_after: Optional[float] = None):
        self.code = code
        self.retry_after = retry_after
        self.status_code = self._STATUS_BY_CODE.get(code, 502)
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        response = super().to_response()
        if self.retry_after is not None:
            response["retryAfter"] = self.retry_after
        return response


class StoreError(MurmurException):
    """Raised when the key-value store is unreachable or rejects an operation.

    Propagated as a fatal failure of whichever operation touched the store.
    """
    status_code = 503
    code = "store_unavailable"


class DeliveryError(MurmurException):
    """Raised inside the background delivery path.

    Never observable by the submitter; logged for operators.
    """
    code = "delivery_error"


class CredentialError(DeliveryError):
    """Raised when the credential issuer cannot produce an access token."""
    code = "credential_error"


class TransportError(DeliveryError):
    """Raised by a message transport when a send is rejected."""
    code = "transport_error"

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)

    @property
    def unauthorized(self) -> bool:
        return self.status == 401


class DeliveryAuthError(DeliveryError):
    """Raised when the transport rejects a freshly issued credential too."""
    code = "delivery_auth_error"
