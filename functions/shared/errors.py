"""
Standardized errors for the webhook and archive endpoints.
"""

import json
from typing import Optional


class APIError(Exception):
    """Base class for API errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> dict:
        """Convert to API Gateway response format."""
        body = {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }
        if self.details:
            body["error"]["details"] = self.details

        return {
            "statusCode": self.status_code,
            "headers": {"Content-Type": "application/json"},
            "body": json.dumps(body),
        }


class SignatureInvalidError(APIError):
    """Raised when a webhook signature is missing or does not verify."""

    def __init__(self, message: str = "Invalid signature", code: str = "invalid_signature"):
        super().__init__(code=code, message=message, status_code=400)


class ValidationError(APIError):
    """Raised for malformed email input."""

    def __init__(self, message: str = "Please provide a valid email address"):
        super().__init__(code="invalid_email", message=message, status_code=400)


class IdentityTokenError(APIError):
    """Raised when an identity token cannot be verified."""

    def __init__(self, message: str = "Authentication failed, please try again"):
        super().__init__(code="invalid_token", message=message, status_code=401)


class RateLimitedError(APIError):
    """Raised when an identity exceeds the archive check ceiling."""

    def __init__(self, limit: int, retry_after_seconds: int):
        super().__init__(
            code="rate_limited",
            message="Too many attempts. Please wait a while and try again.",
            status_code=429,
            details={"limit": limit, "retry_after_seconds": retry_after_seconds},
        )
        self.retry_after_seconds = retry_after_seconds

    def to_response(self) -> dict:
        response = super().to_response()
        response["headers"]["Retry-After"] = str(self.retry_after_seconds)
        return response


class ProviderUnavailableError(APIError):
    """Raised when entitlement lookups failed and nothing was found."""

    def __init__(self, failed_channels: Optional[list[str]] = None):
        super().__init__(
            code="provider_unavailable",
            message="A server error occurred. Please try again later.",
            status_code=503,
            details={"failed_channels": failed_channels} if failed_channels else None,
        )
        self.failed_channels = failed_channels or []


class InternalError(APIError):
    """Raised for internal server errors."""

    def __init__(self, message: str = "An internal error occurred"):
        super().__init__(
            code="internal_error",
            message=message,
            status_code=500,
        )


class MissingBuyerEmailError(Exception):
    """A completed checkout carries no usable buyer address."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"No buyer email on checkout session {session_id}")


class DeliveryError(Exception):
    """Notification transport exhausted its retries."""

    def __init__(self, recipient: str, subject: str, attempts: int, last_error: Exception):
        self.recipient = recipient
        self.subject = subject
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Delivery failed after {attempts} attempts: {last_error}")


class TransportError(Exception):
    """A single notification send attempt failed."""
