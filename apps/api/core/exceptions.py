"""
Custom exception classes and error handling.

Two layers:
- API exceptions (HTTPException subclasses) raised by routers.
- Domain errors raised by services; routers translate them to API responses.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )


class ConflictError(APIException):
    """Resource conflict (e.g., duplicate entry)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class InvalidInput(ValueError):
    """Rejected input (bad body metrics, unknown goal/plan/method)."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class SubscriptionNotFound(LookupError):
    """No subscription matches a provider payment id."""

    def __init__(self, provider_payment_id: str):
        super().__init__(f"No subscription for provider payment {provider_payment_id}")
        self.provider_payment_id = provider_payment_id


class UnknownProviderStatus(ValueError):
    """Payment provider reported a status outside the mapping table."""

    def __init__(self, provider_status: Optional[str]):
        super().__init__(f"Unknown provider status: {provider_status!r}")
        self.provider_status = provider_status


class PersistenceConflict(RuntimeError):
    """A conditional update lost the race twice. Transient; the caller may retry."""


class MalformedResponse(ValueError):
    """Model output could not be decoded into the expected structure."""


class PaymentGatewayError(RuntimeError):
    """The payment gateway rejected a request or returned an error response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidWebhookEvent(ValueError):
    """Webhook body is missing fields required to process it."""
