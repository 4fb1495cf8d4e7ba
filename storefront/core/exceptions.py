"""
Typed error taxonomy shared by services and the HTTP layer.

Services raise these exceptions with a human readable message and keyword
context. A single handler in ``storefront.main`` turns them into responses,
so route functions never translate errors themselves.
"""

from typing import Any


class StorefrontError(Exception):
    """Base class for every expected failure."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(StorefrontError):
    """Malformed or missing input. Raised before anything is written."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(StorefrontError):
    status_code = 401
    code = "NOT_AUTHENTICATED"


class AuthorizationError(StorefrontError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(StorefrontError):
    status_code = 404
    code = "NOT_FOUND"


class DomainStateError(StorefrontError):
    """The entity is in a state that does not allow the operation."""

    status_code = 400
    code = "INVALID_STATE"


class ConcurrencyConflictError(DomainStateError):
    """A conditional update found the row in an unexpected state."""

    status_code = 409
    code = "CONCURRENT_MODIFICATION"


class PersistenceError(StorefrontError):
    """Storage failure. The message is never shown to the caller."""

    status_code = 500
    code = "PERSISTENCE_ERROR"

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": "A storage error occurred"}


class PaymentGatewayError(StorefrontError):
    """
    The payment processor could not be reached or answered with an error.

    This never means the payment failed; the outcome is unknown and is
    re-checked the next time the payment handle is requested.
    """

    status_code = 500
    code = "PAYMENT_GATEWAY_ERROR"

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": "The payment processor is currently unavailable",
        }
