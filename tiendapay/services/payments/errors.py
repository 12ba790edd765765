"""Error taxonomy for the payment flow.

Every error carries the HTTP status it maps to at the API boundary and a
`{error, details}` body for the storefront.
"""

from typing import Any


class PaymentError(Exception):
    """Base error for the payment flow."""

    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "details": self.details}


class PaymentValidationError(PaymentError):
    """Client-caused: missing or invalid request fields. Raised before any network call."""

    status_code = 400


class DuplicateReferenceError(PaymentError):
    """The order reference already has a gateway transaction."""

    status_code = 409


class GatewayError(PaymentError):
    """The gateway answered non-2xx, or could not be reached at all."""

    status_code = 500

    def __init__(self, message: str, details: Any = None, gateway_status: int | None = None) -> None:
        super().__init__(message, details)
        self.gateway_status = gateway_status


class IntegrationError(PaymentError):
    """The gateway reported success but the response breaks the expected contract."""

    status_code = 500


class SignatureError(PaymentError):
    """Webhook authenticity could not be established."""

    status_code = 401

    def to_dict(self) -> dict[str, Any]:
        # No detail leaks back to an unauthenticated caller.
        return {"error": "invalid signature"}
