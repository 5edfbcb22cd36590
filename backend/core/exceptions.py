"""
Exception hierarchy for the invitation service.
All exceptions inherit from InvitationServiceError and are mapped to HTTP
responses by the handlers registered in server.py.
"""
from typing import Optional


class InvitationServiceError(Exception):
    """Base exception for all invitation service errors."""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str = "INVITATION_SERVICE_ERROR",
        details: Optional[dict] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_response(self) -> dict:
        return {"error": self.message, "code": self.error_code, **self.details}


class ValidationError(InvitationServiceError):
    """Malformed or missing input."""

    status_code = 400

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="VALIDATION_ERROR", **kwargs)


class NotFoundError(InvitationServiceError):
    """Referenced event, guest, group or balance does not exist."""

    status_code = 404

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found", error_code="NOT_FOUND")


class OwnershipError(InvitationServiceError):
    """Authenticated user does not own the target resource."""

    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, error_code="FORBIDDEN")


class InsufficientBalanceError(InvitationServiceError):
    """Publish or send would exceed the available invitation credits."""

    status_code = 402

    def __init__(self, needed: int, available: int, product_type: str, message: Optional[str] = None):
        self.needed = needed
        self.available = available
        self.product_type = product_type
        super().__init__(
            message or (
                f"Insufficient '{product_type}' invitation balance: "
                f"needed {needed}, available {available}"
            ),
            error_code="INSUFFICIENT_BALANCE",
            details={
                "needed": needed,
                "available": available,
                "shortfall": max(0, needed - available),
                "product_type": product_type,
            },
        )


class ExternalStoreError(InvitationServiceError):
    """The underlying data store call failed. Detail stays server side."""

    status_code = 500

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.cause = cause
        super().__init__("Internal server error", error_code="STORE_ERROR")

    def __str__(self) -> str:
        return f"Store operation '{self.operation}' failed: {self.cause!r}"


class SignatureVerificationError(InvitationServiceError):
    """Payment webhook payload failed signature verification."""

    status_code = 400

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, error_code="INVALID_SIGNATURE")


class DuplicateDeliveryError(InvitationServiceError):
    """A payment session was already processed.

    Never surfaced to callers: finalization reports it as
    ``already_processed`` success.
    """

    status_code = 200

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            f"Checkout session {session_id} already processed",
            error_code="DUPLICATE_DELIVERY",
        )


class PaymentProviderError(InvitationServiceError):
    """A call to the payment processor failed."""

    status_code = 502

    def __init__(self, operation: str, message: Optional[str] = None):
        self.operation = operation
        super().__init__(
            message or "Payment provider error",
            error_code="PAYMENT_PROVIDER_ERROR",
            details={"service": "stripe"},
        )
