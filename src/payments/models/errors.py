"""Standard error codes for the payments webhook service.

Every failure raised by the verifier, the state applier, the reconciler or
the store/processor clients carries one of these codes. The HTTP layer maps
codes to status codes; the ``retryable`` flag decides between a 400 (the
processor must not redeliver) and a 500 (the processor's retry policy
redelivers the event).
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class ErrorCode(str, Enum):
    """Standard error codes."""

    # Signature verification (ERR_SIG_001-ERR_SIG_004)
    MISSING_HEADER = "ERR_SIG_001"
    MALFORMED_HEADER = "ERR_SIG_002"
    SIGNATURE_MISMATCH = "ERR_SIG_003"
    STALE_TIMESTAMP = "ERR_SIG_004"

    # Event validation (ERR_EVT_001-ERR_EVT_006)
    MISSING_REFERENCE = "ERR_EVT_001"
    ORDER_NOT_FOUND = "ERR_EVT_002"
    AMOUNT_MISMATCH = "ERR_EVT_003"
    SUBSCRIPTION_NOT_FOUND = "ERR_EVT_004"
    INVALID_PAYLOAD = "ERR_EVT_005"
    INVALID_TRANSITION = "ERR_EVT_006"

    # Transient failures (ERR_TMP_001-ERR_TMP_002)
    STORE_UNAVAILABLE = "ERR_TMP_001"
    PROCESSOR_UNAVAILABLE = "ERR_TMP_002"

    # Everything else
    STRIPE_API_ERROR = "ERR_STRIPE_001"
    CONFIGURATION_ERROR = "ERR_CFG_001"
    RECONCILIATION_FAILED = "ERR_REC_001"
    INTERNAL_ERROR = "ERR_INTERNAL"


# Reason tags for signature failures, as reported in logs and audit rows
VERIFICATION_REASONS: dict[ErrorCode, str] = {
    ErrorCode.MISSING_HEADER: "missing_header",
    ErrorCode.MALFORMED_HEADER: "malformed_header",
    ErrorCode.SIGNATURE_MISMATCH: "signature_mismatch",
    ErrorCode.STALE_TIMESTAMP: "stale_timestamp",
}

ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.MISSING_HEADER: "Missing Stripe-Signature header",
    ErrorCode.MALFORMED_HEADER: "Malformed Stripe-Signature header",
    ErrorCode.SIGNATURE_MISMATCH: "Invalid webhook signature",
    ErrorCode.STALE_TIMESTAMP: "Webhook timestamp outside the tolerance window",
    ErrorCode.MISSING_REFERENCE: "Event is missing the order reference in metadata",
    ErrorCode.ORDER_NOT_FOUND: "Order not found",
    ErrorCode.AMOUNT_MISMATCH: "Paid amount does not match the order total",
    ErrorCode.SUBSCRIPTION_NOT_FOUND: "Subscription not found",
    ErrorCode.INVALID_PAYLOAD: "Event payload is invalid",
    ErrorCode.INVALID_TRANSITION: "Record is not in a state that accepts this event",
    ErrorCode.STORE_UNAVAILABLE: "Data store is unavailable",
    ErrorCode.PROCESSOR_UNAVAILABLE: "Payment processor API is unavailable",
    ErrorCode.STRIPE_API_ERROR: "Stripe API error occurred",
    ErrorCode.CONFIGURATION_ERROR: "Service configuration is invalid",
    ErrorCode.RECONCILIATION_FAILED: "Reconciliation could not run",
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred",
}

RETRYABLE_ERRORS: set[ErrorCode] = {
    ErrorCode.STORE_UNAVAILABLE,
    ErrorCode.PROCESSOR_UNAVAILABLE,
    ErrorCode.INTERNAL_ERROR,
}


class ErrorResponse(BaseModel):
    """Body returned by the webhook endpoint on failure."""

    model_config = ConfigDict(strict=True)

    error: str


class PaymentsError(Exception):
    """Base exception for the payments service.

    Carries an :class:`ErrorCode`; the message and retry semantics derive
    from the code.
    """

    def __init__(
        self,
        code: ErrorCode,
        details: Optional[dict[str, Any]] = None,
        message: Optional[str] = None,
    ):
        self.code = code
        self.message = message or ERROR_MESSAGES[code]
        self.details = details or {}
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        """Whether redelivering the same input may succeed."""
        return self.code in RETRYABLE_ERRORS

    def to_response(self) -> ErrorResponse:
        """Convert to the public error body; details may hold references and stay out."""
        return ErrorResponse(error=self.message)


class VerificationError(PaymentsError):
    """Raised when a webhook payload fails signature verification."""

    def __init__(self, code: ErrorCode, message: Optional[str] = None):
        if code not in VERIFICATION_REASONS:
            raise ValueError(f"{code} is not a verification error code")
        super().__init__(code, message=message)

    @property
    def reason(self) -> str:
        return VERIFICATION_REASONS[self.code]


class EventValidationError(PaymentsError):
    """An event that can never be applied; redelivery will not help."""


class MissingReference(EventValidationError):
    def __init__(self, event_id: str, field: str = "order_id"):
        super().__init__(
            ErrorCode.MISSING_REFERENCE,
            details={"event_id": event_id, "field": field},
        )


class OrderNotFound(EventValidationError):
    def __init__(self, order_id: str):
        super().__init__(ErrorCode.ORDER_NOT_FOUND, details={"order_id": order_id})


class SubscriptionNotFound(EventValidationError):
    def __init__(self, stripe_subscription_id: str):
        super().__init__(
            ErrorCode.SUBSCRIPTION_NOT_FOUND,
            details={"stripe_subscription_id": stripe_subscription_id},
        )


class AmountMismatch(EventValidationError):
    def __init__(
        self,
        order_id: str,
        expected_minor: Decimal | int,
        received_minor: Decimal | int,
        expected_currency: str,
        received_currency: str,
    ):
        super().__init__(
            ErrorCode.AMOUNT_MISMATCH,
            details={
                "order_id": order_id,
                "expected_minor": expected_minor,
                "received_minor": received_minor,
                "expected_currency": expected_currency,
                "received_currency": received_currency,
            },
        )


class InvalidPayload(EventValidationError):
    def __init__(self, reason: str, event_id: Optional[str] = None):
        super().__init__(
            ErrorCode.INVALID_PAYLOAD,
            details={"reason": reason, "event_id": event_id},
            message=f"Event payload is invalid: {reason}",
        )


class InvalidTransition(EventValidationError):
    def __init__(self, record_id: str, current_status: str, target_status: str):
        super().__init__(
            ErrorCode.INVALID_TRANSITION,
            details={
                "record_id": record_id,
                "current_status": current_status,
                "target_status": target_status,
            },
        )


class StoreUnavailableError(PaymentsError):
    """The data store rejected or could not serve a request."""

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        super().__init__(
            ErrorCode.STORE_UNAVAILABLE,
            details={"operation": operation, "cause": str(cause) if cause else None},
        )


class ProcessorUnavailableError(PaymentsError):
    """The payment processor API could not be reached or authenticated."""

    def __init__(self, operation: str, cause: Optional[Exception] = None):
        super().__init__(
            ErrorCode.PROCESSOR_UNAVAILABLE,
            details={"operation": operation, "cause": str(cause) if cause else None},
        )


class ConfigurationError(PaymentsError):
    def __init__(self, missing: list[str]):
        super().__init__(
            ErrorCode.CONFIGURATION_ERROR,
            details={"missing": missing},
            message=f"Missing required configuration: {', '.join(missing)}",
        )


class ReconciliationError(PaymentsError):
    def __init__(self, scope: str, reason: str):
        super().__init__(
            ErrorCode.RECONCILIATION_FAILED,
            details={"scope": scope, "reason": reason},
            message=f"Reconciliation of {scope} failed: {reason}",
        )
