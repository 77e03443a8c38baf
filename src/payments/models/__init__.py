"""Pydantic models for payment records, webhook events and results."""

from .enums import (
    HANDLED_EVENT_TYPES,
    TERMINAL_ORDER_STATUSES,
    EventType,
    OrderStatus,
    PaymentIntentStatus,
    ProcessingResult,
    ReconcileScope,
    SubscriptionStatus,
)
from .errors import (
    ERROR_MESSAGES,
    AmountMismatch,
    ConfigurationError,
    ErrorCode,
    ErrorResponse,
    EventValidationError,
    InvalidPayload,
    InvalidTransition,
    MissingReference,
    OrderNotFound,
    PaymentsError,
    ProcessorUnavailableError,
    ReconciliationError,
    StoreUnavailableError,
    SubscriptionNotFound,
    VerificationError,
)
from .events import EventData, IncomingEvent
from .records import Order, Subscription, parse_timestamp, to_minor_units
from .results import ApplyResult, DispatchResult, ReconciliationResult
from .stripe_webhook import StripeWebhookEvent

__all__ = [
    # Enums
    "EventType",
    "HANDLED_EVENT_TYPES",
    "OrderStatus",
    "PaymentIntentStatus",
    "ProcessingResult",
    "ReconcileScope",
    "SubscriptionStatus",
    "TERMINAL_ORDER_STATUSES",
    # Events
    "EventData",
    "IncomingEvent",
    # Records
    "Order",
    "Subscription",
    "parse_timestamp",
    "to_minor_units",
    # Results
    "ApplyResult",
    "DispatchResult",
    "ReconciliationResult",
    # Errors
    "AmountMismatch",
    "ConfigurationError",
    "ERROR_MESSAGES",
    "ErrorCode",
    "ErrorResponse",
    "EventValidationError",
    "InvalidPayload",
    "InvalidTransition",
    "MissingReference",
    "OrderNotFound",
    "PaymentsError",
    "ProcessorUnavailableError",
    "ReconciliationError",
    "StoreUnavailableError",
    "SubscriptionNotFound",
    "VerificationError",
    # Stripe
    "StripeWebhookEvent",
]
