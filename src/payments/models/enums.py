"""Enumeration types for payment records and webhook events."""

from enum import Enum


class OrderStatus(str, Enum):
    """Status of a patient order."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_ORDER_STATUSES


TERMINAL_ORDER_STATUSES = frozenset(
    {OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.REFUNDED}
)


class SubscriptionStatus(str, Enum):
    """Status of a patient subscription, mirroring Stripe's values."""

    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"


class PaymentIntentStatus(str, Enum):
    """Stripe PaymentIntent statuses."""

    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    REQUIRES_CAPTURE = "requires_capture"
    CANCELED = "canceled"
    SUCCEEDED = "succeeded"

    def to_order_status(self) -> OrderStatus:
        if self is PaymentIntentStatus.SUCCEEDED:
            return OrderStatus.PAID
        if self is PaymentIntentStatus.CANCELED:
            return OrderStatus.FAILED
        return OrderStatus.PENDING


class EventType(str, Enum):
    """Webhook event types this service acts on.

    ``UNHANDLED`` stands for every type outside the set; such events are
    acknowledged and ignored.
    """

    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_PAYMENT_FAILED = "payment_intent.payment_failed"
    CHARGE_REFUNDED = "charge.refunded"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    UNHANDLED = "unhandled"

    @classmethod
    def from_raw(cls, raw: str | None) -> "EventType":
        """Exact-match a raw processor type string; anything else is UNHANDLED."""
        if raw is None or raw == cls.UNHANDLED.value:
            return cls.UNHANDLED
        try:
            return cls(raw)
        except ValueError:
            return cls.UNHANDLED


HANDLED_EVENT_TYPES = frozenset(t for t in EventType if t is not EventType.UNHANDLED)


class ProcessingResult(str, Enum):
    """Outcome recorded for a webhook delivery."""

    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    IGNORED = "ignored"
    FAILED = "failed"


class ReconcileScope(str, Enum):
    """What a reconciliation run covers."""

    PAYMENTS = "payments"
    SUBSCRIPTIONS = "subscriptions"
    ALL = "all"
