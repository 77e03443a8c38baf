"""Persisted order and subscription records.

Amounts are stored in major units as ``Decimal`` (DynamoDB's number type);
processor amounts arrive in minor units and are compared via
:func:`to_minor_units`.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from .enums import OrderStatus, SubscriptionStatus

# Currencies without a minor unit (amounts are sent to Stripe as-is)
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
        "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
    }
)


def to_minor_units(amount: Decimal, currency: str) -> Decimal:
    """Convert a major-unit amount to minor units for ``currency``.

    The result is not rounded; a value with a fractional part can never
    equal a processor amount.
    """
    if currency.lower() in ZERO_DECIMAL_CURRENCIES:
        return Decimal(amount)
    return Decimal(amount).scaleb(2)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO string or epoch number into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float, Decimal)):
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class Order(BaseModel):
    """A patient order paid through a Stripe PaymentIntent."""

    order_id: str = Field(..., description="Unique order ID", examples=["ord_1"])
    patient_id: str | None = Field(default=None, description="Reference to the patient")
    status: OrderStatus = Field(..., description="Order payment status")
    total: Decimal = Field(..., ge=0, description="Expected total in major units")
    currency: str = Field(default="usd", description="ISO currency code, lowercase")
    stripe_payment_intent_id: str | None = Field(
        default=None,
        description="Stripe PaymentIntent ID (pi_xxx)",
        examples=["pi_3ABC123DEF456"],
    )
    created_at: datetime | None = None
    updated_at: datetime | None = None
    paid_at: datetime | None = None
    failed_at: datetime | None = None
    refunded_at: datetime | None = None
    failure_message: str | None = None
    last_event_id: str | None = Field(
        default=None, description="Last webhook event applied to this order"
    )
    reconciled_at: datetime | None = None

    @property
    def total_minor(self) -> Decimal:
        return to_minor_units(self.total, self.currency)

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "Order":
        """Build an Order from a DynamoDB item."""
        return cls(
            order_id=item["order_id"],
            patient_id=item.get("patient_id"),
            status=OrderStatus(item["status"]),
            total=Decimal(str(item["total"])),
            currency=str(item.get("currency", "usd")).lower(),
            stripe_payment_intent_id=item.get("stripe_payment_intent_id"),
            created_at=parse_timestamp(item.get("created_at")),
            updated_at=parse_timestamp(item.get("updated_at")),
            paid_at=parse_timestamp(item.get("paid_at")),
            failed_at=parse_timestamp(item.get("failed_at")),
            refunded_at=parse_timestamp(item.get("refunded_at")),
            failure_message=item.get("failure_message"),
            last_event_id=item.get("last_event_id"),
            reconciled_at=parse_timestamp(item.get("reconciled_at")),
        )


class Subscription(BaseModel):
    """A patient subscription mirroring a Stripe subscription."""

    subscription_id: str = Field(..., description="Unique local subscription ID")
    patient_id: str | None = Field(default=None, description="Reference to the patient")
    stripe_subscription_id: str | None = Field(
        default=None,
        description="Stripe subscription ID (sub_xxx)",
        examples=["sub_1ABC123"],
    )
    status: SubscriptionStatus
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    canceled_at: datetime | None = None
    last_event_id: str | None = None
    last_event_created: int | None = Field(
        default=None,
        description="Creation time of the last applied event, epoch seconds",
    )
    reconciled_at: datetime | None = None

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "Subscription":
        """Build a Subscription from a DynamoDB item."""
        last_event_created = item.get("last_event_created")
        return cls(
            subscription_id=item["subscription_id"],
            patient_id=item.get("patient_id"),
            stripe_subscription_id=item.get("stripe_subscription_id"),
            status=SubscriptionStatus(item["status"]),
            current_period_start=parse_timestamp(item.get("current_period_start")),
            current_period_end=parse_timestamp(item.get("current_period_end")),
            created_at=parse_timestamp(item.get("created_at")),
            updated_at=parse_timestamp(item.get("updated_at")),
            canceled_at=parse_timestamp(item.get("canceled_at")),
            last_event_id=item.get("last_event_id"),
            last_event_created=(
                int(last_event_created) if last_event_created is not None else None
            ),
            reconciled_at=parse_timestamp(item.get("reconciled_at")),
        )
