"""Stripe webhook event log model for auditing deliveries."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from .enums import ProcessingResult
from .records import parse_timestamp


class StripeWebhookEvent(BaseModel):
    """Log of a received Stripe webhook event.

    Used for:
    - Auditing: track all webhook deliveries and their outcome
    - Debugging: investigate payment issues by event ID
    - Retry visibility: ``processing_attempts`` counts redeliveries

    Idempotency itself is enforced by conditional updates on the order and
    subscription records, not by this log.
    """

    event_id: str = Field(
        ...,
        description="Stripe event ID (evt_xxx)",
        examples=["evt_1ABC123DEF456"],
    )
    event_type: str = Field(
        ...,
        description="Stripe event type",
        examples=["payment_intent.succeeded", "customer.subscription.updated"],
    )
    first_processed_at: datetime = Field(..., description="First delivery processed")
    processed_at: datetime = Field(..., description="Latest delivery processed")
    payload_hash: str = Field(
        ...,
        description="SHA-256 hash of the raw payload",
        examples=["a1b2c3d4e5f6..."],
    )
    processing_result: ProcessingResult = Field(
        default=ProcessingResult.APPLIED,
        description="Result of the latest delivery",
    )
    processing_attempts: int = Field(default=1, ge=1)
    record_id: str | None = Field(
        default=None,
        description="Order or subscription touched by the event",
    )
    livemode: bool = False
    error_code: str | None = None
    error_message: str | None = Field(
        default=None,
        description="Error details if processing failed",
    )

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "StripeWebhookEvent":
        attempts = item.get("processing_attempts", 1)
        return cls(
            event_id=item["event_id"],
            event_type=item["event_type"],
            first_processed_at=parse_timestamp(item["first_processed_at"]),
            processed_at=parse_timestamp(item["processed_at"]),
            payload_hash=item["payload_hash"],
            processing_result=ProcessingResult(item["processing_result"]),
            processing_attempts=int(attempts) if isinstance(attempts, Decimal) else attempts,
            record_id=item.get("record_id"),
            livemode=bool(item.get("livemode", False)),
            error_code=item.get("error_code"),
            error_message=item.get("error_message"),
        )
