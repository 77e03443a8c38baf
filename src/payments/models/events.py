"""Incoming webhook event envelope."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import EventType


class EventData(BaseModel):
    """The ``data`` member of an event; ``object`` varies by event type."""

    model_config = ConfigDict(frozen=True, extra="allow")

    object: dict[str, Any] = Field(..., description="Affected API resource")
    previous_attributes: dict[str, Any] | None = Field(
        default=None,
        description="Changed attributes for *.updated events",
    )


class EventRequest(BaseModel):
    """API request that caused the event, if any."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str | None = None
    idempotency_key: str | None = None


class IncomingEvent(BaseModel):
    """A verified Stripe event.

    Transient: it lives for the duration of one webhook request and is
    never persisted as-is (the audit log stores a hash, not the body).
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Stripe event ID (evt_xxx)")
    type: str = Field(
        ...,
        min_length=1,
        description="Raw Stripe event type",
        examples=["payment_intent.succeeded"],
    )
    created: int = Field(..., ge=0, description="Creation time, epoch seconds")
    data: EventData
    livemode: bool = False
    api_version: str | None = None
    pending_webhooks: int | None = None
    request: EventRequest | None = None

    @property
    def event_type(self) -> EventType:
        return EventType.from_raw(self.type)

    @property
    def data_object(self) -> dict[str, Any]:
        return self.data.object

    @property
    def metadata(self) -> dict[str, Any]:
        metadata = self.data.object.get("metadata") or {}
        return metadata if isinstance(metadata, dict) else {}

    @property
    def customer_id(self) -> str | None:
        customer = self.data.object.get("customer")
        if isinstance(customer, dict):
            return customer.get("id")
        return customer
