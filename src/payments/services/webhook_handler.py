"""Webhook handler for processing Stripe deliveries.

Provides the transport-independent core of the webhook endpoint:
verify, dispatch, audit, and map the outcome to an HTTP status and body.
This enables:
- Unit testing without HTTP overhead
- Reuse across different transport mechanisms (FastAPI, raw Lambda)
"""

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, ConfigDict

from payments.models import (
    DispatchResult,
    ErrorResponse,
    IncomingEvent,
    InvalidPayload,
    VerificationError,
)
from payments.services.billing_records import BillingRecords
from payments.services.dispatcher import EventDispatcher
from payments.services.signature import verify_signature
from payments.services.stripe_service import StripeService
from payments.utils.logging import get_logger

if TYPE_CHECKING:
    from payments.config import Settings

logger = get_logger(__name__)

RECEIVED_BODY: dict[str, Any] = {"received": True}


class WebhookOutcome(BaseModel):
    """HTTP-facing result of one webhook delivery."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    body: dict[str, Any]
    event_id: str | None = None
    event_type: str | None = None
    customer_id: str | None = None
    result: DispatchResult | None = None

    @classmethod
    def rejected(cls, message: str) -> "WebhookOutcome":
        return cls(status_code=400, body=ErrorResponse(error=message).model_dump())


class WebhookHandler:
    """Verifies, dispatches and audits Stripe webhook deliveries."""

    def __init__(
        self,
        settings: "Settings",
        dispatcher: EventDispatcher,
        records: BillingRecords,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._secret = settings.webhook_secret
        self._tolerance = settings.webhook_tolerance_seconds
        self._dispatcher = dispatcher
        self._records = records
        self._clock = clock

    def handle(self, raw_body: bytes, signature_header: str | None) -> WebhookOutcome:
        """Process one delivery.

        Args:
            raw_body: Request body exactly as received
            signature_header: Stripe-Signature header value

        Returns:
            200 for applied, already applied and ignored events; 400 for
            verification and validation failures; 500 for transient failures
        """
        try:
            event = verify_signature(
                raw_body,
                signature_header,
                self._secret,
                tolerance_seconds=self._tolerance,
                now=self._clock(),
            )
        except VerificationError as e:
            # Reason only; never the payload
            logger.warning(
                "Webhook signature verification failed: %s",
                e.reason,
                extra={"context": {"reason": e.reason, "error_code": e.code.value}},
            )
            return WebhookOutcome.rejected(e.message)
        except InvalidPayload as e:
            logger.warning(
                "Rejected verified webhook body: %s",
                e.message,
                extra={"context": {"error_code": e.code.value}},
            )
            return WebhookOutcome.rejected(e.message)

        result = self._dispatcher.dispatch(event)
        self._audit(event, raw_body, result)

        if result.succeeded:
            status_code, body = 200, dict(RECEIVED_BODY)
        else:
            status_code = 500 if result.retryable else 400
            body = ErrorResponse(error=result.reason or "Webhook processing failed").model_dump()

        return WebhookOutcome(
            status_code=status_code,
            body=body,
            event_id=event.id,
            event_type=event.type,
            customer_id=event.customer_id,
            result=result,
        )

    def _audit(self, event: IncomingEvent, raw_body: bytes, result: DispatchResult) -> None:
        """Record the delivery; failures here never change the response."""
        try:
            self._records.record_webhook_event(
                event_id=event.id,
                event_type=event.type,
                payload_hash=StripeService.compute_payload_hash(raw_body),
                result=result.outcome,
                record_id=result.record_id,
                livemode=event.livemode,
                error_code=result.error_code.value if result.error_code else None,
                error_message=None if result.succeeded else result.reason,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(
                "Failed to write audit row for event %s: %s",
                event.id,
                e,
                extra={"context": {"event_id": event.id, "event_type": event.type}},
            )
