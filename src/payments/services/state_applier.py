"""Apply verified Stripe events to orders and subscriptions exactly once.

Each handler validates the event against the stored record, then performs
one conditional update. A record that is already terminal (orders) or has
already seen a newer event (subscriptions) yields ``already_applied`` and
no write.
"""

from collections.abc import Callable
from decimal import Decimal
from typing import Any

from payments.models import (
    AmountMismatch,
    ApplyResult,
    EventType,
    IncomingEvent,
    InvalidPayload,
    InvalidTransition,
    MissingReference,
    Order,
    OrderNotFound,
    OrderStatus,
    SubscriptionNotFound,
    SubscriptionStatus,
)
from payments.services.billing_records import BillingRecords
from payments.utils.logging import get_logger, log_payment_operation

logger = get_logger(__name__)

EventHandler = Callable[[IncomingEvent], ApplyResult]


def _subscription_period(obj: dict[str, Any], name: str) -> int | None:
    """Period boundary from the subscription, else from its first item."""
    value = obj.get(name)
    if value is not None:
        return int(value)
    items = (obj.get("items") or {}).get("data") or []
    if items and items[0].get(name) is not None:
        return int(items[0][name])
    return None


class StateApplier:
    """Applies payment and subscription events to persisted records."""

    def __init__(self, records: BillingRecords) -> None:
        self.records = records

    def handlers(self) -> dict[EventType, EventHandler]:
        """Registry of handled event types for the dispatcher."""
        return {
            EventType.PAYMENT_INTENT_SUCCEEDED: self.apply_payment_succeeded,
            EventType.PAYMENT_INTENT_PAYMENT_FAILED: self.apply_payment_failed,
            EventType.CHARGE_REFUNDED: self.apply_charge_refunded,
            EventType.INVOICE_PAID: self.apply_invoice_paid,
            EventType.INVOICE_PAYMENT_FAILED: self.apply_invoice_payment_failed,
            EventType.SUBSCRIPTION_CREATED: self.apply_subscription_event,
            EventType.SUBSCRIPTION_UPDATED: self.apply_subscription_event,
            EventType.SUBSCRIPTION_DELETED: self.apply_subscription_event,
        }

    def apply(self, event: IncomingEvent) -> ApplyResult:
        handler = self.handlers().get(event.event_type)
        if handler is None:
            raise InvalidPayload(f"unsupported event type '{event.type}'", event.id)
        return handler(event)

    # =========================================================================
    # Orders
    # =========================================================================

    def _load_order(self, event: IncomingEvent) -> Order:
        order_id = event.metadata.get("order_id")
        if not order_id:
            raise MissingReference(event.id)
        order = self.records.get_order(str(order_id))
        if order is None:
            raise OrderNotFound(str(order_id))
        return order

    def _lost_race(self, order_id: str, event: IncomingEvent) -> ApplyResult:
        # A concurrent delivery moved the order first
        current = self.records.get_order(order_id)
        status = current.status.value if current else "unknown"
        logger.info(
            "Order %s changed concurrently while applying %s; now %s",
            order_id,
            event.id,
            status,
        )
        return ApplyResult.already_applied(order_id, status)

    @staticmethod
    def _minor_amount(event: IncomingEvent, *fields: str) -> Decimal:
        obj = event.data_object
        amount = None
        for field in fields:
            amount = obj.get(field)
            if amount is not None:
                break
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidPayload(f"{event.type} object has no integer amount", event.id)
        return Decimal(amount)

    def _settle_paid(
        self,
        order: Order,
        event: IncomingEvent,
        received: Decimal,
        payment_intent_id: str | None,
    ) -> ApplyResult:
        """Verify the captured amount, then move ``pending -> paid``."""
        currency = str(event.data_object.get("currency") or order.currency).lower()
        if received != order.total_minor or currency != order.currency:
            logger.error(
                "Amount mismatch for order %s: expected %s %s, received %s %s",
                order.order_id,
                order.total_minor,
                order.currency,
                received,
                currency,
            )
            raise AmountMismatch(
                order.order_id,
                expected_minor=order.total_minor,
                received_minor=received,
                expected_currency=order.currency,
                received_currency=currency,
            )

        updated = self.records.mark_order_paid(
            order.order_id,
            event_id=event.id,
            payment_intent_id=payment_intent_id,
        )
        if updated is None:
            return self._lost_race(order.order_id, event)

        log_payment_operation(
            logger,
            "mark_order_paid",
            order_id=order.order_id,
            amount_minor=int(received),
            status=updated.status.value,
            event_id=event.id,
        )
        return ApplyResult.applied(order.order_id, updated.status.value)

    def _settle_failed(
        self, order: Order, event: IncomingEvent, failure_message: str | None
    ) -> ApplyResult:
        updated = self.records.mark_order_failed(
            order.order_id,
            event_id=event.id,
            failure_message=failure_message,
        )
        if updated is None:
            return self._lost_race(order.order_id, event)

        log_payment_operation(
            logger,
            "mark_order_failed",
            order_id=order.order_id,
            status=updated.status.value,
            event_id=event.id,
        )
        return ApplyResult.applied(order.order_id, updated.status.value)

    def _skip_terminal(self, order: Order, event: IncomingEvent) -> ApplyResult:
        logger.info(
            "Order %s already %s; skipping %s",
            order.order_id,
            order.status.value,
            event.id,
        )
        return ApplyResult.already_applied(order.order_id, order.status.value)

    def apply_payment_succeeded(self, event: IncomingEvent) -> ApplyResult:
        """Mark the referenced order paid once its amount has been verified."""
        order = self._load_order(event)
        if order.status.is_terminal:
            return self._skip_terminal(order, event)

        received = self._minor_amount(event, "amount_received", "amount")
        return self._settle_paid(order, event, received, event.data_object.get("id"))

    def apply_payment_failed(self, event: IncomingEvent) -> ApplyResult:
        order = self._load_order(event)
        if order.status.is_terminal:
            return ApplyResult.already_applied(order.order_id, order.status.value)

        last_error = event.data_object.get("last_payment_error") or {}
        return self._settle_failed(order, event, last_error.get("message"))

    # =========================================================================
    # Invoices
    # =========================================================================

    @staticmethod
    def _invoice_payment_intent(invoice: dict[str, Any]) -> dict[str, Any]:
        """The invoice's PaymentIntent as an object; a bare ID becomes ``{"id": ...}``."""
        payment_intent = invoice.get("payment_intent")
        if isinstance(payment_intent, dict):
            return payment_intent
        if isinstance(payment_intent, str) and payment_intent:
            return {"id": payment_intent}
        return {}

    def _load_invoice_order(self, event: IncomingEvent) -> Order:
        order_id = event.metadata.get("order_id")
        if order_id:
            order = self.records.get_order(str(order_id))
            if order is None:
                raise OrderNotFound(str(order_id))
            return order

        payment_intent_id = self._invoice_payment_intent(event.data_object).get("id")
        if not payment_intent_id:
            raise MissingReference(event.id)
        order = self.records.find_order_by_payment_intent(str(payment_intent_id))
        if order is None:
            raise OrderNotFound(str(payment_intent_id))
        return order

    def apply_invoice_paid(self, event: IncomingEvent) -> ApplyResult:
        """Settle the invoice's order the same way a succeeded PaymentIntent does.

        The order is found through ``metadata.order_id`` or the invoice's
        PaymentIntent, and ``amount_paid`` must equal the order total.
        """
        order = self._load_invoice_order(event)
        if order.status.is_terminal:
            return self._skip_terminal(order, event)

        received = self._minor_amount(event, "amount_paid")
        payment_intent_id = self._invoice_payment_intent(event.data_object).get("id")
        return self._settle_paid(order, event, received, payment_intent_id)

    def apply_invoice_payment_failed(self, event: IncomingEvent) -> ApplyResult:
        order = self._load_invoice_order(event)
        if order.status.is_terminal:
            return ApplyResult.already_applied(order.order_id, order.status.value)

        payment_intent = self._invoice_payment_intent(event.data_object)
        last_error = payment_intent.get("last_payment_error") or {}
        return self._settle_failed(order, event, last_error.get("message"))

    def apply_charge_refunded(self, event: IncomingEvent) -> ApplyResult:
        """Mark the order refunded when its charge is refunded in full.

        The order is found through ``metadata.order_id`` or, failing that,
        the charge's PaymentIntent.
        """
        charge = event.data_object
        order_id = event.metadata.get("order_id")
        if order_id:
            order = self.records.get_order(str(order_id))
            if order is None:
                raise OrderNotFound(str(order_id))
        elif charge.get("payment_intent"):
            order = self.records.find_order_by_payment_intent(str(charge["payment_intent"]))
            if order is None:
                raise OrderNotFound(str(charge["payment_intent"]))
        else:
            raise MissingReference(event.id)

        if order.status is OrderStatus.REFUNDED:
            return ApplyResult.already_applied(order.order_id, order.status.value)
        if not charge.get("refunded"):
            logger.info(
                "Partial refund on order %s (%s of %s); status unchanged",
                order.order_id,
                charge.get("amount_refunded"),
                charge.get("amount"),
            )
            return ApplyResult.already_applied(order.order_id, order.status.value)
        if order.status is not OrderStatus.PAID:
            raise InvalidTransition(
                order.order_id, order.status.value, OrderStatus.REFUNDED.value
            )

        updated = self.records.mark_order_refunded(order.order_id, event_id=event.id)
        if updated is None:
            return self._lost_race(order.order_id, event)

        log_payment_operation(
            logger,
            "mark_order_refunded",
            order_id=order.order_id,
            amount_minor=charge.get("amount_refunded"),
            status=updated.status.value,
            event_id=event.id,
        )
        return ApplyResult.applied(order.order_id, updated.status.value)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def apply_subscription_event(self, event: IncomingEvent) -> ApplyResult:
        """Mirror a subscription lifecycle event onto the local subscription."""
        obj = event.data_object
        stripe_subscription_id = obj.get("id")
        if not stripe_subscription_id:
            raise InvalidPayload("subscription object has no id", event.id)

        subscription = self.records.find_subscription_by_stripe_id(stripe_subscription_id)
        if subscription is None:
            raise SubscriptionNotFound(stripe_subscription_id)

        deleted = event.event_type is EventType.SUBSCRIPTION_DELETED
        if deleted:
            status = SubscriptionStatus.CANCELED
        else:
            try:
                status = SubscriptionStatus(obj.get("status"))
            except ValueError:
                raise InvalidPayload(
                    f"unknown subscription status '{obj.get('status')}'", event.id
                ) from None

        record_id = subscription.subscription_id
        if subscription.status is SubscriptionStatus.CANCELED or (
            subscription.last_event_created is not None
            and subscription.last_event_created >= event.created
        ):
            return ApplyResult.already_applied(record_id, subscription.status.value)

        canceled_at = obj.get("canceled_at")
        if deleted and canceled_at is None:
            canceled_at = event.created

        updated = self.records.apply_subscription_state(
            record_id,
            status=status,
            event_id=event.id,
            event_created=event.created,
            current_period_start=_subscription_period(obj, "current_period_start"),
            current_period_end=_subscription_period(obj, "current_period_end"),
            canceled_at=canceled_at,
        )
        if updated is None:
            current = self.records.get_subscription(record_id)
            return ApplyResult.already_applied(
                record_id, current.status.value if current else subscription.status.value
            )

        log_payment_operation(
            logger,
            "apply_subscription_state",
            subscription_id=record_id,
            status=updated.status.value,
            event_id=event.id,
            event_type=event.type,
        )
        return ApplyResult.applied(record_id, updated.status.value)
