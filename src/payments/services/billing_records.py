"""Order, subscription and webhook-audit persistence.

Every state change is a single conditional ``update_item``; methods return
``None`` when the condition does not hold, which callers treat as "another
writer got there first".
"""

import datetime as dt
from typing import TYPE_CHECKING, Any

from payments.models import (
    Order,
    OrderStatus,
    ProcessingResult,
    StripeWebhookEvent,
    Subscription,
    SubscriptionStatus,
)

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def epoch_to_iso(value: int | float | None) -> str | None:
    """Convert a Stripe epoch timestamp to an ISO-8601 UTC string."""
    if value is None:
        return None
    return dt.datetime.fromtimestamp(int(value), tz=dt.timezone.utc).isoformat()


class _UpdateBuilder:
    """Accumulates SET clauses for an update expression."""

    def __init__(self) -> None:
        self._clauses: list[str] = []
        self.values: dict[str, Any] = {}
        self.names: dict[str, str] = {"#status": "status"}

    def set(self, attribute: str, value: Any) -> "_UpdateBuilder":
        placeholder = f":{attribute}"
        name = "#status" if attribute == "status" else attribute
        self._clauses.append(f"{name} = {placeholder}")
        self.values[placeholder] = value
        return self

    def set_if_present(self, attribute: str, value: Any) -> "_UpdateBuilder":
        if value is not None:
            self.set(attribute, value)
        return self

    def expression(self) -> str:
        return "SET " + ", ".join(self._clauses)


class BillingRecords:
    """Store operations for orders, subscriptions and the webhook audit log."""

    ORDERS_TABLE = "orders"
    SUBSCRIPTIONS_TABLE = "subscriptions"
    EVENTS_TABLE = "stripe-webhook-events"

    PAYMENT_INTENT_INDEX = "payment_intent-index"
    STRIPE_SUBSCRIPTION_INDEX = "stripe_subscription-index"
    RECENT_INDEX = "recent-index"

    ORDER_ENTITY = "order"
    SUBSCRIPTION_ENTITY = "subscription"

    def __init__(self, db: "DynamoDBService") -> None:
        """Initialize billing records.

        Args:
            db: DynamoDB service instance
        """
        self.db = db

    # =========================================================================
    # Orders
    # =========================================================================

    def get_order(self, order_id: str) -> Order | None:
        item = self.db.get_item(
            self.ORDERS_TABLE, {"order_id": order_id}, consistent_read=True
        )
        return Order.from_item(item) if item else None

    def find_order_by_payment_intent(self, payment_intent_id: str) -> Order | None:
        results = self.db.query_by_gsi(
            table=self.ORDERS_TABLE,
            index_name=self.PAYMENT_INTENT_INDEX,
            partition_key_name="stripe_payment_intent_id",
            partition_key_value=payment_intent_id,
        )
        return Order.from_item(results[0]) if results else None

    def _transition_order(
        self,
        order_id: str,
        expected: OrderStatus,
        update: _UpdateBuilder,
    ) -> Order | None:
        update.values[":expected"] = expected.value
        attrs = self.db.update_item(
            table=self.ORDERS_TABLE,
            key={"order_id": order_id},
            update_expression=update.expression(),
            expression_attribute_values=update.values,
            expression_attribute_names=update.names,
            condition_expression="attribute_exists(order_id) AND #status = :expected",
        )
        return Order.from_item(attrs) if attrs else None

    def mark_order_paid(
        self,
        order_id: str,
        *,
        event_id: str,
        payment_intent_id: str | None = None,
    ) -> Order | None:
        """Transition ``pending -> paid``.

        Returns:
            Updated order, or None if the order was no longer pending
        """
        now = _now_iso()
        update = (
            _UpdateBuilder()
            .set("status", OrderStatus.PAID.value)
            .set("paid_at", now)
            .set("updated_at", now)
            .set("last_event_id", event_id)
            .set_if_present("stripe_payment_intent_id", payment_intent_id)
        )
        return self._transition_order(order_id, OrderStatus.PENDING, update)

    def mark_order_failed(
        self,
        order_id: str,
        *,
        event_id: str,
        failure_message: str | None = None,
    ) -> Order | None:
        """Transition ``pending -> failed``, keeping the processor's failure message."""
        now = _now_iso()
        update = (
            _UpdateBuilder()
            .set("status", OrderStatus.FAILED.value)
            .set("failed_at", now)
            .set("updated_at", now)
            .set("last_event_id", event_id)
            .set_if_present("failure_message", failure_message)
        )
        return self._transition_order(order_id, OrderStatus.PENDING, update)

    def mark_order_refunded(self, order_id: str, *, event_id: str) -> Order | None:
        """Transition ``paid -> refunded``."""
        now = _now_iso()
        update = (
            _UpdateBuilder()
            .set("status", OrderStatus.REFUNDED.value)
            .set("refunded_at", now)
            .set("updated_at", now)
            .set("last_event_id", event_id)
        )
        return self._transition_order(order_id, OrderStatus.PAID, update)

    def reconcile_order_status(
        self,
        order_id: str,
        *,
        observed: OrderStatus,
        target: OrderStatus,
        remote_created: int | None = None,
        remote_canceled_at: int | None = None,
    ) -> Order | None:
        """Correct an order to the processor's status.

        Conditional on the order still holding ``observed``, so a webhook
        applied between the read and this write is never overwritten.
        """
        now = _now_iso()
        update = (
            _UpdateBuilder()
            .set("status", target.value)
            .set("updated_at", now)
            .set("reconciled_at", now)
        )
        if target is OrderStatus.PAID:
            update.set("paid_at", epoch_to_iso(remote_created) or now)
        elif target is OrderStatus.FAILED:
            update.set("failed_at", epoch_to_iso(remote_canceled_at) or now)
        return self._transition_order(order_id, observed, update)

    def list_recent_orders(self, limit: int) -> list[Order]:
        items = self.db.query_by_gsi(
            table=self.ORDERS_TABLE,
            index_name=self.RECENT_INDEX,
            partition_key_name="entity_type",
            partition_key_value=self.ORDER_ENTITY,
            limit=limit,
            scan_index_forward=False,
        )
        return [Order.from_item(item) for item in items]

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def get_subscription(self, subscription_id: str) -> Subscription | None:
        item = self.db.get_item(
            self.SUBSCRIPTIONS_TABLE,
            {"subscription_id": subscription_id},
            consistent_read=True,
        )
        return Subscription.from_item(item) if item else None

    def find_subscription_by_stripe_id(
        self, stripe_subscription_id: str
    ) -> Subscription | None:
        results = self.db.query_by_gsi(
            table=self.SUBSCRIPTIONS_TABLE,
            index_name=self.STRIPE_SUBSCRIPTION_INDEX,
            partition_key_name="stripe_subscription_id",
            partition_key_value=stripe_subscription_id,
        )
        return Subscription.from_item(results[0]) if results else None

    def apply_subscription_state(
        self,
        subscription_id: str,
        *,
        status: SubscriptionStatus,
        event_id: str,
        event_created: int,
        current_period_start: int | None = None,
        current_period_end: int | None = None,
        canceled_at: int | None = None,
    ) -> Subscription | None:
        """Write a subscription state carried by a webhook event.

        Only applies when the event is newer than the last one applied and
        the subscription is not already canceled; returns None otherwise.
        """
        update = (
            _UpdateBuilder()
            .set("status", status.value)
            .set("updated_at", _now_iso())
            .set("last_event_id", event_id)
            .set("last_event_created", event_created)
            .set_if_present("current_period_start", epoch_to_iso(current_period_start))
            .set_if_present("current_period_end", epoch_to_iso(current_period_end))
            .set_if_present("canceled_at", epoch_to_iso(canceled_at))
        )
        update.values[":canceled"] = SubscriptionStatus.CANCELED.value
        attrs = self.db.update_item(
            table=self.SUBSCRIPTIONS_TABLE,
            key={"subscription_id": subscription_id},
            update_expression=update.expression(),
            expression_attribute_values=update.values,
            expression_attribute_names=update.names,
            condition_expression=(
                "attribute_exists(subscription_id) AND #status <> :canceled AND "
                "(attribute_not_exists(last_event_created) "
                "OR last_event_created < :last_event_created)"
            ),
        )
        return Subscription.from_item(attrs) if attrs else None

    def reconcile_subscription_status(
        self,
        subscription_id: str,
        *,
        observed: SubscriptionStatus,
        target: SubscriptionStatus,
        current_period_start: int | None = None,
        current_period_end: int | None = None,
        canceled_at: int | None = None,
    ) -> Subscription | None:
        """Correct a subscription to the processor's status, conditional on ``observed``."""
        now = _now_iso()
        update = (
            _UpdateBuilder()
            .set("status", target.value)
            .set("updated_at", now)
            .set("reconciled_at", now)
            .set_if_present("current_period_start", epoch_to_iso(current_period_start))
            .set_if_present("current_period_end", epoch_to_iso(current_period_end))
            .set_if_present("canceled_at", epoch_to_iso(canceled_at))
        )
        update.values[":expected"] = observed.value
        attrs = self.db.update_item(
            table=self.SUBSCRIPTIONS_TABLE,
            key={"subscription_id": subscription_id},
            update_expression=update.expression(),
            expression_attribute_values=update.values,
            expression_attribute_names=update.names,
            condition_expression="attribute_exists(subscription_id) AND #status = :expected",
        )
        return Subscription.from_item(attrs) if attrs else None

    def list_recent_subscriptions(self, limit: int) -> list[Subscription]:
        items = self.db.query_by_gsi(
            table=self.SUBSCRIPTIONS_TABLE,
            index_name=self.RECENT_INDEX,
            partition_key_name="entity_type",
            partition_key_value=self.SUBSCRIPTION_ENTITY,
            limit=limit,
            scan_index_forward=False,
        )
        return [Subscription.from_item(item) for item in items]

    # =========================================================================
    # Webhook audit log
    # =========================================================================

    def record_webhook_event(
        self,
        *,
        event_id: str,
        event_type: str,
        payload_hash: str,
        result: ProcessingResult,
        record_id: str | None = None,
        livemode: bool = False,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> StripeWebhookEvent:
        """Upsert the audit row for a delivery and count the attempt.

        A delivery that did not fail clears any error left by an earlier
        attempt of the same event.
        """
        now = _now_iso()
        failed = result is ProcessingResult.FAILED
        update = (
            _UpdateBuilder()
            .set("event_type", event_type)
            .set("processed_at", now)
            .set("payload_hash", payload_hash)
            .set("processing_result", result.value)
            .set("livemode", livemode)
            .set_if_present("record_id", record_id)
        )
        if failed:
            update.set_if_present("error_code", error_code)
            update.set_if_present("error_message", error_message)
        update.values[":first_processed_at"] = now
        update.values[":one"] = 1
        expression = (
            update.expression()
            + ", first_processed_at = if_not_exists(first_processed_at, :first_processed_at)"
            + " ADD processing_attempts :one"
        )
        if not failed:
            expression += " REMOVE error_code, error_message"
        attrs = self.db.update_item(
            table=self.EVENTS_TABLE,
            key={"event_id": event_id},
            update_expression=expression,
            expression_attribute_values=update.values,
            expression_attribute_names=None,
        )
        return StripeWebhookEvent.from_item(attrs)  # type: ignore[arg-type]

    def get_webhook_event(self, event_id: str) -> StripeWebhookEvent | None:
        item = self.db.get_item(self.EVENTS_TABLE, {"event_id": event_id})
        return StripeWebhookEvent.from_item(item) if item else None
