"""Reconcile local orders and subscriptions against Stripe.

Reads the most recent records, looks each one up in Stripe with bounded
concurrency, and corrects local status drift with conditional updates.
Safe to run alongside live webhook traffic: a correction only lands if the
record still holds the status that was compared.
"""

import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from payments.models import (
    InvalidPayload,
    Order,
    OrderStatus,
    PaymentIntentStatus,
    ProcessorUnavailableError,
    ReconcileScope,
    ReconciliationError,
    ReconciliationResult,
    Subscription,
    SubscriptionStatus,
)
from payments.services.billing_records import BillingRecords
from payments.utils.logging import get_logger, log_payment_operation

logger = get_logger(__name__)

T = TypeVar("T")

# (local, remote) pairs that are not drift
EQUIVALENT_ORDER_STATUSES = frozenset(
    {
        # Refunds live on the charge; the intent stays succeeded
        (OrderStatus.REFUNDED, OrderStatus.PAID),
        # A failed attempt leaves the intent awaiting a new payment method
        (OrderStatus.FAILED, OrderStatus.PENDING),
    }
)


class PaymentProcessor(Protocol):
    def retrieve_payment_intent(self, payment_intent_id: str) -> dict[str, Any] | None: ...

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any] | None: ...


class RecordOutcome(str, Enum):
    """What happened to one record during a pass."""

    MATCHED = "matched"
    CORRECTED = "corrected"
    MISMATCHED = "mismatched"
    MISSING = "missing"
    FLAGGED = "flagged"
    SKIPPED = "skipped"


def remote_order_status(payment_intent: dict[str, Any]) -> OrderStatus:
    """Map a PaymentIntent status to the order status it implies."""
    try:
        return PaymentIntentStatus(payment_intent.get("status")).to_order_status()
    except ValueError:
        return OrderStatus.PENDING


def statuses_match(local: OrderStatus, remote: OrderStatus) -> bool:
    return local is remote or (local, remote) in EQUIVALENT_ORDER_STATUSES


def payment_matches_order(order: Order, payment_intent: dict[str, Any]) -> bool:
    """Whether the captured amount and currency equal the order total.

    Uses ``amount_received`` when present, else ``amount``, compared in
    minor units; a missing currency is taken as the order's.
    """
    amount = payment_intent.get("amount_received")
    if amount is None:
        amount = payment_intent.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, int):
        return False
    currency = str(payment_intent.get("currency") or order.currency).lower()
    return Decimal(amount) == order.total_minor and currency == order.currency


class Reconciler:
    """Compares local records with Stripe and corrects drift."""

    def __init__(
        self,
        records: BillingRecords,
        processor: PaymentProcessor,
        batch_size: int = 100,
        concurrency: int = 5,
        batch_pause_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1 or concurrency < 1:
            raise ValueError("batch_size and concurrency must be positive")
        self.records = records
        self.processor = processor
        self.batch_size = batch_size
        self.concurrency = concurrency
        self.batch_pause_seconds = batch_pause_seconds
        self._sleep = sleep

    def reconcile(
        self, scope: ReconcileScope | str, limit: int | None = None
    ) -> list[ReconciliationResult]:
        """Run one pass over the requested scope.

        Args:
            scope: payments, subscriptions or all
            limit: Maximum records per kind, defaults to ``batch_size``

        Returns:
            One result per record kind covered

        Raises:
            ReconciliationError: The store could not be read, or Stripe was
                unavailable for every record looked up
        """
        scope = ReconcileScope(scope)
        results = []
        if scope in (ReconcileScope.PAYMENTS, ReconcileScope.ALL):
            results.append(self.reconcile_payments(limit))
        if scope in (ReconcileScope.SUBSCRIPTIONS, ReconcileScope.ALL):
            results.append(self.reconcile_subscriptions(limit))
        return results

    def reconcile_payments(self, limit: int | None = None) -> ReconciliationResult:
        try:
            orders = self.records.list_recent_orders(limit or self.batch_size)
        except (ClientError, BotoCoreError) as e:
            raise ReconciliationError(ReconcileScope.PAYMENTS.value, f"cannot read orders: {e}") from e
        logger.info("Reconciling %d orders against Stripe", len(orders))
        return self._run(ReconcileScope.PAYMENTS, orders, self._reconcile_order)

    def reconcile_subscriptions(self, limit: int | None = None) -> ReconciliationResult:
        try:
            subscriptions = self.records.list_recent_subscriptions(limit or self.batch_size)
        except (ClientError, BotoCoreError) as e:
            raise ReconciliationError(
                ReconcileScope.SUBSCRIPTIONS.value, f"cannot read subscriptions: {e}"
            ) from e
        logger.info("Reconciling %d subscriptions against Stripe", len(subscriptions))
        return self._run(ReconcileScope.SUBSCRIPTIONS, subscriptions, self._reconcile_subscription)

    def _run(
        self,
        scope: ReconcileScope,
        items: Sequence[T],
        check: Callable[[T], RecordOutcome],
    ) -> ReconciliationResult:
        result = ReconciliationResult(scope=scope)
        unavailable = 0
        batches = [
            items[start : start + self.concurrency]
            for start in range(0, len(items), self.concurrency)
        ]

        with ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            for index, batch in enumerate(batches):
                if index and self.batch_pause_seconds > 0:
                    self._sleep(self.batch_pause_seconds)
                futures = [pool.submit(check, item) for item in batch]
                for future in futures:
                    result.processed += 1
                    try:
                        outcome = future.result()
                    except ProcessorUnavailableError as e:
                        unavailable += 1
                        result.errors += 1
                        logger.warning("Stripe unavailable during %s reconciliation: %s", scope.value, e)
                        continue
                    except Exception:
                        result.errors += 1
                        logger.exception("Error reconciling %s record", scope.value)
                        continue

                    if outcome is RecordOutcome.CORRECTED:
                        result.mismatched += 1
                        result.corrected += 1
                    elif outcome is RecordOutcome.MISMATCHED:
                        result.mismatched += 1
                    elif outcome is RecordOutcome.FLAGGED:
                        result.mismatched += 1
                        result.flagged += 1
                    elif outcome is RecordOutcome.MATCHED:
                        result.matched += 1
                    elif outcome is RecordOutcome.MISSING:
                        result.missing += 1
                    else:
                        result.skipped += 1

        looked_up = result.processed - result.skipped
        if looked_up > 0 and unavailable == looked_up:
            raise ReconciliationError(scope.value, "payment processor API unavailable")

        logger.info(
            "Reconciliation of %s finished",
            scope.value,
            extra={"context": {"scope": scope.value, **result.as_row()}},
        )
        return result

    def _reconcile_order(self, order: Order) -> RecordOutcome:
        payment_intent_id = order.stripe_payment_intent_id
        if not payment_intent_id:
            return RecordOutcome.SKIPPED

        remote = self.processor.retrieve_payment_intent(payment_intent_id)
        if remote is None:
            logger.warning(
                "Order %s references PaymentIntent %s which Stripe does not have; "
                "left for manual review",
                order.order_id,
                payment_intent_id,
            )
            return RecordOutcome.MISSING

        remote_status = remote_order_status(remote)
        if statuses_match(order.status, remote_status):
            return RecordOutcome.MATCHED

        logger.warning(
            "Order %s status drift: local=%s remote=%s (PaymentIntent %s is %s)",
            order.order_id,
            order.status.value,
            remote_status.value,
            payment_intent_id,
            remote.get("status"),
        )
        if remote_status is OrderStatus.PAID and not payment_matches_order(order, remote):
            logger.error(
                "Order %s not marked paid: expected %s %s, PaymentIntent %s captured %s %s",
                order.order_id,
                order.total_minor,
                order.currency,
                payment_intent_id,
                remote.get("amount_received", remote.get("amount")),
                remote.get("currency"),
            )
            return RecordOutcome.FLAGGED

        updated = self.records.reconcile_order_status(
            order.order_id,
            observed=order.status,
            target=remote_status,
            remote_created=remote.get("created"),
            remote_canceled_at=remote.get("canceled_at"),
        )
        if updated is None:
            logger.info("Order %s changed during reconciliation; not corrected", order.order_id)
            return RecordOutcome.MISMATCHED

        log_payment_operation(
            logger,
            "reconcile_order",
            order_id=order.order_id,
            status=updated.status.value,
            previous_status=order.status.value,
        )
        return RecordOutcome.CORRECTED

    def _reconcile_subscription(self, subscription: Subscription) -> RecordOutcome:
        stripe_subscription_id = subscription.stripe_subscription_id
        if not stripe_subscription_id:
            return RecordOutcome.SKIPPED

        remote = self.processor.retrieve_subscription(stripe_subscription_id)
        if remote is None:
            logger.warning(
                "Subscription %s references %s which Stripe does not have; "
                "left for manual review",
                subscription.subscription_id,
                stripe_subscription_id,
            )
            return RecordOutcome.MISSING

        try:
            remote_status = SubscriptionStatus(remote.get("status"))
        except ValueError:
            raise InvalidPayload(
                f"unknown subscription status '{remote.get('status')}'"
            ) from None

        if subscription.status is remote_status:
            return RecordOutcome.MATCHED

        logger.warning(
            "Subscription %s status drift: local=%s remote=%s",
            subscription.subscription_id,
            subscription.status.value,
            remote_status.value,
        )
        updated = self.records.reconcile_subscription_status(
            subscription.subscription_id,
            observed=subscription.status,
            target=remote_status,
            current_period_start=remote.get("current_period_start"),
            current_period_end=remote.get("current_period_end"),
            canceled_at=remote.get("canceled_at"),
        )
        if updated is None:
            logger.info(
                "Subscription %s changed during reconciliation; not corrected",
                subscription.subscription_id,
            )
            return RecordOutcome.MISMATCHED

        log_payment_operation(
            logger,
            "reconcile_subscription",
            subscription_id=subscription.subscription_id,
            status=updated.status.value,
            previous_status=subscription.status.value,
        )
        return RecordOutcome.CORRECTED
