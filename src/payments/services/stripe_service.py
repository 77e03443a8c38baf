"""Stripe API client used by the reconciliation job.

Provides read access to PaymentIntents and Subscriptions using the v8+
StripeClient pattern. The client is constructed explicitly with its key,
timeout and API version; nothing is read from the environment here.
"""

import hashlib
import logging
from typing import Any

import stripe
from stripe import StripeClient

from payments.models.errors import ErrorCode, PaymentsError, ProcessorUnavailableError

logger = logging.getLogger(__name__)

PAYMENT_INTENT_FIELDS = (
    "id",
    "status",
    "amount",
    "amount_received",
    "currency",
    "created",
    "canceled_at",
    "customer",
)

SUBSCRIPTION_FIELDS = (
    "id",
    "status",
    "customer",
    "created",
    "current_period_start",
    "current_period_end",
    "canceled_at",
    "ended_at",
)


class StripeServiceError(PaymentsError):
    """Raised when a Stripe operation fails for a non-transient reason."""

    def __init__(self, message: str, stripe_error_code: str | None = None) -> None:
        """Initialize with message and optional Stripe error code.

        Args:
            message: Human-readable error message.
            stripe_error_code: Stripe-specific error code if available.
        """
        super().__init__(
            ErrorCode.STRIPE_API_ERROR,
            details={"stripe_error_code": stripe_error_code},
            message=message,
        )
        self.stripe_error_code = stripe_error_code


def _field(obj: Any, name: str) -> Any:
    # Item access; attribute access on a StripeObject can hit dict methods
    try:
        return obj[name]
    except (KeyError, TypeError):
        return None


def _as_plain(obj: Any, fields: tuple[str, ...]) -> dict[str, Any]:
    result = {name: _field(obj, name) for name in fields}
    customer = result.get("customer")
    if customer is not None and not isinstance(customer, str):
        result["customer"] = _field(customer, "id")
    return result


class StripeService:
    """Service for reading Stripe resources.

    Handles:
    - PaymentIntent retrieval for order reconciliation
    - Subscription retrieval for subscription reconciliation

    Usage:
        stripe_svc = StripeService(secret_key="sk_test_...", timeout_seconds=30)
        intent = stripe_svc.retrieve_payment_intent("pi_3ABC123")
    """

    def __init__(
        self,
        secret_key: str,
        timeout_seconds: float = 30.0,
        api_version: str | None = None,
        client: StripeClient | None = None,
    ) -> None:
        """Initialize the Stripe client.

        Args:
            secret_key: Stripe secret API key.
            timeout_seconds: Per-request timeout.
            api_version: Pinned API version, account default when None.
            client: Prebuilt client, used by tests.
        """
        if client is None:
            client = StripeClient(
                secret_key,
                stripe_version=api_version,
                http_client=stripe.RequestsClient(timeout=timeout_seconds),
                max_network_retries=0,
            )
        self._client = client

    def _retrieve(
        self,
        operation: str,
        resource_id: str,
        fetch: Any,
        fields: tuple[str, ...],
    ) -> dict[str, Any] | None:
        try:
            obj = fetch(resource_id)
        except stripe.InvalidRequestError as e:
            if getattr(e, "code", None) == "resource_missing":
                logger.info("%s: %s not found in Stripe", operation, resource_id)
                return None
            raise StripeServiceError(
                f"{operation} failed for {resource_id}: {e}",
                stripe_error_code=getattr(e, "code", None),
            ) from e
        except (
            stripe.APIConnectionError,
            stripe.AuthenticationError,
            stripe.RateLimitError,
        ) as e:
            logger.warning("%s: Stripe API unavailable: %s", operation, e)
            raise ProcessorUnavailableError(operation, e) from e
        except stripe.StripeError as e:
            error_code = getattr(e, "code", None)
            logger.error(
                "%s failed for %s: %s (code: %s)", operation, resource_id, e, error_code
            )
            raise StripeServiceError(
                f"{operation} failed for {resource_id}: {e}",
                stripe_error_code=error_code,
            ) from e

        return _as_plain(obj, fields)

    def retrieve_payment_intent(self, payment_intent_id: str) -> dict[str, Any] | None:
        """Retrieve a PaymentIntent.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx).

        Returns:
            Dict with id, status, amount, amount_received, currency, created,
            canceled_at and customer; None if Stripe has no such object.

        Raises:
            ProcessorUnavailableError: Stripe unreachable or credentials rejected.
            StripeServiceError: Any other Stripe error.
        """
        return self._retrieve(
            "retrieve_payment_intent",
            payment_intent_id,
            self._client.payment_intents.retrieve,
            PAYMENT_INTENT_FIELDS,
        )

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any] | None:
        """Retrieve a Subscription.

        Period boundaries moved to subscription items in newer API versions;
        when absent on the subscription they are taken from the first item.
        """
        result = self._retrieve(
            "retrieve_subscription",
            subscription_id,
            self._client.subscriptions.retrieve,
            SUBSCRIPTION_FIELDS + ("items",),
        )
        if result is None:
            return None

        items = result.pop("items", None)
        first_item = None
        item_list = _field(items, "data") if items is not None else None
        if item_list:
            first_item = item_list[0]
        for name in ("current_period_start", "current_period_end"):
            if result.get(name) is None and first_item is not None:
                result[name] = _field(first_item, name)
        return result

    @staticmethod
    def compute_payload_hash(payload: bytes) -> str:
        """Compute SHA-256 hash of a webhook payload for the audit log.

        Args:
            payload: Raw webhook payload bytes.

        Returns:
            Hex-encoded SHA-256 hash.
        """
        return hashlib.sha256(payload).hexdigest()
