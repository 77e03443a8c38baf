"""Unit tests for payment models, enums and error codes."""

from decimal import Decimal

import pytest

from payments.models import (
    ERROR_MESSAGES,
    ErrorCode,
    EventType,
    IncomingEvent,
    Order,
    OrderStatus,
    PaymentIntentStatus,
    PaymentsError,
    StoreUnavailableError,
    VerificationError,
    to_minor_units,
)


class TestMinorUnits:
    @pytest.mark.parametrize(
        "amount,currency,expected",
        [
            ("50.00", "usd", 5000),
            ("49.99", "eur", 4999),
            ("5000", "jpy", 5000),
            ("5000", "JPY", 5000),
        ],
    )
    def test_conversion(self, amount, currency, expected):
        assert to_minor_units(Decimal(amount), currency) == expected

    def test_fractional_minor_units_never_match(self):
        assert to_minor_units(Decimal("10.005"), "usd") != 1000
        assert to_minor_units(Decimal("10.005"), "usd") != 1001


class TestEventType:
    def test_exact_match_only(self):
        assert EventType.from_raw("charge.refunded") is EventType.CHARGE_REFUNDED
        assert EventType.from_raw("charge.refunded ") is EventType.UNHANDLED
        assert EventType.from_raw("invoice.created") is EventType.UNHANDLED
        assert EventType.from_raw(None) is EventType.UNHANDLED

    def test_incoming_event_accessors(self):
        event = IncomingEvent.model_validate(
            {
                "id": "evt_1",
                "type": "payment_intent.succeeded",
                "created": 1,
                "data": {"object": {"id": "pi_1", "customer": {"id": "cus_1"}, "metadata": "bad"}},
            }
        )

        assert event.event_type is EventType.PAYMENT_INTENT_SUCCEEDED
        assert event.customer_id == "cus_1"
        assert event.metadata == {}


class TestStatuses:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (PaymentIntentStatus.SUCCEEDED, OrderStatus.PAID),
            (PaymentIntentStatus.CANCELED, OrderStatus.FAILED),
            (PaymentIntentStatus.REQUIRES_ACTION, OrderStatus.PENDING),
        ],
    )
    def test_payment_intent_mapping(self, status, expected):
        assert status.to_order_status() is expected

    def test_terminal_order_statuses(self):
        assert not OrderStatus.PENDING.is_terminal
        assert all(s.is_terminal for s in (OrderStatus.PAID, OrderStatus.FAILED, OrderStatus.REFUNDED))

    def test_order_from_item(self):
        order = Order.from_item(
            {"order_id": "ord_1", "status": "paid", "total": Decimal("12.50"), "currency": "USD"}
        )

        assert order.currency == "usd"
        assert order.total_minor == 1250
        assert order.paid_at is None


class TestErrors:
    def test_every_code_has_a_message(self):
        assert set(ERROR_MESSAGES) == set(ErrorCode)

    def test_retryable_codes(self):
        assert StoreUnavailableError("update_item").retryable
        assert PaymentsError(ErrorCode.INTERNAL_ERROR).retryable
        assert not PaymentsError(ErrorCode.ORDER_NOT_FOUND).retryable

    def test_response_hides_details(self):
        error = PaymentsError(ErrorCode.ORDER_NOT_FOUND, details={"order_id": "ord_secret"})

        assert error.to_response().model_dump() == {"error": "Order not found"}

    def test_verification_error_requires_signature_code(self):
        with pytest.raises(ValueError):
            VerificationError(ErrorCode.ORDER_NOT_FOUND)
