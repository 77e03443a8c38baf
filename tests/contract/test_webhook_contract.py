"""Contract tests for POST /api/webhooks/stripe.

Tests verify the HTTP contract Stripe relies on:
- 200 {"received": true} for applied, already applied and ignored events
- 400 {"error": ...} for verification and validation failures (no retry)
- 500 {"error": ...} for transient failures (Stripe redelivers)
- One structured request line per delivery for the log analyzer
"""

import logging
from collections.abc import Generator
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from starlette.status import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from payments.models import OrderStatus
from payments.services import BillingRecords, generate_signature_header
from webhook_api.main import create_app

TEST_WEBHOOK_SECRET = "whsec_test_secret123"
WEBHOOK_PATH = "/api/webhooks/stripe"


@pytest.fixture
def client(settings, dynamodb) -> Generator[TestClient, None, None]:
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def _post(client: TestClient, body: bytes, secret: str = TEST_WEBHOOK_SECRET, **headers):
    headers.setdefault("Stripe-Signature", generate_signature_header(body, secret))
    headers["Content-Type"] = "application/json"
    return client.post(WEBHOOK_PATH, content=body, headers=headers)


class TestPing:
    def test_ping(self, client):
        response = client.get("/api/ping")

        assert response.status_code == HTTP_200_OK
        assert response.json()["status"] == "ok"
        assert response.json()["service"] == "payments-webhook"


class TestAcceptedDeliveries:
    def test_payment_succeeded(self, client, records, seed_order, make_payload, payment_intent):
        seed_order("ord_1")

        response = _post(client, make_payload("payment_intent.succeeded", payment_intent()))

        assert response.status_code == HTTP_200_OK
        assert response.json() == {"received": True}
        assert response.headers["X-Correlation-ID"]
        assert records.get_order("ord_1").status == OrderStatus.PAID

    def test_duplicate_delivery(self, client, seed_order, make_payload, payment_intent):
        seed_order("ord_1")
        body = make_payload("payment_intent.succeeded", payment_intent())

        first = _post(client, body)
        second = _post(client, body)

        assert first.status_code == second.status_code == HTTP_200_OK
        assert second.json() == {"received": True}

    def test_unhandled_event_type(self, client, make_payload):
        response = _post(client, make_payload("customer.created", {"id": "cus_1"}))

        assert response.status_code == HTTP_200_OK
        assert response.json() == {"received": True}

    def test_correlation_id_is_echoed(self, client, make_payload):
        response = _post(
            client, make_payload("invoice.created", {"id": "in_1"}), **{"X-Correlation-ID": "req-42"}
        )

        assert response.headers["X-Correlation-ID"] == "req-42"


class TestRejectedDeliveries:
    def test_missing_signature_header(self, client, make_payload, payment_intent):
        response = client.post(
            WEBHOOK_PATH,
            content=make_payload("payment_intent.succeeded", payment_intent()),
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Missing Stripe-Signature header"}

    def test_tampered_body(self, client, records, seed_order, make_payload, payment_intent):
        seed_order("ord_1")
        body = make_payload("payment_intent.succeeded", payment_intent(amount=5000))
        header = generate_signature_header(body, TEST_WEBHOOK_SECRET)

        response = _post(client, body.replace(b"5000", b"4000"), **{"Stripe-Signature": header})

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert response.json() == {"error": "Invalid webhook signature"}
        assert records.get_order("ord_1").status == OrderStatus.PENDING

    def test_amount_mismatch(self, client, seed_order, make_payload, payment_intent):
        seed_order("ord_1", total="50.00")

        response = _post(client, make_payload("payment_intent.succeeded", payment_intent(amount=4000)))

        assert response.status_code == HTTP_400_BAD_REQUEST
        assert "error" in response.json()


class TestTransientFailures:
    def test_store_outage_returns_500(self, client, seed_order, make_payload, payment_intent):
        seed_order("ord_1")
        outage = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "try again"}}, "GetItem"
        )

        with patch.object(BillingRecords, "get_order", side_effect=outage):
            response = _post(client, make_payload("payment_intent.succeeded", payment_intent()))

        assert response.status_code == HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json() == {"error": "Data store is unavailable"}


class TestRequestLog:
    def test_one_line_per_delivery(self, client, caplog, seed_order, make_payload, payment_intent):
        seed_order("ord_1")

        with caplog.at_level(logging.INFO, logger="webhook_api.requests"):
            _post(
                client,
                make_payload("payment_intent.succeeded", payment_intent(customer="cus_1"), event_id="evt_log"),
            )

        lines = [r for r in caplog.records if r.name == "webhook_api.requests"]
        assert len(lines) == 1
        context = lines[0].context
        assert context["status_code"] == 200
        assert context["path"] == WEBHOOK_PATH
        assert context["event_id"] == "evt_log"
        assert context["event_type"] == "payment_intent.succeeded"
        assert context["customer_id"] == "cus_1"
        assert context["response_time_ms"] >= 0

    def test_rejected_delivery_logs_warning(self, client, caplog, make_payload, payment_intent):
        with caplog.at_level(logging.INFO, logger="webhook_api.requests"):
            _post(client, make_payload("payment_intent.succeeded", payment_intent()), secret="whsec_wrong")

        line = [r for r in caplog.records if r.name == "webhook_api.requests"][-1]
        assert line.levelno == logging.WARNING
        assert line.context["status_code"] == 400
        assert line.context["error"] == "Invalid webhook signature"
