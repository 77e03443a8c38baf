"""Pytest configuration and fixtures for the payments webhook service tests.

This module provides reusable fixtures for testing:
- DynamoDB mocking with moto (orders, subscriptions, webhook audit tables)
- Settings with test secrets
- Event builders and record seeding helpers
"""

import json
import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

import boto3
import pytest
from moto import mock_aws

from payments.config import Settings
from payments.models import IncomingEvent
from payments.services import BillingRecords, DynamoDBService

# === Environment Setup ===

os.environ.setdefault("AWS_DEFAULT_REGION", "eu-west-1")

# Only set fake credentials for moto if no real credentials are present
if not os.environ.get("AWS_PROFILE") and not os.environ.get("AWS_ACCESS_KEY_ID"):
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")


# === Test Configuration ===

TEST_REGION = "eu-west-1"
TEST_TABLE_PREFIX = "test-payments"
TEST_WEBHOOK_SECRET = "whsec_test_secret123"
TEST_SECRET_KEY = "sk_test_abc123"
TEST_EVENT_CREATED = 1704067200  # 2024-01-01 00:00:00 UTC


# === Settings ===


@pytest.fixture
def settings() -> Settings:
    """Settings with test secrets; ignores any local .env file."""
    return Settings(
        _env_file=None,
        stripe_webhook_secret=TEST_WEBHOOK_SECRET,
        stripe_secret_key=TEST_SECRET_KEY,
        dynamodb_table_prefix=TEST_TABLE_PREFIX,
        aws_region=TEST_REGION,
    )


# === DynamoDB Fixtures ===


@pytest.fixture
def aws_credentials() -> None:
    """Mocked AWS Credentials for moto."""
    if not os.environ.get("AWS_PROFILE"):
        os.environ["AWS_ACCESS_KEY_ID"] = "testing"
        os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
        os.environ["AWS_SECURITY_TOKEN"] = "testing"
        os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = TEST_REGION


def _recent_index() -> dict[str, Any]:
    return {
        "IndexName": "recent-index",
        "KeySchema": [
            {"AttributeName": "entity_type", "KeyType": "HASH"},
            {"AttributeName": "created_at", "KeyType": "RANGE"},
        ],
        "Projection": {"ProjectionType": "ALL"},
    }


TABLES: list[dict[str, Any]] = [
    {
        "TableName": f"{TEST_TABLE_PREFIX}-orders",
        "KeySchema": [{"AttributeName": "order_id", "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": "order_id", "AttributeType": "S"},
            {"AttributeName": "stripe_payment_intent_id", "AttributeType": "S"},
            {"AttributeName": "entity_type", "AttributeType": "S"},
            {"AttributeName": "created_at", "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": "payment_intent-index",
                "KeySchema": [
                    {"AttributeName": "stripe_payment_intent_id", "KeyType": "HASH"}
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
            _recent_index(),
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
    {
        "TableName": f"{TEST_TABLE_PREFIX}-subscriptions",
        "KeySchema": [{"AttributeName": "subscription_id", "KeyType": "HASH"}],
        "AttributeDefinitions": [
            {"AttributeName": "subscription_id", "AttributeType": "S"},
            {"AttributeName": "stripe_subscription_id", "AttributeType": "S"},
            {"AttributeName": "entity_type", "AttributeType": "S"},
            {"AttributeName": "created_at", "AttributeType": "S"},
        ],
        "GlobalSecondaryIndexes": [
            {
                "IndexName": "stripe_subscription-index",
                "KeySchema": [
                    {"AttributeName": "stripe_subscription_id", "KeyType": "HASH"}
                ],
                "Projection": {"ProjectionType": "ALL"},
            },
            _recent_index(),
        ],
        "BillingMode": "PAY_PER_REQUEST",
    },
    {
        "TableName": f"{TEST_TABLE_PREFIX}-stripe-webhook-events",
        "KeySchema": [{"AttributeName": "event_id", "KeyType": "HASH"}],
        "AttributeDefinitions": [{"AttributeName": "event_id", "AttributeType": "S"}],
        "BillingMode": "PAY_PER_REQUEST",
    },
]


@pytest.fixture
def dynamodb(aws_credentials: None) -> Generator[DynamoDBService, None, None]:
    """DynamoDBService backed by moto with all tables created."""
    with mock_aws():
        client = boto3.client("dynamodb", region_name=TEST_REGION)
        for table in TABLES:
            client.create_table(**table)
        yield DynamoDBService(TEST_TABLE_PREFIX, region_name=TEST_REGION)


@pytest.fixture
def records(dynamodb: DynamoDBService) -> BillingRecords:
    return BillingRecords(dynamodb)


# === Seeding Helpers ===


def _created_at(offset: int) -> str:
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return (base + timedelta(minutes=offset)).isoformat()


@pytest.fixture
def seed_order(dynamodb: DynamoDBService) -> Callable[..., dict[str, Any]]:
    """Factory inserting an order item; later calls are newer."""
    counter = {"n": 0}

    def _seed(
        order_id: str = "ord_1",
        *,
        status: str = "pending",
        total: str = "50.00",
        currency: str = "usd",
        payment_intent_id: str | None = "pi_1",
        **extra: Any,
    ) -> dict[str, Any]:
        counter["n"] += 1
        item: dict[str, Any] = {
            "order_id": order_id,
            "patient_id": "pat_1",
            "status": status,
            "total": Decimal(total),
            "currency": currency,
            "entity_type": "order",
            "created_at": _created_at(counter["n"]),
            "updated_at": _created_at(counter["n"]),
        }
        if payment_intent_id:
            item["stripe_payment_intent_id"] = payment_intent_id
        item.update(extra)
        dynamodb.put_item("orders", item)
        return item

    return _seed


@pytest.fixture
def seed_subscription(dynamodb: DynamoDBService) -> Callable[..., dict[str, Any]]:
    """Factory inserting a subscription item; later calls are newer."""
    counter = {"n": 0}

    def _seed(
        subscription_id: str = "sub_local_1",
        *,
        stripe_subscription_id: str | None = "sub_1",
        status: str = "active",
        **extra: Any,
    ) -> dict[str, Any]:
        counter["n"] += 1
        item: dict[str, Any] = {
            "subscription_id": subscription_id,
            "patient_id": "pat_1",
            "status": status,
            "entity_type": "subscription",
            "created_at": _created_at(counter["n"]),
            "updated_at": _created_at(counter["n"]),
        }
        if stripe_subscription_id:
            item["stripe_subscription_id"] = stripe_subscription_id
        item.update(extra)
        dynamodb.put_item("subscriptions", item)
        return item

    return _seed


# === Event Builders ===


def build_event(
    event_type: str,
    obj: dict[str, Any],
    *,
    event_id: str = "evt_1",
    created: int = TEST_EVENT_CREATED,
    livemode: bool = False,
) -> dict[str, Any]:
    """A Stripe event envelope as delivered to the webhook."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created,
        "livemode": livemode,
        "api_version": "2024-06-20",
        "pending_webhooks": 1,
        "data": {"object": obj},
    }


@pytest.fixture
def make_event() -> Callable[..., IncomingEvent]:
    """Factory for verified IncomingEvent instances."""

    def _make(event_type: str, obj: dict[str, Any], **kwargs: Any) -> IncomingEvent:
        return IncomingEvent.model_validate(build_event(event_type, obj, **kwargs))

    return _make


@pytest.fixture
def make_payload() -> Callable[..., bytes]:
    """Factory for raw webhook bodies."""

    def _make(event_type: str, obj: dict[str, Any], **kwargs: Any) -> bytes:
        return json.dumps(build_event(event_type, obj, **kwargs)).encode()

    return _make


@pytest.fixture
def payment_intent() -> Callable[..., dict[str, Any]]:
    """Factory for PaymentIntent objects referencing an order."""

    def _make(
        *,
        pi_id: str = "pi_1",
        amount: int = 5000,
        order_id: str | None = "ord_1",
        **extra: Any,
    ) -> dict[str, Any]:
        obj: dict[str, Any] = {
            "id": pi_id,
            "object": "payment_intent",
            "amount": amount,
            "metadata": {"order_id": order_id} if order_id else {},
        }
        obj.update(extra)
        return obj

    return _make
