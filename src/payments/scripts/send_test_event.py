#!/usr/bin/env python3
"""
Send a signed sample Stripe event to a running webhook endpoint.

Builds a realistic event body, signs it with the endpoint's webhook secret
exactly as Stripe does, POSTs it and prints the response. Useful for smoke
testing a local server or a freshly deployed stage.

Usage:
    payments-send-test-event payment-succeeded --order-id ord_123 --amount 5000
    payments-send-test-event payment-failed --url https://api.example.com/api/webhooks/stripe
    payments-send-test-event subscription-updated --subscription-id sub_123
"""

import argparse
import json
import os
import secrets
import sys
import time
from collections.abc import Callable
from typing import Any

import httpx

from payments.services.signature import generate_signature_header

DEFAULT_URL = "http://localhost:8000/api/webhooks/stripe"
API_VERSION = "2024-06-20"
THIRTY_DAYS = 30 * 24 * 60 * 60


def _random_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(12)}"


def _payment_intent(args: argparse.Namespace, status: str) -> dict[str, Any]:
    return {
        "id": args.payment_intent_id or _random_id("pi"),
        "object": "payment_intent",
        "status": status,
        "amount": args.amount,
        "amount_received": args.amount if status == "succeeded" else 0,
        "currency": args.currency,
        "customer": args.customer_id,
        "metadata": {"order_id": args.order_id},
    }


def _payment_succeeded(args: argparse.Namespace, now: int) -> tuple[str, dict[str, Any]]:
    return "payment_intent.succeeded", _payment_intent(args, "succeeded")


def _payment_failed(args: argparse.Namespace, now: int) -> tuple[str, dict[str, Any]]:
    obj = _payment_intent(args, "requires_payment_method")
    obj["last_payment_error"] = {"code": "card_declined", "message": "Your card was declined."}
    return "payment_intent.payment_failed", obj


def _subscription_updated(args: argparse.Namespace, now: int) -> tuple[str, dict[str, Any]]:
    return "customer.subscription.updated", {
        "id": args.subscription_id or _random_id("sub"),
        "object": "subscription",
        "status": args.subscription_status,
        "customer": args.customer_id,
        "current_period_start": now,
        "current_period_end": now + THIRTY_DAYS,
        "cancel_at_period_end": False,
    }


SAMPLE_EVENTS: dict[str, Callable[[argparse.Namespace, int], tuple[str, dict[str, Any]]]] = {
    "payment-succeeded": _payment_succeeded,
    "payment-failed": _payment_failed,
    "subscription-updated": _subscription_updated,
}


def build_event(args: argparse.Namespace, now: int) -> dict[str, Any]:
    """Build the event envelope for the sample named by ``args.kind``."""
    event_type, obj = SAMPLE_EVENTS[args.kind](args, now)
    return {
        "id": args.event_id or _random_id("evt"),
        "object": "event",
        "api_version": API_VERSION,
        "created": now,
        "livemode": False,
        "pending_webhooks": 1,
        "request": {"id": _random_id("req"), "idempotency_key": None},
        "type": event_type,
        "data": {"object": obj},
    }


def send_event(
    client: httpx.Client,
    url: str,
    event: dict[str, Any],
    secret: str,
    timestamp: int | None = None,
) -> httpx.Response:
    """POST ``event`` to ``url`` with a valid Stripe-Signature header."""
    body = json.dumps(event).encode()
    headers = {
        "Content-Type": "application/json",
        "Stripe-Signature": generate_signature_header(body, secret, timestamp),
    }
    return client.post(url, content=body, headers=headers)


def main(argv: list[str] | None = None, client: httpx.Client | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Send a signed sample Stripe event to the webhook endpoint",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Settle a local order
  payments-send-test-event payment-succeeded --order-id ord_123 --amount 5000

  # Replay the same delivery to check idempotency
  payments-send-test-event payment-succeeded --order-id ord_123 --event-id evt_replay --repeat 2
        """,
    )
    parser.add_argument("kind", choices=sorted(SAMPLE_EVENTS), help="Sample event to send")
    parser.add_argument("--url", default=DEFAULT_URL, help=f"Webhook endpoint (default: {DEFAULT_URL})")
    parser.add_argument(
        "--secret",
        default=os.environ.get("STRIPE_WEBHOOK_SECRET"),
        help="Webhook signing secret (default: $STRIPE_WEBHOOK_SECRET)",
    )
    parser.add_argument("--order-id", default="ord_test", help="metadata.order_id for payment events")
    parser.add_argument("--amount", type=int, default=1000, help="Amount in minor units (default: 1000)")
    parser.add_argument("--currency", default="usd", help="Currency (default: usd)")
    parser.add_argument("--customer-id", default="cus_test", help="Customer ID")
    parser.add_argument("--payment-intent-id", default=None, help="PaymentIntent ID (default: random)")
    parser.add_argument("--subscription-id", default=None, help="Subscription ID (default: random)")
    parser.add_argument(
        "--subscription-status", default="active", help="Status for subscription-updated (default: active)"
    )
    parser.add_argument("--event-id", default=None, help="Event ID (default: random)")
    parser.add_argument("--repeat", type=int, default=1, help="Send the same event N times (default: 1)")
    parser.add_argument("--timeout", type=float, default=10.0, help="Request timeout in seconds")
    args = parser.parse_args(argv)

    if not args.secret:
        parser.error("--secret or STRIPE_WEBHOOK_SECRET is required")
    if args.repeat < 1:
        parser.error("--repeat must be at least 1")

    now = int(time.time())
    event = build_event(args, now)
    print(f"Sending {event['type']} ({event['id']}) to {args.url}")

    owns_client = client is None
    http = client or httpx.Client(timeout=args.timeout)
    rejected = 0
    try:
        for attempt in range(1, args.repeat + 1):
            response = send_event(http, args.url, event, args.secret, now)
            print(f"  [{attempt}] {response.status_code} {response.text}")
            if not response.is_success:
                rejected += 1
    except httpx.HTTPError as e:
        print(f"Failed to send webhook: {e}", file=sys.stderr)
        return 1
    finally:
        if owns_client:
            http.close()

    return 1 if rejected else 0


if __name__ == "__main__":
    sys.exit(main())
