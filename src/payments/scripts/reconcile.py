#!/usr/bin/env python3
"""
Reconcile local orders and subscriptions against Stripe.

Compares the most recent local records with Stripe's PaymentIntents and
Subscriptions and corrects status drift. Records Stripe no longer has are
reported as missing and left untouched for manual review.

Usage:
    payments-reconcile payments
    payments-reconcile subscriptions --limit 50
    payments-reconcile all

Exit codes:
    0  run completed (mismatches are reported, not treated as failure)
    1  configuration invalid, store unreadable or Stripe unreachable
"""

import argparse
import sys

from payments.config import Settings, load_settings
from payments.models import (
    ConfigurationError,
    ReconcileScope,
    ReconciliationError,
    ReconciliationResult,
)
from payments.services import BillingRecords, DynamoDBService, Reconciler, StripeService
from payments.utils.logging import configure_logging

COLUMNS = (
    "processed",
    "matched",
    "mismatched",
    "corrected",
    "missing",
    "flagged",
    "skipped",
    "errors",
)


def build_reconciler(settings: Settings) -> Reconciler:
    """Wire a reconciler from settings."""
    db = DynamoDBService(
        table_prefix=settings.dynamodb_table_prefix or "",
        region_name=settings.aws_region,
        endpoint_url=settings.dynamodb_endpoint_url,
    )
    stripe_svc = StripeService(
        secret_key=settings.secret_key,
        timeout_seconds=settings.stripe_timeout_seconds,
        api_version=settings.stripe_api_version,
    )
    return Reconciler(
        BillingRecords(db),
        stripe_svc,
        batch_size=settings.reconcile_batch_size,
        concurrency=settings.reconcile_concurrency,
        batch_pause_seconds=settings.reconcile_batch_pause_seconds,
    )


def format_results(results: list[ReconciliationResult]) -> str:
    """Render results as a fixed-width table."""
    header = f"{'scope':<14}" + "".join(f"{name:>12}" for name in COLUMNS)
    lines = [header, "-" * len(header)]
    for result in results:
        row = result.as_row()
        lines.append(
            f"{result.scope.value:<14}" + "".join(f"{row[name]:>12}" for name in COLUMNS)
        )
    return "\n".join(lines)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Reconcile local payment records against Stripe",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check the 100 most recent orders
  payments-reconcile payments

  # Check the 20 most recent subscriptions
  payments-reconcile subscriptions --limit 20
        """,
    )
    parser.add_argument(
        "scope",
        choices=[scope.value for scope in ReconcileScope],
        help="Which records to reconcile",
    )
    parser.add_argument(
        "--limit",
        type=_positive_int,
        default=None,
        help="Maximum records per kind (default: RECONCILE_BATCH_SIZE)",
    )
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    configure_logging(settings.log_level, settings.log_format)

    print(f"\n{'='*60}")
    print(f"Reconciling {args.scope} ({settings.environment})")
    print(f"{'='*60}")

    try:
        results = build_reconciler(settings).reconcile(args.scope, args.limit)
    except (ReconciliationError, ConfigurationError) as e:
        print(f"Reconciliation failed: {e}", file=sys.stderr)
        return 1

    print(format_results(results))

    mismatched = sum(result.mismatched for result in results)
    missing = sum(result.missing for result in results)
    flagged = sum(result.flagged for result in results)
    if mismatched or missing:
        print(f"\n  {mismatched} mismatched, {missing} missing in Stripe (see logs)")
    if flagged:
        print(f"  {flagged} flagged for amount or currency mismatch; not corrected")
    print()

    return 0


if __name__ == "__main__":
    sys.exit(main())
