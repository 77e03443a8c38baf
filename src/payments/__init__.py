"""Stripe webhook ingestion, reconciliation and monitoring for telehealth billing."""

__version__ = "0.1.0"
