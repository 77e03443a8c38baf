"""Structured logging utilities with correlation ID support.

Provides:
- Correlation ID context management for request tracing
- Text and JSON formatters; the JSON form (one object per line) is what
  ``payments.monitoring.log_analysis`` reads back
- Helper functions for webhook and payment operation logging

Usage:
    from payments.utils.logging import get_logger, set_correlation_id

    # In middleware/request handler:
    set_correlation_id(request.headers.get("X-Correlation-ID"))

    # In service code:
    logger = get_logger(__name__)
    logger.info("Order paid", extra={"context": {"order_id": "ord_1"}})
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

# Context variable for correlation ID - thread-safe and async-safe
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def generate_correlation_id() -> str:
    """Generate a new correlation ID.

    Returns:
        UUID-based correlation ID string
    """
    return str(uuid.uuid4())


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set the correlation ID for the current request context.

    Args:
        correlation_id: Optional existing correlation ID. If None, generates new one.

    Returns:
        The correlation ID that was set
    """
    cid = correlation_id or generate_correlation_id()
    _correlation_id.set(cid)
    return cid


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    """Clear the correlation ID context."""
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation_id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Formatter for human-readable log output with correlation ID."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "no-correlation-id"

        base = super().format(record)
        context = getattr(record, "context", None)
        if context:
            pairs = " ".join(f"{key}={value}" for key, value in context.items())
            base = f"{base} | {pairs}"

        # Add correlation ID prefix for easy grep/filtering
        return f"[{record.correlation_id}] {base}"


class JsonFormatter(logging.Formatter):
    """Formatter emitting one JSON object per line.

    Shape::

        {"timestamp": "...", "level": "INFO", "logger": "...",
         "message": "...", "correlation_id": "...", "context": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None)
            or get_correlation_id(),
        }
        context = getattr(record, "context", None)
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Configure the root logger once for the process.

    Args:
        level: Log level name
        fmt: "json" for machine-readable lines, "text" for StructuredFormatter
    """
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationIdFilter())
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(StructuredFormatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())


def get_logger(name: str) -> logging.Logger:
    """Get a logger with correlation ID support.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
        logger.addFilter(CorrelationIdFilter())

    return logger


def log_payment_operation(
    logger: logging.Logger,
    operation: str,
    *,
    order_id: str | None = None,
    subscription_id: str | None = None,
    amount_minor: int | None = None,
    status: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a payment record operation with structured context.

    Args:
        logger: Logger instance
        operation: Operation name (e.g., "mark_order_paid", "reconcile_order")
        order_id: Order ID if available
        subscription_id: Subscription ID if available
        amount_minor: Amount in minor units if relevant
        status: Resulting record status
        error: Error message if operation failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {"operation": operation}

    if order_id:
        context["order_id"] = order_id
    if subscription_id:
        context["subscription_id"] = subscription_id
    if amount_minor is not None:
        context["amount_minor"] = amount_minor
    if status:
        context["status"] = status
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Payment operation: {operation}"]
    for key, value in context.items():
        if key != "operation":
            msg_parts.append(f"{key}={value}")

    message = " | ".join(msg_parts)

    if error:
        logger.error(message, extra={"context": context})
    else:
        logger.info(message, extra={"context": context})


def log_webhook_event(
    logger: logging.Logger,
    event_type: str,
    event_id: str,
    *,
    record_id: str | None = None,
    result: str | None = None,
    error: str | None = None,
    **extra: Any,
) -> None:
    """Log a webhook event with structured context.

    Args:
        logger: Logger instance
        event_type: Stripe event type (e.g., "payment_intent.succeeded")
        event_id: Stripe event ID
        record_id: Order or subscription touched, if any
        result: Processing result (applied, already_applied, ignored, failed)
        error: Error message if processing failed
        **extra: Additional context fields
    """
    context: dict[str, Any] = {
        "event_type": event_type,
        "event_id": event_id,
    }

    if record_id:
        context["record_id"] = record_id
    if result:
        context["result"] = result
    if error:
        context["error"] = error

    context.update(extra)

    msg_parts = [f"Webhook event: {event_type} ({event_id})"]
    if result:
        msg_parts.append(f"result={result}")
    if record_id:
        msg_parts.append(f"record={record_id}")
    if error:
        msg_parts.append(f"error={error}")

    message = " | ".join(msg_parts)

    if result == "failed":
        logger.error(message, extra={"context": context})
    elif result == "ignored":
        logger.warning(message, extra={"context": context})
    else:
        logger.info(message, extra={"context": context})
