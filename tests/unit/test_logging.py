"""Unit tests for structured logging helpers."""

import json
import logging
import sys

import pytest

from payments.monitoring import parse_log_line
from payments.utils.logging import (
    CorrelationIdFilter,
    JsonFormatter,
    StructuredFormatter,
    TEXT_FORMAT,
    clear_correlation_id,
    get_correlation_id,
    get_logger,
    log_payment_operation,
    log_webhook_event,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def reset_correlation_id():
    clear_correlation_id()
    yield
    clear_correlation_id()


def _record(message: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("payments.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCorrelationId:
    def test_set_generates_when_missing(self):
        cid = set_correlation_id()

        assert cid
        assert get_correlation_id() == cid

    def test_set_keeps_given_id(self):
        assert set_correlation_id("req-123") == "req-123"

    def test_filter_stamps_records(self):
        set_correlation_id("req-abc")
        record = _record()

        CorrelationIdFilter().filter(record)

        assert record.correlation_id == "req-abc"


class TestFormatters:
    def test_json_line_is_read_back_by_the_analyzer(self):
        set_correlation_id("req-1")
        record = _record(
            "POST /api/webhooks/stripe -> 200",
            context={
                "status_code": 200,
                "response_time_ms": 12.5,
                "event_type": "payment_intent.succeeded",
                "customer_id": "cus_1",
            },
        )

        line = JsonFormatter().format(record)
        parsed = parse_log_line(line)

        assert json.loads(line)["level"] == "INFO"
        assert parsed.correlation_id == "req-1"
        assert parsed.status_code == 200
        assert parsed.response_time_ms == 12.5
        assert parsed.event_type == "payment_intent.succeeded"

    def test_json_includes_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record(exc_info=sys.exc_info())

        payload = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in payload["exception"]

    def test_text_format_appends_context(self):
        set_correlation_id("req-2")
        record = _record(context={"order_id": "ord_1"})

        text = StructuredFormatter(TEXT_FORMAT).format(record)

        assert text.startswith("[req-2]")
        assert text.endswith("| order_id=ord_1")


class TestEventHelpers:
    def test_failed_webhook_logs_error(self, caplog):
        logger = get_logger("payments.test.webhook")

        with caplog.at_level(logging.DEBUG, logger="payments.test.webhook"):
            log_webhook_event(logger, "payment_intent.succeeded", "evt_1", result="failed", error="x")

        assert caplog.records[-1].levelno == logging.ERROR
        assert caplog.records[-1].context["error"] == "x"

    def test_ignored_webhook_logs_warning(self, caplog):
        logger = get_logger("payments.test.webhook")

        with caplog.at_level(logging.DEBUG, logger="payments.test.webhook"):
            log_webhook_event(logger, "invoice.created", "evt_2", result="ignored")

        assert caplog.records[-1].levelno == logging.WARNING

    def test_payment_operation_context(self, caplog):
        logger = get_logger("payments.test.ops")

        with caplog.at_level(logging.INFO, logger="payments.test.ops"):
            log_payment_operation(logger, "mark_order_paid", order_id="ord_1", amount_minor=5000)

        record = caplog.records[-1]
        assert record.context == {
            "operation": "mark_order_paid",
            "order_id": "ord_1",
            "amount_minor": 5000,
        }
        assert "order_id=ord_1" in record.getMessage()
