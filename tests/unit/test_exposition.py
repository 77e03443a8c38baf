"""Unit tests for Prometheus exposition and the console report."""

from payments.monitoring import (
    Alert,
    AlertSeverity,
    MetricsSnapshot,
    ResponseTimeStats,
    format_summary,
    render_exposition,
)


def _snapshot() -> MetricsSnapshot:
    stats = ResponseTimeStats()
    for value in (20, 80, 3000):
        stats.observe(value)
    return MetricsSnapshot(
        total_requests=3,
        successful_requests=2,
        failed_requests=1,
        signature_failures=1,
        status_codes={200: 2, 400: 1},
        event_types={"payment_intent.succeeded": 2, 'odd"type': 1},
        errors={"Invalid webhook signature": 1},
        response_times=stats,
        unique_customers=2,
        peak_requests_per_minute=3,
    )


class TestRenderExposition:
    def test_counters_and_gauges(self):
        text = render_exposition(_snapshot())
        lines = text.splitlines()

        assert text.endswith("\n")
        assert "# TYPE webhook_requests_total counter" in lines
        assert "webhook_requests_total 3" in lines
        assert "webhook_requests_failed_total 1" in lines
        assert "webhook_signature_failures_total 1" in lines
        assert 'webhook_responses_total{status_code="400"} 1' in lines
        assert 'webhook_events_total{event_type="payment_intent.succeeded"} 2' in lines
        assert "# TYPE webhook_error_rate gauge" in lines
        assert "webhook_unique_customers 2" in lines

    def test_label_values_are_escaped(self):
        assert 'webhook_events_total{event_type="odd\\"type"} 1' in render_exposition(_snapshot())

    def test_histogram(self):
        lines = render_exposition(_snapshot()).splitlines()

        assert "# TYPE webhook_response_time_milliseconds histogram" in lines
        assert 'webhook_response_time_milliseconds_bucket{le="50"} 1' in lines
        assert 'webhook_response_time_milliseconds_bucket{le="100"} 2' in lines
        assert 'webhook_response_time_milliseconds_bucket{le="2500"} 2' in lines
        assert 'webhook_response_time_milliseconds_bucket{le="+Inf"} 3' in lines
        assert "webhook_response_time_milliseconds_sum 3100" in lines
        assert "webhook_response_time_milliseconds_count 3" in lines

    def test_empty_snapshot_still_renders(self):
        lines = render_exposition(MetricsSnapshot()).splitlines()

        assert "webhook_requests_total 0" in lines
        assert "webhook_error_rate 0" in lines
        assert 'webhook_response_time_milliseconds_bucket{le="+Inf"} 0' in lines


class TestFormatSummary:
    def test_report_sections(self):
        report = format_summary(_snapshot(), [])

        assert report.startswith("Webhook Analysis Report")
        assert "Total Requests: 3" in report
        assert "Success Rate: 66.67%" in report
        assert "  400: 1 (33.33%)" in report
        assert "Error Distribution:" in report
        assert report.rstrip().endswith("none")

    def test_alerts_listed(self):
        alert = Alert(
            name="high_error_rate",
            severity=AlertSeverity.CRITICAL,
            message="High error rate: 33.33%",
            observed=0.33,
            threshold=0.05,
        )

        report = format_summary(_snapshot(), [alert])

        assert "[CRITICAL] High error rate: 33.33%" in report
