"""Unit tests for threshold alerts."""

import pytest
from pydantic import ValidationError

from payments.monitoring import (
    AlertSeverity,
    AlertThresholds,
    MetricsSnapshot,
    ResponseTimeStats,
    check_thresholds,
)


def _snapshot(total=100, failed=0, response_ms=(), peak=1) -> MetricsSnapshot:
    stats = ResponseTimeStats()
    for value in response_ms:
        stats.observe(value)
    return MetricsSnapshot(
        total_requests=total,
        successful_requests=total - failed,
        failed_requests=failed,
        response_times=stats,
        peak_requests_per_minute=peak,
    )


class TestCheckThresholds:
    def test_healthy_window_has_no_alerts(self):
        assert check_thresholds(_snapshot(failed=5, response_ms=(100, 200), peak=50)) == []

    def test_empty_window_has_no_alerts(self):
        assert check_thresholds(MetricsSnapshot()) == []

    def test_error_rate_above_threshold_is_critical(self):
        alerts = check_thresholds(_snapshot(failed=6))

        assert [a.name for a in alerts] == ["high_error_rate"]
        assert alerts[0].severity == AlertSeverity.CRITICAL
        assert alerts[0].observed == pytest.approx(0.06)
        assert alerts[0].message == "High error rate: 6.00%"

    def test_slow_responses(self):
        alerts = check_thresholds(_snapshot(response_ms=(900, 1500)))

        assert [a.name for a in alerts] == ["high_response_time"]
        assert alerts[0].severity == AlertSeverity.WARNING

    def test_request_burst(self):
        alerts = check_thresholds(_snapshot(peak=51))

        assert [a.name for a in alerts] == ["high_concurrency"]

    def test_custom_thresholds(self):
        thresholds = AlertThresholds(error_rate=0.01, response_time_ms=100, concurrent_requests=5)

        alerts = check_thresholds(_snapshot(failed=2, response_ms=(150,), peak=6), thresholds)

        assert {a.name for a in alerts} == {"high_error_rate", "high_response_time", "high_concurrency"}

    def test_thresholds_are_validated(self):
        with pytest.raises(ValidationError):
            AlertThresholds(error_rate=1.5)
