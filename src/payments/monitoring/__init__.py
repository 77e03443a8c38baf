"""Log analysis, threshold alerts and metrics exposition."""

from .alerts import Alert, AlertSeverity, AlertThresholds, check_thresholds
from .exposition import format_summary, render_exposition
from .log_analysis import (
    RESPONSE_TIME_BUCKETS_MS,
    LogRecord,
    MetricsSnapshot,
    ResponseTimeStats,
    TimeWindow,
    analyze,
    iter_log_records,
    parse_log_line,
    parse_time_spec,
)

__all__ = [
    "Alert",
    "AlertSeverity",
    "AlertThresholds",
    "LogRecord",
    "MetricsSnapshot",
    "RESPONSE_TIME_BUCKETS_MS",
    "ResponseTimeStats",
    "TimeWindow",
    "analyze",
    "check_thresholds",
    "format_summary",
    "iter_log_records",
    "parse_log_line",
    "parse_time_spec",
    "render_exposition",
]
