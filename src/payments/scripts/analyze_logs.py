#!/usr/bin/env python3
"""
Analyze webhook service logs and raise threshold alerts.

Reads the JSON log lines written by the webhook API, aggregates request
metrics over a time window, prints a summary and optionally writes a
Prometheus text exposition file for scraping.

Usage:
    payments-analyze-logs --log-file logs/webhook.log
    payments-analyze-logs --log-file logs/webhook.log --start 24h --metrics-out webhook.prom
    payments-analyze-logs --log-file logs/webhook.log --error-rate 0.01 --response-time-ms 500
"""

import argparse
import sys
from pathlib import Path

from pydantic import ValidationError

from payments.monitoring import (
    AlertThresholds,
    TimeWindow,
    analyze,
    check_thresholds,
    format_summary,
    iter_log_records,
    render_exposition,
)

DEFAULTS = AlertThresholds()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Analyze webhook logs and report metrics and alerts",
    )
    parser.add_argument("--log-file", required=True, help="JSON lines log file")
    parser.add_argument(
        "--start", default="1h", help="Window start: 30m, 1h, 7d, 2w, now or ISO-8601"
    )
    parser.add_argument("--end", default="now", help="Window end (default: now)")
    parser.add_argument(
        "--metrics-out", default=None, help="Write Prometheus text exposition to this file"
    )
    parser.add_argument(
        "--error-rate",
        type=float,
        default=DEFAULTS.error_rate,
        help=f"Error rate alert threshold (default: {DEFAULTS.error_rate})",
    )
    parser.add_argument(
        "--response-time-ms",
        type=float,
        default=DEFAULTS.response_time_ms,
        help=f"Average response time alert threshold (default: {DEFAULTS.response_time_ms:g})",
    )
    parser.add_argument(
        "--concurrent-requests",
        type=int,
        default=DEFAULTS.concurrent_requests,
        help=f"Peak requests/minute alert threshold (default: {DEFAULTS.concurrent_requests})",
    )
    args = parser.parse_args(argv)

    try:
        window = TimeWindow.from_specs(args.start, args.end)
        thresholds = AlertThresholds(
            error_rate=args.error_rate,
            response_time_ms=args.response_time_ms,
            concurrent_requests=args.concurrent_requests,
        )
    except (ValueError, ValidationError) as e:
        parser.error(str(e))

    log_file = Path(args.log_file)
    print(f"Analyzing logs from {window.start.isoformat()} to {window.end.isoformat()}...\n")

    try:
        snapshot = analyze(iter_log_records(log_file, window), window)
    except OSError as e:
        print(f"Cannot read log file {log_file}: {e}", file=sys.stderr)
        return 1

    alerts = check_thresholds(snapshot, thresholds)
    print(format_summary(snapshot, alerts))

    if args.metrics_out:
        out_path = Path(args.metrics_out)
        try:
            out_path.parent.mkdir(parents=True, exist_ok=True)
            out_path.write_text(render_exposition(snapshot), encoding="utf-8")
        except OSError as e:
            print(f"Cannot write metrics file {out_path}: {e}", file=sys.stderr)
            return 1
        print(f"Metrics written to {out_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
