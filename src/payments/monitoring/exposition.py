"""Render a metrics snapshot as Prometheus text exposition or a console report."""

from collections.abc import Iterable

from .alerts import Alert
from .log_analysis import MetricsSnapshot

METRIC_PREFIX = "webhook"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _number(value: float) -> str:
    if isinstance(value, int) or float(value).is_integer():
        return str(int(value))
    return repr(float(value))


class _Writer:
    def __init__(self) -> None:
        self.lines: list[str] = []

    def header(self, name: str, kind: str, help_text: str) -> str:
        full = f"{METRIC_PREFIX}_{name}"
        self.lines.append(f"# HELP {full} {help_text}")
        self.lines.append(f"# TYPE {full} {kind}")
        return full

    def sample(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        if labels:
            rendered = ",".join(f'{key}="{_escape(str(val))}"' for key, val in labels.items())
            name = f"{name}{{{rendered}}}"
        self.lines.append(f"{name} {_number(value)}")

    def scalar(self, name: str, kind: str, help_text: str, value: float) -> None:
        self.sample(self.header(name, kind, help_text), value)

    def labelled(
        self, name: str, help_text: str, label: str, values: Iterable[tuple[object, int]]
    ) -> None:
        full = self.header(name, "counter", help_text)
        for key, count in values:
            self.sample(full, count, {label: str(key)})


def render_exposition(snapshot: MetricsSnapshot) -> str:
    """Counters, gauges and the response-time histogram in text format 0.0.4."""
    out = _Writer()
    out.scalar("requests_total", "counter", "Total webhook requests", snapshot.total_requests)
    out.scalar(
        "requests_succeeded_total", "counter",
        "Webhook requests answered with 2xx", snapshot.successful_requests,
    )
    out.scalar(
        "requests_failed_total", "counter",
        "Webhook requests answered with non-2xx", snapshot.failed_requests,
    )
    out.scalar(
        "signature_failures_total", "counter",
        "Deliveries rejected by signature verification", snapshot.signature_failures,
    )
    out.labelled(
        "responses_total", "Webhook responses by status code",
        "status_code", snapshot.status_codes.items(),
    )
    out.labelled(
        "events_total", "Webhook requests by event type",
        "event_type", snapshot.event_types.items(),
    )
    out.labelled("errors_total", "Webhook errors by message", "error", snapshot.errors.items())

    out.scalar("error_rate", "gauge", "Failed requests over total requests", snapshot.error_rate)
    out.scalar(
        "unique_customers", "gauge",
        "Distinct customers seen in the window", snapshot.unique_customers,
    )
    out.scalar(
        "peak_requests_per_minute", "gauge",
        "Highest request count in any minute of the window", snapshot.peak_requests_per_minute,
    )

    stats = snapshot.response_times
    histogram = out.header(
        "response_time_milliseconds", "histogram", "Webhook response time in milliseconds"
    )
    for le, count in stats.cumulative():
        out.sample(f"{histogram}_bucket", count, {"le": le})
    out.sample(f"{histogram}_sum", stats.total)
    out.sample(f"{histogram}_count", stats.count)

    return "\n".join(out.lines) + "\n"


def _share(count: int, total: int) -> str:
    return f"{count / total * 100:.2f}%" if total else "0.00%"


def format_summary(snapshot: MetricsSnapshot, alerts: list[Alert]) -> str:
    """Human-readable report of a snapshot and its alerts."""
    stats = snapshot.response_times
    lines = ["Webhook Analysis Report", "=======================", ""]
    if snapshot.window_start and snapshot.window_end:
        lines.append(
            f"Window: {snapshot.window_start.isoformat()} to {snapshot.window_end.isoformat()}"
        )
        lines.append("")

    lines.extend(
        [
            "General Statistics:",
            f"Total Requests: {snapshot.total_requests}",
            f"Success Rate: {snapshot.success_rate * 100:.2f}%",
            f"Average Response Time: {stats.average:.2f}ms",
            f"Min/Max Response Time: {stats.minimum or 0:.2f}ms / {stats.maximum or 0:.2f}ms",
            f"Unique Customers: {snapshot.unique_customers}",
            f"Peak Requests/Minute: {snapshot.peak_requests_per_minute}",
            f"Signature Failures: {snapshot.signature_failures}",
        ]
    )

    lines.extend(["", "Status Code Distribution:"])
    for code, count in snapshot.status_codes.items():
        lines.append(f"  {code}: {count} ({_share(count, snapshot.total_requests)})")

    lines.extend(["", "Event Type Distribution:"])
    for event_type, count in snapshot.event_types.items():
        lines.append(f"  {event_type}: {count} ({_share(count, snapshot.total_requests)})")

    if snapshot.errors:
        lines.extend(["", "Error Distribution:"])
        for error, count in snapshot.errors.items():
            lines.append(f"  {error}: {count} ({_share(count, snapshot.failed_requests)})")

    lines.extend(["", "Alerts:"])
    if alerts:
        lines.extend(f"  [{alert.severity.value.upper()}] {alert.message}" for alert in alerts)
    else:
        lines.append("  none")

    return "\n".join(lines) + "\n"
