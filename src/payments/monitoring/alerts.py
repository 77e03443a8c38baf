"""Threshold alerts over a metrics snapshot."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .log_analysis import MetricsSnapshot


class AlertSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class AlertThresholds(BaseModel):
    """Limits above which an alert is raised."""

    error_rate: float = Field(default=0.05, ge=0, le=1, description="Failed / total requests")
    response_time_ms: float = Field(default=1000, gt=0, description="Average response time")
    concurrent_requests: int = Field(default=50, gt=0, description="Peak requests per minute")


class Alert(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    severity: AlertSeverity
    message: str
    observed: float
    threshold: float


def check_thresholds(
    snapshot: MetricsSnapshot, thresholds: AlertThresholds | None = None
) -> list[Alert]:
    """Return the alerts a snapshot triggers; an empty window triggers none."""
    thresholds = thresholds or AlertThresholds()
    alerts: list[Alert] = []
    if not snapshot.total_requests:
        return alerts

    if snapshot.error_rate > thresholds.error_rate:
        alerts.append(
            Alert(
                name="high_error_rate",
                severity=AlertSeverity.CRITICAL,
                message=f"High error rate: {snapshot.error_rate * 100:.2f}%",
                observed=snapshot.error_rate,
                threshold=thresholds.error_rate,
            )
        )

    average = snapshot.response_times.average
    if snapshot.response_times.count and average > thresholds.response_time_ms:
        alerts.append(
            Alert(
                name="high_response_time",
                severity=AlertSeverity.WARNING,
                message=f"High average response time: {average:.2f}ms",
                observed=average,
                threshold=thresholds.response_time_ms,
            )
        )

    if snapshot.peak_requests_per_minute > thresholds.concurrent_requests:
        alerts.append(
            Alert(
                name="high_concurrency",
                severity=AlertSeverity.WARNING,
                message=(
                    f"High concurrency: {snapshot.peak_requests_per_minute} requests/minute"
                ),
                observed=snapshot.peak_requests_per_minute,
                threshold=thresholds.concurrent_requests,
            )
        )

    return alerts
