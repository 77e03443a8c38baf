"""Parse the service's JSON log lines into request metrics.

Log lines are the ones written by :class:`payments.utils.logging.JsonFormatter`.
Request completion lines carry ``status_code`` and ``response_time_ms`` in
their ``context``; every other line only contributes to counters such as
signature failures.

Records are produced lazily so arbitrarily large log files are streamed,
and each call to :func:`iter_log_records` starts a fresh pass.
"""

import json
import re
from collections import Counter
from collections.abc import Iterable, Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from payments.models.errors import VERIFICATION_REASONS
from payments.models.records import parse_timestamp

RESPONSE_TIME_BUCKETS_MS: tuple[float, ...] = (50, 100, 250, 500, 1000, 2500, 5000)

_DURATION_RE = re.compile(r"^(\d+)([mhdw])$")
_DURATION_UNITS = {
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}
_SIGNATURE_REASONS = frozenset(VERIFICATION_REASONS.values())


def parse_time_spec(spec: str, now: datetime | None = None) -> datetime:
    """Resolve ``now``, a relative duration (``30m``, ``1h``, ``7d``, ``2w``)
    counted back from ``now``, or an ISO-8601 timestamp.

    Raises:
        ValueError: If the spec is not recognized
    """
    current = now or datetime.now(timezone.utc)
    text = spec.strip()
    if text == "now":
        return current

    match = _DURATION_RE.match(text)
    if match:
        amount, unit = match.groups()
        return current - int(amount) * _DURATION_UNITS[unit]

    try:
        parsed = parse_timestamp(text)
    except ValueError:
        raise ValueError(f"Invalid time range: {spec}") from None
    if parsed is None:
        raise ValueError(f"Invalid time range: {spec}")
    return parsed


class TimeWindow(BaseModel):
    """Inclusive time window."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    @classmethod
    def from_specs(
        cls, start: str = "1h", end: str = "now", now: datetime | None = None
    ) -> "TimeWindow":
        current = now or datetime.now(timezone.utc)
        window = cls(start=parse_time_spec(start, current), end=parse_time_spec(end, current))
        if window.start > window.end:
            raise ValueError(f"Window start {start} is after end {end}")
        return window


class LogRecord(BaseModel):
    """One parsed log line."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    level: str | None = None
    message: str | None = None
    logger: str | None = None
    correlation_id: str | None = None
    event_id: str | None = None
    event_type: str | None = None
    customer_id: str | None = None
    status_code: int | None = None
    response_time_ms: float | None = None
    error: str | None = None
    reason: str | None = None

    @property
    def is_request(self) -> bool:
        return self.status_code is not None

    @property
    def is_signature_failure(self) -> bool:
        return self.reason in _SIGNATURE_REASONS


def _lookup(context: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if context.get(key) is not None:
            return context[key]
    return None


def _as_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _as_str(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)


def parse_log_line(line: str) -> LogRecord | None:
    """Parse one JSON log line; anything unparseable yields None."""
    try:
        entry = json.loads(line)
    except ValueError:
        return None
    if not isinstance(entry, dict):
        return None

    try:
        timestamp = parse_timestamp(entry.get("timestamp"))
    except (TypeError, ValueError):
        return None
    if timestamp is None:
        return None

    context = entry.get("context")
    if not isinstance(context, dict):
        context = {}

    # camelCase keys are accepted for logs written by older deployments
    try:
        return LogRecord(
            timestamp=timestamp,
            level=_as_str(entry.get("level")),
            message=_as_str(entry.get("message")),
            logger=_as_str(entry.get("logger")),
            correlation_id=_as_str(entry.get("correlation_id") or entry.get("requestId")),
            event_id=_as_str(_lookup(context, "event_id", "eventId")),
            event_type=_as_str(_lookup(context, "event_type", "eventType")),
            customer_id=_as_str(_lookup(context, "customer_id", "customerId")),
            status_code=_as_int(_lookup(context, "status_code", "statusCode")),
            response_time_ms=_as_float(_lookup(context, "response_time_ms", "responseTime")),
            error=_as_str(_lookup(context, "error")),
            reason=_as_str(_lookup(context, "reason")),
        )
    except ValidationError:
        return None


def _iter_lines(source: str | Path | Iterable[str]) -> Iterator[str]:
    if isinstance(source, (str, Path)):
        # Undecodable bytes become U+FFFD rather than aborting the pass
        with open(source, encoding="utf-8", errors="replace") as handle:
            yield from handle
    else:
        yield from source


def iter_log_records(
    source: str | Path | Iterable[str],
    window: TimeWindow | None = None,
) -> Iterator[LogRecord]:
    """Lazily yield parsed records from a log file path or an iterable of lines.

    Raises:
        OSError: If ``source`` is a path that cannot be opened (on first
            iteration)
    """
    for line in _iter_lines(source):
        line = line.strip()
        if not line:
            continue
        record = parse_log_line(line)
        if record is None:
            continue
        if window is not None and not window.contains(record.timestamp):
            continue
        yield record


class ResponseTimeStats(BaseModel):
    """Response-time distribution in milliseconds.

    ``bucket_counts[i]`` counts samples in ``(buckets[i-1], buckets[i]]``;
    the final extra slot counts samples above the last bound.
    """

    buckets: tuple[float, ...] = RESPONSE_TIME_BUCKETS_MS
    bucket_counts: list[int] = Field(
        default_factory=lambda: [0] * (len(RESPONSE_TIME_BUCKETS_MS) + 1)
    )
    count: int = 0
    total: float = 0.0
    minimum: float | None = None
    maximum: float | None = None

    @property
    def average(self) -> float:
        return self.total / self.count if self.count else 0.0

    def observe(self, value_ms: float) -> None:
        self.count += 1
        self.total += value_ms
        self.minimum = value_ms if self.minimum is None else min(self.minimum, value_ms)
        self.maximum = value_ms if self.maximum is None else max(self.maximum, value_ms)
        for index, bound in enumerate(self.buckets):
            if value_ms <= bound:
                self.bucket_counts[index] += 1
                return
        self.bucket_counts[-1] += 1

    def cumulative(self) -> list[tuple[str, int]]:
        """``(le, count)`` pairs for histogram exposition, ending with ``+Inf``."""
        pairs = []
        running = 0
        for bound, count in zip(self.buckets, self.bucket_counts):
            running += count
            pairs.append((f"{bound:g}", running))
        pairs.append(("+Inf", running + self.bucket_counts[-1]))
        return pairs


class MetricsSnapshot(BaseModel):
    """Aggregates over one analysis window."""

    window_start: datetime | None = None
    window_end: datetime | None = None
    total_records: int = 0
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    signature_failures: int = 0
    status_codes: dict[int, int] = Field(default_factory=dict)
    event_types: dict[str, int] = Field(default_factory=dict)
    errors: dict[str, int] = Field(default_factory=dict)
    response_times: ResponseTimeStats = Field(default_factory=ResponseTimeStats)
    unique_customers: int = 0
    peak_requests_per_minute: int = 0

    @property
    def error_rate(self) -> float:
        if not self.total_requests:
            return 0.0
        return self.failed_requests / self.total_requests

    @property
    def success_rate(self) -> float:
        return 1.0 - self.error_rate if self.total_requests else 0.0


def analyze(
    records: Iterable[LogRecord],
    window: TimeWindow | None = None,
) -> MetricsSnapshot:
    """Aggregate records into a snapshot.

    Only request completion records (those with a status code) count as
    requests; 2xx are successes, everything else a failure.
    """
    snapshot = MetricsSnapshot()
    status_codes: Counter[int] = Counter()
    event_types: Counter[str] = Counter()
    errors: Counter[str] = Counter()
    per_minute: Counter[datetime] = Counter()
    customers: set[str] = set()
    first: datetime | None = None
    last: datetime | None = None

    for record in records:
        if window is not None and not window.contains(record.timestamp):
            continue
        snapshot.total_records += 1
        first = record.timestamp if first is None else min(first, record.timestamp)
        last = record.timestamp if last is None else max(last, record.timestamp)

        if record.is_signature_failure:
            snapshot.signature_failures += 1
        if not record.is_request:
            continue

        snapshot.total_requests += 1
        status_codes[record.status_code] += 1
        if 200 <= record.status_code < 300:
            snapshot.successful_requests += 1
        else:
            snapshot.failed_requests += 1

        if record.response_time_ms is not None:
            snapshot.response_times.observe(record.response_time_ms)
        if record.event_type:
            event_types[record.event_type] += 1
        if record.error:
            errors[record.error] += 1
        if record.customer_id:
            customers.add(record.customer_id)
        per_minute[record.timestamp.replace(second=0, microsecond=0)] += 1

    snapshot.window_start = window.start if window else first
    snapshot.window_end = window.end if window else last
    snapshot.status_codes = dict(sorted(status_codes.items()))
    snapshot.event_types = dict(event_types.most_common())
    snapshot.errors = dict(errors.most_common())
    snapshot.unique_customers = len(customers)
    snapshot.peak_requests_per_minute = max(per_minute.values(), default=0)
    return snapshot
