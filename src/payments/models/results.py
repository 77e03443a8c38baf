"""Result types returned by the applier, dispatcher and reconciler."""

from pydantic import BaseModel, ConfigDict, Field

from .enums import EventType, ProcessingResult, ReconcileScope
from .errors import ErrorCode, PaymentsError


class ApplyResult(BaseModel):
    """Outcome of applying one event to a persisted record."""

    model_config = ConfigDict(frozen=True)

    outcome: ProcessingResult = Field(
        ..., description="applied or already_applied"
    )
    record_id: str | None = Field(default=None, description="Order/subscription ID")
    status: str | None = Field(default=None, description="Record status after the event")

    @classmethod
    def applied(cls, record_id: str, status: str) -> "ApplyResult":
        return cls(outcome=ProcessingResult.APPLIED, record_id=record_id, status=status)

    @classmethod
    def already_applied(cls, record_id: str, status: str) -> "ApplyResult":
        return cls(
            outcome=ProcessingResult.ALREADY_APPLIED,
            record_id=record_id,
            status=status,
        )


class DispatchResult(BaseModel):
    """Outcome of dispatching one verified event."""

    model_config = ConfigDict(frozen=True)

    outcome: ProcessingResult
    event_id: str
    event_type: str
    record_id: str | None = None
    error_code: ErrorCode | None = None
    reason: str | None = None
    retryable: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome is not ProcessingResult.FAILED

    @classmethod
    def from_apply(
        cls, event_id: str, event_type: EventType, result: ApplyResult
    ) -> "DispatchResult":
        return cls(
            outcome=result.outcome,
            event_id=event_id,
            event_type=event_type.value,
            record_id=result.record_id,
        )

    @classmethod
    def ignored(cls, event_id: str, raw_type: str) -> "DispatchResult":
        return cls(
            outcome=ProcessingResult.IGNORED,
            event_id=event_id,
            event_type=raw_type,
            reason=f"Event type '{raw_type}' not handled",
        )

    @classmethod
    def failed(
        cls,
        event_id: str,
        event_type: str,
        error: PaymentsError,
    ) -> "DispatchResult":
        return cls(
            outcome=ProcessingResult.FAILED,
            event_id=event_id,
            event_type=event_type,
            error_code=error.code,
            reason=error.message,
            retryable=error.retryable,
        )


class ReconciliationResult(BaseModel):
    """Counts produced by one reconciliation pass over one record kind."""

    scope: ReconcileScope
    processed: int = 0
    matched: int = 0
    mismatched: int = 0
    corrected: int = 0
    missing: int = 0
    # Status drift left alone because the captured amount disagrees
    flagged: int = 0
    skipped: int = 0
    errors: int = 0

    def as_row(self) -> dict[str, int]:
        return self.model_dump(exclude={"scope"})
