"""Route verified events to their handlers.

The registry must cover exactly the handled members of :class:`EventType`;
construction fails otherwise, so adding an event type without a handler is
caught at startup rather than at the first delivery.
"""

from collections.abc import Callable, Mapping

from botocore.exceptions import BotoCoreError, ClientError

from payments.models import (
    HANDLED_EVENT_TYPES,
    ApplyResult,
    DispatchResult,
    ErrorCode,
    EventType,
    IncomingEvent,
    PaymentsError,
    ProcessingResult,
    StoreUnavailableError,
)
from payments.utils.logging import get_logger, log_webhook_event

logger = get_logger(__name__)


class EventDispatcher:
    """Maps each event type to one handler and contains handler failures."""

    def __init__(
        self, handlers: Mapping[EventType, Callable[[IncomingEvent], ApplyResult]]
    ) -> None:
        registered = set(handlers)
        missing = HANDLED_EVENT_TYPES - registered
        unexpected = registered - HANDLED_EVENT_TYPES
        if missing or unexpected:
            raise ValueError(
                "Handler registry must cover handled event types exactly; "
                f"missing={sorted(t.value for t in missing)} "
                f"unexpected={sorted(t.value for t in unexpected)}"
            )
        self._handlers = dict(handlers)

    def dispatch(self, event: IncomingEvent) -> DispatchResult:
        """Run the handler for ``event`` and report the outcome.

        Never raises: handler exceptions become ``failed`` results whose
        ``retryable`` flag tells the HTTP layer whether to ask for redelivery.
        """
        event_type = event.event_type
        if event_type is EventType.UNHANDLED:
            result = DispatchResult.ignored(event.id, event.type)
            log_webhook_event(
                logger, event.type, event.id, result=result.outcome.value
            )
            return result

        handler = self._handlers[event_type]
        try:
            applied = handler(event)
        except PaymentsError as e:
            result = DispatchResult.failed(event.id, event.type, e)
            log_webhook_event(
                logger,
                event.type,
                event.id,
                result=ProcessingResult.FAILED.value,
                error=e.message,
                error_code=e.code.value,
                retryable=e.retryable,
                details=e.details,
            )
            return result
        except (ClientError, BotoCoreError) as e:
            logger.exception(
                "Store error while handling %s (%s)",
                event.type,
                event.id,
                extra={"context": {"event_id": event.id, "event_type": event.type}},
            )
            return DispatchResult.failed(
                event.id, event.type, StoreUnavailableError(f"apply {event.type}", e)
            )
        except Exception:
            logger.exception(
                "Unexpected error while handling %s (%s)",
                event.type,
                event.id,
                extra={"context": {"event_id": event.id, "event_type": event.type}},
            )
            return DispatchResult.failed(
                event.id, event.type, PaymentsError(ErrorCode.INTERNAL_ERROR)
            )

        result = DispatchResult.from_apply(event.id, event_type, applied)
        log_webhook_event(
            logger,
            event.type,
            event.id,
            record_id=applied.record_id,
            result=applied.outcome.value,
            status=applied.status,
        )
        return result
