"""Request completion logging.

Writes exactly one structured line per request. Its ``context`` carries
``status_code`` and ``response_time_ms`` (plus the webhook event fields when
the route recorded them), which is what ``payments-analyze-logs`` aggregates.
"""

import time
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from payments.utils.logging import get_logger

logger = get_logger("webhook_api.requests")


def _webhook_context(request: Request) -> dict[str, Any]:
    outcome = getattr(request.state, "webhook", None)
    if outcome is None:
        return {}
    context: dict[str, Any] = {
        "event_id": outcome.event_id,
        "event_type": outcome.event_type,
        "customer_id": outcome.customer_id,
    }
    if "error" in outcome.body:
        context["error"] = outcome.body["error"]
    return {key: value for key, value in context.items() if value is not None}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and latency of every request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            context = {
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "response_time_ms": elapsed_ms,
                **_webhook_context(request),
            }
            level = logger.warning if status_code >= 400 else logger.info
            level(
                "%s %s -> %d (%.2fms)",
                request.method,
                request.url.path,
                status_code,
                elapsed_ms,
                extra={"context": context},
            )
