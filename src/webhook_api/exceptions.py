"""FastAPI exception handlers for converting PaymentsError to HTTP responses.

Webhook failures use the status codes Stripe's retry policy understands:
- 400 Bad Request: verification and validation failures (never retried)
- 500 Internal Server Error: transient failures (Stripe redelivers)

Usage:
    from webhook_api.exceptions import register_exception_handlers
    register_exception_handlers(app)
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_500_INTERNAL_SERVER_ERROR

from payments.models.errors import ERROR_MESSAGES, ErrorCode, ErrorResponse, PaymentsError
from payments.utils.logging import get_logger

logger = get_logger(__name__)

# Non-retryable codes that are not client errors
ERROR_CODE_TO_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.CONFIGURATION_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.RECONCILIATION_FAILED: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.STRIPE_API_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
}


def get_http_status_for_error(error: PaymentsError) -> int:
    """Get HTTP status code for a PaymentsError.

    Retryable errors map to 500 so the sender retries; everything else
    defaults to 400 unless explicitly mapped.
    """
    if error.retryable:
        return HTTP_500_INTERNAL_SERVER_ERROR
    return ERROR_CODE_TO_HTTP_STATUS.get(error.code, HTTP_400_BAD_REQUEST)


async def payments_error_handler(request: Request, exc: PaymentsError) -> JSONResponse:
    """Convert a PaymentsError raised by a route into ``{"error": message}``."""
    status_code = get_http_status_for_error(exc)
    logger.warning(
        "Request failed with %s: %s",
        exc.code.value,
        exc.message,
        extra={"context": {"error_code": exc.code.value, "path": request.url.path}},
    )
    return JSONResponse(status_code=status_code, content=exc.to_response().model_dump())


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a generic 500 without exposing internal details."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error=ERROR_MESSAGES[ErrorCode.INTERNAL_ERROR]).model_dump(),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(PaymentsError, payments_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)
