"""HTTP middleware."""

from .correlation import CORRELATION_ID_HEADER, CorrelationIdMiddleware
from .request_logging import RequestLoggingMiddleware

__all__ = ["CORRELATION_ID_HEADER", "CorrelationIdMiddleware", "RequestLoggingMiddleware"]
