"""FastAPI application for the Stripe webhook endpoint.

This package provides REST endpoints for:
- Health checks (/api/ping)
- Stripe webhook deliveries (/api/webhooks/stripe)

Settings are loaded and validated when the app is created, so a missing
signing secret or table prefix fails the cold start instead of the first
delivery.
"""

from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from fastapi import FastAPI
from mangum import Mangum

from payments import __version__
from payments.config import Settings, load_settings
from payments.services import WebhookHandler
from payments.utils.logging import configure_logging, get_logger
from webhook_api.dependencies import build_webhook_handler
from webhook_api.exceptions import register_exception_handlers
from webhook_api.middleware import CorrelationIdMiddleware, RequestLoggingMiddleware
from webhook_api.routes.webhooks import router as webhooks_router

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    webhook_handler: WebhookHandler | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Validated settings; loaded from the environment when None
        webhook_handler: Prebuilt handler; wired from settings when None

    Raises:
        ConfigurationError: If required settings are missing
    """
    # The endpoint never calls the Stripe API, so only the signing secret is required
    settings = settings or load_settings(require_secret_key=False)

    app = FastAPI(
        title="Telehealth Payments Webhook API",
        description="Receives Stripe webhook events for orders and subscriptions",
        version=__version__,
    )
    app.state.settings = settings
    app.state.webhook_handler = webhook_handler or build_webhook_handler(settings)

    # Last added runs first: correlation ID must be set before the request line is logged
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    register_exception_handlers(app)

    # Matches CloudFront routing: /api/* → API Gateway
    app.include_router(webhooks_router, prefix="/api")

    @app.get("/api/ping")
    async def ping() -> dict[str, Any]:
        """Root health check endpoint at /api/ping."""
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": "payments-webhook",
            "environment": settings.environment,
        }

    return app


@lru_cache(maxsize=1)
def get_lambda_handler() -> Mangum:
    """Build the app once per Lambda container."""
    settings = load_settings(require_secret_key=False)
    configure_logging(settings.log_level, settings.log_format)
    return Mangum(create_app(settings), lifespan="off")


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """AWS Lambda entry point (API Gateway proxy events)."""
    return get_lambda_handler()(event, context)


def run_server(host: str = "0.0.0.0", port: int = 8080, reload: bool = False) -> None:
    """Run the FastAPI server locally.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to listen on (default: 8080)
        reload: Enable hot reload for development (default: False)
    """
    import uvicorn

    settings = load_settings(require_secret_key=False)
    configure_logging(settings.log_level, settings.log_format)
    logger.info("Starting webhook API on %s:%d", host, port)

    # Factory string so reload workers build their own app
    uvicorn.run(
        "webhook_api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_config=None,
    )


if __name__ == "__main__":
    run_server()
