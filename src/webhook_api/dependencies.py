"""FastAPI dependency providers.

Services are built once per application by :func:`build_webhook_handler`
and stored on ``app.state``; routes receive them through ``Depends`` so
tests can swap them with ``app.dependency_overrides``.

Service Dependency Graph:
    DynamoDBService
        └── BillingRecords
                ├── StateApplier
                │       └── EventDispatcher
                └── WebhookHandler (with EventDispatcher)
"""

from fastapi import Request

from payments.config import Settings
from payments.services import (
    BillingRecords,
    DynamoDBService,
    EventDispatcher,
    StateApplier,
    WebhookHandler,
)


def build_records(settings: Settings) -> BillingRecords:
    db = DynamoDBService(
        table_prefix=settings.dynamodb_table_prefix or "",
        region_name=settings.aws_region,
        endpoint_url=settings.dynamodb_endpoint_url,
    )
    return BillingRecords(db)


def build_webhook_handler(settings: Settings) -> WebhookHandler:
    """Wire verifier, dispatcher, applier and store for one application."""
    records = build_records(settings)
    dispatcher = EventDispatcher(StateApplier(records).handlers())
    return WebhookHandler(settings, dispatcher, records)


def get_webhook_handler(request: Request) -> WebhookHandler:
    handler: WebhookHandler = request.app.state.webhook_handler
    return handler
