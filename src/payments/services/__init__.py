"""Services for webhook ingestion and reconciliation."""

from .billing_records import BillingRecords
from .dispatcher import EventDispatcher
from .dynamodb import DynamoDBService
from .reconciliation import Reconciler
from .signature import generate_signature_header, verify_signature
from .ssm_service import SSMService, SSMServiceError
from .state_applier import StateApplier
from .stripe_service import StripeService, StripeServiceError
from .webhook_handler import WebhookHandler, WebhookOutcome

__all__ = [
    "BillingRecords",
    "DynamoDBService",
    "EventDispatcher",
    "Reconciler",
    "SSMService",
    "SSMServiceError",
    "StateApplier",
    "StripeService",
    "StripeServiceError",
    "WebhookHandler",
    "WebhookOutcome",
    "generate_signature_header",
    "verify_signature",
]
