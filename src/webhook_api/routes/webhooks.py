"""Webhook endpoints for external service integrations.

Provides endpoints for:
- Stripe webhook events (payment intents, refunds, subscription lifecycle)

These endpoints do NOT require authentication as they receive signed
payloads; the signature is verified against the raw body before anything
is parsed.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from payments.services import WebhookHandler
from webhook_api.dependencies import get_webhook_handler

router = APIRouter(tags=["webhooks"])

STRIPE_SIGNATURE_HEADER = "Stripe-Signature"


@router.post(
    "/webhooks/stripe",
    summary="Receive Stripe webhook events",
    responses={
        200: {"description": "Event applied, already applied or ignored"},
        400: {"description": "Verification or validation failure; not retried"},
        500: {"description": "Transient failure; Stripe retries"},
    },
)
async def stripe_webhook(
    request: Request,
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> JSONResponse:
    """Verify and apply one Stripe delivery.

    Returns ``{"received": true}`` on success, ``{"error": "..."}`` otherwise.
    """
    payload = await request.body()
    signature = request.headers.get(STRIPE_SIGNATURE_HEADER)

    # Store calls are blocking boto3
    outcome = await run_in_threadpool(handler.handle, payload, signature)
    request.state.webhook = outcome

    return JSONResponse(status_code=outcome.status_code, content=outcome.body)
