"""
Stripe webhook endpoint.

The raw body is read before any parsing: the signature covers the exact bytes.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from backend.api.deps import AppServices, get_services
from backend.core.logging import LOGGER_NAME
from backend.features.billing.provider import BillingWebhookError


logger = logging.getLogger(LOGGER_NAME)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request, services: AppServices = Depends(get_services)):
    """
    Handle Stripe webhook events.

    Verifies signature, processes event idempotently, and updates subscription state.

    Returns:
        {"received": true, "event_id": ...}

    Errors:
        400: Invalid signature or payload
        503: Billing disabled
    """
    body = await request.body()
    headers = dict(request.headers)

    try:
        result = await run_in_threadpool(services.billing.process_webhook_event, headers, body)
    except BillingWebhookError as e:
        logger.warning("billing.webhook_rejected", extra={"error": str(e)})
        raise HTTPException(status_code=400, detail=f"Webhook Error: {e}")

    return {"received": True, "event_id": result.event_id}
