# =============================================================================
# app/routers/webhooks.py - Payment Provider Webhooks
# =============================================================================
# Stripe calls this endpoint; it is authenticated by the signature header,
# not by a user session.
# =============================================================================

import logging

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from app.exceptions import ViewBaitException
from core.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="stripe-signature"),
):
    """
    Receive a Stripe event.

    Responses:
        200 {"received": true} - applied, skipped or unhandled type
        200 {"received": true, "duplicate": true} - another delivery has this event
        400 - missing or invalid signature (nothing is changed)
        500 - processing failed; Stripe retries the event
    """
    payload = await request.body()
    event = WebhookService.verify_event(payload, stripe_signature)

    try:
        return WebhookService.process_event(event)
    except ViewBaitException:
        raise
    except Exception as e:
        logger.exception(f"Webhook processing failed for event {event.get('id')} ({event.get('type')}): {e}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Webhook processing failed", "code": "WEBHOOK_ERROR"},
        )
