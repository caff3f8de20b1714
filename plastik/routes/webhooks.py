import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request

from plastik.core.exceptions import WebhookError
from plastik.dependencies import get_webhook_processor
from plastik.services.webhook_processor import StripeWebhookProcessor

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    processor: StripeWebhookProcessor = Depends(get_webhook_processor),
):
    """
    Receive Stripe events.

    400 tells Stripe the delivery is bad and must not be retried; any other
    failure propagates as 500 so Stripe redelivers later.
    """
    body = await request.body()
    try:
        result = await processor.handle(body, stripe_signature)
    except WebhookError as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"Stripe webhook processing failed: {e}")
        raise HTTPException(status_code=500, detail="Webhook processing failed")
    return result.as_dict()
