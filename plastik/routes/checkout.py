import logging

from fastapi import APIRouter, Depends, HTTPException

from plastik.core.exceptions import (
    CartTooLargeError,
    ListingUnavailableError,
    MarketplaceUnavailableError,
    PaymentProviderError,
)
from plastik.dependencies import get_checkout_service
from plastik.schemas.order import CheckoutRequest, CheckoutResponse
from plastik.services.checkout_service import CheckoutService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("/session", response_model=CheckoutResponse)
async def create_checkout_session(
    request: CheckoutRequest,
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """Create a Stripe Checkout Session for the cart"""
    try:
        session_id = await checkout.create_checkout_session(
            request.items,
            request.customer,
            request.success_url,
            request.cancel_url,
        )
    except ListingUnavailableError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except CartTooLargeError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except MarketplaceUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except PaymentProviderError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return CheckoutResponse(session_id=session_id)
