"""
Stripe Checkout session creation.

Every cart line is re-read from Discogs before the session is created so a
record that sold elsewhere cannot be paid for. The cart snapshot stored in
the session metadata is what the webhook later turns into an order.
"""
import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import stripe

from plastik.core.enums import ShippingMethod
from plastik.core.exceptions import ListingNotFoundError, ListingUnavailableError, PaymentProviderError
from plastik.schemas.listing import listing_snapshot
from plastik.schemas.order import CheckoutCustomer, CheckoutItem
from plastik.services.pricing import calculate_price_without_fees, to_minor_units
from plastik.services.shipping import EUROPEAN_COUNTRIES, calculate_shipping_cost, parcel_weight
from plastik.services.stripe_metadata import build_metadata

logger = logging.getLogger(__name__)

SHIPPING_COUNTRIES = sorted({"EE", *EUROPEAN_COUNTRIES, "US", "CA", "AU", "JP"})


def _shipping_option(display_name: str, amount, currency: str, min_days: int, max_days: int) -> Dict[str, Any]:
    return {
        "shipping_rate_data": {
            "type": "fixed_amount",
            "fixed_amount": {"amount": to_minor_units(amount), "currency": currency},
            "display_name": display_name,
            "delivery_estimate": {
                "minimum": {"unit": "business_day", "value": min_days},
                "maximum": {"unit": "business_day", "value": max_days},
            },
        }
    }


class CheckoutService:
    """
    Args:
        inventory: InventoryService used for the stock check
        api_key: Stripe secret key
        currency: ISO currency for prices and shipping
        create_session: callable with the signature of stripe.checkout.Session.create
    """

    def __init__(
        self,
        inventory,
        api_key: str,
        currency: str = "eur",
        create_session: Optional[Callable[..., Any]] = None,
    ):
        self.inventory = inventory
        self.api_key = api_key
        self.currency = currency
        self._create_session = create_session or stripe.checkout.Session.create

    async def _checked_snapshots(self, items: Sequence[CheckoutItem]) -> Tuple[List[Dict[str, Any]], float]:
        snapshots = []
        weights = []
        for item in items:
            try:
                listing = await self.inventory.get_listing(item.id, fresh=True)
            except ListingNotFoundError:
                raise ListingUnavailableError(f"Listing {item.id} is no longer for sale")
            if item.quantity > listing.quantity_available:
                raise ListingUnavailableError(
                    f"Listing {item.id} has {listing.quantity_available} left, {item.quantity} requested"
                )
            snapshot = listing_snapshot(listing, item.quantity)
            snapshot["price"] = float(calculate_price_without_fees(listing.price))
            snapshot["cover_image"] = listing.cover_image
            snapshots.append(snapshot)
            weights.extend([listing.weight] * item.quantity)
        return snapshots, parcel_weight(weights)

    async def create_checkout_session(
        self,
        items: Sequence[CheckoutItem],
        customer: Optional[CheckoutCustomer],
        success_url: str,
        cancel_url: str,
    ) -> str:
        """
        Create a Stripe Checkout Session for the cart and return its id.

        Raises:
            ListingUnavailableError: a listing is gone or has too few copies left
            CartTooLargeError: the cart snapshot does not fit in session metadata
            PaymentProviderError: Stripe refused or failed the request
        """
        customer = customer or CheckoutCustomer()
        snapshots, weight = await self._checked_snapshots(items)

        line_items = [
            {
                "price_data": {
                    "currency": self.currency,
                    "product_data": {
                        "name": f"{s['artist']} - {s['title']}" if s.get("artist") else s["title"],
                        "images": [s["cover_image"]] if s["cover_image"].startswith("http") else [],
                        "metadata": {"discogs_id": str(s["id"])},
                    },
                    "unit_amount": to_minor_units(s["price"]),
                },
                "quantity": s["quantity"],
            }
            for s in snapshots
        ]
        cart = [{k: v for k, v in s.items() if k != "cover_image"} for s in snapshots]

        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": build_metadata(
                {
                    "items": json.dumps(cart, separators=(",", ":")),
                    "userId": customer.user_id or "anonymous",
                },
                split_key="items",
            ),
            "shipping_address_collection": {"allowed_countries": SHIPPING_COUNTRIES},
            "shipping_options": [
                _shipping_option(
                    "Estonia (SmartPost)",
                    calculate_shipping_cost(weight, "EE", ShippingMethod.SMARTPOST),
                    self.currency, 1, 3,
                ),
                _shipping_option("Europe", calculate_shipping_cost(weight, "DE"), self.currency, 3, 7),
                _shipping_option("Rest of world", calculate_shipping_cost(weight, "US"), self.currency, 7, 21),
            ],
            "api_key": self.api_key,
        }
        if customer.user_id:
            params["client_reference_id"] = customer.user_id
        if customer.email:
            params["customer_email"] = customer.email

        try:
            session = await asyncio.to_thread(self._create_session, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe rejected checkout session for {len(cart)} listing(s): {e}")
            raise PaymentProviderError(f"Payment provider error: {e}")
        logger.info(f"Created checkout session {session['id']} for {len(cart)} listing(s)")
        return session["id"]
