"""
Stripe webhook processing.

Verification happens on the raw request body before anything in it is
trusted. Dispatch is idempotent because order creation is idempotent per
checkout session, so Stripe may redeliver an event as often as it likes.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import stripe

from plastik.core.enums import OrderStatus
from plastik.core.exceptions import InvalidStatusTransitionError, WebhookPayloadError, WebhookSignatureError
from plastik.services.stripe_metadata import join_metadata_value

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"
PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
CHARGE_REFUNDED = "charge.refunded"


@dataclass
class WebhookResult:
    event_id: str
    event_type: str
    action: str
    order_id: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "received": True,
            "event_id": self.event_id,
            "type": self.event_type,
            "action": self.action,
            "order_id": self.order_id,
        }


def parse_cart_metadata(raw) -> List[Dict[str, Any]]:
    """
    Decode the cart snapshot stored in ``metadata.items`` at checkout.

    Accepts a JSON string (what Stripe metadata holds) or an already decoded list.
    """
    if not raw:
        raise WebhookPayloadError("Checkout session has no items metadata")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise WebhookPayloadError(f"Items metadata is not valid JSON: {e}")
    if not isinstance(raw, list) or not raw:
        raise WebhookPayloadError("Items metadata must be a non-empty list")

    items = []
    for entry in raw:
        if not isinstance(entry, dict) or entry.get("id") in (None, "") or entry.get("price") is None:
            raise WebhookPayloadError(f"Malformed cart item in metadata: {entry!r}")
        try:
            quantity = int(entry.get("quantity", 1))
            float(entry["price"])
        except (TypeError, ValueError):
            raise WebhookPayloadError(f"Malformed cart item in metadata: {entry!r}")
        if quantity < 1:
            raise WebhookPayloadError(f"Cart item {entry['id']} has quantity {quantity}")
        items.append({**entry, "quantity": quantity})
    return items


class StripeWebhookProcessor:
    """Verifies Stripe webhook deliveries and turns them into order changes."""

    def __init__(self, order_service, webhook_secret: str, tolerance: int = 300):
        self.order_service = order_service
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def verify(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Check the Stripe-Signature header against the raw body and return the decoded event.

        Raises:
            WebhookSignatureError: header missing, secret not configured, or signature mismatch
            WebhookPayloadError: signed body is not a Stripe event object
        """
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret is not configured")

        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise WebhookSignatureError(f"Invalid webhook signature: {e}")

        try:
            event = json.loads(body)
        except json.JSONDecodeError as e:
            raise WebhookPayloadError(f"Webhook body is not valid JSON: {e}")
        if not isinstance(event, dict) or not event.get("type") or not isinstance(event.get("data"), dict):
            raise WebhookPayloadError("Webhook body is not a Stripe event")
        return event

    async def handle(self, payload: bytes, signature: Optional[str]) -> WebhookResult:
        return await self.process(self.verify(payload, signature))

    async def process(self, event: Dict[str, Any]) -> WebhookResult:
        event_id = event.get("id", "")
        event_type = event["type"]
        obj = event["data"].get("object") or {}
        logger.info(f"Processing Stripe event {event_id} ({event_type})")

        handlers = {
            CHECKOUT_COMPLETED: self._checkout_completed,
            CHECKOUT_EXPIRED: self._checkout_expired,
            PAYMENT_SUCCEEDED: self._payment_succeeded,
            PAYMENT_FAILED: self._payment_failed,
            CHARGE_REFUNDED: self._charge_refunded,
        }
        handler = handlers.get(event_type)
        if handler is None:
            logger.debug(f"Ignoring Stripe event type {event_type}")
            return WebhookResult(event_id, event_type, "ignored")

        try:
            action, order_id = await handler(obj)
        except InvalidStatusTransitionError as e:
            # Out-of-order or late redelivery; retrying will not change the outcome.
            logger.warning(f"Stripe event {event_id} ({event_type}) acknowledged without change: {e}")
            return WebhookResult(event_id, event_type, "stale")
        return WebhookResult(event_id, event_type, action, order_id)

    async def _checkout_completed(self, session: Dict[str, Any]):
        session_id = session.get("id")
        if not session_id:
            raise WebhookPayloadError("Checkout session has no id")
        metadata = session.get("metadata") or {}
        items = parse_cart_metadata(join_metadata_value(metadata, "items"))
        user_id = metadata.get("userId") or session.get("client_reference_id") or None

        customer_details = session.get("customer_details") or {}
        shipping = session.get("shipping_details") or session.get("shipping") or {}
        shipping_address = shipping.get("address") or customer_details.get("address")
        if shipping_address is not None and shipping.get("name"):
            shipping_address = {"name": shipping["name"], **shipping_address}

        order = await self.order_service.create_order(
            user_id,
            items,
            shipping_address,
            customer_details,
            session_id,
            payment_intent_id=session.get("payment_intent"),
            paid=session.get("payment_status") == "paid",
            currency=(session.get("currency") or "eur").lower(),
        )
        return "order_recorded", order.id

    async def _order_for_intent(self, intent: Dict[str, Any]):
        session_id = (intent.get("metadata") or {}).get("sessionId")
        order = None
        if session_id:
            order = await self.order_service.get_order_by_payment_session(session_id)
        if order is None and intent.get("id"):
            order = await self.order_service.get_order_by_payment_intent(intent["id"])
        return order

    async def _payment_succeeded(self, intent: Dict[str, Any]):
        order = await self._order_for_intent(intent)
        if order is None:
            # checkout.session.completed has not arrived yet and will create the order as paid.
            logger.info(f"No order yet for payment intent {intent.get('id')}")
            return "no_order", None
        await self.order_service.update_order_status(order.id, OrderStatus.PAID)
        return "marked_paid", order.id

    async def _payment_failed(self, intent: Dict[str, Any]):
        order = await self._order_for_intent(intent)
        if order is None:
            logger.info(f"Payment failed for intent {intent.get('id')} with no order")
            return "no_order", None
        await self.order_service.update_order_status(order.id, OrderStatus.FAILED)
        return "marked_failed", order.id

    async def _checkout_expired(self, session: Dict[str, Any]):
        order = await self.order_service.get_order_by_payment_session(session.get("id", ""))
        if order is None:
            return "no_order", None
        await self.order_service.update_order_status(order.id, OrderStatus.FAILED)
        return "marked_failed", order.id

    async def _charge_refunded(self, charge: Dict[str, Any]):
        intent_id = charge.get("payment_intent")
        order = await self.order_service.get_order_by_payment_intent(intent_id) if intent_id else None
        if order is None:
            logger.info(f"Refund for charge {charge.get('id')} matches no order")
            return "no_order", None
        logger.warning(f"Order {order.id} refunded; marking failed")
        await self.order_service.update_order_status(order.id, OrderStatus.FAILED)
        return "marked_failed", order.id
