"""
Order and checkout schemas.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from plastik.core.enums import OrderStatus, SyncEventStatus
from plastik.schemas.base import BaseSchema, TimestampedSchema


class OrderItemRead(BaseSchema):
    listing_id: str
    title: str
    artist: Optional[str] = None
    price: Decimal
    quantity: int
    condition: Optional[str] = None
    format: Optional[str] = None


class OrderRead(TimestampedSchema):
    id: int
    user_id: Optional[str] = None
    status: OrderStatus
    total: Decimal
    currency: str = "eur"
    customer_email: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None
    payment_session_id: str
    payment_intent_id: Optional[str] = None
    items: List[OrderItemRead] = Field(default_factory=list)


class OrderStatusUpdate(BaseSchema):
    status: OrderStatus


class InventorySyncEventRead(BaseSchema):
    id: int
    order_id: Optional[int] = None
    listing_id: str
    quantity_delta: int
    status: SyncEventStatus
    error: Optional[str] = None


class CheckoutItem(BaseSchema):
    id: int
    quantity: int = Field(default=1, ge=1)


class CheckoutCustomer(BaseSchema):
    user_id: Optional[str] = None
    email: Optional[str] = None


class CheckoutRequest(BaseSchema):
    items: List[CheckoutItem]
    customer: CheckoutCustomer = Field(default_factory=CheckoutCustomer)
    success_url: str
    cancel_url: str

    @field_validator("items")
    @classmethod
    def items_not_empty(cls, value):
        if not value:
            raise ValueError("Cart is empty")
        return value


class CheckoutResponse(BaseSchema):
    session_id: str
