# plastik/models/order.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from sqlalchemy import Column, Integer, String, Numeric, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from plastik.core.enums import OrderStatus
from plastik.core.exceptions import OrderTotalMismatchError
from plastik.database import Base

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce a price-like value to a two-decimal Decimal."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class Order(Base):
    """
    A paid (or about to be paid) checkout.

    ``payment_session_id`` carries a unique constraint: it is the only thing
    standing between a redelivered payment event and a duplicate order.
    """
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("payment_session_id", name="uq_orders_payment_session_id"),
    )
    # Load created_at/updated_at right after INSERT/UPDATE; lazy loads are not possible under asyncio.
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=True, index=True)  # NULL for guest checkout
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value, index=True)
    total = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="eur")
    customer_email = Column(String, nullable=True)
    shipping_address = Column(JSON, nullable=True)
    billing_address = Column(JSON, nullable=True)
    payment_session_id = Column(String, nullable=False)
    payment_intent_id = Column(String, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )

    @classmethod
    def build(
        cls,
        *,
        items: Iterable["OrderItem"],
        payment_session_id: str,
        total=None,
        **fields,
    ) -> "Order":
        """
        Construct an order whose total is derived from its items.

        A caller-supplied ``total`` is only accepted when it matches the sum of
        price x quantity; anything else raises OrderTotalMismatchError.
        """
        items = list(items)
        computed = sum((to_money(item.price) * item.quantity for item in items), Decimal("0.00"))
        computed = to_money(computed)
        if total is not None and to_money(total) != computed:
            raise OrderTotalMismatchError(
                f"Order total {to_money(total)} does not match item sum {computed}"
            )
        return cls(items=items, payment_session_id=payment_session_id, total=computed, **fields)

    def __repr__(self):
        return f"<Order(id={self.id}, session='{self.payment_session_id}', status='{self.status}', total={self.total})>"


class OrderItem(Base):
    """Snapshot of a listing at purchase time. The listing may be gone from Discogs later."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    listing_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    artist = Column(String, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    condition = Column(String, nullable=True)
    format = Column(String, nullable=True)

    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem(listing_id='{self.listing_id}', qty={self.quantity}, price={self.price})>"


def order_item_from_snapshot(snapshot: dict, quantity: Optional[int] = None) -> OrderItem:
    """Build an OrderItem from a cart snapshot dict (id/title/artist/price/quantity/condition/format)."""
    fmt = snapshot.get("format")
    if isinstance(fmt, (list, tuple)):
        fmt = ", ".join(str(f) for f in fmt if f)
    return OrderItem(
        listing_id=str(snapshot["id"]),
        title=snapshot.get("title") or "Untitled",
        artist=snapshot.get("artist"),
        price=to_money(snapshot["price"]),
        quantity=int(quantity if quantity is not None else snapshot.get("quantity", 1)),
        condition=snapshot.get("condition"),
        format=fmt,
    )
