# plastik/models/sync_event.py
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.sql import func

from plastik.core.enums import SyncEventStatus
from plastik.database import Base


class InventorySyncEvent(Base):
    """
    A marketplace stock change that could not be applied after an order was stored.

    Rows stay ``pending`` until someone fixes the Discogs listing by hand and
    resolves them. This table is the operational alerting path for orders whose
    payment succeeded but whose inventory decrement did not.
    """
    __tablename__ = "inventory_sync_events"

    id = Column(Integer, primary_key=True, index=True)

    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    listing_id = Column(String, nullable=False, index=True)
    quantity_delta = Column(Integer, nullable=False)

    status = Column(String, default=SyncEventStatus.PENDING.value, nullable=False, index=True)
    error = Column(Text, nullable=True)

    detected_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return (f"<InventorySyncEvent(id={self.id}, order_id={self.order_id}, listing='{self.listing_id}', "
                f"delta={self.quantity_delta}, status='{self.status}')>")
