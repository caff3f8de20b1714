from plastik.models.order import Order, OrderItem
from plastik.models.sync_event import InventorySyncEvent

__all__ = ["Order", "OrderItem", "InventorySyncEvent"]
