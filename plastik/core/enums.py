"""
Shared enums and constants used across the application.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Order status values used in both models and schemas"""
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    FAILED = "failed"


# Allowed forward moves. Nothing leaves SHIPPED or FAILED.
ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.FAILED},
    OrderStatus.PAID: {OrderStatus.SHIPPED, OrderStatus.FAILED},
    OrderStatus.SHIPPED: set(),
    OrderStatus.FAILED: set(),
}


class SyncEventStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class SearchCategory(str, Enum):
    EVERYTHING = "everything"
    ARTISTS = "artists"
    RELEASES = "releases"
    LABELS = "labels"


class InventorySort(str, Enum):
    DATE_DESC = "date_desc"
    DATE_ASC = "date_asc"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    TITLE_ASC = "title_asc"
    TITLE_DESC = "title_desc"

    @property
    def upstream(self):
        """Discogs inventory sort key and order for this local sort."""
        field, _, direction = self.value.partition("_")
        discogs_field = {"date": "listed", "price": "price", "title": "item"}[field]
        return discogs_field, direction


class ShippingMethod(str, Enum):
    STANDARD = "standard"
    SMARTPOST = "smartpost"
    LOCAL_PICKUP = "local_pickup"
