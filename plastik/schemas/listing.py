"""
Listing schemas: the storefront's view of a Discogs marketplace listing.
"""
from typing import Any, Dict, List, Optional

from pydantic import Field

from plastik.core.enums import SearchCategory
from plastik.schemas.base import BaseSchema


class Track(BaseSchema):
    position: str = ""
    title: str = ""
    duration: str = ""
    type_: str = "track"


class Video(BaseSchema):
    uri: str
    title: str = ""
    description: str = ""
    duration: int = 0
    embed: bool = True


class ImageInfo(BaseSchema):
    type: str = "secondary"
    uri: str = ""
    uri150: str = ""
    resource_url: str = ""
    width: int = 0
    height: int = 0


class Listing(BaseSchema):
    """A single sellable unit as the storefront shows it."""
    id: int
    title: str = "Untitled"
    artist: str = "Unknown Artist"
    price: float = 0.0
    currency: str = "EUR"
    condition: str = "Unknown"
    sleeve_condition: Optional[str] = None
    status: str = "For Sale"
    quantity_available: int = Field(default=1, ge=0)
    weight: Optional[float] = None          # grams
    format: List[str] = Field(default_factory=list)
    label: str = "Unknown Label"
    catalog_number: str = ""
    release_id: Optional[int] = None
    genres: List[str] = Field(default_factory=list)
    styles: List[str] = Field(default_factory=list)
    cover_image: str = "/placeholder.svg"
    images: List[ImageInfo] = Field(default_factory=list)
    date_added: Optional[str] = None

    # Filled in only when full release data was requested
    tracks: List[Track] = Field(default_factory=list)
    videos: List[Video] = Field(default_factory=list)
    country: Optional[str] = None
    released: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.quantity_available > 0


class InventoryOptions(BaseSchema):
    category: SearchCategory = SearchCategory.EVERYTHING
    genre: Optional[str] = None
    sort_order: Optional[str] = None
    fetch_full_release_data: bool = False
    cache_buster: Optional[str] = None   # any value bypasses cached inventory pages


class InventoryPage(BaseSchema):
    records: List[Listing] = Field(default_factory=list)
    page: int = 1
    per_page: int = 20
    total_records: int = 0
    total_pages: int = 0


class RecordDetail(BaseSchema):
    record: Listing
    related_records: List[Listing] = Field(default_factory=list)


class CacheClearRequest(BaseSchema):
    pattern: str = "release:*"


class CacheClearResponse(BaseSchema):
    success: bool = True
    pattern: str
    cleared: int
    message: Optional[str] = None


def listing_snapshot(listing: Listing, quantity: int) -> Dict[str, Any]:
    """Cart snapshot of a listing as carried through checkout metadata."""
    return {
        "id": listing.id,
        "title": listing.title,
        "artist": listing.artist,
        "price": listing.price,
        "quantity": quantity,
        "condition": listing.condition,
        "format": ", ".join(listing.format),
    }
