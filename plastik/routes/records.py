"""Public catalogue routes: browse, search and record detail."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from plastik.core.enums import SearchCategory
from plastik.core.exceptions import ListingNotFoundError, ListingUnavailableError, MarketplaceUnavailableError
from plastik.dependencies import get_inventory_service
from plastik.schemas.listing import InventoryOptions, InventoryPage, RecordDetail
from plastik.services.discogs.inventory import InventoryService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/records", tags=["records"])

SERVICE_UNAVAILABLE = {"error": "service_unavailable", "message": "Record catalogue is temporarily unavailable"}


@router.get("", response_model=InventoryPage)
async def list_records(
    q: Optional[str] = Query(None, description="Free-text search"),
    category: SearchCategory = Query(SearchCategory.EVERYTHING),
    genre: Optional[str] = Query(None),
    sort: Optional[str] = Query(None, description="date_desc, price_asc, title_asc, ..."),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    refresh: Optional[str] = Query(None, description="Any value bypasses cached inventory pages"),
    full: bool = Query(False, description="Attach tracklists, videos and full genre data"),
    inventory: InventoryService = Depends(get_inventory_service),
):
    options = InventoryOptions(
        category=category,
        genre=genre,
        fetch_full_release_data=full,
        cache_buster=refresh,
    )
    try:
        return await inventory.get_inventory(query=q, sort=sort, page=page, per_page=per_page, options=options)
    except MarketplaceUnavailableError as e:
        logger.error(f"Inventory unavailable: {e}")
        return JSONResponse(status_code=503, content=SERVICE_UNAVAILABLE)


@router.get("/{listing_id}", response_model=RecordDetail)
async def get_record(
    listing_id: int,
    full: bool = Query(True),
    inventory: InventoryService = Depends(get_inventory_service),
):
    try:
        record, related = await inventory.get_record(listing_id, full=full)
    except (ListingNotFoundError, ListingUnavailableError):
        raise HTTPException(status_code=404, detail=f"Record {listing_id} not found")
    except MarketplaceUnavailableError as e:
        logger.error(f"Record {listing_id} unavailable: {e}")
        return JSONResponse(status_code=503, content=SERVICE_UNAVAILABLE)
    return RecordDetail(record=record, related_records=related)
