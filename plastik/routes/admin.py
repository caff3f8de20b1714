"""Operator routes for the Discogs inventory cache. Protected by HTTP Basic auth."""
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from plastik.core.exceptions import MarketplaceUnavailableError
from plastik.core.security import get_current_username
from plastik.dependencies import get_cache, get_inventory_service
from plastik.schemas.listing import CacheClearRequest, CacheClearResponse
from plastik.services.cache import CacheBackend
from plastik.services.discogs.inventory import InventoryService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["admin"])


@router.post("/inventory/refresh")
async def refresh_inventory(
    inventory: InventoryService = Depends(get_inventory_service),
    current_user: str = Depends(get_current_username),
):
    """Drop cached inventory pages and re-read the newest listings from Discogs"""
    logger.info(f"Inventory refresh requested by {current_user}")
    try:
        stats = await inventory.refresh_inventory()
    except MarketplaceUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"success": True, "message": "Inventory refreshed successfully", **stats}


@router.post("/cache/clear", response_model=CacheClearResponse)
async def clear_cache(
    request: Optional[CacheClearRequest] = Body(None),
    cache: CacheBackend = Depends(get_cache),
    current_user: str = Depends(get_current_username),
):
    """Delete cache entries matching a glob pattern (release:* by default)"""
    request = request or CacheClearRequest()
    cleared = await cache.invalidate(request.pattern)
    logger.info(f"{current_user} cleared {cleared} cache entries matching {request.pattern}")
    return CacheClearResponse(
        pattern=request.pattern,
        cleared=cleared,
        message=f"Cleared {cleared} cache entries matching pattern: {request.pattern}",
    )
