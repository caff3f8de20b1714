"""Order history for shoppers and order/stock reconciliation for operators."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from plastik.core.exceptions import InvalidStatusTransitionError, OrderNotFoundError, OrderServiceError
from plastik.core.security import get_current_shopper, get_current_username
from plastik.dependencies import get_order_service
from plastik.schemas.order import InventorySyncEventRead, OrderRead, OrderStatusUpdate
from plastik.services.order_service import OrderService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=List[OrderRead])
async def list_orders(
    user_id: Optional[str] = Query(None, min_length=1),
    limit: int = Query(50, ge=1, le=200),
    orders: OrderService = Depends(get_order_service),
    shopper: str = Depends(get_current_shopper),
):
    """Order history of the signed-in shopper"""
    target = user_id or shopper
    if target != shopper:
        logger.warning(f"Shopper {shopper} asked for orders of {target}")
        raise HTTPException(status_code=403, detail="You don't have permission to access these orders")
    return await orders.get_orders_for_user(target, limit=limit)


# Declared before /{order_id} so "sync-events" is not parsed as an order id.
@router.get("/sync-events", response_model=List[InventorySyncEventRead])
async def list_sync_events(
    orders: OrderService = Depends(get_order_service),
    current_user: str = Depends(get_current_username),
):
    """Discogs stock changes that failed and still need a manual fix"""
    return await orders.list_pending_sync_events()


@router.post("/sync-events/{event_id}/resolve", response_model=InventorySyncEventRead)
async def resolve_sync_event(
    event_id: int,
    orders: OrderService = Depends(get_order_service),
    current_user: str = Depends(get_current_username),
):
    try:
        event = await orders.resolve_sync_event(event_id)
    except OrderServiceError as e:
        raise HTTPException(status_code=404, detail=str(e))
    logger.info(f"Sync event {event_id} resolved by {current_user}")
    return event


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: int,
    orders: OrderService = Depends(get_order_service),
    shopper: str = Depends(get_current_shopper),
):
    order = await orders.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    if order.user_id != shopper:
        logger.warning(f"Shopper {shopper} asked for order {order_id} they do not own")
        raise HTTPException(status_code=403, detail="You don't have permission to view this order")
    return order


@router.post("/{order_id}/status", response_model=OrderRead)
async def update_order_status(
    order_id: int,
    update: OrderStatusUpdate,
    orders: OrderService = Depends(get_order_service),
    current_user: str = Depends(get_current_username),
):
    try:
        order = await orders.update_order_status(order_id, update.status)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    logger.info(f"Order {order_id} set to {order.status} by {current_user}")
    return order
