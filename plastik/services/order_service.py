"""
Order service

The one place where a confirmed payment becomes a stored order and a Discogs
stock decrement.

- ``create_order`` is idempotent per payment session. The unique constraint on
  ``orders.payment_session_id`` is the lock: a lookup short-circuits the common
  redelivery case, and an IntegrityError on insert (two deliveries racing,
  possibly in different processes) resolves to the row that won.
- Stock decrements are scheduled after the order is committed and never block
  or roll back the order. A failed decrement is logged and stored as a pending
  InventorySyncEvent for someone to fix by hand. Payment success wins over
  inventory accuracy.
- ``update_order_status`` only moves forward:
  pending -> paid -> shipped, pending -> failed, paid -> failed (refund).
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from plastik.core.enums import ORDER_STATUS_TRANSITIONS, OrderStatus, SyncEventStatus
from plastik.core.exceptions import (
    InvalidStatusTransitionError,
    OrderNotFoundError,
    OrderServiceError,
)
from plastik.models.order import Order, order_item_from_snapshot
from plastik.models.sync_event import InventorySyncEvent

logger = logging.getLogger(__name__)

BackgroundJob = Callable[[], Awaitable[None]]
Scheduler = Callable[[BackgroundJob], None]

GUEST_USER_IDS = {"", "anonymous", "guest"}


class OrderService:
    """
    Args:
        db: request-scoped session used for order reads and writes
        inventory: InventoryService used for Discogs decrements (None disables them)
        session_factory: opens a fresh session for background work, which outlives ``db``
        schedule: hands a background job to the caller's runner (e.g. FastAPI
            BackgroundTasks.add_task). Defaults to an asyncio task tracked on
            this service, see ``wait_for_background``.
    """

    def __init__(
        self,
        db: AsyncSession,
        inventory=None,
        *,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        schedule: Optional[Scheduler] = None,
    ):
        self.db = db
        self.inventory = inventory
        self.session_factory = session_factory
        self._schedule = schedule or self._schedule_task
        self._background: List[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_order(self, order_id: int) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_order_by_payment_session(self, payment_session_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.payment_session_id == payment_session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_order_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        result = await self.db.execute(
            select(Order)
            .where(Order.payment_intent_id == payment_intent_id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def get_orders_for_user(self, user_id: str, limit: Optional[int] = None) -> List[Order]:
        query = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Order creation
    # ------------------------------------------------------------------
    async def create_order(
        self,
        user_id: Optional[str],
        items: Iterable[Dict[str, Any]],
        shipping_address: Optional[Dict[str, Any]],
        customer_details: Optional[Dict[str, Any]],
        payment_session_id: str,
        *,
        payment_intent_id: Optional[str] = None,
        paid: bool = False,
        currency: str = "eur",
        total=None,
    ) -> Order:
        """
        Store the order for a payment session, exactly once.

        Args:
            user_id: shopper id, or None/"anonymous" for guest checkout
            items: cart snapshot dicts (id, title, artist, price, quantity, condition, format)
            shipping_address: address the records ship to
            customer_details: payment-provider customer details (email, billing address)
            payment_session_id: checkout session id; the idempotency key
            payment_intent_id: payment intent behind the session, when known
            paid: create the order already ``paid`` (the session reported payment)
            total: optional expected total; must match the items if given

        Returns:
            Order: the new order, or the existing one for this session
        """
        if not payment_session_id:
            raise OrderServiceError("payment_session_id is required")

        existing = await self.get_order_by_payment_session(payment_session_id)
        if existing is not None:
            logger.info(f"Order already exists for session {payment_session_id}, returning existing order")
            return existing

        order_items = [order_item_from_snapshot(item) for item in items]
        if not order_items:
            raise OrderServiceError(f"No items for payment session {payment_session_id}")

        customer_details = customer_details or {}
        order = Order.build(
            items=order_items,
            payment_session_id=payment_session_id,
            total=total,
            user_id=None if (user_id or "").strip().lower() in GUEST_USER_IDS else user_id,
            status=(OrderStatus.PAID if paid else OrderStatus.PENDING).value,
            currency=currency,
            customer_email=customer_details.get("email"),
            shipping_address=shipping_address,
            billing_address=customer_details or None,
            payment_intent_id=payment_intent_id,
        )
        logger.info(f"Creating order for user {order.user_id or 'guest'}, session {payment_session_id}, total {order.total}")

        self.db.add(order)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            winner = await self.get_order_by_payment_session(payment_session_id)
            if winner is None:
                raise
            logger.info(f"Concurrent delivery already created order {winner.id} for session {payment_session_id}")
            return winner

        logger.info(f"Order created successfully with ID: {order.id}")
        self._schedule_decrements(order)
        return order

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------
    async def update_order_status(self, order_id: int, new_status) -> Order:
        """
        Move an order forward through its lifecycle.

        Setting the current status again is a no-op. Backwards moves and moves
        out of shipped/failed raise InvalidStatusTransitionError.
        """
        new_status = OrderStatus(new_status)
        order = await self.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")

        current = OrderStatus(order.status)
        if current == new_status:
            return order
        if new_status not in ORDER_STATUS_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(
                f"Order {order_id} cannot move from {current.value} to {new_status.value}"
            )

        # Compare-and-set on the old status so two concurrent updates cannot both win.
        result = await self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == current.value)
            .values(status=new_status.value)
            .execution_options(synchronize_session=False)
        )
        updated = result.rowcount
        await self.db.commit()

        if updated == 0:
            latest = await self.get_order(order_id)
            if latest is not None and OrderStatus(latest.status) == new_status:
                return latest
            raise InvalidStatusTransitionError(
                f"Order {order_id} changed status concurrently (now {latest.status if latest else 'deleted'})"
            )

        logger.info(f"Order {order_id} status {current.value} -> {new_status.value}")
        return await self.get_order(order_id)

    # ------------------------------------------------------------------
    # Inventory reconciliation
    # ------------------------------------------------------------------
    def _schedule_task(self, job: BackgroundJob) -> None:
        self._background.append(asyncio.get_running_loop().create_task(job()))

    async def wait_for_background(self) -> None:
        """Wait for decrements scheduled with the default scheduler."""
        while self._background:
            pending, self._background = self._background, []
            await asyncio.gather(*pending, return_exceptions=True)

    def _schedule_decrements(self, order: Order) -> None:
        if self.inventory is None:
            logger.warning(f"No inventory service configured; Discogs stock not updated for order {order.id}")
            return
        changes = [(item.listing_id, -item.quantity) for item in order.items]
        order_id = order.id

        async def job():
            await self.apply_inventory_changes(order_id, changes)

        self._schedule(job)

    async def apply_inventory_changes(self, order_id: Optional[int], changes: List[Tuple[str, int]]) -> int:
        """
        Push quantity changes to Discogs. Returns how many failed.

        Never raises: every failure becomes a pending InventorySyncEvent.
        """
        failures = 0
        for listing_id, delta in changes:
            try:
                new_quantity = await self.inventory.update_inventory(listing_id, delta)
                logger.info(f"Order {order_id}: listing {listing_id} now has {new_quantity} left")
            except Exception as e:  # noqa: BLE001
                failures += 1
                logger.error(
                    f"Order {order_id}: failed to update Discogs listing {listing_id} by {delta}: {e}. "
                    f"Manual reconciliation required."
                )
                await self._record_sync_failure(order_id, listing_id, delta, str(e))
        return failures

    async def _record_sync_failure(self, order_id, listing_id: str, delta: int, error: str) -> None:
        event = InventorySyncEvent(
            order_id=order_id,
            listing_id=str(listing_id),
            quantity_delta=delta,
            status=SyncEventStatus.PENDING.value,
            error=error[:2000],
        )
        try:
            if self.session_factory is None:
                self.db.add(event)
                await self.db.commit()
                return
            async with self.session_factory() as session:
                session.add(event)
                await session.commit()
        except Exception:  # noqa: BLE001
            logger.exception(
                f"Could not record inventory sync failure for order {order_id}, listing {listing_id} (delta {delta})"
            )

    async def list_pending_sync_events(self) -> List[InventorySyncEvent]:
        result = await self.db.execute(
            select(InventorySyncEvent)
            .where(InventorySyncEvent.status == SyncEventStatus.PENDING.value)
            .order_by(InventorySyncEvent.detected_at, InventorySyncEvent.id)
        )
        return list(result.scalars().all())

    async def resolve_sync_event(self, event_id: int) -> InventorySyncEvent:
        event = await self.db.get(InventorySyncEvent, event_id)
        if event is None:
            raise OrderServiceError(f"Inventory sync event {event_id} not found")
        event.status = SyncEventStatus.RESOLVED.value
        event.resolved_at = datetime.now(timezone.utc)
        await self.db.commit()
        return event
