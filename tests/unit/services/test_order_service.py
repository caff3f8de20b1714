# tests/unit/services/test_order_service.py
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from plastik.core.enums import OrderStatus, SyncEventStatus
from plastik.core.exceptions import (
    InvalidStatusTransitionError,
    MarketplaceUnavailableError,
    OrderNotFoundError,
    OrderServiceError,
    OrderTotalMismatchError,
)
from plastik.models.order import Order
from plastik.models.sync_event import InventorySyncEvent
from plastik.services.order_service import OrderService

SHIPPING = {"name": "Jane Doe", "line1": "Telliskivi 60a", "city": "Tallinn", "country": "EE"}
CUSTOMER = {"email": "jane@example.com", "name": "Jane Doe"}


@pytest.fixture
def fake_inventory():
    inventory = AsyncMock()
    inventory.update_inventory = AsyncMock(return_value=0)
    return inventory


@pytest.fixture
def order_service(db_session, fake_inventory, session_factory):
    return OrderService(db_session, fake_inventory, session_factory=session_factory)


async def count_orders(session_factory):
    async with session_factory() as session:
        return (await session.execute(select(func.count(Order.id)))).scalar_one()


@pytest.mark.asyncio
async def test_create_order_stores_items_and_computes_total(order_service, sample_cart):
    order = await order_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_test_1")
    await order_service.wait_for_background()

    assert order.id is not None
    assert order.user_id == "user-1"
    assert order.status == OrderStatus.PENDING.value
    assert order.total == Decimal("59.80")       # 32.20 + 2 x 13.80
    assert order.customer_email == "jane@example.com"
    assert order.shipping_address == SHIPPING
    assert [(i.listing_id, i.quantity) for i in order.items] == [("1001", 1), ("1005", 2)]


@pytest.mark.asyncio
async def test_paid_session_creates_paid_order(order_service, sample_cart):
    order = await order_service.create_order(None, sample_cart, SHIPPING, CUSTOMER, "cs_test_paid", paid=True)
    assert order.status == OrderStatus.PAID.value
    assert order.user_id is None


@pytest.mark.asyncio
async def test_anonymous_user_is_stored_as_guest(order_service, sample_cart):
    order = await order_service.create_order("anonymous", sample_cart, SHIPPING, CUSTOMER, "cs_guest")
    assert order.user_id is None


@pytest.mark.asyncio
async def test_create_order_is_idempotent_per_session(order_service, fake_inventory, sample_cart, session_factory):
    first = await order_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_dup")
    second = await order_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_dup")
    await order_service.wait_for_background()

    assert first.id == second.id
    assert await count_orders(session_factory) == 1
    # One decrement per item of the first (and only) order
    assert fake_inventory.update_inventory.await_count == 2
    fake_inventory.update_inventory.assert_any_await("1001", -1)
    fake_inventory.update_inventory.assert_any_await("1005", -2)


@pytest.mark.asyncio
async def test_duplicate_from_another_process_resolves_to_existing_row(
    db_session, session_factory, fake_inventory, sample_cart
):
    """A concurrent delivery that passes the lookup still lands on the unique constraint."""
    winner_service = OrderService(db_session, fake_inventory, session_factory=session_factory)
    winner = await winner_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_race")

    async with session_factory() as other_session:
        loser_service = OrderService(other_session, fake_inventory, session_factory=session_factory)
        # Simulate the race: the lookup misses once, the insert then hits the constraint.
        real_lookup = loser_service.get_order_by_payment_session
        loser_service.get_order_by_payment_session = AsyncMock(side_effect=[None, await real_lookup("cs_race")])

        result = await loser_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_race")

    await winner_service.wait_for_background()
    await loser_service.wait_for_background()
    assert result.id == winner.id
    assert await count_orders(session_factory) == 1
    assert fake_inventory.update_inventory.await_count == 2


@pytest.mark.asyncio
async def test_integrity_error_without_winner_propagates(order_service, sample_cart, mocker):
    mocker.patch.object(order_service.db, "commit", AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("boom"))))
    with pytest.raises(IntegrityError):
        await order_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_broken")


@pytest.mark.asyncio
async def test_mismatched_total_is_rejected(order_service, sample_cart, session_factory):
    with pytest.raises(OrderTotalMismatchError):
        await order_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_bad_total", total="10.00")
    assert await count_orders(session_factory) == 0


@pytest.mark.asyncio
async def test_matching_total_is_accepted(order_service, sample_cart):
    order = await order_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_ok_total", total=59.8)
    assert order.total == Decimal("59.80")


@pytest.mark.asyncio
async def test_empty_cart_is_rejected(order_service):
    with pytest.raises(OrderServiceError):
        await order_service.create_order("user-1", [], SHIPPING, CUSTOMER, "cs_empty")


@pytest.mark.asyncio
async def test_failed_decrement_is_recorded_not_raised(order_service, fake_inventory, sample_cart, session_factory):
    fake_inventory.update_inventory.side_effect = [MarketplaceUnavailableError("Discogs down"), 1]

    order = await order_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_sync_fail")
    await order_service.wait_for_background()

    events = await order_service.list_pending_sync_events()
    assert len(events) == 1
    assert events[0].order_id == order.id
    assert events[0].listing_id == "1001"
    assert events[0].quantity_delta == -1
    assert "Discogs down" in events[0].error
    # The order itself is untouched
    assert (await order_service.get_order(order.id)).status == OrderStatus.PENDING.value


@pytest.mark.asyncio
async def test_resolve_sync_event(order_service, fake_inventory, sample_cart):
    fake_inventory.update_inventory.side_effect = MarketplaceUnavailableError("Discogs down")
    await order_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_resolve")
    await order_service.wait_for_background()

    events = await order_service.list_pending_sync_events()
    assert len(events) == 2

    resolved = await order_service.resolve_sync_event(events[0].id)
    assert resolved.status == SyncEventStatus.RESOLVED.value
    assert resolved.resolved_at is not None
    assert len(await order_service.list_pending_sync_events()) == 1

    with pytest.raises(OrderServiceError):
        await order_service.resolve_sync_event(9999)


@pytest.mark.asyncio
async def test_custom_scheduler_receives_decrement_job(db_session, fake_inventory, sample_cart):
    jobs = []
    service = OrderService(db_session, fake_inventory, schedule=jobs.append)

    await service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_scheduled")
    assert len(jobs) == 1
    fake_inventory.update_inventory.assert_not_awaited()

    await jobs[0]()
    assert fake_inventory.update_inventory.await_count == 2


@pytest.mark.asyncio
async def test_status_moves_forward(order_service, sample_cart):
    order = await order_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_status")

    order = await order_service.update_order_status(order.id, OrderStatus.PAID)
    assert order.status == "paid"
    order = await order_service.update_order_status(order.id, "shipped")
    assert order.status == "shipped"


@pytest.mark.asyncio
async def test_same_status_is_a_no_op(order_service, sample_cart):
    order = await order_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_same", paid=True)
    again = await order_service.update_order_status(order.id, OrderStatus.PAID)
    assert again.status == "paid"


@pytest.mark.asyncio
@pytest.mark.parametrize("start,target", [
    ("paid", OrderStatus.PENDING),
    ("shipped", OrderStatus.PAID),
    ("failed", OrderStatus.PAID),
    ("pending", OrderStatus.SHIPPED),
])
async def test_invalid_transitions_are_rejected(order_service, sample_cart, start, target):
    order = await order_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, f"cs_{start}")
    path = {"pending": [], "paid": ["paid"], "shipped": ["paid", "shipped"], "failed": ["failed"]}[start]
    for status in path:
        await order_service.update_order_status(order.id, status)

    with pytest.raises(InvalidStatusTransitionError):
        await order_service.update_order_status(order.id, target)


@pytest.mark.asyncio
async def test_refund_moves_paid_order_to_failed(order_service, sample_cart):
    order = await order_service.create_order("user-1", sample_cart, SHIPPING, CUSTOMER, "cs_refund", paid=True)
    order = await order_service.update_order_status(order.id, OrderStatus.FAILED)
    assert order.status == "failed"


@pytest.mark.asyncio
async def test_unknown_order_status_update(order_service):
    with pytest.raises(OrderNotFoundError):
        await order_service.update_order_status(12345, OrderStatus.PAID)


@pytest.mark.asyncio
async def test_orders_for_user_newest_first(order_service, sample_cart):
    first = await order_service.create_order("user-7", sample_cart, SHIPPING, CUSTOMER, "cs_u7_a")
    second = await order_service.create_order("user-7", sample_cart, SHIPPING, CUSTOMER, "cs_u7_b")
    await order_service.create_order("user-8", sample_cart, SHIPPING, CUSTOMER, "cs_u8")

    orders = await order_service.get_orders_for_user("user-7")
    assert [o.id for o in orders] == [second.id, first.id]
    assert len(await order_service.get_orders_for_user("user-7", limit=1)) == 1


@pytest.mark.asyncio
async def test_lookup_by_session_and_intent(order_service, sample_cart):
    order = await order_service.create_order(
        "user-1", sample_cart, SHIPPING, CUSTOMER, "cs_lookup", payment_intent_id="pi_lookup"
    )
    assert (await order_service.get_order_by_payment_session("cs_lookup")).id == order.id
    assert (await order_service.get_order_by_payment_intent("pi_lookup")).id == order.id
    assert await order_service.get_order_by_payment_session("cs_missing") is None
