# tests/test_routes/test_order_routes.py
import json

import pytest
import stripe
from sqlalchemy import func, select

from plastik.dependencies import get_checkout_service
from plastik.main import app
from plastik.models.order import Order
from plastik.services.checkout_service import CheckoutService
from tests.conftest import WEBHOOK_SECRET
from tests.mocks import checkout_completed, sign
from tests.test_routes.conftest import ADMIN_AUTH, shopper_headers


async def post_event(client, payload, secret=WEBHOOK_SECRET):
    body = json.dumps(payload)
    return await client.post(
        "/webhooks/stripe",
        content=body,
        headers={"Stripe-Signature": sign(body, secret), "Content-Type": "application/json"},
    )


async def count_orders(session_factory):
    async with session_factory() as session:
        return (await session.execute(select(func.count(Order.id)))).scalar_one()


@pytest.mark.asyncio
async def test_webhook_with_invalid_signature_is_rejected_without_side_effects(
    client, session_factory, fake_discogs, sample_cart
):
    response = await post_event(client, checkout_completed(sample_cart), secret="whsec_forged")

    assert response.status_code == 400
    assert await count_orders(session_factory) == 0
    assert fake_discogs.count("POST") == fake_discogs.count("DELETE") == 0


@pytest.mark.asyncio
async def test_webhook_without_signature_is_rejected(client, session_factory, sample_cart):
    response = await client.post("/webhooks/stripe", content=json.dumps(checkout_completed(sample_cart)))
    assert response.status_code == 400
    assert await count_orders(session_factory) == 0


@pytest.mark.asyncio
async def test_duplicate_checkout_event_creates_one_order_and_one_decrement(
    client, session_factory, fake_discogs, sample_cart
):
    payload = checkout_completed(sample_cart, session_id="cs_route_dup")

    first = await post_event(client, payload)
    second = await post_event(client, payload)

    assert first.status_code == second.status_code == 200
    assert first.json()["received"] is True
    assert first.json()["order_id"] == second.json()["order_id"]
    assert await count_orders(session_factory) == 1
    # 1001 had one copy, 1005 had two and both were bought: each listing is removed exactly once
    assert fake_discogs.count("DELETE", "/marketplace/listings/1001") == 1
    assert fake_discogs.count("DELETE", "/marketplace/listings/1005") == 1
    assert 1001 not in fake_discogs.listings


@pytest.mark.asyncio
async def test_decrement_failure_still_acknowledges_and_records_sync_event(
    client, session_factory, fake_discogs, sample_cart
):
    fake_discogs.failing_listings.add(1001)

    response = await post_event(client, checkout_completed(sample_cart, session_id="cs_route_fail"))
    assert response.status_code == 200

    events = await client.get("/orders/sync-events", auth=ADMIN_AUTH)
    assert events.status_code == 200
    assert [(e["listing_id"], e["quantity_delta"]) for e in events.json()] == [("1001", -1)]

    resolved = await client.post(f"/orders/sync-events/{events.json()[0]['id']}/resolve", auth=ADMIN_AUTH)
    assert resolved.json()["status"] == "resolved"
    assert (await client.get("/orders/sync-events", auth=ADMIN_AUTH)).json() == []


@pytest.mark.asyncio
async def test_unknown_event_is_acknowledged(client):
    response = await post_event(client, {"id": "evt_x", "type": "customer.created", "data": {"object": {}}})
    assert response.status_code == 200
    assert response.json()["action"] == "ignored"


@pytest.mark.asyncio
async def test_order_history_and_detail(client, sample_cart):
    created = await post_event(client, checkout_completed(sample_cart, session_id="cs_history"))
    order_id = created.json()["order_id"]
    owner = shopper_headers("user-1")

    listing = await client.get("/orders", headers=owner)
    assert listing.status_code == 200
    assert [o["id"] for o in listing.json()] == [order_id]
    assert (await client.get("/orders", params={"user_id": "user-1"}, headers=owner)).status_code == 200

    detail = await client.get(f"/orders/{order_id}", headers=owner)
    assert detail.status_code == 200
    body = detail.json()
    assert body["status"] == "paid"
    assert float(body["total"]) == 59.8
    assert [i["listing_id"] for i in body["items"]] == ["1001", "1005"]

    assert (await client.get("/orders/424242", headers=owner)).status_code == 404


@pytest.mark.asyncio
async def test_order_reads_require_a_shopper_token(client, sample_cart):
    created = await post_event(client, checkout_completed(sample_cart, session_id="cs_private"))
    order_id = created.json()["order_id"]

    anonymous = await client.get(f"/orders/{order_id}")
    assert anonymous.status_code == 401
    assert "customer_email" not in anonymous.text
    assert (await client.get("/orders", params={"user_id": "user-1"})).status_code == 401

    forged = shopper_headers("user-1", secret="not-the-shop-secret-0123456789abcdef")
    assert (await client.get(f"/orders/{order_id}", headers=forged)).status_code == 401

    expired = shopper_headers("user-1", expires_in=-60)
    assert (await client.get("/orders", headers=expired)).status_code == 401


@pytest.mark.asyncio
async def test_shoppers_cannot_read_other_shoppers_orders(client, sample_cart):
    created = await post_event(client, checkout_completed(sample_cart, session_id="cs_someone_else"))
    order_id = created.json()["order_id"]
    intruder = shopper_headers("user-2")

    assert (await client.get(f"/orders/{order_id}", headers=intruder)).status_code == 403
    assert (await client.get("/orders", params={"user_id": "user-1"}, headers=intruder)).status_code == 403
    assert (await client.get("/orders", headers=intruder)).json() == []


@pytest.mark.asyncio
async def test_guest_orders_are_not_readable_through_shopper_routes(client, sample_cart):
    created = await post_event(client, checkout_completed(sample_cart, session_id="cs_guest", user_id="anonymous"))
    order_id = created.json()["order_id"]

    response = await client.get(f"/orders/{order_id}", headers=shopper_headers("anonymous"))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_order_status_update(client, sample_cart):
    created = await post_event(client, checkout_completed(sample_cart, session_id="cs_ship"))
    order_id = created.json()["order_id"]

    assert (await client.post(f"/orders/{order_id}/status", json={"status": "shipped"})).status_code == 401

    shipped = await client.post(f"/orders/{order_id}/status", json={"status": "shipped"}, auth=ADMIN_AUTH)
    assert shipped.status_code == 200
    assert shipped.json()["status"] == "shipped"

    backwards = await client.post(f"/orders/{order_id}/status", json={"status": "pending"}, auth=ADMIN_AUTH)
    assert backwards.status_code == 409


@pytest.mark.asyncio
async def test_checkout_session_route(client, inventory_service):
    calls = []

    def create_session(**params):
        calls.append(params)
        return {"id": "cs_created"}

    app.dependency_overrides[get_checkout_service] = lambda: CheckoutService(
        inventory_service, "sk_test_dummy", create_session=create_session
    )
    request = {
        "items": [{"id": 1002, "quantity": 1}],
        "customer": {"user_id": "user-1"},
        "success_url": "https://shop.test/success",
        "cancel_url": "https://shop.test/cart",
    }

    response = await client.post("/checkout/session", json=request)
    assert response.status_code == 200
    assert response.json() == {"session_id": "cs_created"}

    request["items"] = [{"id": 1004, "quantity": 1}]
    response = await client.post("/checkout/session", json=request)
    assert response.status_code == 409
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_checkout_rejects_empty_cart(client):
    response = await client.post("/checkout/session", json={
        "items": [], "success_url": "https://s", "cancel_url": "https://c",
    })
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_checkout_route_reports_stripe_failure_as_bad_gateway(client, inventory_service):
    def rejecting_create(**params):
        raise stripe.InvalidRequestError("Metadata values can have up to 500 characters", "metadata")

    app.dependency_overrides[get_checkout_service] = lambda: CheckoutService(
        inventory_service, "sk_test_dummy", create_session=rejecting_create
    )
    response = await client.post("/checkout/session", json={
        "items": [{"id": 1002, "quantity": 1}],
        "success_url": "https://shop.test/success",
        "cancel_url": "https://shop.test/cart",
    })

    assert response.status_code == 502
