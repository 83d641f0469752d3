import asyncio
import uuid

import httpx
import pytest
from sqlalchemy import select

from canteen.errors import InsufficientStockError
from canteen.models import MenuItem, OrderItem
from canteen.payments.circuit_breaker import CircuitBreaker
from canteen.payments.gateway import MidtransSnapGateway, UnconfiguredGateway
from canteen.schemas.order import OrderCreate
from helpers import SERVER_KEY, auth, count_orders, get_order, get_stock


def _snap_gateway(reply: httpx.Response) -> MidtransSnapGateway:
    return MidtransSnapGateway(
        server_key=SERVER_KEY,
        base_url="https://app.sandbox.midtrans.com",
        timeout=5.0,
        circuit_breaker=CircuitBreaker(failure_threshold=5, recovery_timeout=30.0),
        transport=httpx.MockTransport(lambda request: reply),
    )


def _body(*lines):
    return {"items": [{"menuId": str(menu_id), "quantity": qty} for menu_id, qty in lines]}


class TestCreateOrder:
    async def test_order_reserves_stock_and_starts_unpaid(self, client, services, world):
        response = await client.post(
            "/orders", json=_body((world.nasi_goreng, 3)), headers=auth(world.customer)
        )

        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "Order created successfully"
        order = data["order"]
        assert order["paymentStatus"] == "UNPAID"
        assert order["orderStatus"] == "WAITING"
        assert order["canteenId"] == str(world.canteen_id)
        assert order["userId"] == str(world.customer.id)
        assert order["totalAmount"] == 45000
        assert order["items"][0]["priceAtOrder"] == 15000
        assert order["items"][0]["quantity"] == 3
        assert await get_stock(services, world.nasi_goreng) == 2

    async def test_payment_link_is_stored(self, client, services, world, gateway):
        response = await client.post(
            "/orders",
            json=_body((world.nasi_goreng, 1), (world.es_teh, 2)),
            headers=auth(world.customer),
        )

        order = response.json()["order"]
        assert order["paymentLink"].startswith("https://app.sandbox.midtrans.com/")
        stored = await get_order(services, uuid.UUID(order["id"]))
        assert stored.payment_link == order["paymentLink"]

        call = gateway.calls[0]
        assert call["gross_amount"] == 25000
        assert {(i.name, i.price, i.quantity) for i in call["items"]} == {
            ("Nasi Goreng", 15000, 1),
            ("Es Teh", 5000, 2),
        }
        assert call["customer"].email == "budi@campus.ac.id"
        assert call["customer"].first_name == "Budi"
        assert call["customer"].phone == "08123456789"

    async def test_insufficient_stock_rejected_without_side_effects(self, client, services, world):
        response = await client.post(
            "/orders", json=_body((world.nasi_goreng, 10)), headers=auth(world.customer)
        )

        assert response.status_code == 400
        assert response.json()["message"] == (
            'Insufficient stock for menu "Nasi Goreng". Available: 5, Requested: 10'
        )
        assert await get_stock(services, world.nasi_goreng) == 5
        assert await count_orders(services) == 0

    async def test_multi_item_failure_is_all_or_nothing(self, client, services, world, gateway):
        response = await client.post(
            "/orders",
            json=_body((world.es_teh, 2), (world.nasi_goreng, 6)),
            headers=auth(world.customer),
        )

        assert response.status_code == 400
        assert await get_stock(services, world.es_teh) == 10
        assert await get_stock(services, world.nasi_goreng) == 5
        assert await count_orders(services) == 0
        async with services.sessionmaker() as db:
            assert (await db.execute(select(OrderItem.id))).first() is None
        assert gateway.calls == []

    async def test_cross_canteen_order_rejected(self, client, services, world, publisher):
        response = await client.post(
            "/orders",
            json=_body((world.nasi_goreng, 1), (world.bakso, 1)),
            headers=auth(world.customer),
        )

        assert response.status_code == 400
        assert response.json()["message"] == "All items must be from the same canteen"
        assert await get_stock(services, world.nasi_goreng) == 5
        assert await get_stock(services, world.bakso) == 3
        assert await count_orders(services) == 0
        assert publisher.events == []

    async def test_missing_and_deleted_items_listed(self, client, services, world):
        unknown = uuid.uuid4()
        response = await client.post(
            "/orders",
            json=_body((world.nasi_goreng, 1), (unknown, 1), (world.removed_item, 1)),
            headers=auth(world.customer),
        )

        assert response.status_code == 404
        message = response.json()["message"]
        assert message.startswith("Menu(s) not found: ")
        assert str(unknown) in message
        assert str(world.removed_item) in message
        assert str(world.nasi_goreng) not in message
        assert await count_orders(services) == 0

    async def test_repeated_menu_lines_are_merged(self, client, services, world):
        response = await client.post(
            "/orders",
            json=_body((world.es_teh, 2), (world.es_teh, 3)),
            headers=auth(world.customer),
        )

        assert response.status_code == 201
        items = response.json()["order"]["items"]
        assert len(items) == 1
        assert items[0]["quantity"] == 5
        assert await get_stock(services, world.es_teh) == 5

    async def test_merged_lines_are_checked_against_stock(self, client, services, world):
        response = await client.post(
            "/orders",
            json=_body((world.nasi_goreng, 3), (world.nasi_goreng, 3)),
            headers=auth(world.customer),
        )

        assert response.status_code == 400
        assert await get_stock(services, world.nasi_goreng) == 5

    async def test_price_snapshot_survives_menu_price_change(self, client, services, world):
        response = await client.post(
            "/orders", json=_body((world.nasi_goreng, 1)), headers=auth(world.customer)
        )
        order_id = response.json()["order"]["id"]

        async with services.sessionmaker() as db:
            async with db.begin():
                menu = await db.get(MenuItem, world.nasi_goreng)
                menu.price = 20000

        detail = await client.get(f"/orders/{order_id}", headers=auth(world.customer))
        assert detail.json()["order"]["items"][0]["priceAtOrder"] == 15000
        assert detail.json()["order"]["totalAmount"] == 15000

    async def test_order_placed_event_published(self, client, world, publisher):
        response = await client.post(
            "/orders", json=_body((world.es_teh, 2)), headers=auth(world.customer)
        )

        assert publisher.topics() == ["order.placed"]
        _, key, event = publisher.events[0]
        assert str(key) == response.json()["order"]["id"]
        assert event.total_amount == 10000
        assert event.payment_link == response.json()["order"]["paymentLink"]


class TestPaymentLinkDegradation:
    async def test_gateway_failure_keeps_order(self, client, services, world, gateway):
        gateway.should_fail = True

        response = await client.post(
            "/orders", json=_body((world.nasi_goreng, 2)), headers=auth(world.customer)
        )

        assert response.status_code == 201
        order = response.json()["order"]
        assert order["paymentLink"] is None
        assert (await get_order(services, uuid.UUID(order["id"]))).payment_link is None
        assert await get_stock(services, world.nasi_goreng) == 3

    @pytest.mark.parametrize("gateway", [_snap_gateway(httpx.Response(200, json=["unexpected"]))])
    async def test_malformed_snap_response_keeps_order(self, client, services, world, gateway):
        response = await client.post(
            "/orders", json=_body((world.nasi_goreng, 2)), headers=auth(world.customer)
        )

        assert response.status_code == 201
        assert response.json()["order"]["paymentLink"] is None
        assert await get_stock(services, world.nasi_goreng) == 3

    @pytest.mark.parametrize("gateway", [UnconfiguredGateway()])
    async def test_unconfigured_gateway_keeps_order(self, client, services, world, gateway):
        response = await client.post(
            "/orders", json=_body((world.nasi_goreng, 2)), headers=auth(world.customer)
        )

        assert response.status_code == 201
        assert response.json()["order"]["paymentLink"] is None
        assert await get_stock(services, world.nasi_goreng) == 3


class TestRequestValidation:
    async def test_empty_items_rejected(self, client, world):
        response = await client.post("/orders", json={"items": []}, headers=auth(world.customer))

        assert response.status_code == 400
        assert "items" in response.json()["errors"]

    async def test_non_positive_quantity_rejected(self, client, services, world):
        response = await client.post(
            "/orders", json=_body((world.nasi_goreng, 0)), headers=auth(world.customer)
        )

        assert response.status_code == 400
        assert "items.0.quantity" in response.json()["errors"]
        assert await get_stock(services, world.nasi_goreng) == 5

    async def test_missing_identity_is_unauthorized(self, client, world):
        response = await client.post("/orders", json=_body((world.nasi_goreng, 1)))

        assert response.status_code == 401

    async def test_owner_cannot_place_orders(self, client, world):
        response = await client.post(
            "/orders", json=_body((world.nasi_goreng, 1)), headers=auth(world.owner)
        )

        assert response.status_code == 403


class TestConcurrentReservations:
    async def test_racing_orders_never_oversell(self, services, world):
        body = OrderCreate(items=[{"menuId": str(world.nasi_goreng), "quantity": 2}])

        results = await asyncio.gather(
            *(services.orders.create_order(world.customer, body) for _ in range(5)),
            return_exceptions=True,
        )

        created = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, Exception)]
        assert len(created) == 2
        assert all(isinstance(r, InsufficientStockError) for r in rejected)
        assert await get_stock(services, world.nasi_goreng) == 1
        assert await count_orders(services) == 2
