"""Tests for the order placement workflow."""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from conftest import SpySession
from services.common.errors import (
    Forbidden,
    InsufficientStock,
    NotFound,
    RemoteUnavailable,
    ValidationError,
)
from services.common.schemas import MAX_QUANTITY
from services.order.app import commands, queries
from services.order.app.config import StockPolicy
from services.order.app.schemas import OrderStatus


async def _all_orders(session, admin):
    return await queries.list_all_orders(session, admin)


@pytest.mark.parametrize("policy", list(StockPolicy))
async def test_order_total_and_line_item_snapshot(
    order_session, inventory, publisher, customer, admin, policy
):
    order = await commands.create_order(
        order_session, inventory, publisher, customer, "p1", 2, stock_policy=policy
    )

    assert order.total_amount == Decimal("500")
    assert order.customer_id == "u1"
    assert order.status is OrderStatus.CREATED
    assert len(order.line_items) == 1
    item = order.line_items[0]
    assert (item.product_id, item.price, item.quantity) == ("p1", Decimal("250"), 2)

    stored = await _all_orders(order_session, admin)
    assert len(stored) == 1
    assert stored[0].id == order.id
    assert stored[0].total_amount == Decimal("500")
    assert [(i.product_id, i.price, i.quantity) for i in stored[0].line_items] == [
        ("p1", Decimal("250"), 2)
    ]


async def test_advisory_policy_reproduces_overselling(
    order_session, inventory, publisher, customer, admin
):
    await commands.create_order(
        order_session, inventory, publisher, customer, "p1", 2,
        stock_policy=StockPolicy.ADVISORY,
    )
    second = await commands.create_order(
        order_session, inventory, publisher, customer, "p1", 1,
        stock_policy=StockPolicy.ADVISORY,
    )

    # stock is only read, never decremented, so the check still sees 2
    assert second.total_amount == Decimal("250")
    assert inventory.products["p1"].quantity == 2
    assert len(await _all_orders(order_session, admin)) == 2
    assert not any(call[0] == "reserve" for call in inventory.calls)


async def test_reserve_policy_rejects_once_stock_is_taken(
    order_session, inventory, publisher, customer, admin
):
    await commands.create_order(
        order_session, inventory, publisher, customer, "p1", 2,
        stock_policy=StockPolicy.RESERVE,
    )

    with pytest.raises(InsufficientStock):
        await commands.create_order(
            order_session, inventory, publisher, customer, "p1", 1,
            stock_policy=StockPolicy.RESERVE,
        )

    assert inventory.products["p1"].quantity == 0
    assert len(await _all_orders(order_session, admin)) == 1


async def test_insufficient_stock_persists_nothing(
    order_session, inventory, publisher, customer, admin
):
    with pytest.raises(InsufficientStock):
        await commands.create_order(order_session, inventory, publisher, customer, "p1", 3)

    assert await _all_orders(order_session, admin) == []
    assert not any(call[0] == "reserve" for call in inventory.calls)
    assert publisher.published == []


async def test_unknown_product_persists_nothing(order_session, inventory, publisher, customer, admin):
    with pytest.raises(NotFound):
        await commands.create_order(order_session, inventory, publisher, customer, "nope", 1)
    assert await _all_orders(order_session, admin) == []


async def test_remote_failure_is_distinct_and_persists_nothing(
    order_session, inventory, publisher, customer, admin
):
    inventory.fail_with = RemoteUnavailable("Product service timed out")

    with pytest.raises(RemoteUnavailable):
        await commands.create_order(order_session, inventory, publisher, customer, "p1", 1)

    assert await _all_orders(order_session, admin) == []


async def test_non_client_cannot_place_orders(inventory, publisher, admin):
    session = SpySession()

    with pytest.raises(Forbidden):
        await commands.create_order(session, inventory, publisher, admin, "p1", 1)

    assert session.calls == []
    assert inventory.calls == []


@pytest.mark.parametrize("quantity", [0, -1, MAX_QUANTITY + 1])
async def test_out_of_range_quantity_is_rejected(inventory, publisher, customer, quantity):
    session = SpySession()
    with pytest.raises(ValidationError):
        await commands.create_order(session, inventory, publisher, customer, "p1", quantity)
    assert inventory.calls == []


async def test_order_created_event_is_published(order_session, inventory, publisher, customer):
    order = await commands.create_order(order_session, inventory, publisher, customer, "p1", 1)

    [(channel, event)] = publisher.published
    assert channel == "order_events"
    assert event.order_id == order.id
    assert event.customer_id == "u1"
    assert event.total_amount == 250.0


async def test_failed_persistence_releases_the_reservation(inventory, publisher, customer):
    session = SpySession(fail_with=OperationalError("INSERT", {}, Exception("disk full")))

    with pytest.raises(OperationalError):
        await commands.create_order(session, inventory, publisher, customer, "p1", 2)

    assert [call[0] for call in inventory.calls] == ["fetch_product", "reserve", "release"]
    assert inventory.products["p1"].quantity == 2
    assert "rollback" in session.calls
    assert publisher.published == []


async def test_concurrent_advisory_orders_both_pass_the_check(
    order_sessions, inventory, publisher, customer, admin
):
    async def place():
        async with order_sessions() as session:
            return await commands.create_order(
                session, inventory, publisher, customer, "p1", 2,
                stock_policy=StockPolicy.ADVISORY,
            )

    first, second = await asyncio.gather(place(), place())

    assert first.id != second.id
    async with order_sessions() as session:
        assert len(await _all_orders(session, admin)) == 2


async def test_concurrent_reserved_orders_cannot_oversell(
    order_sessions, inventory, publisher, customer, admin
):
    async def place():
        async with order_sessions() as session:
            return await commands.create_order(
                session, inventory, publisher, customer, "p1", 2,
                stock_policy=StockPolicy.RESERVE,
            )

    results = await asyncio.gather(place(), place(), return_exceptions=True)

    assert sum(isinstance(r, InsufficientStock) for r in results) == 1
    async with order_sessions() as session:
        assert len(await _all_orders(session, admin)) == 1
    assert inventory.products["p1"].quantity == 0


def test_build_order_uses_product_price_snapshot(p1):
    order = commands.build_order("u9", p1, 3)

    assert order.customer_id == "u9"
    assert order.total_amount == Decimal("750")
    assert order.line_items[0].price == Decimal("250")
