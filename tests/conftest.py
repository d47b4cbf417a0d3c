"""Pytest fixtures shared by the order and product service tests."""

import asyncio
import logging
from decimal import Decimal

import pytest

from services.common.auth import Principal, Role
from services.common.errors import InsufficientStock, NotFound
from services.common.events import EventPublisher
from services.order.app import db as order_db
from services.order.app.inventory_client import InventoryClient
from services.order.app.schemas import Product
from services.product.app import db as product_db

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


# ── Test doubles ─────────────────────────────────


class RecordingPublisher(EventPublisher):
    """Keeps published events in memory instead of sending them to Redis."""

    def __init__(self) -> None:
        super().__init__(None)
        self.published: list[tuple[str, object]] = []

    async def publish(self, channel, event) -> None:
        self.published.append((channel, event))

    def event_types(self) -> list[str]:
        return [type(event).__name__ for _, event in self.published]


class FakeInventory(InventoryClient):
    """In-memory product catalog that records every remote call."""

    def __init__(self, *products: Product) -> None:
        self.products = {p.id: p for p in products}
        self.calls: list[tuple] = []
        self.fail_with: Exception | None = None

    async def _call(self, *call) -> None:
        self.calls.append(call)
        # yield to the loop so concurrent orders interleave like real requests
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with

    def _get(self, product_id: str) -> Product:
        if product_id not in self.products:
            raise NotFound(f"Product {product_id} not found")
        return self.products[product_id]

    async def fetch_product(self, product_id: str) -> Product:
        await self._call("fetch_product", product_id)
        return self._get(product_id).model_copy()

    async def fetch_all_products(self) -> list[Product]:
        await self._call("fetch_all_products")
        return [p.model_copy() for p in self.products.values()]

    async def reserve(self, product_id: str, quantity: int) -> Product:
        await self._call("reserve", product_id, quantity)
        product = self._get(product_id)
        if product.quantity < quantity:
            raise InsufficientStock(
                f"Insufficient stock: requested={quantity}, available={product.quantity}"
            )
        product.quantity -= quantity
        return product.model_copy()

    async def release(self, product_id: str, quantity: int) -> Product:
        await self._call("release", product_id, quantity)
        product = self._get(product_id)
        product.quantity += quantity
        return product.model_copy()


class SpySession:
    """Stands in for an AsyncSession and records every store access."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.calls: list[str] = []
        self.fail_with = fail_with

    async def execute(self, *args, **kwargs):
        self.calls.append("execute")
        if self.fail_with is not None:
            raise self.fail_with

    async def commit(self) -> None:
        self.calls.append("commit")

    async def rollback(self) -> None:
        self.calls.append("rollback")


# ── Principals ───────────────────────────────────


@pytest.fixture
def customer() -> Principal:
    return Principal(id="u1", roles=frozenset({Role.CLIENT}))


@pytest.fixture
def other_customer() -> Principal:
    return Principal(id="u2", roles=frozenset({Role.CLIENT}))


@pytest.fixture
def admin() -> Principal:
    return Principal(id="admin", roles=frozenset({Role.ADMIN}))


@pytest.fixture
def catalog_user() -> Principal:
    return Principal(id="viewer", roles=frozenset({Role.USER}))


@pytest.fixture
def order_service_principal() -> Principal:
    return Principal(id="order-service", roles=frozenset({Role.USER, Role.SERVICE}))


# ── Stores ───────────────────────────────────────


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def p1() -> Product:
    return Product(id="p1", name="Laptop", price=Decimal("250"), quantity=2)


@pytest.fixture
def inventory(p1) -> FakeInventory:
    return FakeInventory(p1)


@pytest.fixture
async def order_sessions(tmp_path):
    engine = order_db.create_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await order_db.init_schema(engine)
    yield order_db.session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def order_session(order_sessions):
    async with order_sessions() as session:
        yield session


@pytest.fixture
async def product_sessions(tmp_path):
    engine = product_db.create_engine(f"sqlite+aiosqlite:///{tmp_path / 'products.db'}")
    await product_db.init_schema(engine)
    yield product_db.session_factory(engine)
    await engine.dispose()


@pytest.fixture
async def product_session(product_sessions):
    async with product_sessions() as session:
        yield session
