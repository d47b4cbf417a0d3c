"""
Order Service: コマンドハンドラ (Write 側)

注文作成のフロー:
  ┌──────────────────────────────────────────────────────────┐
  │ 0. 認可 (CLIENT) と数量の検証                              │
  │ 1. Product Service から商品を取得                         │
  │ 2. 在庫数 >= 注文数 を確認                                │
  │ 3. STOCK_POLICY=reserve なら在庫を原子的に引き当て         │
  │ 4. 合計金額 = 単価 × 数量                                 │
  │ 5. 注文 + 明細を1トランザクションで保存                    │
  │    └─ 保存失敗 → 引き当てた在庫を戻す（補償）              │
  │ 6. OrderCreated を発行                                    │
  └──────────────────────────────────────────────────────────┘

STOCK_POLICY=advisory の場合、手順2は読んで比較するだけの助言的チェックに
なる。在庫はどこでも減らないため、同時に来た注文がそれぞれ同じ残り在庫で
チェックを通過し、両方成功する（売り越し）。既知の制限として残している。
"""

import logging
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.common.auth import Principal, Role, authorize
from services.common.errors import InsufficientStock, ServiceError, ValidationError
from services.common.events import ORDER_EVENTS_CHANNEL, EventPublisher
from services.common.schemas import MAX_QUANTITY

from .config import StockPolicy
from .db import order_line_items, orders
from .events import OrderCreated
from .inventory_client import InventoryClient
from .schemas import Order, OrderLineItem, OrderStatus, Product

logger = logging.getLogger(__name__)

ORDER_PLACERS = frozenset({Role.CLIENT})


async def create_order(
    session: AsyncSession,
    inventory: InventoryClient,
    publisher: EventPublisher,
    principal: Principal,
    product_id: str,
    quantity: int,
    stock_policy: StockPolicy = StockPolicy.RESERVE,
) -> Order:
    """
    注文作成コマンド

    失敗した場合（商品なし・在庫不足・在庫サービス不通）は何も保存しない。
    """
    authorize(principal, ORDER_PLACERS)
    if not 0 < quantity <= MAX_QUANTITY:
        raise ValidationError(f"quantity must be between 1 and {MAX_QUANTITY}")

    product = await inventory.fetch_product(product_id)

    if product.quantity < quantity:
        logger.info(
            "Order rejected: customer=%s product=%s requested=%d available=%d",
            principal.id, product_id, quantity, product.quantity,
        )
        raise InsufficientStock(
            f"Insufficient stock: requested={quantity}, available={product.quantity}"
        )

    reserved = False
    if stock_policy is StockPolicy.RESERVE:
        await inventory.reserve(product.id, quantity)
        reserved = True

    order = build_order(principal.id, product, quantity)
    try:
        await _persist(session, order)
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("Failed to persist order %s", order.id)
        if reserved:
            await _release_reservation(inventory, product.id, quantity)
        raise

    logger.info(
        "Order placed: id=%s customer=%s product=%s qty=%d total=%s",
        order.id, order.customer_id, product.id, quantity, order.total_amount,
    )
    await publisher.publish(
        ORDER_EVENTS_CHANNEL,
        OrderCreated(
            order_id=order.id,
            customer_id=order.customer_id,
            product_id=product.id,
            quantity=quantity,
            total_amount=float(order.total_amount),
            order_date=order.date,
            timestamp=datetime.now(timezone.utc),
        ),
    )
    return order


def build_order(customer_id: str, product: Product, quantity: int) -> Order:
    """1商品1明細の注文を組み立てる。価格は注文時点のものを写し取る。"""
    item = OrderLineItem(product_id=product.id, price=product.price, quantity=quantity)
    return Order(
        id=str(uuid4()),
        customer_id=customer_id,
        date=datetime.now(timezone.utc).date(),
        status=OrderStatus.CREATED,
        total_amount=product.price * quantity,
        line_items=[item],
    )


async def _persist(session: AsyncSession, order: Order) -> None:
    await session.execute(
        insert(orders).values(
            id=order.id,
            customer_id=order.customer_id,
            date=order.date,
            status=order.status.value,
            total_amount=order.total_amount,
            created_at=datetime.now(timezone.utc),
        )
    )
    await session.execute(
        insert(order_line_items),
        [
            {
                "order_id": order.id,
                "position": position,
                "product_id": item.product_id,
                "price": item.price,
                "quantity": item.quantity,
            }
            for position, item in enumerate(order.line_items)
        ],
    )
    await session.commit()


async def _release_reservation(
    inventory: InventoryClient, product_id: str, quantity: int
) -> None:
    try:
        await inventory.release(product_id, quantity)
    except ServiceError:
        # 元の保存エラーを優先して呼び出し元に返す
        logger.exception(
            "Failed to release reservation: product=%s qty=%d", product_id, quantity
        )
    else:
        logger.info("Reservation released: product=%s qty=%d", product_id, quantity)
