"""
Product Service: コマンドハンドラ (Write 側)

商品の登録・部分更新・削除と、在庫の引き当て(reserve)・解放(release)。

引き当ては1本の条件付き UPDATE で行う:

    UPDATE products SET quantity = quantity - :qty
    WHERE id = :id AND quantity >= :qty

読み取りと判定と減算が1文に収まるので、同時に来た注文が
同じ残り在庫を二重に取ることはない（compare-and-swap）。
"""

import logging
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import delete, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from services.common.auth import Principal, Role, authorize
from services.common.errors import Conflict, InsufficientStock, NotFound, ValidationError
from services.common.events import PRODUCT_EVENTS_CHANNEL, EventPublisher
from services.common.schemas import MAX_QUANTITY

from .db import products
from .events import (
    ProductCreated,
    ProductDeleted,
    ProductUpdated,
    StockReleased,
    StockReserved,
)
from .queries import load_product
from .schemas import Product, ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)

PRODUCT_WRITERS = frozenset({Role.ADMIN})
STOCK_OPERATORS = frozenset({Role.SERVICE, Role.ADMIN})


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check_quantity(quantity: int) -> None:
    if not 0 < quantity <= MAX_QUANTITY:
        raise ValidationError(f"quantity must be between 1 and {MAX_QUANTITY}")


async def create_product(
    session: AsyncSession,
    publisher: EventPublisher,
    principal: Principal,
    data: ProductCreate,
) -> Product:
    """商品登録コマンド。ID が無ければ採番する。"""
    authorize(principal, PRODUCT_WRITERS)

    product = Product(
        id=data.id or str(uuid4()),
        name=data.name,
        price=data.price,
        quantity=data.quantity,
    )
    try:
        await session.execute(insert(products).values(**product.model_dump()))
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise Conflict(f"Product {product.id} already exists") from exc

    logger.info("Product created: id=%s by=%s", product.id, principal.id)
    await publisher.publish(
        PRODUCT_EVENTS_CHANNEL,
        ProductCreated(
            product_id=product.id,
            name=product.name,
            price=float(product.price),
            quantity=product.quantity,
            timestamp=_now(),
        ),
    )
    return product


async def update_product(
    session: AsyncSession,
    publisher: EventPublisher,
    principal: Principal,
    product_id: str,
    data: ProductUpdate,
) -> Product:
    """
    商品の部分更新コマンド

    リクエストに含まれていたフィールドだけを上書きする。
    price=0 や quantity=0 も「指定あり」として反映される。
    """
    authorize(principal, PRODUCT_WRITERS)

    current = await load_product(session, product_id)
    changes = data.changes()
    if not changes:
        return current

    await session.execute(
        update(products).where(products.c.id == product_id).values(**changes)
    )
    await session.commit()

    logger.info("Product updated: id=%s fields=%s", product_id, sorted(changes))
    await publisher.publish(
        PRODUCT_EVENTS_CHANNEL,
        ProductUpdated(
            product_id=product_id,
            changes=data.model_dump(mode="json", exclude_unset=True, exclude_none=True),
            timestamp=_now(),
        ),
    )
    return current.model_copy(update=changes)


async def delete_product(
    session: AsyncSession,
    publisher: EventPublisher,
    principal: Principal,
    product_id: str,
) -> None:
    """商品削除コマンド。存在しない ID でもエラーにしない（冪等）。"""
    authorize(principal, PRODUCT_WRITERS)

    result = await session.execute(delete(products).where(products.c.id == product_id))
    await session.commit()
    if not result.rowcount:
        return

    logger.info("Product deleted: id=%s by=%s", product_id, principal.id)
    await publisher.publish(
        PRODUCT_EVENTS_CHANNEL,
        ProductDeleted(product_id=product_id, timestamp=_now()),
    )


async def reserve_stock(
    session: AsyncSession,
    publisher: EventPublisher,
    principal: Principal,
    product_id: str,
    quantity: int,
) -> Product:
    """
    在庫引き当てコマンド（Order Service から呼ばれる）

    1. 条件付き UPDATE で quantity を減算
    2. 更新行が 0 件なら、商品が無いのか在庫不足なのかを判定して失敗
    """
    authorize(principal, STOCK_OPERATORS)
    _check_quantity(quantity)

    result = await session.execute(
        update(products)
        .where(products.c.id == product_id, products.c.quantity >= quantity)
        .values(quantity=products.c.quantity - quantity)
    )
    if not result.rowcount:
        await session.rollback()
        current = await load_product(session, product_id)
        logger.info(
            "Reservation rejected: id=%s requested=%d available=%d",
            product_id, quantity, current.quantity,
        )
        raise InsufficientStock(
            f"Insufficient stock: requested={quantity}, available={current.quantity}"
        )

    product = await load_product(session, product_id)
    await session.commit()

    logger.info(
        "Stock reserved: id=%s qty=%d remaining=%d", product_id, quantity, product.quantity
    )
    await publisher.publish(
        PRODUCT_EVENTS_CHANNEL,
        StockReserved(
            product_id=product_id,
            quantity=quantity,
            remaining=product.quantity,
            timestamp=_now(),
        ),
    )
    return product


async def release_stock(
    session: AsyncSession,
    publisher: EventPublisher,
    principal: Principal,
    product_id: str,
    quantity: int,
) -> Product:
    """
    在庫解放コマンド（補償）

    引き当て後に注文の保存が失敗した場合、Order Service が戻しに来る。
    """
    authorize(principal, STOCK_OPERATORS)
    _check_quantity(quantity)

    # 加算後も INTEGER 列に収まる行だけを更新する
    result = await session.execute(
        update(products)
        .where(
            products.c.id == product_id,
            products.c.quantity <= MAX_QUANTITY - quantity,
        )
        .values(quantity=products.c.quantity + quantity)
    )
    if not result.rowcount:
        await session.rollback()
        current = await load_product(session, product_id)
        raise Conflict(
            f"Release would exceed maximum stock: current={current.quantity}, "
            f"released={quantity}, max={MAX_QUANTITY}"
        )

    product = await load_product(session, product_id)
    await session.commit()

    logger.info(
        "Stock released: id=%s qty=%d remaining=%d", product_id, quantity, product.quantity
    )
    await publisher.publish(
        PRODUCT_EVENTS_CHANNEL,
        StockReleased(
            product_id=product_id,
            quantity=quantity,
            remaining=product.quantity,
            timestamp=_now(),
        ),
    )
    return product
