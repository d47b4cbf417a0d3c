"""
Order Service: クエリハンドラ (Read 側)

  list_orders      : CLIENT。呼び出し元 ID の注文だけを SQL で絞り込む
  get_order        : CLIENT / ADMIN。ID で1件
  list_all_orders  : ADMIN。全件
"""

from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.common.auth import Principal, Role, authorize
from services.common.errors import NotFound

from .db import order_line_items, orders
from .schemas import Order, OrderLineItem, OrderStatus

ORDER_OWNERS = frozenset({Role.CLIENT})
ORDER_READERS = frozenset({Role.CLIENT, Role.ADMIN})
ORDER_ADMINS = frozenset({Role.ADMIN})


async def list_orders(session: AsyncSession, principal: Principal) -> list[Order]:
    """呼び出し元が作成した注文を新しい順に返す。"""
    authorize(principal, ORDER_OWNERS)
    return await _load_orders(session, orders.c.customer_id == principal.id)


async def get_order(
    session: AsyncSession,
    principal: Principal,
    order_id: str,
    enforce_ownership: bool = True,
) -> Order:
    """
    注文を1件返す。

    enforce_ownership=True のとき、ADMIN 以外が他人の注文を指定すると
    存在を漏らさないよう NotFound にする。False なら所有者を確認しない。
    """
    authorize(principal, ORDER_READERS)
    found = await _load_orders(session, orders.c.id == order_id)
    if not found:
        raise NotFound(f"Order {order_id} not found")
    order = found[0]
    if (
        enforce_ownership
        and Role.ADMIN not in principal.roles
        and order.customer_id != principal.id
    ):
        raise NotFound(f"Order {order_id} not found")
    return order


async def list_all_orders(session: AsyncSession, principal: Principal) -> list[Order]:
    authorize(principal, ORDER_ADMINS)
    return await _load_orders(session)


async def _load_orders(session: AsyncSession, where=None) -> list[Order]:
    stmt = select(orders).order_by(orders.c.created_at.desc(), orders.c.id)
    if where is not None:
        stmt = stmt.where(where)
    rows = (await session.execute(stmt)).fetchall()
    if not rows:
        return []

    items = await _load_line_items(session, [row.id for row in rows])
    return [
        Order(
            id=row.id,
            customer_id=row.customer_id,
            date=row.date,
            status=OrderStatus(row.status),
            total_amount=row.total_amount,
            line_items=items.get(row.id, []),
        )
        for row in rows
    ]


async def _load_line_items(
    session: AsyncSession, order_ids: list[str]
) -> dict[str, list[OrderLineItem]]:
    result = await session.execute(
        select(order_line_items)
        .where(order_line_items.c.order_id.in_(order_ids))
        .order_by(order_line_items.c.order_id, order_line_items.c.position)
    )
    grouped: dict[str, list[OrderLineItem]] = defaultdict(list)
    for row in result.fetchall():
        grouped[row.order_id].append(
            OrderLineItem(product_id=row.product_id, price=row.price, quantity=row.quantity)
        )
    return grouped
