"""
Product Service: クエリハンドラ (Read 側)
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from services.common.auth import Principal, Role, authorize
from services.common.errors import NotFound

from .db import products
from .schemas import Product

PRODUCT_READERS = frozenset({Role.ADMIN, Role.USER})


def _to_product(row) -> Product:
    return Product.model_validate(dict(row._mapping))


async def load_product(session: AsyncSession, product_id: str) -> Product:
    """認可なしで1件読む（コマンドハンドラ内部用）。なければ NotFound。"""
    result = await session.execute(select(products).where(products.c.id == product_id))
    row = result.fetchone()
    if not row:
        raise NotFound(f"Product {product_id} not found")
    return _to_product(row)


async def get_product(
    session: AsyncSession, principal: Principal, product_id: str
) -> Product:
    authorize(principal, PRODUCT_READERS)
    return await load_product(session, product_id)


async def list_products(session: AsyncSession, principal: Principal) -> list[Product]:
    authorize(principal, PRODUCT_READERS)
    result = await session.execute(select(products).order_by(products.c.name, products.c.id))
    return [_to_product(row) for row in result.fetchall()]
