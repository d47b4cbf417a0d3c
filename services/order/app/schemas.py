"""
Order Service: スキーマ

Order は作成時に一度だけ status=CREATED で保存され、以降は遷移しない。
PENDING / CONFIRMED は既存データに現れる状態として定義だけしている。
"""

import datetime as dt
from enum import Enum

from pydantic import Field

from services.common.schemas import CamelModel, Money, Price, Quantity


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CREATED = "CREATED"


class OrderLineItem(CamelModel):
    """注文時点の価格と数量のスナップショット"""
    product_id: str
    price: Price
    quantity: Quantity


class Order(CamelModel):
    id: str
    customer_id: str
    date: dt.date
    status: OrderStatus
    total_amount: Money
    line_items: list[OrderLineItem] = Field(default_factory=list)


class OrderRequest(CamelModel):
    product_id: str = Field(min_length=1, max_length=64)
    quantity: Quantity


class Product(CamelModel):
    """Product Service から受け取る商品"""
    id: str
    name: str
    price: Price
    quantity: int
