"""
Order Service: イベント定義

イベントは過去形で命名し、不変(immutable)として扱う。
"""

from datetime import date, datetime

from pydantic import BaseModel


class OrderCreated(BaseModel):
    """注文が作成された"""
    order_id: str
    customer_id: str
    product_id: str
    quantity: int
    total_amount: float
    order_date: date
    timestamp: datetime
