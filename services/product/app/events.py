"""
Product Service: イベント定義

在庫ドメインで発生するイベント。過去形で命名し、不変として扱う。
"""

from datetime import datetime

from pydantic import BaseModel


class ProductCreated(BaseModel):
    """商品が登録された"""
    product_id: str
    name: str
    price: float
    quantity: int
    timestamp: datetime


class ProductUpdated(BaseModel):
    """商品が部分更新された（changes には実際に上書きしたフィールドだけが入る）"""
    product_id: str
    changes: dict
    timestamp: datetime


class ProductDeleted(BaseModel):
    """商品が削除された"""
    product_id: str
    timestamp: datetime


class StockReserved(BaseModel):
    """在庫が引き当てられた（quantity を減算）"""
    product_id: str
    quantity: int
    remaining: int
    timestamp: datetime


class StockReleased(BaseModel):
    """引き当てた在庫が戻された（補償）"""
    product_id: str
    quantity: int
    remaining: int
    timestamp: datetime
