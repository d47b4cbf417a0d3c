"""
Product Service: API スキーマ

部分更新 (PUT) では「送られてきたフィールドだけ」を上書きする。
0 や空文字を「未指定」とみなすと price=0 / quantity=0 への更新が
黙って無視されてしまうため、フィールドの有無 (model_fields_set) で判定する。
"""

from typing import Annotated

from pydantic import Field

from services.common.schemas import MAX_QUANTITY, CamelModel, Price, Quantity

Stock = Annotated[int, Field(ge=0, le=MAX_QUANTITY)]


class Product(CamelModel):
    id: str
    name: str
    price: Price
    quantity: Stock


class ProductCreate(CamelModel):
    id: Annotated[str, Field(min_length=1, max_length=64)] | None = None
    name: str = Field(min_length=1, max_length=255)
    price: Price
    quantity: Stock


class ProductUpdate(CamelModel):
    name: Annotated[str, Field(min_length=1, max_length=255)] | None = None
    price: Price | None = None
    quantity: Stock | None = None

    def changes(self) -> dict:
        """送られてきたフィールドだけを返す。明示的な null は未指定と同じ扱い。"""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class StockRequest(CamelModel):
    quantity: Quantity
