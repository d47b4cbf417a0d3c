"""
共通: API スキーマの基底クラスと金額型

ワイヤ上のフィールド名は camelCase（productId, totalAmount ...）。
入力は snake_case も受け付ける。

数値の上限はストアの列型に合わせる。列に入りきらない値は
ドライバまで届く前に 422 で弾く。
"""

from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

# INTEGER (32bit) 列の上限
MAX_QUANTITY = 2**31 - 1

# 内部では Decimal で計算し、JSON では数値として出す
Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]

# Numeric(12, 2) 列に丸めなしで収まる単価
Price = Annotated[Money, Field(ge=0, max_digits=12, decimal_places=2)]

Quantity = Annotated[int, Field(gt=0, le=MAX_QUANTITY)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
