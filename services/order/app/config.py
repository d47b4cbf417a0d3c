"""
Order Service: 設定

STOCK_POLICY で在庫の扱いを切り替える:

  reserve  : 注文保存の前に Product Service で在庫を原子的に引き当てる（既定）
  advisory : 在庫数を読んで比較するだけ。減算しないので、同時注文が
             同じ残り在庫に対してそれぞれ成功し、売り越しが起こりうる
"""

import os
from dataclasses import dataclass, field
from enum import Enum

from services.common.auth import Role, parse_roles

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./orders.db"
DEFAULT_PRODUCT_SERVICE_URL = "http://localhost:8081"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class StockPolicy(str, Enum):
    RESERVE = "reserve"
    ADVISORY = "advisory"


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    product_service_url: str = DEFAULT_PRODUCT_SERVICE_URL
    inventory_timeout_s: float = 5.0
    stock_policy: StockPolicy = StockPolicy.RESERVE
    order_ownership_check: bool = True
    service_principal_id: str = "order-service"
    service_principal_roles: frozenset[Role] = field(
        default_factory=lambda: frozenset({Role.USER, Role.SERVICE})
    )
    redis_url: str | None = None
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8082

    @classmethod
    def from_env(cls) -> "Settings":
        timeout = float(os.environ.get("INVENTORY_TIMEOUT_S", "5.0"))
        if timeout <= 0:
            raise ValueError("INVENTORY_TIMEOUT_S must be > 0")
        return cls(
            database_url=os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL),
            product_service_url=os.environ.get(
                "PRODUCT_SERVICE_URL", DEFAULT_PRODUCT_SERVICE_URL
            ),
            inventory_timeout_s=timeout,
            stock_policy=StockPolicy(
                os.environ.get("STOCK_POLICY", StockPolicy.RESERVE.value).strip().lower()
            ),
            order_ownership_check=_parse_bool(
                "ORDER_OWNERSHIP_CHECK", os.environ.get("ORDER_OWNERSHIP_CHECK", "true")
            ),
            service_principal_id=os.environ.get("SERVICE_PRINCIPAL_ID", "order-service"),
            service_principal_roles=parse_roles(
                os.environ.get("SERVICE_PRINCIPAL_ROLES", "USER,SERVICE")
            ),
            redis_url=os.environ.get("REDIS_URL") or None,
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "8082")),
        )
