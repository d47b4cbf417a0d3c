"""
Order Service: リモート在庫クライアント

Order Service が Product Service を呼ぶための型付きインターフェース。
通信失敗とデータ不在を混同しないよう、エラー種別を明示的に変換する:

  HTTP 404                         → NotFound
  HTTP 409 (引き当て時)            → InsufficientStock
  タイムアウト / 接続失敗 / 5xx    → RemoteUnavailable
  401 / 403 (サービス資格情報の拒否) → RemoteUnavailable
  レスポンスが解釈できない         → RemoteUnavailable

自動リトライはしない。失敗はそのまま呼び出し元に返す。
"""

import logging
from abc import ABC, abstractmethod
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from services.common.auth import USER_ID_HEADER, USER_ROLES_HEADER
from services.common.errors import InsufficientStock, NotFound, RemoteUnavailable

from .config import Settings
from .schemas import Product

logger = logging.getLogger(__name__)

_product = TypeAdapter(Product)
_product_list = TypeAdapter(list[Product])


class InventoryClient(ABC):
    """在庫（商品）サービスへの窓口"""

    @abstractmethod
    async def fetch_product(self, product_id: str) -> Product: ...

    @abstractmethod
    async def fetch_all_products(self) -> list[Product]: ...

    @abstractmethod
    async def reserve(self, product_id: str, quantity: int) -> Product: ...

    @abstractmethod
    async def release(self, product_id: str, quantity: int) -> Product: ...

    async def aclose(self) -> None:
        pass


class ProductRestClient(InventoryClient):
    """httpx による Product Service の HTTP クライアント"""

    def __init__(self, http: httpx.AsyncClient) -> None:
        self.http = http

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProductRestClient":
        roles = ",".join(sorted(r.value for r in settings.service_principal_roles))
        http = httpx.AsyncClient(
            base_url=settings.product_service_url,
            timeout=settings.inventory_timeout_s,
            headers={
                USER_ID_HEADER: settings.service_principal_id,
                USER_ROLES_HEADER: roles,
            },
        )
        return cls(http)

    async def fetch_product(self, product_id: str) -> Product:
        resp = await self._request("GET", _product_path(product_id))
        self._raise_for_status(resp, product_id)
        return self._decode(resp, _product)

    async def fetch_all_products(self) -> list[Product]:
        resp = await self._request("GET", "/products")
        self._raise_for_status(resp)
        return self._decode(resp, _product_list)

    async def reserve(self, product_id: str, quantity: int) -> Product:
        resp = await self._request(
            "POST", f"{_product_path(product_id)}/reserve", json={"quantity": quantity}
        )
        self._raise_for_status(resp, product_id)
        return self._decode(resp, _product)

    async def release(self, product_id: str, quantity: int) -> Product:
        resp = await self._request(
            "POST", f"{_product_path(product_id)}/release", json={"quantity": quantity}
        )
        self._raise_for_status(resp, product_id)
        return self._decode(resp, _product)

    async def aclose(self) -> None:
        await self.http.aclose()

    # ── internal ─────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self.http.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Product service timed out: %s %s", method, path)
            raise RemoteUnavailable("Product service timed out") from exc
        except httpx.RequestError as exc:
            logger.warning("Product service unreachable: %s %s (%s)", method, path, exc)
            raise RemoteUnavailable("Product service unreachable") from exc

    def _raise_for_status(self, resp: httpx.Response, product_id: str | None = None) -> None:
        if resp.is_success:
            return
        if resp.status_code == 404:
            raise NotFound(f"Product {product_id} not found")
        if resp.status_code == 409:
            raise InsufficientStock(_detail(resp) or "Insufficient stock")
        logger.warning(
            "Product service returned HTTP %d for %s", resp.status_code, resp.request.url
        )
        if resp.status_code in (401, 403):
            raise RemoteUnavailable("Product service rejected the service credentials")
        raise RemoteUnavailable(f"Product service error: HTTP {resp.status_code}")

    def _decode(self, resp: httpx.Response, adapter: TypeAdapter):
        try:
            return adapter.validate_json(resp.content)
        except PydanticValidationError as exc:
            logger.warning("Malformed response from product service: %s", exc)
            raise RemoteUnavailable("Malformed response from product service") from exc


def _product_path(product_id: str) -> str:
    return f"/products/{quote(product_id, safe='')}"


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict):
        return str(body.get("detail", ""))
    return ""
