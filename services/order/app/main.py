"""
Order Service: FastAPI エントリーポイント

注文の作成（Product Service への問い合わせを伴う）と参照 API。
呼び出し元の Principal は依存関数で取り出し、各ハンドラへ明示的に渡す。
注文作成はボディ検証より前に require_roles でロールを判定する。
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request

from services.common.auth import Principal, current_principal, require_roles
from services.common.errors import install_error_handlers
from services.common.events import EventPublisher, publisher_from_url
from services.common.logging_config import configure_logging

from . import commands, db, queries
from .config import Settings
from .inventory_client import InventoryClient, ProductRestClient
from .schemas import Order, OrderRequest

router = APIRouter()


# ── Query Endpoints (Read 側) ────────────────────


@router.get("/orders", response_model=list[Order])
async def list_orders(request: Request, principal: Principal = Depends(current_principal)):
    """呼び出し元の注文一覧"""
    async with request.app.state.async_session() as session:
        return await queries.list_orders(session, principal)


# /orders/{order_id} より先に登録すること
@router.get("/orders/admin", response_model=list[Order])
async def list_all_orders(request: Request, principal: Principal = Depends(current_principal)):
    """全注文（ADMIN のみ）"""
    async with request.app.state.async_session() as session:
        return await queries.list_all_orders(session, principal)


@router.get("/orders/{order_id}", response_model=Order)
async def get_order(
    order_id: str, request: Request, principal: Principal = Depends(current_principal)
):
    """指定注文を取得"""
    settings: Settings = request.app.state.settings
    async with request.app.state.async_session() as session:
        return await queries.get_order(
            session, principal, order_id, enforce_ownership=settings.order_ownership_check
        )


# ── Command Endpoints (Write 側) ─────────────────


@router.post("/orders", response_model=Order, status_code=201)
async def create_order(
    req: OrderRequest,
    request: Request,
    principal: Principal = Depends(require_roles(commands.ORDER_PLACERS)),
):
    """注文作成コマンド"""
    state = request.app.state
    async with state.async_session() as session:
        return await commands.create_order(
            session,
            state.inventory,
            state.publisher,
            principal,
            req.product_id,
            req.quantity,
            stock_policy=state.settings.stock_policy,
        )


@router.get("/health")
async def health():
    return {"status": "ok", "service": "order-service"}


def create_app(
    settings: Settings | None = None,
    inventory_client: InventoryClient | None = None,
    publisher: EventPublisher | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        engine = db.create_engine(settings.database_url)
        await db.init_schema(engine)
        app.state.settings = settings
        app.state.async_session = db.session_factory(engine)
        app.state.inventory = inventory_client or ProductRestClient.from_settings(settings)
        app.state.publisher = publisher or publisher_from_url(settings.redis_url)
        yield
        if inventory_client is None:
            await app.state.inventory.aclose()
        if publisher is None:
            await app.state.publisher.aclose()
        await engine.dispose()

    app = FastAPI(title="Order Service", lifespan=lifespan)
    install_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    settings = Settings.from_env()
    uvicorn.run(app, host=settings.host, port=settings.port)
