"""
Product Service: FastAPI エントリーポイント

商品（在庫）の CRUD と、Order Service 向けの在庫引き当て API を提供する。
ロール判定は各コマンド / クエリの先頭で authorize() が行う。
ボディを受け取る書き込み系は require_roles で検証より前にも判定する。
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request, Response

from services.common.auth import Principal, current_principal, require_roles
from services.common.errors import install_error_handlers
from services.common.events import EventPublisher, publisher_from_url
from services.common.logging_config import configure_logging

from . import commands, db, queries
from .config import Settings
from .schemas import Product, ProductCreate, ProductUpdate, StockRequest

router = APIRouter()


# ── Query Endpoints (Read 側) ────────────────────


@router.get("/products", response_model=list[Product])
async def list_products(request: Request, principal: Principal = Depends(current_principal)):
    """全商品を取得"""
    async with request.app.state.async_session() as session:
        return await queries.list_products(session, principal)


@router.get("/products/{product_id}", response_model=Product)
async def get_product(
    product_id: str, request: Request, principal: Principal = Depends(current_principal)
):
    """指定商品を取得"""
    async with request.app.state.async_session() as session:
        return await queries.get_product(session, principal, product_id)


# ── Command Endpoints (Write 側) ─────────────────


@router.post("/products", response_model=Product, status_code=201)
async def create_product(
    req: ProductCreate,
    request: Request,
    principal: Principal = Depends(require_roles(commands.PRODUCT_WRITERS)),
):
    """商品登録（ADMIN のみ）"""
    async with request.app.state.async_session() as session:
        return await commands.create_product(
            session, request.app.state.publisher, principal, req
        )


@router.put("/products/{product_id}", response_model=Product)
async def update_product(
    product_id: str,
    req: ProductUpdate,
    request: Request,
    principal: Principal = Depends(require_roles(commands.PRODUCT_WRITERS)),
):
    """商品の部分更新（ADMIN のみ）"""
    async with request.app.state.async_session() as session:
        return await commands.update_product(
            session, request.app.state.publisher, principal, product_id, req
        )


@router.delete("/products/{product_id}", status_code=204, response_class=Response)
async def delete_product(
    product_id: str, request: Request, principal: Principal = Depends(current_principal)
):
    """商品削除（ADMIN のみ、冪等）"""
    async with request.app.state.async_session() as session:
        await commands.delete_product(
            session, request.app.state.publisher, principal, product_id
        )
    return Response(status_code=204)


@router.post("/products/{product_id}/reserve", response_model=Product)
async def reserve_stock(
    product_id: str,
    req: StockRequest,
    request: Request,
    principal: Principal = Depends(require_roles(commands.STOCK_OPERATORS)),
):
    """在庫引き当て（Order Service から呼ばれる）"""
    async with request.app.state.async_session() as session:
        return await commands.reserve_stock(
            session, request.app.state.publisher, principal, product_id, req.quantity
        )


@router.post("/products/{product_id}/release", response_model=Product)
async def release_stock(
    product_id: str,
    req: StockRequest,
    request: Request,
    principal: Principal = Depends(require_roles(commands.STOCK_OPERATORS)),
):
    """在庫解放（補償）"""
    async with request.app.state.async_session() as session:
        return await commands.release_stock(
            session, request.app.state.publisher, principal, product_id, req.quantity
        )


@router.get("/health")
async def health():
    return {"status": "ok", "service": "product-service"}


def create_app(
    settings: Settings | None = None,
    publisher: EventPublisher | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        engine = db.create_engine(settings.database_url)
        await db.init_schema(engine)
        app.state.async_session = db.session_factory(engine)
        app.state.publisher = publisher or publisher_from_url(settings.redis_url)
        yield
        if publisher is None:
            await app.state.publisher.aclose()
        await engine.dispose()

    app = FastAPI(title="Product Service", lifespan=lifespan)
    install_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    settings = Settings.from_env()
    uvicorn.run(app, host=settings.host, port=settings.port)
