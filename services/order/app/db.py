"""
Order Service: 注文ストア (Order Store)

注文明細は注文に従属する（ON DELETE CASCADE）。
SQLite は接続ごとに PRAGMA foreign_keys=ON を入れないと外部キーを無視する。
注文と明細は1トランザクションでまとめて書き込む。
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    event,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

metadata = MetaData()

# "order" は SQL の予約語なので複数形にする
orders = Table(
    "orders",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("customer_id", String(255), nullable=False, index=True),
    Column("date", Date, nullable=False),
    Column("status", String(32), nullable=False),
    # 単価 Numeric(12, 2) × 数量 INTEGER の最大値まで収まる桁数
    Column("total_amount", Numeric(22, 2), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

order_line_items = Table(
    "order_line_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "order_id",
        String(64),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("position", Integer, nullable=False),
    # Product への弱参照（ID のみ）。商品が消えても明細は残る
    Column("product_id", String(64), nullable=False),
    Column("price", Numeric(12, 2), nullable=False),
    Column("quantity", Integer, nullable=False),
    CheckConstraint("quantity > 0", name="ck_order_line_items_quantity_positive"),
)


def create_engine(database_url: str) -> AsyncEngine:
    engine = create_async_engine(database_url, echo=False)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_foreign_keys)
    return engine


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
