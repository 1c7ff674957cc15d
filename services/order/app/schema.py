"""
Order Service — テーブル定義

注文ヘッダ (orders) と注文明細 (order_items)。
明細の unit_price は注文時の価格スナップショットで、後から商品価格が
変わっても更新しない。
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

TABLES = [
    """
    CREATE TABLE IF NOT EXISTS orders (
        id VARCHAR(36) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL,
        total NUMERIC(12, 2) NOT NULL,
        status VARCHAR(16) NOT NULL DEFAULT 'pending',
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS order_items (
        order_id VARCHAR(36) NOT NULL REFERENCES orders (id),
        position INTEGER NOT NULL,
        medicine_id VARCHAR(36) NOT NULL,
        quantity INTEGER NOT NULL CHECK (quantity > 0),
        unit_price NUMERIC(10, 2) NOT NULL,
        PRIMARY KEY (order_id, position)
    )
    """,
]


async def create_all(conn: AsyncConnection) -> None:
    for ddl in TABLES:
        await conn.execute(text(ddl))
