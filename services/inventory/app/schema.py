"""
Inventory Service — テーブル定義

在庫サービスが所有するのは medicines テーブルのみ。
stock は在庫台帳 (Ledger) の正本であり、0 未満にならないよう
CHECK 制約でも保護する。
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

TABLES = [
    """
    CREATE TABLE IF NOT EXISTS medicines (
        id VARCHAR(36) PRIMARY KEY,
        name VARCHAR(200) NOT NULL,
        dosage VARCHAR(100) NOT NULL DEFAULT '',
        type VARCHAR(50) NOT NULL DEFAULT '',
        description TEXT NOT NULL DEFAULT '',
        image_url TEXT,
        price NUMERIC(10, 2) NOT NULL,
        wholesale_price NUMERIC(10, 2) NOT NULL,
        stock INTEGER NOT NULL DEFAULT 0 CHECK (stock >= 0),
        expires_at DATE,
        promo_percent NUMERIC(5, 2) NOT NULL DEFAULT 0,
        requires_prescription BOOLEAN NOT NULL DEFAULT FALSE,
        updated_at TIMESTAMP
    )
    """,
]


async def create_all(conn: AsyncConnection) -> None:
    for ddl in TABLES:
        await conn.execute(text(ddl))
