"""
Customer Service — テーブル定義

顧客プロフィールは認証プリンシパル (user_id) ごとに1行。
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

TABLES = [
    """
    CREATE TABLE IF NOT EXISTS customers (
        id VARCHAR(36) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL UNIQUE,
        name VARCHAR(200) NOT NULL DEFAULT '',
        email VARCHAR(200) NOT NULL DEFAULT '',
        cpf_cnpj VARCHAR(20) NOT NULL DEFAULT '',
        phone1 VARCHAR(30) NOT NULL DEFAULT '',
        phone2 VARCHAR(30),
        cep VARCHAR(10) NOT NULL DEFAULT '',
        address VARCHAR(200) NOT NULL DEFAULT '',
        address_number VARCHAR(20) NOT NULL DEFAULT '',
        address_type VARCHAR(50) NOT NULL DEFAULT '',
        municipio VARCHAR(100) NOT NULL DEFAULT '',
        estado VARCHAR(2) NOT NULL DEFAULT '',
        reference TEXT,
        created_at TIMESTAMP NOT NULL,
        updated_at TIMESTAMP
    )
    """,
]


async def create_all(conn: AsyncConnection) -> None:
    for ddl in TABLES:
        await conn.execute(text(ddl))
