"""
Inventory Service — クエリハンドラ (CQRS Read 側)
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from .medicine_types import get_medicine_type_label


def _isoformat(value: date | datetime | str | None) -> str | None:
    # SQLite はテキストで返すのでそのまま使う
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _to_dict(row) -> dict:
    return {
        "id": str(row.id),
        "name": row.name,
        "dosage": row.dosage,
        "type": row.type,
        "type_label": get_medicine_type_label(row.type),
        "description": row.description,
        "image_url": row.image_url,
        "price": float(row.price),
        "wholesale_price": float(row.wholesale_price),
        "stock": row.stock,
        "expires_at": _isoformat(row.expires_at),
        "promo_percent": float(row.promo_percent or 0),
        "requires_prescription": bool(row.requires_prescription),
        "updated_at": _isoformat(row.updated_at),
    }


async def get_product(session: AsyncSession, product_id: UUID) -> dict | None:
    result = await session.execute(
        text("SELECT * FROM medicines WHERE id = :id"),
        {"id": str(product_id)},
    )
    row = result.fetchone()
    if not row:
        return None
    return _to_dict(row)


async def list_products(
    session: AsyncSession,
    search: str | None = None,
    medicine_type: str | None = None,
) -> list[dict]:
    """商品一覧 (名前・説明の部分一致検索とカテゴリ絞り込み)"""
    sql = "SELECT * FROM medicines WHERE 1 = 1"
    params: dict = {}
    if search:
        sql += " AND (LOWER(name) LIKE :term OR LOWER(description) LIKE :term)"
        params["term"] = f"%{search.lower()}%"
    if medicine_type:
        sql += " AND type = :type"
        params["type"] = medicine_type
    result = await session.execute(text(sql + " ORDER BY name"), params)
    return [_to_dict(row) for row in result.fetchall()]


async def get_stock(session: AsyncSession, product_ids: list[UUID]) -> dict:
    """
    在庫台帳の照会 — Checkout Saga の検証ステップで使う。

    戻り値は {product_id: {name, stock, price, wholesale_price, promo_percent}}。
    見つからない ID は "missing" にまとめて返し、中断するかは呼び出し側が決める。
    """
    ids = sorted({str(pid) for pid in product_ids})
    if not ids:
        return {"stock": {}, "missing": []}

    result = await session.execute(
        text("""
            SELECT id, name, stock, price, wholesale_price, promo_percent
            FROM medicines
            WHERE id IN :ids
        """).bindparams(bindparam("ids", expanding=True)),
        {"ids": ids},
    )
    stock = {
        str(row.id): {
            "name": row.name,
            "stock": row.stock,
            "price": float(row.price),
            "wholesale_price": float(row.wholesale_price),
            "promo_percent": float(row.promo_percent or 0),
        }
        for row in result.fetchall()
    }
    return {"stock": stock, "missing": [pid for pid in ids if pid not in stock]}
