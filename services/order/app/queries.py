"""
Order Service — クエリハンドラ (CQRS の Read 側)

管理画面の注文一覧と、Notification Service が使う注文詳細を返す。
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


def _isoformat(value: datetime | str | None) -> str | None:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _order_to_dict(row) -> dict:
    return {
        "id": str(row.id),
        "user_id": row.user_id,
        "total": float(row.total),
        "status": row.status,
        "created_at": _isoformat(row.created_at),
        "updated_at": _isoformat(row.updated_at),
    }


async def get_order(session: AsyncSession, order_id: UUID) -> dict | None:
    """注文ヘッダと明細 (登録順) を返す。"""
    result = await session.execute(
        text("SELECT * FROM orders WHERE id = :id"),
        {"id": str(order_id)},
    )
    row = result.fetchone()
    if not row:
        return None

    items = await session.execute(
        text("""
            SELECT medicine_id, quantity, unit_price
            FROM order_items
            WHERE order_id = :id
            ORDER BY position
        """),
        {"id": str(order_id)},
    )
    order = _order_to_dict(row)
    order["items"] = [
        {
            "product_id": str(item.medicine_id),
            "quantity": item.quantity,
            "unit_price": float(item.unit_price),
        }
        for item in items.fetchall()
    ]
    return order


async def list_orders(
    session: AsyncSession,
    status: str | None = None,
    user_id: str | None = None,
) -> list[dict]:
    """注文一覧 (新しい順)。status / user_id で絞り込める。"""
    sql = "SELECT * FROM orders WHERE 1 = 1"
    params: dict = {}
    if status:
        sql += " AND status = :status"
        params["status"] = status
    if user_id:
        sql += " AND user_id = :user_id"
        params["user_id"] = user_id
    result = await session.execute(text(sql + " ORDER BY created_at DESC"), params)
    return [_order_to_dict(row) for row in result.fetchall()]


async def list_orphaned_orders(session: AsyncSession) -> list[dict]:
    """
    孤立注文の一覧

    ヘッダは作成されたが明細が1件も書き込まれていない pending 注文。
    管理者が内容を確認して手動でキャンセルする。
    """
    result = await session.execute(
        text("""
            SELECT * FROM orders o
            WHERE o.status = 'pending'
              AND NOT EXISTS (
                  SELECT 1 FROM order_items i WHERE i.order_id = o.id
              )
            ORDER BY o.created_at ASC
        """),
    )
    return [_order_to_dict(row) for row in result.fetchall()]
