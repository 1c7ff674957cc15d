"""
Order Service — コマンドハンドラ (CQRS の Write 側)

注文ヘッダと明細の書き込み (Order Writer)。

Checkout Saga は「ヘッダ作成 → 明細一括登録」を別々のコマンドとして呼ぶ。
2つは1つのトランザクションにまとめられていないため、明細登録に
失敗するとヘッダだけが pending のまま残る (孤立注文)。
孤立注文は自動削除せず、管理者が /queries/orders/orphaned で確認して
手動でキャンセルする。
"""

import logging
from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .aggregate import PENDING, InvalidStatusTransition, OrderAggregate

logger = logging.getLogger(__name__)


async def _load(session: AsyncSession, order_id: UUID) -> OrderAggregate | None:
    result = await session.execute(
        text("SELECT id, user_id, total, status FROM orders WHERE id = :id"),
        {"id": str(order_id)},
    )
    row = result.fetchone()
    return OrderAggregate.from_row(row) if row else None


async def create_order(
    session: AsyncSession,
    user_id: str,
    total: float,
) -> OrderAggregate:
    """
    注文ヘッダ作成コマンド

    合計金額は Checkout Saga が明細の解決済み単価から計算した値を
    そのまま保存する (ここでは再計算しない)。
    """
    order_id = uuid4()
    now = datetime.now(timezone.utc)
    await session.execute(
        text("""
            INSERT INTO orders (id, user_id, total, status, created_at, updated_at)
            VALUES (:id, :user_id, :total, :status, :now, :now)
        """),
        {
            "id": str(order_id),
            "user_id": user_id,
            "total": total,
            "status": PENDING,
            "now": now,
        },
    )
    await session.commit()
    logger.info("Order created: %s user=%s total=%.2f", order_id, user_id, total)
    return OrderAggregate(str(order_id), user_id, total, PENDING)


async def add_items(
    session: AsyncSession,
    order_id: UUID,
    items: list[dict],
) -> dict | None:
    """
    注文明細の一括登録コマンド

    明細は注文ごとに1回だけ書き込める (以後は不変)。
    注文が存在しない場合は None を返す。
    """
    agg = await _load(session, order_id)
    if not agg:
        return None
    if not agg.accepts_items:
        return {"success": False, "reason": f"Order is {agg.status}"}

    result = await session.execute(
        text("SELECT COUNT(*) AS n FROM order_items WHERE order_id = :id"),
        {"id": str(order_id)},
    )
    if result.fetchone().n:
        return {"success": False, "reason": "Order items already recorded"}

    await session.execute(
        text("""
            INSERT INTO order_items (order_id, position, medicine_id, quantity, unit_price)
            VALUES (:order_id, :position, :medicine_id, :quantity, :unit_price)
        """),
        [
            {
                "order_id": str(order_id),
                "position": position,
                "medicine_id": str(item["product_id"]),
                "quantity": item["quantity"],
                "unit_price": item["unit_price"],
            }
            for position, item in enumerate(items, start=1)
        ],
    )
    await session.commit()
    return {"success": True, "order_id": str(order_id), "item_count": len(items)}


async def set_order_status(
    session: AsyncSession,
    order_id: UUID,
    status: str,
) -> OrderAggregate | None:
    """
    注文ステータス変更コマンド（管理画面）

    pending の注文だけを completed / cancelled に変更できる。
    不正な遷移は InvalidStatusTransition を送出する。
    """
    agg = await _load(session, order_id)
    if not agg:
        return None
    agg.change_status(status)

    result = await session.execute(
        text("""
            UPDATE orders
            SET status = :status, updated_at = :now
            WHERE id = :id AND status = :pending
        """),
        {
            "status": agg.status,
            "now": datetime.now(timezone.utc),
            "id": str(order_id),
            "pending": PENDING,
        },
    )
    if result.rowcount == 0:
        # 他の管理者が先に変更した
        await session.rollback()
        current = await _load(session, order_id)
        raise InvalidStatusTransition(current.status, status)
    await session.commit()
    logger.info("Order %s -> %s", order_id, agg.status)
    return agg
