"""
Inventory Service — コマンドハンドラ (CQRS Write 側)

在庫台帳 (Stock Ledger) への書き込みを処理する。

- 商品 (medicine) の登録・更新・削除 (管理画面から)
- 在庫調整・プロモーション割引の適用/解除 (管理画面から)
- 在庫の引き落とし (Checkout Saga から商品ごとに呼ばれる)

引き落とし・在庫調整 (delta) は条件付き UPDATE で行い、読み取った値を
書き戻さない。同時実行でも stock が 0 未満にならないことと、
他の更新を上書きしないことをデータベース側で保証する。
"""

import logging
from datetime import date, datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from . import queries

logger = logging.getLogger(__name__)

# update_product で変更を許可するカラム (stock / promo は専用コマンドで扱う)
UPDATABLE_FIELDS = (
    "name",
    "dosage",
    "type",
    "description",
    "image_url",
    "price",
    "wholesale_price",
    "expires_at",
    "requires_prescription",
)

# null を指定するとクリアできるカラム (それ以外の null は「変更なし」)
NULLABLE_FIELDS = ("image_url", "expires_at")


async def create_product(
    session: AsyncSession,
    name: str,
    dosage: str,
    medicine_type: str,
    price: float,
    wholesale_price: float,
    stock: int = 0,
    description: str = "",
    image_url: str | None = None,
    expires_at: date | None = None,
    promo_percent: float = 0,
    requires_prescription: bool = False,
) -> dict:
    """商品登録コマンド"""
    product_id = uuid4()
    await session.execute(
        text("""
            INSERT INTO medicines
                (id, name, dosage, type, description, image_url, price, wholesale_price,
                 stock, expires_at, promo_percent, requires_prescription, updated_at)
            VALUES
                (:id, :name, :dosage, :type, :description, :image_url, :price, :wholesale_price,
                 :stock, :expires_at, :promo_percent, :requires_prescription, :now)
        """),
        {
            "id": str(product_id),
            "name": name,
            "dosage": dosage,
            "type": medicine_type,
            "description": description,
            "image_url": image_url,
            "price": price,
            "wholesale_price": wholesale_price,
            "stock": stock,
            "expires_at": expires_at,
            "promo_percent": promo_percent,
            "requires_prescription": requires_prescription,
            "now": datetime.now(timezone.utc),
        },
    )
    await session.commit()
    logger.info("Product created: %s (%s)", product_id, name)
    return await queries.get_product(session, product_id)


async def update_product(
    session: AsyncSession,
    product_id: UUID,
    changes: dict,
) -> dict | None:
    """
    商品更新コマンド

    価格を変更しても既存の注文明細 (order_items.unit_price) には影響しない。
    明細は注文時の価格スナップショットを保持している。
    """
    fields = {
        k: v
        for k, v in changes.items()
        if k in UPDATABLE_FIELDS and (v is not None or k in NULLABLE_FIELDS)
    }
    if fields:
        assignments = ", ".join(f"{k} = :{k}" for k in fields)
        result = await session.execute(
            text(f"UPDATE medicines SET {assignments}, updated_at = :now WHERE id = :id"),
            {**fields, "now": datetime.now(timezone.utc), "id": str(product_id)},
        )
        if result.rowcount == 0:
            await session.rollback()
            return None
        await session.commit()
    return await queries.get_product(session, product_id)


async def delete_product(session: AsyncSession, product_id: UUID) -> bool:
    """商品削除コマンド"""
    result = await session.execute(
        text("DELETE FROM medicines WHERE id = :id"),
        {"id": str(product_id)},
    )
    await session.commit()
    if result.rowcount:
        logger.info("Product deleted: %s", product_id)
    return bool(result.rowcount)


async def adjust_stock(
    session: AsyncSession,
    product_id: UUID,
    delta: int | None = None,
    stock: int | None = None,
) -> dict | None:
    """
    在庫調整コマンド（管理画面）

    delta (増減) か stock (絶対値) のどちらかを指定する。
    delta は条件付き UPDATE (stock + delta >= 0) で適用し、
    同時に走る引き落としを上書きしない。
    結果が負になる調整は適用せずに失敗を返す。
    """
    now = datetime.now(timezone.utc)
    if stock is not None:
        result = await session.execute(
            text("""
                UPDATE medicines SET stock = :stock, updated_at = :now
                WHERE id = :id
                RETURNING stock
            """),
            {"stock": stock, "now": now, "id": str(product_id)},
        )
    else:
        result = await session.execute(
            text("""
                UPDATE medicines SET stock = stock + :delta, updated_at = :now
                WHERE id = :id AND stock + :delta >= 0
                RETURNING stock
            """),
            {"delta": delta, "now": now, "id": str(product_id)},
        )
    row = result.fetchone()
    if row:
        await session.commit()
        logger.info("Stock adjusted: %s -> %s", product_id, row.stock)
        return {"success": True, "product_id": str(product_id), "stock": row.stock}

    await session.rollback()
    product = await queries.get_product(session, product_id)
    if not product:
        return None
    return {
        "success": False,
        "reason": f"Stock cannot be negative: current={product['stock']}, delta={delta}",
    }


async def set_promo(
    session: AsyncSession,
    product_id: UUID,
    percent: float,
) -> dict | None:
    """プロモーション割引の適用 (percent=0 で解除)"""
    result = await session.execute(
        text("UPDATE medicines SET promo_percent = :pct, updated_at = :now WHERE id = :id"),
        {"pct": percent, "now": datetime.now(timezone.utc), "id": str(product_id)},
    )
    if result.rowcount == 0:
        await session.rollback()
        return None
    await session.commit()
    return await queries.get_product(session, product_id)


async def decrement_stock(
    session: AsyncSession,
    product_id: UUID,
    amount: int,
    order_id: UUID | None = None,
) -> dict | None:
    """
    在庫引き落としコマンド（Checkout Saga から呼ばれる）

    1. 条件付き UPDATE (stock >= amount) で引き落とす
    2. 条件を満たさない場合 (同時注文による競合) は stock < amount の
       条件付きで 0 にクランプし、売り越し (oversold) として警告ログを残す
    3. どちらにも一致しない場合は間に補充が入ったので 1 からやり直す

    商品が存在しない場合は None を返す。
    """
    params = {"amount": amount, "id": str(product_id)}
    while True:
        params["now"] = datetime.now(timezone.utc)
        result = await session.execute(
            text("""
                UPDATE medicines
                SET stock = stock - :amount, updated_at = :now
                WHERE id = :id AND stock >= :amount
                RETURNING stock
            """),
            params,
        )
        row = result.fetchone()
        if row:
            await session.commit()
            return {"product_id": str(product_id), "stock": row.stock, "clamped": False}

        # 在庫不足 → 0 にクランプ
        result = await session.execute(
            text("""
                UPDATE medicines
                SET stock = 0, updated_at = :now
                WHERE id = :id AND stock < :amount
                RETURNING stock
            """),
            params,
        )
        if result.fetchone():
            await session.commit()
            logger.warning(
                "Oversold: product=%s order=%s requested=%s; stock clamped to 0",
                product_id,
                order_id,
                amount,
            )
            return {"product_id": str(product_id), "stock": 0, "clamped": True}

        result = await session.execute(
            text("SELECT 1 FROM medicines WHERE id = :id"),
            {"id": str(product_id)},
        )
        if not result.fetchone():
            await session.rollback()
            return None
