"""
Customer Service — コマンドハンドラ (CQRS Write 側)

顧客登録・プロフィール更新。user_id をキーにした UPSERT で、
登録時とプロフィール補完時の両方を同じコマンドで扱う。
このサービスから顧客を削除することはない。
"""

import logging
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from . import queries
from .queries import PROFILE_FIELDS

logger = logging.getLogger(__name__)


async def upsert_customer(session: AsyncSession, user_id: str, profile: dict) -> dict:
    """顧客プロフィールの登録/更新コマンド"""
    now = datetime.now(timezone.utc)
    values = {}
    for field in PROFILE_FIELDS:
        value = profile.get(field)
        values[field] = value.strip() if isinstance(value, str) else value
    # 任意項目は空文字を NULL として保存する
    for field in ("phone2", "reference"):
        values[field] = values[field] or None

    columns = ", ".join(PROFILE_FIELDS)
    placeholders = ", ".join(f":{f}" for f in PROFILE_FIELDS)
    updates = ", ".join(f"{f} = excluded.{f}" for f in PROFILE_FIELDS)
    await session.execute(
        text(f"""
            INSERT INTO customers (id, user_id, {columns}, created_at, updated_at)
            VALUES (:id, :user_id, {placeholders}, :now, :now)
            ON CONFLICT (user_id) DO UPDATE SET
                {updates},
                updated_at = excluded.updated_at
        """),
        {"id": str(uuid4()), "user_id": user_id, "now": now, **values},
    )
    await session.commit()
    logger.info("Customer profile saved: user=%s", user_id)
    return await queries.get_customer(session, user_id)
