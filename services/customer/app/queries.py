"""
Customer Service — クエリハンドラ (CQRS Read 側)

プロフィールと一緒に「購入に必要な項目が揃っているか」を返す。
Checkout Saga はこの profile_complete を見て注文を受け付けるか決める。
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# 配送と請求に必要な項目
REQUIRED_FIELDS = (
    "name",
    "cpf_cnpj",
    "phone1",
    "cep",
    "address",
    "address_number",
    "address_type",
    "municipio",
    "estado",
)

PROFILE_FIELDS = REQUIRED_FIELDS + ("email", "phone2", "reference")


def missing_fields(profile: dict) -> list[str]:
    return [f for f in REQUIRED_FIELDS if not str(profile.get(f) or "").strip()]


def _isoformat(value: datetime | str | None) -> str | None:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _to_dict(row) -> dict:
    profile = {
        "id": str(row.id),
        "user_id": row.user_id,
        **{f: getattr(row, f) for f in PROFILE_FIELDS},
        "created_at": _isoformat(row.created_at),
        "updated_at": _isoformat(row.updated_at),
    }
    missing = missing_fields(profile)
    profile["missing_fields"] = missing
    profile["profile_complete"] = not missing
    return profile


async def get_customer(session: AsyncSession, user_id: str) -> dict | None:
    result = await session.execute(
        text("SELECT * FROM customers WHERE user_id = :user_id"),
        {"user_id": user_id},
    )
    row = result.fetchone()
    if not row:
        return None
    return _to_dict(row)


async def list_customers(session: AsyncSession) -> list[dict]:
    """顧客一覧（管理画面）"""
    result = await session.execute(text("SELECT * FROM customers ORDER BY name"))
    return [_to_dict(row) for row in result.fetchall()]
