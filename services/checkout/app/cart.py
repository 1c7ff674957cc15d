"""
Checkout Service — カート (値オブジェクト)

カートはクライアント側の一時的な状態で、チェックアウトが成功するまで
永続化されない。サーバー側では不変の値としてチェックアウトに渡す。
"""

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

PriceType = Literal["retail", "wholesale"]

# 卸売価格の最低数量
WHOLESALE_MIN_QUANTITY = 10


class CartLine(BaseModel):
    """
    カートの1行

    price_type を省略すると数量で決まる (10個以上で卸売)。
    promo_percent はカート追加時に固定した割引率で、省略時は
    チェックアウト時点の商品の割引率を使う。
    """

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int = Field(gt=0)
    price_type: PriceType | None = None
    promo_percent: float | None = Field(default=None, ge=0, le=100)


class Cart(BaseModel):
    model_config = ConfigDict(frozen=True)

    lines: tuple[CartLine, ...] = Field(min_length=1)

    def product_ids(self) -> list[str]:
        """重複を除いた商品 ID (カート内の順序を保つ)"""
        return list(dict.fromkeys(str(line.product_id) for line in self.lines))

    def requested_quantities(self) -> dict[str, int]:
        """商品ごとの要求数量の合計 (同じ商品が複数行にある場合は合算)"""
        totals: dict[str, int] = {}
        for line in self.lines:
            pid = str(line.product_id)
            totals[pid] = totals.get(pid, 0) + line.quantity
        return totals


def normalize_line(line: CartLine) -> CartLine:
    """卸売指定で最低数量に満たない行は数量を 10 に引き上げる (カート追加時)"""
    if line.price_type == "wholesale" and line.quantity < WHOLESALE_MIN_QUANTITY:
        return line.model_copy(update={"quantity": WHOLESALE_MIN_QUANTITY})
    return line
