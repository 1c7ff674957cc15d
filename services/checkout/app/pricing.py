"""
Checkout Service — 価格解決

小売/卸売/数量しきい値/割引の分岐を1つの純粋関数 resolve_price に
まとめる。I/O を持たないので単体でテストできる。

    基本価格 = wholesale  (price_type = wholesale、または未指定かつ数量 >= 10)
             = retail     (それ以外)
    解決価格 = 基本価格 × (1 − 割引率 / 100)   → 小数2桁に四捨五入

金額は Decimal で計算し、API の境界でだけ float に変換する。
"""

from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel

from .cart import WHOLESALE_MIN_QUANTITY, Cart, CartLine

CENT = Decimal("0.01")


def to_money(value: float | int | str | Decimal) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def effective_price_type(line: CartLine) -> str:
    if line.price_type is not None:
        return line.price_type
    return "wholesale" if line.quantity >= WHOLESALE_MIN_QUANTITY else "retail"


def resolve_price(
    line: CartLine,
    retail_price: float | Decimal,
    wholesale_price: float | Decimal,
    promo_percent: float | None = None,
) -> Decimal:
    """
    1単位あたりの解決価格

    行に固定された割引率があればそれを優先し、なければ promo_percent
    (チェックアウト時点の商品の割引率) を使う。
    """
    if effective_price_type(line) == "wholesale":
        base = Decimal(str(wholesale_price))
    else:
        base = Decimal(str(retail_price))

    percent = line.promo_percent if line.promo_percent is not None else promo_percent
    if percent:
        base = base * (Decimal(1) - Decimal(str(percent)) / Decimal(100))
    return base.quantize(CENT, rounding=ROUND_HALF_UP)


class PricedLine(BaseModel):
    product_id: str
    name: str
    quantity: int
    price_type: str
    unit_price: Decimal
    line_total: Decimal

    def as_order_item(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": float(self.unit_price),
        }

    def as_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "price_type": self.price_type,
            "unit_price": float(self.unit_price),
            "line_total": float(self.line_total),
        }


def price_cart(cart: Cart, catalog: dict[str, dict]) -> list[PricedLine]:
    """
    カートの全行を価格解決する。

    catalog は Inventory Service の在庫照会結果
    ({product_id: {name, stock, price, wholesale_price, promo_percent}})。
    """
    priced = []
    for line in cart.lines:
        product = catalog[str(line.product_id)]
        unit_price = resolve_price(
            line,
            product["price"],
            product["wholesale_price"],
            product.get("promo_percent"),
        )
        priced.append(
            PricedLine(
                product_id=str(line.product_id),
                name=product["name"],
                quantity=line.quantity,
                price_type=effective_price_type(line),
                unit_price=unit_price,
                line_total=unit_price * line.quantity,
            )
        )
    return priced


def order_total(lines: list[PricedLine]) -> Decimal:
    return sum((line.line_total for line in lines), Decimal("0.00")).quantize(CENT)
