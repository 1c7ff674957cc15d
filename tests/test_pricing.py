"""Tests for cart value objects and price resolution."""

from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from services.checkout.app.cart import Cart, CartLine, normalize_line
from services.checkout.app.pricing import (
    effective_price_type,
    order_total,
    price_cart,
    resolve_price,
)


def line(**kwargs):
    kwargs.setdefault("product_id", uuid4())
    kwargs.setdefault("quantity", 1)
    return CartLine(**kwargs)


class TestEffectivePriceType:
    def test_explicit_retail_even_for_large_quantity(self):
        assert effective_price_type(line(quantity=50, price_type="retail")) == "retail"

    def test_explicit_wholesale(self):
        assert effective_price_type(line(quantity=10, price_type="wholesale")) == "wholesale"

    def test_implicit_threshold(self):
        assert effective_price_type(line(quantity=9)) == "retail"
        assert effective_price_type(line(quantity=10)) == "wholesale"


class TestResolvePrice:
    def test_retail(self):
        assert resolve_price(line(quantity=3), 10.00, 8.00) == Decimal("10.00")

    def test_wholesale_by_quantity(self):
        assert resolve_price(line(quantity=12), 10.00, 8.00) == Decimal("8.00")

    def test_promo_applies_to_base_price(self):
        assert resolve_price(line(), 20.00, 15.00, promo_percent=10) == Decimal("18.00")

    def test_promo_applies_to_wholesale(self):
        result = resolve_price(line(quantity=10), 20.00, 15.00, promo_percent=10)
        assert result == Decimal("13.50")

    def test_frozen_line_promo_wins_over_live_promo(self):
        result = resolve_price(line(promo_percent=50), 20.00, 15.00, promo_percent=10)
        assert result == Decimal("10.00")

    def test_frozen_zero_promo_ignores_live_promo(self):
        result = resolve_price(line(promo_percent=0), 20.00, 15.00, promo_percent=10)
        assert result == Decimal("20.00")

    def test_rounds_half_up_to_cents(self):
        # 9.99 * 0.85 = 8.4915
        assert resolve_price(line(), 9.99, 9.00, promo_percent=15) == Decimal("8.49")
        # 0.05 * 0.5 = 0.025
        assert resolve_price(line(), 0.05, 0.05, promo_percent=50) == Decimal("0.03")


class TestCart:
    def test_cart_requires_lines(self):
        with pytest.raises(ValidationError):
            Cart(lines=())

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            line(quantity=0)

    def test_promo_percent_bounds(self):
        with pytest.raises(ValidationError):
            line(promo_percent=101)

    def test_lines_are_immutable(self):
        cart_line = line(quantity=2)
        with pytest.raises(ValidationError):
            cart_line.quantity = 5

    def test_requested_quantities_are_summed_per_product(self):
        pid = uuid4()
        other = uuid4()
        cart = Cart(
            lines=(
                line(product_id=pid, quantity=2, price_type="retail"),
                line(product_id=other, quantity=1),
                line(product_id=pid, quantity=10, price_type="wholesale"),
            )
        )
        assert cart.product_ids() == [str(pid), str(other)]
        assert cart.requested_quantities() == {str(pid): 12, str(other): 1}

    def test_normalize_bumps_wholesale_to_minimum(self):
        assert normalize_line(line(quantity=3, price_type="wholesale")).quantity == 10
        assert normalize_line(line(quantity=3, price_type="retail")).quantity == 3
        assert normalize_line(line(quantity=3)).quantity == 3


class TestPriceCart:
    def test_total_is_sum_of_line_extensions(self):
        a, b = uuid4(), uuid4()
        cart = Cart(
            lines=(
                line(product_id=a, quantity=3),
                line(product_id=b, quantity=10),
            )
        )
        catalog = {
            str(a): {"name": "A", "price": 10.00, "wholesale_price": 9.00, "promo_percent": 0},
            str(b): {"name": "B", "price": 2.50, "wholesale_price": 1.99, "promo_percent": 10},
        }

        priced = price_cart(cart, catalog)

        assert [p.unit_price for p in priced] == [Decimal("10.00"), Decimal("1.79")]
        assert [p.price_type for p in priced] == ["retail", "wholesale"]
        assert order_total(priced) == Decimal("47.90")
        assert priced[1].as_order_item() == {
            "product_id": str(b),
            "quantity": 10,
            "unit_price": 1.79,
        }
