"""Tests for the inventory service (catalog + stock ledger)."""

from types import SimpleNamespace
from uuid import uuid4

from conftest import product_payload
from services.inventory.app import commands


async def create(client, **overrides):
    resp = await client.post("/commands/products", json=product_payload(**overrides))
    assert resp.status_code == 201
    return resp.json()


class TestCatalog:
    async def test_create_and_get(self, inventory_client):
        product = await create(inventory_client, promo_percent=5)

        resp = await inventory_client.get(f"/queries/products/{product['id']}")

        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "Dipirona"
        assert body["type_label"] == "Analgésico"
        assert body["price"] == 10.00
        assert body["wholesale_price"] == 8.00
        assert body["stock"] == 5
        assert body["promo_percent"] == 5.0
        assert body["requires_prescription"] is False

    async def test_get_unknown_product(self, inventory_client):
        resp = await inventory_client.get(f"/queries/products/{uuid4()}")
        assert resp.status_code == 404

    async def test_negative_price_is_rejected(self, inventory_client):
        resp = await inventory_client.post(
            "/commands/products", json=product_payload(price=-1)
        )
        assert resp.status_code == 422

    async def test_search_and_type_filter(self, inventory_client):
        await create(inventory_client)
        await create(
            inventory_client,
            name="Amoxicilina",
            type="Antibiotic",
            description="Antibiótico de amplo espectro",
        )

        by_name = await inventory_client.get("/queries/products", params={"search": "dipi"})
        by_description = await inventory_client.get(
            "/queries/products", params={"search": "ESPECTRO"}
        )
        by_type = await inventory_client.get(
            "/queries/products", params={"type": "Antibiotic"}
        )

        assert [p["name"] for p in by_name.json()] == ["Dipirona"]
        assert [p["name"] for p in by_description.json()] == ["Amoxicilina"]
        assert [p["name"] for p in by_type.json()] == ["Amoxicilina"]

    async def test_update_leaves_stock_alone(self, inventory_client):
        product = await create(inventory_client)

        resp = await inventory_client.put(
            f"/commands/products/{product['id']}", json={"price": 12.50, "stock": 99}
        )

        assert resp.status_code == 200
        assert resp.json()["price"] == 12.50
        assert resp.json()["stock"] == 5

    async def test_null_does_not_clear_required_fields(self, inventory_client):
        product = await create(inventory_client)

        resp = await inventory_client.put(
            f"/commands/products/{product['id']}",
            json={"name": None, "price": None, "requires_prescription": None, "dosage": "1g"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["name"] == "Dipirona"
        assert body["price"] == 10.00
        assert body["requires_prescription"] is False
        assert body["dosage"] == "1g"

    async def test_null_clears_optional_fields(self, inventory_client):
        product = await create(
            inventory_client, image_url="https://img.example/d.png", expires_at="2027-01-31"
        )

        resp = await inventory_client.put(
            f"/commands/products/{product['id']}",
            json={"image_url": None, "expires_at": None},
        )

        assert resp.status_code == 200
        assert resp.json()["image_url"] is None
        assert resp.json()["expires_at"] is None

    async def test_update_unknown_product(self, inventory_client):
        resp = await inventory_client.put(f"/commands/products/{uuid4()}", json={"price": 1})
        assert resp.status_code == 404

    async def test_delete(self, inventory_client):
        product = await create(inventory_client)

        resp = await inventory_client.delete(f"/commands/products/{product['id']}")
        again = await inventory_client.delete(f"/commands/products/{product['id']}")

        assert resp.status_code == 204
        assert again.status_code == 404

    async def test_medicine_types(self, inventory_client):
        resp = await inventory_client.get("/queries/medicine-types")
        assert resp.json()["Antibiotic"] == "Antibiótico"


class TestStockQuery:
    async def test_returns_live_stock_and_prices(self, inventory_client):
        a = await create(inventory_client)
        b = await create(inventory_client, name="Omeprazol", price=20.00, promo_percent=10)

        resp = await inventory_client.get(
            "/queries/stock", params={"ids": [a["id"], b["id"]]}
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body[a["id"]]["stock"] == 5
        assert body[b["id"]]["price"] == 20.00
        assert body[b["id"]]["promo_percent"] == 10.0

    async def test_unknown_ids_are_reported(self, inventory_client):
        a = await create(inventory_client)
        ghost = str(uuid4())

        resp = await inventory_client.get("/queries/stock", params={"ids": [a["id"], ghost]})

        assert resp.status_code == 404
        assert resp.json()["detail"]["missing"] == [ghost]


class TestDecrement:
    async def test_decrement_within_stock(self, inventory_client):
        product = await create(inventory_client, stock=5)

        resp = await inventory_client.post(
            f"/commands/inventory/{product['id']}/decrement", json={"amount": 3}
        )

        assert resp.status_code == 200
        assert resp.json() == {"product_id": product["id"], "stock": 2, "clamped": False}

    async def test_decrement_to_exactly_zero(self, inventory_client):
        product = await create(inventory_client, stock=5)

        resp = await inventory_client.post(
            f"/commands/inventory/{product['id']}/decrement", json={"amount": 5}
        )

        assert resp.json()["stock"] == 0
        assert resp.json()["clamped"] is False

    async def test_oversold_is_clamped_to_zero(self, inventory_client, caplog):
        product = await create(inventory_client, stock=2)

        resp = await inventory_client.post(
            f"/commands/inventory/{product['id']}/decrement",
            json={"amount": 5, "order_id": str(uuid4())},
        )

        assert resp.json() == {"product_id": product["id"], "stock": 0, "clamped": True}
        assert "Oversold" in caplog.text
        stored = await inventory_client.get(f"/queries/products/{product['id']}")
        assert stored.json()["stock"] == 0

    async def test_amount_must_be_positive(self, inventory_client):
        product = await create(inventory_client)

        resp = await inventory_client.post(
            f"/commands/inventory/{product['id']}/decrement", json={"amount": 0}
        )

        assert resp.status_code == 422

    async def test_unknown_product(self, inventory_client):
        resp = await inventory_client.post(
            f"/commands/inventory/{uuid4()}/decrement", json={"amount": 1}
        )
        assert resp.status_code == 404


class TestAdminStock:
    async def test_adjust_by_delta(self, inventory_client):
        product = await create(inventory_client, stock=5)

        resp = await inventory_client.post(
            f"/commands/products/{product['id']}/stock", json={"delta": 7}
        )

        assert resp.json()["stock"] == 12

    async def test_set_absolute_stock(self, inventory_client):
        product = await create(inventory_client, stock=5)

        resp = await inventory_client.post(
            f"/commands/products/{product['id']}/stock", json={"stock": 0}
        )

        assert resp.json()["stock"] == 0

    async def test_negative_result_is_refused(self, inventory_client):
        product = await create(inventory_client, stock=5)

        resp = await inventory_client.post(
            f"/commands/products/{product['id']}/stock", json={"delta": -6}
        )

        assert resp.status_code == 409
        stored = await inventory_client.get(f"/queries/products/{product['id']}")
        assert stored.json()["stock"] == 5

    async def test_delta_and_stock_are_exclusive(self, inventory_client):
        product = await create(inventory_client)

        both = await inventory_client.post(
            f"/commands/products/{product['id']}/stock", json={"delta": 1, "stock": 1}
        )
        neither = await inventory_client.post(
            f"/commands/products/{product['id']}/stock", json={}
        )

        assert both.status_code == 422
        assert neither.status_code == 422

    async def test_apply_and_remove_promo(self, inventory_client):
        product = await create(inventory_client)

        applied = await inventory_client.post(
            f"/commands/products/{product['id']}/promo", json={"percent": 15}
        )
        removed = await inventory_client.delete(f"/commands/products/{product['id']}/promo")

        assert applied.json()["promo_percent"] == 15.0
        assert removed.json()["promo_percent"] == 0.0

    async def test_promo_percent_bounds(self, inventory_client):
        product = await create(inventory_client)

        zero = await inventory_client.post(
            f"/commands/products/{product['id']}/promo", json={"percent": 0}
        )
        too_big = await inventory_client.post(
            f"/commands/products/{product['id']}/promo", json={"percent": 120}
        )

        assert zero.status_code == 422
        assert too_big.status_code == 422


class TestReports:
    async def test_stock_report(self, inventory_client):
        await create(inventory_client, name="A", price=2.00, stock=600)
        await create(inventory_client, name="B", price=1.50, stock=150)
        await create(inventory_client, name="C", price=10.00, stock=20)

        body = (await inventory_client.get("/queries/reports/stock")).json()

        assert body["summary"] == {
            "total_products": 3,
            "total_stock": 770,
            "total_value": 1200.00 + 225.00 + 200.00,
            "critical_products": 1,
        }
        assert [(r["name"], r["level"]) for r in body["rows"]] == [
            ("A", "high"),
            ("B", "normal"),
            ("C", "low"),
        ]

    async def test_critical_stock_report(self, inventory_client):
        await create(inventory_client, name="A", stock=600)
        await create(inventory_client, name="B", stock=70)
        await create(inventory_client, name="C", stock=10)

        body = (await inventory_client.get("/queries/reports/critical-stock")).json()

        assert body["count"] == 2
        assert [(r["name"], r["priority"]) for r in body["rows"]] == [
            ("B", "low"),
            ("C", "critical"),
        ]


class ScriptedSession:
    """Returns the given rows from successive execute() calls and records the SQL."""

    def __init__(self, *rows):
        self.rows = list(rows)
        self.statements = []
        self.commits = 0

    async def execute(self, statement, params=None):
        self.statements.append(" ".join(str(statement).split()))
        row = self.rows.pop(0)
        return SimpleNamespace(fetchone=lambda: row)

    async def commit(self):
        self.commits += 1

    async def rollback(self):
        pass


class TestConditionalStockWrites:
    async def test_delta_is_applied_by_the_store(self):
        session = ScriptedSession(SimpleNamespace(stock=10))

        result = await commands.adjust_stock(session, uuid4(), delta=5)

        assert result["stock"] == 10
        # 読み取り無しの1文で加算する
        [statement] = session.statements
        assert "SET stock = stock + :delta" in statement
        assert "stock + :delta >= 0" in statement

    async def test_clamp_only_applies_while_still_short(self):
        session = ScriptedSession(None, SimpleNamespace(stock=0))

        result = await commands.decrement_stock(session, uuid4(), 5)

        assert result["clamped"] is True
        assert "WHERE id = :id AND stock < :amount" in session.statements[1]
        assert session.commits == 1

    async def test_restock_during_clamp_retries_decrement(self):
        session = ScriptedSession(
            None,  # 在庫不足
            None,  # その間に補充され、クランプ条件に一致しない
            SimpleNamespace(exists=1),
            SimpleNamespace(stock=7),
        )

        result = await commands.decrement_stock(session, uuid4(), 5)

        assert result["clamped"] is False
        assert result["stock"] == 7
        assert session.statements[0] == session.statements[3]
        assert not any("SET stock = 0" in s and "stock <" not in s for s in session.statements)

    async def test_unknown_product_is_not_retried(self):
        session = ScriptedSession(None, None, None)

        assert await commands.decrement_stock(session, uuid4(), 5) is None
        assert len(session.statements) == 3

    async def test_adjust_after_checkout_decrement_keeps_both(self, inventory_client):
        product = await create(inventory_client, stock=10)

        await inventory_client.post(
            f"/commands/inventory/{product['id']}/decrement", json={"amount": 5}
        )
        resp = await inventory_client.post(
            f"/commands/products/{product['id']}/stock", json={"delta": 5}
        )

        assert resp.json()["stock"] == 10
