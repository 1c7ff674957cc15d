"""
Inventory Service — FastAPI エントリーポイント

医薬品カタログと在庫台帳 (Stock Ledger) を管理するサービス。
CQRS パターンに従い、Command (POST/PUT/DELETE) と Query (GET) を分離する。

Checkout Saga から使われるのは次の2つ:
  - GET  /queries/stock                         在庫の一括照会 (検証ステップ)
  - POST /commands/inventory/{id}/decrement     在庫の引き落とし
"""

import os
from contextlib import asynccontextmanager
from datetime import date
from uuid import UUID

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from . import commands, queries, reports, schema
from .medicine_types import MEDICINE_TYPE_LABELS

DATABASE_URL = os.environ["DATABASE_URL"]

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await schema.create_all(conn)
    yield
    await engine.dispose()


app = FastAPI(title="Inventory Service", lifespan=lifespan)


# ── Request Models ───────────────────────────────


class CreateProductRequest(BaseModel):
    name: str = Field(min_length=1)
    dosage: str = ""
    type: str = ""
    description: str = ""
    image_url: str | None = None
    price: float = Field(ge=0)
    wholesale_price: float = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    expires_at: date | None = None
    promo_percent: float = Field(default=0, ge=0, le=100)
    requires_prescription: bool = False


class UpdateProductRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    dosage: str | None = None
    type: str | None = None
    description: str | None = None
    image_url: str | None = None
    price: float | None = Field(default=None, ge=0)
    wholesale_price: float | None = Field(default=None, ge=0)
    expires_at: date | None = None
    requires_prescription: bool | None = None


class AdjustStockRequest(BaseModel):
    delta: int | None = None
    stock: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def exactly_one(self):
        if (self.delta is None) == (self.stock is None):
            raise ValueError("Specify exactly one of 'delta' or 'stock'")
        return self


class PromoRequest(BaseModel):
    percent: float = Field(gt=0, le=100)


class DecrementRequest(BaseModel):
    amount: int = Field(gt=0)
    order_id: UUID | None = None


# ── Command Endpoints (Write 側) ─────────────────


@app.post("/commands/products", status_code=201)
async def cmd_create_product(req: CreateProductRequest):
    """商品登録コマンド（管理画面）"""
    async with async_session() as session:
        data = req.model_dump()
        medicine_type = data.pop("type")
        return await commands.create_product(session, medicine_type=medicine_type, **data)


@app.put("/commands/products/{product_id}")
async def cmd_update_product(product_id: UUID, req: UpdateProductRequest):
    """商品更新コマンド（管理画面）"""
    async with async_session() as session:
        product = await commands.update_product(
            session, product_id, req.model_dump(exclude_unset=True)
        )
        if not product:
            raise HTTPException(404, "Product not found")
        return product


@app.delete("/commands/products/{product_id}", status_code=204)
async def cmd_delete_product(product_id: UUID):
    """商品削除コマンド（管理画面）"""
    async with async_session() as session:
        if not await commands.delete_product(session, product_id):
            raise HTTPException(404, "Product not found")


@app.post("/commands/products/{product_id}/stock")
async def cmd_adjust_stock(product_id: UUID, req: AdjustStockRequest):
    """在庫調整コマンド（管理画面）"""
    async with async_session() as session:
        result = await commands.adjust_stock(session, product_id, req.delta, req.stock)
        if result is None:
            raise HTTPException(404, "Product not found")
        if not result["success"]:
            raise HTTPException(status_code=409, detail=result["reason"])
        return result


@app.post("/commands/products/{product_id}/promo")
async def cmd_apply_promo(product_id: UUID, req: PromoRequest):
    """プロモーション割引の適用"""
    async with async_session() as session:
        product = await commands.set_promo(session, product_id, req.percent)
        if not product:
            raise HTTPException(404, "Product not found")
        return product


@app.delete("/commands/products/{product_id}/promo")
async def cmd_remove_promo(product_id: UUID):
    """プロモーション割引の解除"""
    async with async_session() as session:
        product = await commands.set_promo(session, product_id, 0)
        if not product:
            raise HTTPException(404, "Product not found")
        return product


@app.post("/commands/inventory/{product_id}/decrement")
async def cmd_decrement(product_id: UUID, req: DecrementRequest):
    """在庫引き落としコマンド（Checkout Saga から呼ばれる）"""
    async with async_session() as session:
        result = await commands.decrement_stock(
            session, product_id, req.amount, req.order_id
        )
        if result is None:
            raise HTTPException(404, "Product not found")
        return result


# ── Query Endpoints (Read 側) ────────────────────


@app.get("/queries/products")
async def query_list_products(search: str | None = None, type: str | None = None):
    """商品一覧（カタログ）"""
    async with async_session() as session:
        return await queries.list_products(session, search, type)


@app.get("/queries/products/{product_id}")
async def query_get_product(product_id: UUID):
    async with async_session() as session:
        product = await queries.get_product(session, product_id)
        if not product:
            raise HTTPException(404, "Product not found")
        return product


@app.get("/queries/stock")
async def query_stock(ids: list[UUID] = Query(...)):
    """
    在庫の一括照会（Checkout Saga の検証ステップ）

    1件でも存在しない ID があれば 404 と共に missing を返す。
    """
    async with async_session() as session:
        result = await queries.get_stock(session, ids)
        if result["missing"]:
            raise HTTPException(
                status_code=404,
                detail={"message": "Product not found", "missing": result["missing"]},
            )
        return result["stock"]


@app.get("/queries/medicine-types")
async def query_medicine_types():
    return MEDICINE_TYPE_LABELS


@app.get("/queries/reports/stock")
async def query_stock_report():
    """在庫レポート（管理画面）"""
    async with async_session() as session:
        return reports.build_stock_report(await queries.list_products(session))


@app.get("/queries/reports/critical-stock")
async def query_critical_stock_report():
    """要補充レポート（管理画面）"""
    async with async_session() as session:
        return reports.build_critical_stock_report(await queries.list_products(session))


@app.get("/health")
async def health():
    return {"status": "ok", "service": "inventory-service"}
