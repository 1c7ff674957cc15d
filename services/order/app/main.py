"""
Order Service — FastAPI エントリーポイント

CQRS パターンに従い、Command (POST) と Query (GET) のエンドポイントを分離。
注文ヘッダ作成と明細登録は Checkout Saga から、
ステータス変更は管理画面から呼ばれる。
"""

import os
from contextlib import asynccontextmanager
from typing import Literal
from uuid import UUID

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from . import commands, queries, schema
from .aggregate import InvalidStatusTransition

DATABASE_URL = os.environ["DATABASE_URL"]

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await schema.create_all(conn)
    yield
    await engine.dispose()


app = FastAPI(title="Order Service", lifespan=lifespan)


# ── Request / Response Models ────────────────────

class CreateOrderRequest(BaseModel):
    user_id: str = Field(min_length=1)
    total: float = Field(ge=0)


class OrderItemIn(BaseModel):
    product_id: UUID
    quantity: int = Field(gt=0)
    unit_price: float = Field(ge=0)


class AddItemsRequest(BaseModel):
    items: list[OrderItemIn] = Field(min_length=1)


class UpdateStatusRequest(BaseModel):
    status: Literal["completed", "cancelled"]


# ── Command Endpoints (Write 側) ─────────────────

@app.post("/commands/orders", status_code=201)
async def cmd_create_order(req: CreateOrderRequest):
    """注文ヘッダ作成コマンド（Saga から呼ばれる）"""
    async with async_session() as session:
        agg = await commands.create_order(session, req.user_id, req.total)
        return {"order_id": agg.id, "status": agg.status, "total": agg.total}


@app.post("/commands/orders/{order_id}/items", status_code=201)
async def cmd_add_items(order_id: UUID, req: AddItemsRequest):
    """注文明細の一括登録コマンド（Saga から呼ばれる）"""
    async with async_session() as session:
        result = await commands.add_items(
            session, order_id, [item.model_dump() for item in req.items]
        )
        if result is None:
            raise HTTPException(404, "Order not found")
        if not result["success"]:
            raise HTTPException(status_code=409, detail=result["reason"])
        return result


@app.post("/commands/orders/{order_id}/status")
async def cmd_set_status(order_id: UUID, req: UpdateStatusRequest):
    """注文ステータス変更コマンド（管理画面: 確認 / キャンセル）"""
    async with async_session() as session:
        try:
            agg = await commands.set_order_status(session, order_id, req.status)
        except InvalidStatusTransition as e:
            raise HTTPException(status_code=409, detail=str(e))
        if not agg:
            raise HTTPException(404, "Order not found")
        return {"order_id": agg.id, "status": agg.status}


# ── Query Endpoints (Read 側) ────────────────────

@app.get("/queries/orders")
async def query_list_orders(status: str | None = None, user_id: str | None = None):
    """注文一覧"""
    async with async_session() as session:
        return await queries.list_orders(session, status, user_id)


@app.get("/queries/orders/orphaned")
async def query_orphaned_orders():
    """明細のない pending 注文（手動照合用）"""
    async with async_session() as session:
        return await queries.list_orphaned_orders(session)


@app.get("/queries/orders/{order_id}")
async def query_get_order(order_id: UUID):
    """注文詳細（明細付き）"""
    async with async_session() as session:
        order = await queries.get_order(session, order_id)
        if not order:
            raise HTTPException(404, "Order not found")
        return order


@app.get("/health")
async def health():
    return {"status": "ok", "service": "order-service"}
