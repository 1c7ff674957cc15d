"""
Customer Service — FastAPI エントリーポイント

顧客プロフィールを管理するサービス。
認証そのものは外部の認証プロバイダに任せ、ここでは認証済みの
user_id に紐づくプロフィールだけを扱う。
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from . import commands, queries, schema

DATABASE_URL = os.environ["DATABASE_URL"]

engine = create_async_engine(DATABASE_URL, echo=False)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await schema.create_all(conn)
    yield
    await engine.dispose()


app = FastAPI(title="Customer Service", lifespan=lifespan)


# ── Request Models ───────────────────────────────


class CustomerProfileRequest(BaseModel):
    name: str = ""
    email: str = ""
    cpf_cnpj: str = ""
    phone1: str = ""
    phone2: str | None = None
    cep: str = ""
    address: str = ""
    address_number: str = ""
    address_type: str = ""
    municipio: str = ""
    estado: str = ""
    reference: str | None = None


# ── Command Endpoints (Write 側) ─────────────────


@app.put("/commands/customers/{user_id}")
async def cmd_save_profile(user_id: str, req: CustomerProfileRequest):
    """顧客登録 / プロフィール更新"""
    async with async_session() as session:
        return await commands.upsert_customer(session, user_id, req.model_dump())


# ── Query Endpoints (Read 側) ────────────────────


@app.get("/queries/customers")
async def query_list_customers():
    async with async_session() as session:
        return await queries.list_customers(session)


@app.get("/queries/customers/{user_id}")
async def query_get_customer(user_id: str):
    """プロフィール取得（profile_complete / missing_fields 付き）"""
    async with async_session() as session:
        customer = await queries.get_customer(session, user_id)
        if not customer:
            raise HTTPException(404, "Customer not found")
        return customer


@app.get("/health")
async def health():
    return {"status": "ok", "service": "customer-service"}
