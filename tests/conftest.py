"""Pytest fixtures for the service tests."""

import os

# main モジュールは import 時に環境変数を読むので先に設定する
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CUSTOMER_SERVICE_URL", "http://customer")
os.environ.setdefault("INVENTORY_SERVICE_URL", "http://inventory")
os.environ.setdefault("ORDER_SERVICE_URL", "http://order")
os.environ.setdefault("NOTIFICATION_SERVICE_URL", "http://notification")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from services.customer.app import main as customer_main
from services.customer.app import schema as customer_schema
from services.inventory.app import main as inventory_main
from services.inventory.app import schema as inventory_schema
from services.order.app import main as order_main
from services.order.app import schema as order_schema


class FakeRedis:
    """Records publish/set calls in memory."""

    def __init__(self):
        self.published = []
        self.values = {}

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    async def set(self, key, value):
        self.values[key] = value
        return True

    async def get(self, key):
        return self.values.get(key)


class ServiceRouter(httpx.AsyncBaseTransport):
    """Routes requests to a transport by host name (http://inventory/... etc)."""

    def __init__(self, routes):
        self.routes = routes

    async def handle_async_request(self, request):
        transport = self.routes.get(request.url.host)
        if transport is None:
            raise httpx.ConnectError(f"No route to {request.url.host}", request=request)
        return await transport.handle_async_request(request)


def asgi_client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


async def _sqlite_sessions(tmp_path, name, schema):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / name}.db")
    async with engine.begin() as conn:
        await schema.create_all(conn)
    return engine, sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
async def inventory_sessions(tmp_path, monkeypatch):
    engine, factory = await _sqlite_sessions(tmp_path, "inventory", inventory_schema)
    monkeypatch.setattr(inventory_main, "async_session", factory)
    yield factory
    await engine.dispose()


@pytest.fixture
async def order_sessions(tmp_path, monkeypatch):
    engine, factory = await _sqlite_sessions(tmp_path, "order", order_schema)
    monkeypatch.setattr(order_main, "async_session", factory)
    yield factory
    await engine.dispose()


@pytest.fixture
async def customer_sessions(tmp_path, monkeypatch):
    engine, factory = await _sqlite_sessions(tmp_path, "customer", customer_schema)
    monkeypatch.setattr(customer_main, "async_session", factory)
    yield factory
    await engine.dispose()


@pytest.fixture
async def inventory_client(inventory_sessions):
    async with asgi_client(inventory_main.app) as client:
        yield client


@pytest.fixture
async def order_client(order_sessions):
    async with asgi_client(order_main.app) as client:
        yield client


@pytest.fixture
async def customer_client(customer_sessions):
    async with asgi_client(customer_main.app) as client:
        yield client


COMPLETE_PROFILE = {
    "name": "Maria Souza",
    "email": "maria@example.com",
    "cpf_cnpj": "123.456.789-00",
    "phone1": "(11) 99999-0000",
    "cep": "01000-000",
    "address": "Rua das Flores",
    "address_number": "42",
    "address_type": "Casa",
    "municipio": "São Paulo",
    "estado": "SP",
}


def product_payload(**overrides):
    payload = {
        "name": "Dipirona",
        "dosage": "500mg",
        "type": "Analgesic",
        "description": "Analgésico e antitérmico",
        "price": 10.00,
        "wholesale_price": 8.00,
        "stock": 5,
    }
    payload.update(overrides)
    return payload
