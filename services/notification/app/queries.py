"""
Notification Service — 他サービスからの読み取り

通知メールに必要な注文・顧客・商品の情報を各サービスの
Query API から集める (このサービスはデータベースを持たない)。
"""

import asyncio
from uuid import UUID

import httpx


async def fetch_order(
    client: httpx.AsyncClient, order_service_url: str, order_id: UUID
) -> dict | None:
    resp = await client.get(f"{order_service_url}/queries/orders/{order_id}")
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    return resp.json()


async def fetch_customer(
    client: httpx.AsyncClient, customer_service_url: str, user_id: str
) -> dict | None:
    resp = await client.get(f"{customer_service_url}/queries/customers/{user_id}")
    if resp.status_code == 404:
        return None
    resp.raise_for_status()
    return resp.json()


async def fetch_products(
    client: httpx.AsyncClient, inventory_service_url: str, product_ids: list[str]
) -> dict[str, dict]:
    """
    商品情報を並列に取得する。

    注文後に削除された商品は結果に含めない (メールでは汎用名で表示する)。
    """
    ids = list(dict.fromkeys(product_ids))
    responses = await asyncio.gather(
        *(client.get(f"{inventory_service_url}/queries/products/{pid}") for pid in ids)
    )
    products = {}
    for pid, resp in zip(ids, responses):
        if resp.status_code == 404:
            continue
        resp.raise_for_status()
        products[pid] = resp.json()
    return products
