"""
Checkout Service — FastAPI エントリーポイント

チェックアウト Saga を HTTP API として公開する。
認証ゲートウェイが付与する X-User-Id ヘッダで顧客を識別する。

エラー応答の order_placed で
「注文は失敗し、何も起きていない」(false) と
「注文は作成されたが後続処理に問題がある」(true) を区別する。
"""

import json
import logging
import os
from contextlib import asynccontextmanager
from uuid import UUID

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from . import pricing
from .cart import Cart, CartLine, normalize_line
from .errors import (
    CheckoutError,
    InsufficientStock,
    ProductNotFound,
    ProfileIncomplete,
)
from .notifier import NotificationDispatcher
from .orchestrator import MALFORMED_REPLY, SAGA_KEY, CheckoutOrchestrator

logger = logging.getLogger(__name__)

CUSTOMER_SERVICE_URL = os.environ["CUSTOMER_SERVICE_URL"]
INVENTORY_SERVICE_URL = os.environ["INVENTORY_SERVICE_URL"]
ORDER_SERVICE_URL = os.environ["ORDER_SERVICE_URL"]
NOTIFICATION_SERVICE_URL = os.environ["NOTIFICATION_SERVICE_URL"]
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
STEP_TIMEOUT = float(os.environ.get("CHECKOUT_STEP_TIMEOUT", "10"))

redis_pool: aioredis.Redis | None = None
# テストで ASGI / Mock トランスポートに差し替える
http_transport: httpx.AsyncBaseTransport | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global redis_pool
    redis_pool = aioredis.from_url(REDIS_URL, decode_responses=True)
    yield
    await redis_pool.aclose()


app = FastAPI(title="Checkout Service", lifespan=lifespan)

ERROR_STATUS = {
    InsufficientStock: 409,
    ProductNotFound: 404,
    ProfileIncomplete: 422,
}


@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError):
    status = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 502
    )
    return JSONResponse(status_code=status, content=exc.to_dict())


class CheckoutRequest(BaseModel):
    lines: list[CartLine] = Field(min_length=1)


def _orchestrator() -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        CUSTOMER_SERVICE_URL,
        INVENTORY_SERVICE_URL,
        ORDER_SERVICE_URL,
        NotificationDispatcher(
            NOTIFICATION_SERVICE_URL, timeout=STEP_TIMEOUT, transport=http_transport
        ),
        redis_pool,
        timeout=STEP_TIMEOUT,
        transport=http_transport,
    )


@app.post("/checkout")
async def checkout(req: CheckoutRequest, x_user_id: str = Header(...)):
    """
    チェックアウト Saga を実行する。

    成功した場合、クライアントはカートを破棄する。
    """
    cart = Cart(lines=tuple(req.lines))
    return await _orchestrator().execute(x_user_id, cart)


@app.post("/cart/quote")
async def quote_cart(req: CheckoutRequest):
    """
    カートの見積り（カート画面用、書き込みなし）

    卸売指定の行は最低数量に引き上げ、現在の価格で小計を計算する。
    """
    cart = Cart(lines=tuple(normalize_line(line) for line in req.lines))
    try:
        async with httpx.AsyncClient(
            timeout=STEP_TIMEOUT, transport=http_transport
        ) as client:
            resp = await client.get(
                f"{INVENTORY_SERVICE_URL}/queries/stock",
                params={"ids": cart.product_ids()},
            )
            if resp.status_code == 404:
                raise HTTPException(404, resp.json().get("detail"))
            resp.raise_for_status()
            catalog = resp.json()
        priced = pricing.price_cart(cart, catalog)
        requested = cart.requested_quantities()
        lines = [
            {
                **line.as_dict(),
                "available": requested[line.product_id] <= catalog[line.product_id]["stock"],
            }
            for line in priced
        ]
    except (httpx.HTTPError, *MALFORMED_REPLY) as e:
        logger.warning("Cart quote failed: %s", e)
        raise HTTPException(502, "Inventory service unavailable")

    return {"lines": lines, "total": float(pricing.order_total(priced))}


@app.get("/checkouts/{order_id}")
async def get_checkout_log(order_id: UUID):
    """注文の Saga ログ（手動照合用）"""
    try:
        payload = await redis_pool.get(SAGA_KEY.format(order_id=order_id))
    except RedisError:
        logger.exception("Failed to read saga log (order=%s)", order_id)
        raise HTTPException(502, "Checkout log store unavailable")
    if not payload:
        raise HTTPException(404, "Checkout log not found")
    return json.loads(payload)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "checkout-service"}
