"""
Notification Service — FastAPI エントリーポイント

Checkout Saga の最後に呼ばれ、新しい注文を管理者へメールで知らせる。
Checkout 側は結果を記録するだけで、失敗しても注文は取り消さない。

  ┌──────────┐  POST /notifications/orders/{id}  ┌──────────────┐
  │ Checkout │ ─────────────────────────────────▶│ Notification │
  └──────────┘                                    └──────┬───────┘
                       Order / Customer / Inventory ◀────┤ (Query API)
                                          Resend API ◀────┘
"""

import logging
import os
from uuid import UUID

import httpx
from fastapi import FastAPI, HTTPException

from . import mailer, queries

logger = logging.getLogger(__name__)

ORDER_SERVICE_URL = os.environ["ORDER_SERVICE_URL"]
CUSTOMER_SERVICE_URL = os.environ["CUSTOMER_SERVICE_URL"]
INVENTORY_SERVICE_URL = os.environ["INVENTORY_SERVICE_URL"]
RESEND_API_KEY = os.environ.get("RESEND_API_KEY", "")
RESEND_FROM = os.environ.get("RESEND_FROM", "onboarding@resend.dev")
ADMIN_EMAILS = [
    email.strip() for email in os.environ.get("ADMIN_EMAILS", "").split(",") if email.strip()
]

# テストで Mock トランスポートに差し替える
http_transport: httpx.AsyncBaseTransport | None = None

app = FastAPI(title="Notification Service")


@app.post("/notifications/orders/{order_id}")
async def notify_order(order_id: UUID):
    """新規注文の通知メールを管理者へ送る"""
    if not ADMIN_EMAILS:
        raise HTTPException(400, "No admin emails configured")
    if not RESEND_API_KEY:
        raise HTTPException(500, "RESEND_API_KEY is not configured")

    async with httpx.AsyncClient(timeout=10.0, transport=http_transport) as client:
        order = await queries.fetch_order(client, ORDER_SERVICE_URL, order_id)
        if not order:
            raise HTTPException(404, "Order not found")

        customer = await queries.fetch_customer(client, CUSTOMER_SERVICE_URL, order["user_id"])
        if not customer:
            raise HTTPException(404, "Customer not found")

        products = await queries.fetch_products(
            client,
            INVENTORY_SERVICE_URL,
            [item["product_id"] for item in order.get("items", [])],
        )
        subject, html = mailer.render_order_email(order, customer, products)

        try:
            await mailer.send_email(
                client, RESEND_API_KEY, RESEND_FROM, ADMIN_EMAILS, subject, html
            )
        except httpx.HTTPStatusError as e:
            logger.error("Resend rejected order %s email: %s", order_id, e.response.text)
            raise HTTPException(502, e.response.text or "Failed to send email")

    logger.info("Order notification sent: %s -> %s", order_id, ", ".join(ADMIN_EMAILS))
    return {"ok": True}


@app.get("/health")
async def health():
    return {"status": "ok", "service": "notification-service"}
