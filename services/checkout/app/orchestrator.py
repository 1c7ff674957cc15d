"""
Checkout Orchestrator — チェックアウト Saga

Saga パターン（オーケストレーション型）:
  中央のオーケストレーターが各サービスへのコマンドを順番に実行する。
  注文ヘッダ・明細・在庫引き落としは1つのトランザクションにまとめない。
  ヘッダ作成後の失敗は補償せず、Saga ログを残して手動照合に回す。

  状態遷移:
  ┌──────────────────────────────────────────────────────────────┐
  │  Validating ──▶ OrderCreated ──▶ ItemsWritten ──▶ StockAdjusted │
  │      │                                                 │       │
  │      ▼                                                 ▼       │
  │  Rejected                         NotificationAttempted ──▶ Done │
  └──────────────────────────────────────────────────────────────┘

  失敗時の方針:
  - Validating (プロフィール・在庫・価格) の失敗 → 拒否、副作用なし
  - ヘッダ作成の失敗 → CheckoutFailed
  - 明細書き込みの失敗 → OrderWriteFailed (pending の孤立注文が残る)
  - 在庫引き落としの失敗 → 商品ごとに記録して続行、注文は成功扱い
  - 通知の失敗 → 「確認待ち」メッセージに格下げ、注文は成功扱い

Saga ログは Redis の checkout_events チャネルに発行し、
checkout:saga:{order_id} に保存して照合に使う。
"""

import json
import logging
from datetime import datetime, timezone
from enum import Enum

import httpx
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from . import pricing
from .cart import Cart, CartLine
from .errors import (
    CheckoutFailed,
    InsufficientStock,
    NotificationFailed,
    OrderWriteFailed,
    ProductNotFound,
    ProfileIncomplete,
    StockAdjustmentFailed,
)
from .notifier import NotificationDispatcher

logger = logging.getLogger(__name__)

SAGA_CHANNEL = "checkout_events"
SAGA_KEY = "checkout:saga:{order_id}"

MESSAGE_PLACED = "Order placed successfully."
MESSAGE_CONFIRMATION_PENDING = (
    "Order placed. Confirmation is pending and will be sent shortly."
)


class CheckoutState(str, Enum):
    VALIDATING = "Validating"
    REJECTED = "Rejected"
    ORDER_CREATED = "OrderCreated"
    ITEMS_WRITTEN = "ItemsWritten"
    STOCK_ADJUSTED = "StockAdjusted"
    NOTIFICATION_ATTEMPTED = "NotificationAttempted"
    DONE = "Done"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# 2xx でも本文を解釈できない応答 (JSON でない・項目が足りない・数値でない)
MALFORMED_REPLY = (ValueError, KeyError, TypeError, ArithmeticError)


def _describe(error: Exception) -> str:
    if isinstance(error, httpx.HTTPStatusError):
        return f"{error.response.status_code}: {error.response.text}"
    if isinstance(error, MALFORMED_REPLY):
        return f"Malformed reply ({type(error).__name__}): {error}"
    return str(error) or type(error).__name__


class CheckoutOrchestrator:
    """チェックアウト Saga のオーケストレーター"""

    def __init__(
        self,
        customer_service_url: str,
        inventory_service_url: str,
        order_service_url: str,
        dispatcher: NotificationDispatcher,
        redis: aioredis.Redis,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.customer_url = customer_service_url
        self.inventory_url = inventory_service_url
        self.order_url = order_service_url
        self.dispatcher = dispatcher
        self.redis = redis
        self.timeout = timeout
        self.transport = transport

    async def execute(self, user_id: str, cart: Cart) -> dict:
        """
        Saga を実行する。

        成功時は注文 ID・合計・Saga ログを含む dict を返す。
        失敗時は errors モジュールの CheckoutError 派生例外を送出する。
        """
        saga_log: list[dict] = []

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport
        ) as client:
            # ── Step 1: 検証 (プロフィール・在庫・価格) ──────
            self._begin(saga_log, 1, "ValidateCheckout", CheckoutState.VALIDATING)
            try:
                await self._resolve_customer(client, user_id)
                catalog = await self._fetch_stock(client, cart)
                self._check_availability(cart, catalog)
                priced = pricing.price_cart(cart, catalog)
                total = pricing.order_total(priced)
            except (ProfileIncomplete, ProductNotFound, InsufficientStock) as e:
                self._fail(saga_log, e.message, CheckoutState.REJECTED)
                await self._publish_saga_event("CheckoutRejected", None, saga_log)
                raise
            except (httpx.HTTPError, *MALFORMED_REPLY) as e:
                self._fail(saga_log, _describe(e))
                await self._publish_saga_event("CheckoutFailed", None, saga_log)
                raise CheckoutFailed(
                    "Checkout could not be validated. No order was created.", saga_log
                ) from e

            saga_log[-1]["total"] = float(total)
            self._complete(saga_log)

            # ── Step 2: 注文ヘッダを作成 ──────────────────
            self._begin(saga_log, 2, "CreateOrder", CheckoutState.ORDER_CREATED)
            try:
                resp = await client.post(
                    f"{self.order_url}/commands/orders",
                    json={"user_id": user_id, "total": float(total)},
                )
                resp.raise_for_status()
                order_id = str(resp.json()["order_id"])
            except (httpx.HTTPError, *MALFORMED_REPLY) as e:
                self._fail(saga_log, _describe(e))
                await self._publish_saga_event("CheckoutFailed", None, saga_log)
                raise CheckoutFailed(
                    "Order could not be created. Nothing was charged.", saga_log
                ) from e
            saga_log[-1]["order_id"] = order_id
            self._complete(saga_log)

            # ── Step 3: 注文明細を登録 (解決済み単価で固定) ──
            self._begin(saga_log, 3, "WriteOrderItems", CheckoutState.ITEMS_WRITTEN)
            try:
                resp = await client.post(
                    f"{self.order_url}/commands/orders/{order_id}/items",
                    json={"items": [line.as_order_item() for line in priced]},
                )
                resp.raise_for_status()
            except httpx.HTTPError as e:
                self._fail(saga_log, _describe(e))
                logger.error(
                    "Order %s left pending without items (orphaned): %s",
                    order_id,
                    _describe(e),
                )
                await self._publish_saga_event(
                    "CheckoutOrphaned", order_id, saga_log, outcome="orphaned"
                )
                raise OrderWriteFailed(
                    order_id,
                    "Order items could not be recorded. The order was not completed.",
                    saga_log,
                ) from e
            self._complete(saga_log)

            # ── Step 4: 在庫を引き落とし (商品ごと・失敗しても続行) ──
            self._begin(saga_log, 4, "AdjustStock", CheckoutState.STOCK_ADJUSTED)
            adjustments = [
                await self._decrement(client, order_id, line) for line in cart.lines
            ]
            saga_log[-1]["items"] = adjustments
            needs_reconciliation = any(a["status"] != "COMPLETED" for a in adjustments)
            if needs_reconciliation:
                saga_log[-1]["status"] = "PARTIAL"
            else:
                self._complete(saga_log)

        # ── Step 5: 管理者へ通知 (ベストエフォート) ───────
        self._begin(
            saga_log, 5, "NotifyOperators", CheckoutState.NOTIFICATION_ATTEMPTED
        )
        outcome = await self.dispatcher.notify(order_id)
        if outcome.ok:
            self._complete(saga_log)
            message = MESSAGE_PLACED
        else:
            error = NotificationFailed(f"Order {order_id}: {outcome.error}")
            self._fail(saga_log, error.message)
            message = MESSAGE_CONFIRMATION_PENDING

        # ── Step 6: 完了 ─────────────────────────────
        self._begin(saga_log, 6, "Done", CheckoutState.DONE)
        self._complete(saga_log)
        await self._publish_saga_event(
            "CheckoutCompleted",
            order_id,
            saga_log,
            outcome="needs_reconciliation" if needs_reconciliation else "completed",
        )

        return {
            "success": True,
            "order_id": order_id,
            "status": "pending",
            "total": float(total),
            "items": [line.as_dict() for line in priced],
            "stock_adjustments": adjustments,
            "notification": "sent" if outcome.ok else "pending",
            "message": message,
            "saga_log": saga_log,
        }

    # ── 検証ステップ ─────────────────────────────────

    async def _resolve_customer(self, client: httpx.AsyncClient, user_id: str) -> dict:
        """チェックアウトには入力済みの顧客プロフィールが必要"""
        resp = await client.get(f"{self.customer_url}/queries/customers/{user_id}")
        if resp.status_code == 404:
            raise ProfileIncomplete(user_id)
        resp.raise_for_status()
        customer = resp.json()
        if not customer["profile_complete"]:
            raise ProfileIncomplete(user_id, customer["missing_fields"])
        return customer

    async def _fetch_stock(self, client: httpx.AsyncClient, cart: Cart) -> dict:
        """在庫と価格をライブで再取得する (カート追加時の値は信用しない)"""
        resp = await client.get(
            f"{self.inventory_url}/queries/stock",
            params={"ids": cart.product_ids()},
        )
        if resp.status_code == 404:
            body = resp.json()
            detail = body.get("detail") if isinstance(body, dict) else None
            missing = detail.get("missing") if isinstance(detail, dict) else None
            raise ProductNotFound(missing or cart.product_ids())
        resp.raise_for_status()
        return resp.json()

    @staticmethod
    def _check_availability(cart: Cart, catalog: dict) -> None:
        for product_id, requested in cart.requested_quantities().items():
            available = catalog[product_id]["stock"]
            if requested > available:
                raise InsufficientStock(product_id, available, requested)

    # ── 在庫引き落とし ───────────────────────────────

    async def _decrement(
        self, client: httpx.AsyncClient, order_id: str, line: CartLine
    ) -> dict:
        product_id = str(line.product_id)
        result = {"product_id": product_id, "quantity": line.quantity}
        try:
            resp = await client.post(
                f"{self.inventory_url}/commands/inventory/{product_id}/decrement",
                json={"amount": line.quantity, "order_id": order_id},
            )
            resp.raise_for_status()
            body = resp.json()
            stock, clamped = body["stock"], body["clamped"]
        except (httpx.HTTPError, *MALFORMED_REPLY) as e:
            error = StockAdjustmentFailed(product_id, _describe(e))
            logger.warning("Order %s: %s", order_id, error.message)
            return {**result, "status": "FAILED", "error": error.message}

        if clamped:
            logger.warning(
                "Order %s: stock for %s clamped to 0 (oversold)", order_id, product_id
            )
            return {**result, "status": "CLAMPED", "stock": stock}
        return {**result, "status": "COMPLETED", "stock": stock}

    # ── Saga ログ ────────────────────────────────────

    @staticmethod
    def _begin(saga_log: list[dict], step: int, action: str, state: CheckoutState) -> None:
        saga_log.append(
            {
                "step": step,
                "action": action,
                "state": state.value,
                "status": "EXECUTING",
                "timestamp": _now(),
            }
        )

    @staticmethod
    def _complete(saga_log: list[dict]) -> None:
        saga_log[-1]["status"] = "COMPLETED"

    @staticmethod
    def _fail(
        saga_log: list[dict], error: str, state: CheckoutState | None = None
    ) -> None:
        saga_log[-1]["status"] = "FAILED"
        saga_log[-1]["error"] = error
        if state is not None:
            saga_log[-1]["state"] = state.value

    async def _publish_saga_event(
        self,
        event_type: str,
        order_id: str | None,
        saga_log: list[dict],
        outcome: str | None = None,
    ) -> None:
        """
        Saga のイベントを Redis に発行し、注文がある場合はログを保存する。
        Redis の障害でチェックアウトの結果を変えてはいけない。
        """
        payload = json.dumps(
            {
                "event_type": event_type,
                "order_id": order_id,
                "outcome": outcome,
                "saga_log": saga_log,
            },
            default=str,
        )
        try:
            await self.redis.publish(SAGA_CHANNEL, payload)
            if order_id:
                await self.redis.set(SAGA_KEY.format(order_id=order_id), payload)
        except RedisError:
            logger.exception("Failed to record saga log (order=%s)", order_id)
