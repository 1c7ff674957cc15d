"""
Checkout Service — 管理者通知ディスパッチャ

注文ヘッダと明細が永続化された後に1回だけ通知を試みる。
結果は成功/失敗として返すだけで、例外は投げない。
通知に失敗しても注文は取り消さない (ベストエフォート)。

実際の配信 (メール送信) は Notification Service が行う。
"""

import logging

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class NotificationOutcome(BaseModel):
    ok: bool
    error: str | None = None


class NotificationDispatcher:
    def __init__(
        self,
        notification_service_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.notification_url = notification_service_url
        self.timeout = timeout
        self.transport = transport

    async def notify(self, order_id: str) -> NotificationOutcome:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                resp = await client.post(
                    f"{self.notification_url}/notifications/orders/{order_id}"
                )
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning("Notification rejected for order %s: %s", order_id, e.response.text)
            return NotificationOutcome(ok=False, error=e.response.text or str(e))
        except httpx.HTTPError as e:
            logger.warning("Notification failed for order %s: %s", order_id, e)
            return NotificationOutcome(ok=False, error=str(e) or type(e).__name__)
        return NotificationOutcome(ok=True)
