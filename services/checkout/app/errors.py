"""
Checkout Service — エラー定義

注文ヘッダが永続化される前のエラーは「何も起きていない」ので
顧客はカートを直して再試行できる。
ヘッダ作成後のエラーは「注文は存在する (手動照合が必要な場合あり)」。
この2つを顧客向けメッセージで混同しないことが最重要。

order_placed 属性でどちら側のエラーかを判別する。
"""


class CheckoutError(Exception):
    code = "checkout_error"
    order_placed = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "order_placed": self.order_placed,
        }


# ── ヘッダ作成前 (副作用なし) ────────────────────


class InsufficientStock(CheckoutError):
    code = "insufficient_stock"

    def __init__(self, product_id: str, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"available={available}, requested={requested}"
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "product_id": self.product_id,
            "available": self.available,
            "requested": self.requested,
        }


class ProductNotFound(CheckoutError):
    code = "product_not_found"

    def __init__(self, product_ids: list[str]) -> None:
        super().__init__(f"Products not found: {', '.join(product_ids)}")
        self.product_ids = product_ids

    def to_dict(self) -> dict:
        return {**super().to_dict(), "product_ids": self.product_ids}


class ProfileIncomplete(CheckoutError):
    code = "profile_incomplete"

    def __init__(self, user_id: str, missing: list[str] | None = None) -> None:
        if missing:
            message = f"Customer profile incomplete: missing {', '.join(missing)}"
        else:
            message = "Customer profile not found"
        super().__init__(message)
        self.user_id = user_id
        self.missing = missing or []

    def to_dict(self) -> dict:
        return {**super().to_dict(), "missing_fields": self.missing}


class CheckoutFailed(CheckoutError):
    """ヘッダ作成までに発生した通信・書き込みエラー"""

    code = "checkout_failed"

    def __init__(self, message: str, saga_log: list[dict] | None = None) -> None:
        super().__init__(message)
        self.saga_log = saga_log or []


# ── ヘッダ作成後 ─────────────────────────────────


class OrderWriteFailed(CheckoutFailed):
    """明細の書き込みに失敗。pending のヘッダが孤立注文として残る。"""

    code = "order_write_failed"
    order_placed = True

    def __init__(
        self, order_id: str, message: str, saga_log: list[dict] | None = None
    ) -> None:
        super().__init__(message, saga_log)
        self.order_id = order_id

    def to_dict(self) -> dict:
        return {**super().to_dict(), "order_id": self.order_id}


class StockAdjustmentFailed(CheckoutError):
    """在庫の引き落としに失敗 (ログのみ、顧客には見せない)"""

    code = "stock_adjustment_failed"
    order_placed = True

    def __init__(self, product_id: str, reason: str) -> None:
        super().__init__(f"Stock adjustment failed for {product_id}: {reason}")
        self.product_id = product_id
        self.reason = reason


class NotificationFailed(CheckoutError):
    """管理者通知に失敗 (「確認待ち」メッセージに格下げ)"""

    code = "notification_failed"
    order_placed = True
