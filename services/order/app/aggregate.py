"""
Order Service — 注文集約 (Order Aggregate)

注文ヘッダの状態と状態遷移ルールを持つ。

状態遷移:
    pending → completed  (管理者が確認)
    pending → cancelled  (管理者がキャンセル)

completed / cancelled は終端状態で、それ以上は遷移しない。
顧客が状態を変更することはない。
"""

PENDING = "pending"
COMPLETED = "completed"
CANCELLED = "cancelled"

TRANSITIONS = {
    PENDING: {COMPLETED, CANCELLED},
    COMPLETED: set(),
    CANCELLED: set(),
}


class InvalidStatusTransition(Exception):
    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot change order status from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class OrderAggregate:
    def __init__(self, order_id: str, user_id: str, total: float, status: str) -> None:
        self.id = order_id
        self.user_id = user_id
        self.total = total
        self.status = status

    @classmethod
    def from_row(cls, row) -> "OrderAggregate":
        return cls(str(row.id), row.user_id, float(row.total), row.status)

    @property
    def accepts_items(self) -> bool:
        return self.status == PENDING

    def change_status(self, new_status: str) -> None:
        if new_status not in TRANSITIONS.get(self.status, set()):
            raise InvalidStatusTransition(self.status, new_status)
        self.status = new_status
