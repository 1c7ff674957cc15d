"""
Inventory Service — 在庫レポート

管理画面の在庫レポート・要補充レポートのデータを組み立てる。
PDF 化はフロントエンド側の責務で、ここでは集計値と行データだけを返す。

在庫レベル:
    high    stock >= 500
    normal  stock >= 100
    low     stock <  100  (要補充)

要補充レポートの優先度:
    critical  stock < 50
    low       それ以外
"""

from datetime import datetime, timezone

HIGH_STOCK_THRESHOLD = 500
CRITICAL_STOCK_THRESHOLD = 100
URGENT_STOCK_THRESHOLD = 50


def stock_level(stock: int) -> str:
    if stock >= HIGH_STOCK_THRESHOLD:
        return "high"
    if stock >= CRITICAL_STOCK_THRESHOLD:
        return "normal"
    return "low"


def build_stock_report(products: list[dict]) -> dict:
    """全商品の在庫レポート"""
    rows = [
        {
            "id": p["id"],
            "name": p["name"],
            "dosage": p["dosage"],
            "type": p["type_label"],
            "stock": p["stock"],
            "price": p["price"],
            "stock_value": round(p["price"] * p["stock"], 2),
            "level": stock_level(p["stock"]),
        }
        for p in products
    ]
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "summary": {
            "total_products": len(products),
            "total_stock": sum(p["stock"] for p in products),
            "total_value": round(sum(p["price"] * p["stock"] for p in products), 2),
            "critical_products": sum(
                1 for p in products if p["stock"] < CRITICAL_STOCK_THRESHOLD
            ),
        },
        "rows": rows,
    }


def build_critical_stock_report(products: list[dict]) -> dict:
    """補充が必要な商品 (stock < 100) のレポート"""
    critical = [p for p in products if p["stock"] < CRITICAL_STOCK_THRESHOLD]
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "count": len(critical),
        "rows": [
            {
                "id": p["id"],
                "name": p["name"],
                "dosage": p["dosage"],
                "stock": p["stock"],
                "price": p["price"],
                "priority": "critical" if p["stock"] < URGENT_STOCK_THRESHOLD else "low",
            }
            for p in critical
        ],
    }
