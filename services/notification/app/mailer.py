"""
Notification Service — 注文通知メール

新しい注文の内容を HTML にまとめ、Resend の HTTP API で
管理者アドレスへ送信する。
"""

from html import escape

import httpx

RESEND_API_URL = "https://api.resend.com/emails"
DEFAULT_PRODUCT_NAME = "Produto"


def _money(value: float) -> str:
    return f"R$ {float(value):.2f}"


def render_order_email(order: dict, customer: dict, products: dict[str, dict]) -> tuple[str, str]:
    """(件名, HTML 本文) を返す。"""
    items_html = "".join(
        "<li>{qty}x {name} {dosage} - {price}</li>".format(
            qty=item["quantity"],
            name=escape(products.get(item["product_id"], {}).get("name", DEFAULT_PRODUCT_NAME)),
            dosage=escape(products.get(item["product_id"], {}).get("dosage", "")),
            price=_money(item["unit_price"]),
        )
        for item in order.get("items", [])
    )

    address = (
        f"{customer['address']}, {customer['address_number']} ({customer['address_type']})"
        f" - {customer['municipio']}/{customer['estado']} - CEP {customer['cep']}"
    )
    phones = " / ".join(p for p in (customer.get("phone1"), customer.get("phone2")) if p)
    reference = (
        f"<p><strong>Referencia:</strong> {escape(customer['reference'])}</p>"
        if customer.get("reference")
        else ""
    )

    html = f"""
        <h2>Novo pedido recebido</h2>
        <p><strong>Pedido:</strong> {escape(order['id'])}</p>
        <p><strong>Cliente:</strong> {escape(customer['name'])}</p>
        <p><strong>Email:</strong> {escape(customer.get('email') or '')}</p>
        <p><strong>CPF/CNPJ:</strong> {escape(customer['cpf_cnpj'])}</p>
        <p><strong>Telefones:</strong> {escape(phones)}</p>
        <p><strong>Endereco:</strong> {escape(address)}</p>
        {reference}
        <p><strong>Total:</strong> {_money(order['total'])}</p>
        <h3>Itens</h3>
        <ul>{items_html}</ul>
    """
    subject = f"Novo pedido {order['id'][:8]}"
    return subject, html


async def send_email(
    client: httpx.AsyncClient,
    api_key: str,
    sender: str,
    recipients: list[str],
    subject: str,
    html: str,
) -> None:
    """Resend API でメールを送信する。失敗時は httpx.HTTPStatusError を送出。"""
    resp = await client.post(
        RESEND_API_URL,
        headers={"Authorization": f"Bearer {api_key}"},
        json={"from": sender, "to": recipients, "subject": subject, "html": html},
    )
    resp.raise_for_status()
