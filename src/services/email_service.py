"""Email service using Resend for transactional emails."""

import html
import logging
from typing import Any

import resend

from src.core.config import get_settings

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending order emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.enabled = bool(settings.resend_api_key)
        self.from_email = settings.email_from_address
        self.frontend_url = settings.frontend_url.rstrip("/")
        self.confirmation_path = settings.confirmation_path
        self.currency = settings.currency.upper()

    async def send_order_confirmation(
        self,
        to_email: str,
        customer_name: str,
        order_id: str,
        items: list[dict[str, Any]],
        totals: dict[str, str],
    ) -> dict[str, Any]:
        """Send the receipt for a paid order.

        Args:
            to_email: Recipient email address.
            customer_name: Name from the shipping form.
            order_id: Order UUID, used for the confirmation link.
            items: Snapshot of the order's cart lines.
            totals: Snapshot of the order's totals.

        Returns:
            dict: success flag and Resend email id, or the error.
        """
        if not self.enabled:
            logger.info("Resend not configured; skipping confirmation for order %s", order_id)
            return {"success": False, "error": "email disabled"}

        try:
            html_content, text_content = self._render_confirmation(customer_name, order_id, items, totals)
            response = resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": f"Order confirmed: {order_id}",
                "html": html_content,
                "text": text_content,
            })

            logger.info("Order confirmation sent to %s, id: %s", to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send order confirmation to %s: %s", to_email, str(e))
            return {"success": False, "error": str(e)}

    def _render_confirmation(
        self,
        customer_name: str,
        order_id: str,
        items: list[dict[str, Any]],
        totals: dict[str, str],
    ) -> tuple[str, str]:
        order_url = f"{self.frontend_url}{self.confirmation_path}?orderId={order_id}"
        rows = "".join(
            f"<tr><td>{html.escape(item['name'])}</td>"
            f"<td style=\"text-align: center;\">{item['quantity']}</td>"
            f"<td style=\"text-align: right;\">${item['unit_price']}</td></tr>"
            for item in items
        )

        html_content = f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Order Confirmed</title>
</head>
<body style="font-family: Georgia, serif; line-height: 1.6; color: #3D352E; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1 style="text-align: center;">Thank you, {html.escape(customer_name)}!</h1>
    <p>Your order <strong>{order_id}</strong> has been paid and will ship soon.</p>

    <table style="width: 100%; border-collapse: collapse; margin: 20px 0;">
        <thead><tr><th style="text-align: left;">Item</th><th>Qty</th><th style="text-align: right;">Price</th></tr></thead>
        <tbody>{rows}</tbody>
    </table>

    <p style="text-align: right;">
        Subtotal: ${totals['subtotal']}<br>
        Shipping: ${totals['shipping']}<br>
        <strong>Total: ${totals['total']} {self.currency}</strong>
    </p>

    <p style="text-align: center;"><a href="{order_url}">View your order</a></p>
</body>
</html>
"""

        text_lines = "\n".join(
            f"- {item['name']} x{item['quantity']} @ ${item['unit_price']}" for item in items
        )
        text_content = f"""
Thank you, {customer_name}!

Order {order_id} has been paid.

{text_lines}

Subtotal: ${totals['subtotal']}
Shipping: ${totals['shipping']}
Total: ${totals['total']} {self.currency}

View your order: {order_url}
"""
        return html_content, text_content
