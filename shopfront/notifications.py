# notifications.py
"""Order confirmation emails sent through the Brevo (Sendinblue) API."""
import logging
from datetime import datetime, timezone
from html import escape
from typing import Optional

import httpx
from fastapi import Request

logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"


class NotificationError(Exception):
    """Raised when a notification could not be delivered."""


def _money(value) -> str:
    return f"${float(value):,.2f}"


def render_order_confirmation(order) -> str:
    """Builds the HTML body for an order confirmation from an order with items loaded."""
    rows = "".join(
        f"""
          <tr>
            <td style="padding: 10px; border-bottom: 1px solid #ddd;">{escape(item.product.name if item.product else str(item.product_id))}</td>
            <td style="padding: 10px; border-bottom: 1px solid #ddd; text-align: center;">{item.quantity}</td>
            <td style="padding: 10px; border-bottom: 1px solid #ddd; text-align: right;">{_money(item.price)}</td>
            <td style="padding: 10px; border-bottom: 1px solid #ddd; text-align: right;">{_money(item.price * item.quantity)}</td>
          </tr>"""
        for item in order.items
    )
    created_at = order.created_at or datetime.now(timezone.utc)
    status = getattr(order.status, "value", order.status)

    return f"""
    <html>
    <head>
        <meta charset="utf-8">
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .header {{ background-color: #4CAF50; color: white; padding: 20px; text-align: center; }}
            table {{ width: 100%; border-collapse: collapse; margin: 20px 0; }}
            th {{ background-color: #4CAF50; color: white; padding: 10px; text-align: left; }}
            .total {{ font-size: 18px; font-weight: bold; text-align: right; padding: 10px; }}
            .footer {{ text-align: center; padding: 20px; color: #666; font-size: 12px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <div class="header"><h1>Order Confirmation</h1></div>
            <p>Thank you for your purchase!</p>
            <p>Your order has been confirmed and will be processed shortly.</p>
            <h2>Order Details</h2>
            <p><strong>Order ID:</strong> {order.id}</p>
            <p><strong>Order Date:</strong> {created_at.strftime("%Y-%m-%d")}</p>
            <p><strong>Status:</strong> {status}</p>
            <table>
                <thead>
                    <tr>
                        <th>Product</th>
                        <th style="text-align: center;">Quantity</th>
                        <th style="text-align: right;">Price</th>
                        <th style="text-align: right;">Total</th>
                    </tr>
                </thead>
                <tbody>{rows}
                </tbody>
            </table>
            <div class="total">Total Amount: {_money(order.total_amount)}</div>
            <p>If you have any questions, please contact our support team.</p>
            <p class="footer">&copy; {datetime.now(timezone.utc).year} Digital Product Store. All rights reserved.</p>
        </div>
    </body>
    </html>
    """


class BrevoMailer:
    def __init__(
        self,
        api_key: str,
        sender_email: str,
        sender_name: str = "Digital Product Store",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 20.0,
    ):
        self.api_key = api_key
        self.sender_email = sender_email
        self.sender_name = sender_name
        self._transport = transport
        self._timeout = timeout

    async def send_order_confirmation(self, to_email: str, order_id, order) -> None:
        """
        Sends the order confirmation email.

        Raises NotificationError on any failure; callers decide whether it matters.
        """
        if not self.api_key or not self.sender_email:
            raise NotificationError("BREVO_API_KEY or EMAIL_SENDER not set")

        headers = {
            "api-key": self.api_key,
            "accept": "application/json",
            "content-type": "application/json",
        }
        data = {
            "sender": {"email": self.sender_email, "name": self.sender_name},
            "to": [{"email": to_email}],
            "subject": f"Order Confirmation - Order #{str(order_id)[:8]}",
            "htmlContent": render_order_confirmation(order),
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(BREVO_API_URL, headers=headers, json=data)
        except httpx.HTTPError as e:
            raise NotificationError(f"Brevo API call failed for {to_email}: {e}") from e

        if response.status_code != 201:
            raise NotificationError(
                f"Brevo API error for {to_email}. Status: {response.status_code}, Response: {response.text}"
            )
        logger.info(f"EMAIL: Sent order confirmation for {order_id} to {to_email}")


# --- FastAPI Dependency ---

def get_mailer(request: Request) -> BrevoMailer:
    return request.app.state.mailer
