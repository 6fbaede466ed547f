"""Fakes and request helpers shared by the test modules."""
import hashlib
import hmac
import json
import time
import uuid
from decimal import Decimal

from sqlalchemy import update

from shopfront.errors import AppError, ErrorKind
from shopfront.models import Product
from shopfront.notifications import NotificationError
from shopfront.payments import PaymentIntent, StripeGateway
from shopfront.settings import Settings

ADMIN_KEY = "admin-key"
ADMIN_HEADERS = {"X-API-Key": ADMIN_KEY}
WEBHOOK_SECRET = "whsec_test"


class FakeGateway(StripeGateway):
    """Stripe gateway with the Payment Intent call replaced; webhook verification is real."""

    def __init__(self, fail: bool = False):
        super().__init__("sk_test_x", WEBHOOK_SECRET)
        self.fail = fail
        self.calls = []

    async def create_payment_intent(self, amount, metadata):
        self.calls.append({"amount": amount, "metadata": metadata})
        if self.fail:
            raise AppError("Failed to create payment intent", kind=ErrorKind.UPSTREAM)
        intent_id = f"pi_{len(self.calls)}"
        return PaymentIntent(id=intent_id, client_secret=f"{intent_id}_secret_abc")


class RecordingMailer:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send_order_confirmation(self, to_email, order_id, order):
        if self.fail:
            raise NotificationError("Brevo API error. Status: 400")
        self.sent.append({"to": to_email, "order_id": order_id, "status": order.status})


def make_settings(**overrides) -> Settings:
    values = {
        "ENVIRONMENT": "test",
        "DATABASE_URL": "sqlite+aiosqlite://",
        "STRIPE_SECRET_KEY": "sk_test_x",
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "ADMIN_API_KEY": ADMIN_KEY,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def create_category(client, name="Courses", slug=None):
    body = {"name": name}
    if slug is not None:
        body["slug"] = slug
    response = client.post("/api/categories", json=body, headers=ADMIN_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def create_product(client, name="Widget", price="10.00", stock=5, **extra):
    body = {"name": name, "price": price, "stock": stock, **extra}
    response = client.post("/api/products", json=body, headers=ADMIN_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def create_order(client, items, email="buyer@example.com"):
    body = {
        "customer_email": email,
        "items": [{"product_id": product_id, "quantity": qty} for product_id, qty in items],
    }
    response = client.post("/api/orders", json=body)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def get_product(client, product_id):
    return client.get(f"/api/products/{product_id}").json()["data"]


def get_order(client, order_id):
    return client.get(f"/api/orders/{order_id}").json()["data"]


def stripe_signature(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def payment_event(event_type, order_id=None, failure_message=None, intent_id="pi_1") -> str:
    intent = {"id": intent_id, "object": "payment_intent", "metadata": {}}
    if order_id is not None:
        intent["metadata"]["orderId"] = order_id
    if failure_message is not None:
        intent["last_payment_error"] = {"message": failure_message}
    return json.dumps({
        "id": f"evt_{uuid.uuid4().hex[:12]}",
        "object": "event",
        "type": event_type,
        "data": {"object": intent},
    })


def post_webhook(client, payload: str, signature=None):
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = stripe_signature(payload) if signature is None else signature
    return client.post("/api/webhooks/stripe", content=payload, headers=headers)


async def _set_price(database, product_id, price):
    async with database.session_maker() as session:
        await session.execute(
            update(Product).where(Product.id == uuid.UUID(product_id)).values(price=Decimal(price))
        )
        await session.commit()


def set_price(client, product_id, price):
    """Changes a product's price directly; the catalog API has no price endpoint."""
    client.portal.call(_set_price, client.app.state.db, product_id, price)
