# payments.py
"""
Stripe bridge.

This module provides:
1.  Payment Intent creation for a pending order (amount in minor units,
    order id and customer email as metadata).
2.  Webhook verification: the raw body is checked against the
    `Stripe-Signature` header and turned into one of the handled event kinds.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional, Union

import stripe
from fastapi import Request
from starlette.concurrency import run_in_threadpool

from shopfront.errors import AppError, ErrorKind

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


# ===================================================================
# PAYMENT TYPES
# ===================================================================

@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str


@dataclass(frozen=True)
class PaymentSucceeded:
    event_id: str
    payment_intent_id: Optional[str]
    order_id: Optional[str]


@dataclass(frozen=True)
class PaymentFailed:
    event_id: str
    payment_intent_id: Optional[str]
    order_id: Optional[str]
    failure_message: Optional[str] = None


@dataclass(frozen=True)
class UnhandledEvent:
    event_id: str
    event_type: str


PaymentEvent = Union[PaymentSucceeded, PaymentFailed, UnhandledEvent]


def to_minor_units(amount) -> int:
    """Convert a decimal amount to integer cents, rounding half up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _mapping(value) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def parse_event(event) -> PaymentEvent:
    """Maps a Stripe event (or its plain-dict form) onto the handled event kinds."""
    if not isinstance(event, Mapping):
        raise ValueError(f"Webhook event must be a JSON object, got {type(event).__name__}")

    event_id = event.get("id") or ""
    event_type = event.get("type") or ""
    intent = _mapping(_mapping(event.get("data")).get("object"))
    metadata = _mapping(intent.get("metadata"))

    if event_type == PAYMENT_SUCCEEDED:
        return PaymentSucceeded(
            event_id=event_id,
            payment_intent_id=intent.get("id"),
            order_id=metadata.get("orderId"),
        )
    if event_type == PAYMENT_FAILED:
        last_error = _mapping(intent.get("last_payment_error"))
        return PaymentFailed(
            event_id=event_id,
            payment_intent_id=intent.get("id"),
            order_id=metadata.get("orderId"),
            failure_message=last_error.get("message"),
        )
    return UnhandledEvent(event_id=event_id, event_type=event_type)


# ===================================================================
# STRIPE GATEWAY
# ===================================================================

class StripeGateway:
    def __init__(self, secret_key: str, webhook_secret: str, currency: str = "usd"):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency

    async def create_payment_intent(self, amount: int, metadata: Dict[str, str]) -> PaymentIntent:
        """Creates a Stripe Payment Intent. `amount` is in the currency's minor unit."""
        try:
            intent = await run_in_threadpool(
                stripe.PaymentIntent.create,
                api_key=self.secret_key,
                amount=amount,
                currency=self.currency,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe Payment Intent creation failed: {e} (code={getattr(e, 'code', None)})")
            raise AppError("Failed to create payment intent", kind=ErrorKind.UPSTREAM)

        return PaymentIntent(id=intent.id, client_secret=intent.client_secret)

    def construct_event(self, payload: bytes, sig_header: str) -> PaymentEvent:
        """
        Verifies the webhook signature and parses the event.

        Raises `stripe.SignatureVerificationError` for a bad signature and
        `ValueError` for a body that is not a JSON object.
        """
        if not self.webhook_secret:
            raise AppError("Stripe webhook secret is not configured.", kind=ErrorKind.INTERNAL)

        try:
            event = stripe.Webhook.construct_event(
                payload=payload, sig_header=sig_header, secret=self.webhook_secret
            )
        except (AttributeError, TypeError) as e:
            # Signed, valid JSON, but not an object the SDK can turn into an Event.
            raise ValueError(f"Webhook body is not a Stripe event: {e}") from e
        return parse_event(event)


# --- FastAPI Dependency ---

def get_payment_gateway(request: Request) -> StripeGateway:
    return request.app.state.payment_gateway
