# webhooks.py
"""
Stripe webhook endpoint.

- Verifies the signature of the raw request body.
- `payment_intent.succeeded`: settles the PENDING order named in the metadata
  (status PAID, stock decremented, confirmation email). Orders that are missing
  or no longer PENDING are left alone, so redelivered events are harmless.
- `payment_intent.payment_failed`: marks the order FAILED.
- Anything else is acknowledged and ignored.
"""
import logging
import uuid
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shopfront.db import get_db
from shopfront.errors import AppError, ErrorKind
from shopfront.models import Order, OrderStatus
from shopfront.notifications import get_mailer
from shopfront.payments import (
    PaymentFailed, PaymentSucceeded, StripeGateway, UnhandledEvent, get_payment_gateway,
)
from shopfront.responses import send_success
from shopfront.settlement import get_order_with_items, mark_paid

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


def _order_uuid(raw) -> Optional[uuid.UUID]:
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        logger.warning(f"Webhook metadata carries a malformed orderId: {raw!r}")
        return None


async def handle_payment_succeeded(db: AsyncSession, mailer, event: PaymentSucceeded) -> None:
    order_id = _order_uuid(event.order_id)
    if order_id is None:
        logger.info(f"Payment intent {event.payment_intent_id} succeeded without an orderId; ignoring")
        return

    order = await get_order_with_items(db, order_id)
    if not order:
        logger.warning(f"Webhook: order {order_id} not found for payment intent {event.payment_intent_id}")
        return
    if order.status != OrderStatus.PENDING:
        logger.info(f"Webhook: order {order_id} already {order.status.value}; skipping settlement")
        return

    settlement = await mark_paid(db, mailer, order)
    failed = settlement.failed_adjustments
    if failed:
        logger.error(f"Order {order_id} settled with {len(failed)} failed stock update(s): {failed}")


async def handle_payment_failed(db: AsyncSession, event: PaymentFailed) -> None:
    order_id = _order_uuid(event.order_id)
    if order_id is None:
        return

    result = await db.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(status=OrderStatus.FAILED)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    if result.rowcount == 0:
        logger.warning(f"Webhook: payment failed for unknown order {order_id}")
    else:
        logger.warning(
            f"Order {order_id} payment failed (payment intent {event.payment_intent_id}): {event.failure_message}"
        )


# --- Stripe Webhook Endpoint ---

@router.post("/stripe", include_in_schema=False)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    mailer=Depends(get_mailer),
):
    if not stripe_signature:
        raise AppError("Missing stripe-signature header", kind=ErrorKind.SIGNATURE)

    payload = await request.body()
    try:
        event = gateway.construct_event(payload, stripe_signature)
    except stripe.SignatureVerificationError as e:
        logger.error(f"Webhook signature verification failed: {e}")
        raise AppError(f"Webhook Error: {e}", kind=ErrorKind.SIGNATURE)
    except ValueError as e:
        logger.error(f"Webhook payload could not be parsed: {e}")
        raise AppError("Invalid payload", kind=ErrorKind.VALIDATION)

    try:
        if isinstance(event, PaymentSucceeded):
            await handle_payment_succeeded(db, mailer, event)
        elif isinstance(event, PaymentFailed):
            await handle_payment_failed(db, event)
        elif isinstance(event, UnhandledEvent):
            logger.info(f"Unhandled webhook event type: {event.event_type} ({event.event_id})")
    except SQLAlchemyError as e:
        logger.exception(f"Error processing webhook event {event.event_id}: {e}")
        raise AppError("Webhook processing failed", kind=ErrorKind.INTERNAL)

    return send_success({"received": True}, "Webhook processed successfully")
