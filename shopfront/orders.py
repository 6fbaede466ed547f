# orders.py
import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shopfront.auth import require_admin
from shopfront.db import get_db
from shopfront.errors import AppError, ErrorKind, parse_uuid
from shopfront.models import Order, OrderItem, OrderStatus, Product
from shopfront.notifications import get_mailer
from shopfront.payments import StripeGateway, get_payment_gateway, to_minor_units
from shopfront.responses import send_success
from shopfront.schemas import (
    OrderCreate, OrderOut, OrderPage, OrderStatusOut, OrderStatusUpdate,
    PaymentIntentOut, StockAdjustmentOut,
)
from shopfront.settlement import get_order_with_items, mark_paid

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["Orders"])

# Largest value `Numeric(10, 2)` holds.
MAX_ORDER_TOTAL = Decimal("99999999.99")


async def _require_order(db: AsyncSession, order_id: str) -> Order:
    order = await get_order_with_items(db, parse_uuid(order_id, "order ID"))
    if not order:
        raise AppError("Order not found", kind=ErrorKind.NOT_FOUND)
    return order


# --- Order Creation Endpoint ---

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(payload: OrderCreate, db: AsyncSession = Depends(get_db)):
    """
    Creates a PENDING order.
    1. Looks up every referenced product in one query.
    2. Checks each requested quantity against current stock (nothing is reserved).
    3. Captures each product's current price on its line item and sums the total.
    4. Persists the order and its items in a single commit.
    """
    product_ids = {item.product_id for item in payload.items}
    result = await db.execute(select(Product).where(Product.id.in_(product_ids)))
    products = {p.id: p for p in result.scalars().all()}

    if len(products) != len(product_ids):
        missing = sorted(str(pid) for pid in product_ids - products.keys())
        logger.warning(f"Order rejected, unknown products: {missing}")
        raise AppError("One or more products not found", kind=ErrorKind.NOT_FOUND)

    total_amount = Decimal("0")
    order_items = []
    for item in payload.items:
        product = products[item.product_id]
        if product.stock < item.quantity:
            raise AppError(
                f"Insufficient stock for {product.name}. "
                f"Available: {product.stock}, Requested: {item.quantity}",
                kind=ErrorKind.STATE_CONFLICT,
            )
        total_amount += product.price * item.quantity
        order_items.append(OrderItem(product=product, quantity=item.quantity, price=product.price))

    if total_amount > MAX_ORDER_TOTAL:
        raise AppError(f"Order total exceeds the maximum of {MAX_ORDER_TOTAL}", kind=ErrorKind.VALIDATION)

    new_order = Order(
        customer_email=payload.customer_email,
        total_amount=total_amount,
        status=OrderStatus.PENDING,
        items=order_items,
    )
    db.add(new_order)
    await db.commit()

    logger.info(f"Created order {new_order.id} for {new_order.customer_email} (total={total_amount})")
    return send_success(OrderOut.model_validate(new_order), "Order created successfully", 201)


# --- Payment Intent Endpoint ---

@router.post("/{order_id}/payment")
async def create_payment_intent(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    """
    Issues a Stripe Payment Intent for a PENDING order and returns its client secret.
    The order id and customer email ride along as metadata for the webhook.
    """
    order = await _require_order(db, order_id)
    if order.status != OrderStatus.PENDING:
        raise AppError("Order is not in pending status", kind=ErrorKind.STATE_CONFLICT)

    intent = await gateway.create_payment_intent(
        amount=to_minor_units(order.total_amount),
        metadata={"orderId": str(order.id), "customerEmail": order.customer_email},
    )

    order.stripe_payment_intent_id = intent.id
    await db.commit()

    logger.info(f"Payment intent {intent.id} issued for order {order.id}")
    out = PaymentIntentOut(order=OrderOut.model_validate(order), client_secret=intent.client_secret)
    return send_success(out, "Payment intent created successfully")


# --- Admin Status Override ---

@router.put("/{order_id}/status", dependencies=[Depends(require_admin)])
async def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    mailer=Depends(get_mailer),
):
    """
    Sets an order's status by hand.

    Moving into PAID from any other status runs the same stock decrement and
    confirmation email as a successful payment. The current status is not checked
    otherwise, so terminal orders can be moved too.
    """
    order = await _require_order(db, order_id)
    previous = order.status

    if payload.status == OrderStatus.PAID and previous != OrderStatus.PAID:
        settlement = await mark_paid(db, mailer, order)
        failed = settlement.failed_adjustments
        if failed:
            logger.warning(f"Order {order_id} marked PAID with {len(failed)} failed stock update(s)")
        out = OrderStatusOut(
            order=OrderOut.model_validate(settlement.order),
            stock_adjustments=[StockAdjustmentOut.model_validate(a) for a in settlement.adjustments],
            notified=settlement.notified,
        )
    else:
        order.status = payload.status
        await db.commit()
        out = OrderStatusOut(order=OrderOut.model_validate(order))

    logger.info(f"Order {order_id} status changed {previous.value} -> {payload.status.value} by admin")
    return send_success(out, "Order status updated successfully")


# --- Order Lookup Endpoints ---

@router.get("", dependencies=[Depends(require_admin)])
async def list_orders(
    email: Optional[str] = None,
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    limit: Optional[int] = Query(None, ge=0),
    offset: Optional[int] = Query(None, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Admin listing, newest first, optionally filtered by email substring and status."""
    filters = []
    if email:
        filters.append(Order.customer_email.ilike(f"%{email}%"))
    if status_filter:
        filters.append(Order.status == status_filter)

    query = (
        select(Order)
        .where(*filters)
        .options(selectinload(Order.items).selectinload(OrderItem.product))
        .order_by(Order.created_at.desc())
    )
    if limit is not None:
        query = query.limit(limit)
    if offset is not None:
        query = query.offset(offset)

    orders = (await db.execute(query)).scalars().all()
    total = (await db.execute(select(func.count(Order.id)).where(*filters))).scalar_one()

    page = OrderPage(
        orders=[OrderOut.model_validate(o) for o in orders],
        total=total,
        limit=limit,
        offset=offset,
    )
    return send_success(page, "Orders fetched successfully")


@router.get("/history")
async def get_order_history(email: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    """Retrieves all orders placed with the given email address."""
    if not email:
        raise AppError("Email query parameter is required", 400)

    query = (
        select(Order)
        .where(Order.customer_email == email)
        .options(selectinload(Order.items).selectinload(OrderItem.product))
        .order_by(Order.created_at.desc())
    )
    orders = (await db.execute(query)).scalars().all()
    return send_success([OrderOut.model_validate(o) for o in orders], "Order history fetched successfully")


@router.get("/{order_id}")
async def get_order(order_id: str, db: AsyncSession = Depends(get_db)):
    order = await _require_order(db, order_id)
    return send_success(OrderOut.model_validate(order), "Order fetched successfully")
