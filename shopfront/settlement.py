# settlement.py
"""
Side effects of an order becoming PAID: stock decrements and the confirmation email.

Shared by the Stripe webhook and the admin status override. Stock is decremented
item by item, each update committed on its own; a failing item is logged and
recorded without stopping the others.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shopfront.models import Order, OrderItem, OrderStatus, Product
from shopfront.notifications import NotificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockAdjustment:
    product_id: uuid.UUID
    quantity: int
    applied: bool
    error: Optional[str] = None


@dataclass
class SettlementResult:
    order: Order
    adjustments: List[StockAdjustment] = field(default_factory=list)
    notified: bool = False

    @property
    def failed_adjustments(self) -> List[StockAdjustment]:
        return [a for a in self.adjustments if not a.applied]


async def get_order_with_items(db: AsyncSession, order_id: uuid.UUID, refresh: bool = False) -> Optional[Order]:
    """Fetches an order with its items and their products eager-loaded."""
    query = (
        select(Order)
        .where(Order.id == order_id)
        .options(selectinload(Order.items).selectinload(OrderItem.product))
    )
    if refresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalars().first()


async def decrement_stock(db: AsyncSession, items) -> List[StockAdjustment]:
    # Capture plain values first: a rollback below expires every loaded instance.
    lines = [(item.product_id, item.quantity) for item in items]
    adjustments: List[StockAdjustment] = []

    for product_id, quantity in lines:
        try:
            result = await db.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(stock=Product.stock - quantity)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Failed to update stock for product {product_id} (quantity={quantity}): {e}")
            adjustments.append(StockAdjustment(product_id, quantity, applied=False, error=str(e)))
            continue

        if result.rowcount == 0:
            logger.error(f"Failed to update stock for product {product_id}: product not found")
            adjustments.append(StockAdjustment(product_id, quantity, applied=False, error="Product not found"))
        else:
            adjustments.append(StockAdjustment(product_id, quantity, applied=True))

    return adjustments


async def send_confirmation(mailer, order: Order) -> bool:
    try:
        await mailer.send_order_confirmation(order.customer_email, order.id, order)
    except NotificationError as e:
        logger.error(f"Failed to send confirmation email for order {order.id} to {order.customer_email}: {e}")
        return False
    logger.info(f"Order {order.id} confirmed and email sent to {order.customer_email}")
    return True


async def mark_paid(db: AsyncSession, mailer, order: Order) -> SettlementResult:
    """Moves an order (items loaded) to PAID, then decrements stock and emails the customer."""
    order_id = order.id
    order.status = OrderStatus.PAID
    await db.commit()

    adjustments = await decrement_stock(db, order.items)

    order = await get_order_with_items(db, order_id, refresh=True)
    notified = await send_confirmation(mailer, order)
    return SettlementResult(order=order, adjustments=adjustments, notified=notified)
